"""repolock - 远程仓库依赖解析与本地缓存管理"""

__version__ = "0.1.0"
