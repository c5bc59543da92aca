"""集中配置管理

提供缓存目录、远端地址、并发与重试参数的统一入口。
支持从 YAML 文件加载 + 环境变量覆盖 + 编程式覆盖。

注意: 这里只存放配置。解析过程的状态（已访问集合、锁表）
由每个 ResolutionEngine 实例自行持有，不做全局单例。
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from repolock.core.exceptions import ConfigError
from repolock.utils.yaml_io import load_yaml

logger = logging.getLogger(__name__)


def _default_config_dir() -> str:
    return str(Path.home() / ".config" / "repolock")


@dataclass
class Config:
    """全局配置"""

    # 目录
    config_dir: str = field(default_factory=_default_config_dir)
    cache_dir: str = ""
    manifest_name: str = "repolock.yml"
    out_dir: str = ".repolock"

    # 远端
    api_url: str = "https://api.github.com"
    request_timeout: float = 30.0

    # 执行
    max_workers: int = 8
    max_retries: int = 3
    retry_backoff: float = 1.0
    max_visited: int = 10000

    # 额外视为不可变的 revision 正则
    immutable_patterns: list[str] = field(default_factory=list)

    # 自定义扩展 (放不到字段里的配置项)
    extra: dict = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.cache_dir:
            self.cache_dir = os.getenv(
                "REPOLOCK_CACHE_DIR", str(Path(self.config_dir) / "cache"),
            )
        if self.max_workers < 1:
            raise ConfigError(f"max_workers 必须 >= 1: {self.max_workers}")
        if self.max_retries < 0:
            raise ConfigError(f"max_retries 不能为负: {self.max_retries}")
        if self.max_visited < 1:
            raise ConfigError(f"max_visited 必须 >= 1: {self.max_visited}")
        for pattern in self.immutable_patterns:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ConfigError(f"immutable_patterns 正则无效 {pattern!r}: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> Config:
        """从 YAML 文件加载配置，不存在则返回默认"""
        try:
            data = load_yaml(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"配置文件读取失败 {path}: {e}") from e
        if not data:
            return cls()
        known = {f.name for f in cls.__dataclass_fields__.values()}
        matched = {k: v for k, v in data.items() if k in known and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in known}
        try:
            cfg = cls(**matched)
        except TypeError as e:
            raise ConfigError(f"配置文件字段无效 {path}: {e}") from e
        cfg.extra = extra
        return cfg

    def default_config_file(self) -> Path:
        return Path(self.config_dir) / "config.yml"

    def to_dict(self) -> dict:
        return asdict(self)


# 全局单例，首次 import 时不加载文件；由 CLI 入口显式初始化
_current: Config | None = None


def get_config() -> Config:
    """获取当前配置（未初始化则返回默认值）"""
    global _current  # noqa: PLW0603
    if _current is None:
        _current = Config()
    return _current


def init_config(path: str | Path = "") -> Config:
    """从文件初始化全局配置

    未指定路径时依次使用 REPOLOCK_CONFIG 环境变量、默认配置目录下的 config.yml。
    """
    global _current  # noqa: PLW0603
    if not path:
        path = os.getenv("REPOLOCK_CONFIG", "") or Config().default_config_file()
    _current = Config.from_file(path)
    logger.info("配置已加载: %s", path)
    return _current


def reset_config() -> None:
    """重置全局配置（仅用于测试）"""
    global _current  # noqa: PLW0603
    _current = None
