"""依赖解析与缓存

- models.py: 数据模型
- classifier.py: revision 分类
- cache.py: 本地缓存存储
- lock_table.py: 锁表
- resolver.py: 解析引擎
"""

from repolock.core.dep.cache import CacheStore
from repolock.core.dep.classifier import RevisionClassifier
from repolock.core.dep.lock_table import LockTable
from repolock.core.dep.models import (
    DependencyRef,
    EventKind,
    FileTree,
    ResolutionEvent,
    RevisionKind,
)
from repolock.core.dep.resolver import ResolutionEngine, ResolveOptions

__all__ = [
    "CacheStore",
    "DependencyRef",
    "EventKind",
    "FileTree",
    "LockTable",
    "ResolutionEngine",
    "ResolutionEvent",
    "ResolveOptions",
    "RevisionClassifier",
    "RevisionKind",
]
