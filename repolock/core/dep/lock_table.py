"""锁表

把每个分支依赖固定到具体 commit hash。
内部以结构化 DependencyRef 为键，仅在清单读写边界转换为 "owner/repo@rev" 字符串。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping

from repolock.core.dep.models import DependencyRef, ResolutionEvent

logger = logging.getLogger(__name__)


class LockTable:
    """依赖 -> 已解析的不可变 revision"""

    def __init__(self, entries: Mapping[DependencyRef, str] | None = None) -> None:
        self._entries: dict[DependencyRef, str] = dict(entries or {})

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> LockTable:
        """从清单 lock 段（字符串键值）构建"""
        return cls({DependencyRef.parse(k): str(v) for k, v in data.items()})

    def to_mapping(self) -> dict[str, str]:
        """序列化为按键排序的字符串映射，保证输出稳定"""
        return {dep.identity: rev for dep, rev in sorted(self._entries.items())}

    def get(self, dep: DependencyRef) -> str | None:
        return self._entries.get(dep)

    def pin(self, dep: DependencyRef, revision: str) -> bool:
        """写入一条锁定记录，返回是否发生变化"""
        if self._entries.get(dep) == revision:
            return False
        previous = self._entries.get(dep)
        self._entries[dep] = revision
        if previous:
            logger.info("锁定更新: %s %s -> %s", dep, previous, revision)
        else:
            logger.info("新增锁定: %s -> %s", dep, revision)
        return True

    def copy(self) -> LockTable:
        return LockTable(self._entries)

    def reconcile(
        self, events: Iterable[ResolutionEvent], *, prune: bool = False,
    ) -> LockTable:
        """根据解析事件生成最终锁表

        每个经过分支解析的依赖都会有一条记录（无论来自锁表复用还是远端检查）。
        prune=True 时删除本次未遍历到的旧记录，否则保留。
        """
        result = self.copy()
        pinned: set[DependencyRef] = set()
        for event in events:
            if event.pins_branch:
                result.pin(event.dep, event.resolved_revision)
                pinned.add(event.dep)
        if prune:
            stale = [dep for dep in result._entries if dep not in pinned]
            for dep in stale:
                del result._entries[dep]
                logger.info("移除失效锁定: %s", dep)
        return result

    def __contains__(self, dep: object) -> bool:
        return dep in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[DependencyRef]:
        return iter(sorted(self._entries))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LockTable):
            return NotImplemented
        return self._entries == other._entries

    def __repr__(self) -> str:
        return f"LockTable({self.to_mapping()!r})"
