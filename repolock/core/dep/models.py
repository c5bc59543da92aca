"""依赖解析数据模型

数据类:
- DependencyRef: 一次依赖引用 (owner, repo, revision)，同时作为去重与锁表的键
- RevisionKind: revision 分类（可变分支 / 不可变 tag 或 commit）
- EventKind / ResolutionEvent: 解析引擎对外输出的事件
- FileTree: 远端下载得到的文件树
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from repolock.core.exceptions import ValidationError

# owner / repo 不允许包含分隔符，避免 "a/b@c" 的拼接歧义
_DEP_RE = re.compile(r"^([^/@\s]+)/([^/@\s]+)@(\S+)$")


@dataclass(frozen=True, order=True)
class DependencyRef:
    """单个依赖引用

    相等性与哈希基于 (owner, repo, revision) 三元组，
    即一个遍历节点；同一 (owner, repo) 不同 revision 是不同节点。
    """

    owner: str
    repo: str
    revision: str

    def __post_init__(self) -> None:
        for label, value in (("owner", self.owner), ("repo", self.repo)):
            if (
                value in ("", ".", "..")
                or "/" in value or "@" in value
                or any(c.isspace() for c in value)
            ):
                raise ValidationError(f"依赖 {label} 非法: {value!r}")
        if not self.revision or self.revision != self.revision.strip():
            raise ValidationError(f"依赖 revision 非法: {self.revision!r}")

    @classmethod
    def parse(cls, text: str) -> DependencyRef:
        """解析 "owner/repo@revision" 形式的字符串"""
        m = _DEP_RE.match(text.strip()) if isinstance(text, str) else None
        if m is None:
            raise ValidationError(f"依赖格式应为 owner/repo@revision: {text!r}")
        return cls(owner=m.group(1), repo=m.group(2), revision=m.group(3))

    @property
    def identity(self) -> str:
        return f"{self.owner}/{self.repo}@{self.revision}"

    @property
    def package(self) -> tuple[str, str]:
        """(owner, repo)，不区分 revision 的"同一依赖"判定"""
        return (self.owner, self.repo)

    def with_revision(self, revision: str) -> DependencyRef:
        return DependencyRef(owner=self.owner, repo=self.repo, revision=revision)

    def __str__(self) -> str:
        return self.identity


class RevisionKind(str, Enum):
    """revision 分类"""

    BRANCH = "branch"        # 可变，需要解析到 commit
    IMMUTABLE = "immutable"  # tag 或 commit hash，直接作为缓存键


class EventKind(str, Enum):
    """解析事件类型"""

    CACHE_HIT = "cache-hit"
    LOCKED_HASH_REUSED = "locked-hash-reused"
    HASH_CHECKED_AND_UPDATED = "hash-checked-and-updated"
    DOWNLOADED = "downloaded"


@dataclass(frozen=True)
class ResolutionEvent:
    """每个被访问的遍历节点恰好产生一个事件"""

    kind: EventKind
    dep: DependencyRef
    resolved_revision: str

    @property
    def resolved(self) -> DependencyRef:
        """解析后的不可变依赖"""
        return self.dep.with_revision(self.resolved_revision)

    @property
    def pins_branch(self) -> bool:
        """事件是否来自分支解析（需要写入锁表）"""
        return self.kind in (
            EventKind.LOCKED_HASH_REUSED, EventKind.HASH_CHECKED_AND_UPDATED,
        )


@dataclass
class FileTree:
    """远端某个 revision 的文件树：相对路径 (posix) -> 文件内容"""

    files: dict[str, bytes] = field(default_factory=dict)

    def get(self, path: str) -> bytes | None:
        return self.files.get(path)

    def __len__(self) -> int:
        return len(self.files)
