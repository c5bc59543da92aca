"""revision 分类器

规则（纯函数，不做任何 I/O）:
  - 7~40 位十六进制串 -> commit hash，不可变
  - 版本 tag 形如 v1 / 1.2.3 / v1.0.0-rc.1 / v2.0+build.5 -> 不可变
  - 命中额外配置的正则 -> 不可变
  - 其他一律视为分支（分支解析总是安全的，最坏情况由远端报错）
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from repolock.core.dep.models import RevisionKind

_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{7,40}$")
_VERSION_TAG_RE = re.compile(r"^v?\d+(\.\d+)*([-+][0-9A-Za-z.\-+]+)?$")


class RevisionClassifier:
    """根据 revision 字符串语法判断可变/不可变"""

    def __init__(self, extra_patterns: Iterable[str] = ()) -> None:
        self._extra = [re.compile(p) for p in extra_patterns]

    def classify(self, revision: str) -> RevisionKind:
        if self.is_commit_hash(revision) or _VERSION_TAG_RE.match(revision):
            return RevisionKind.IMMUTABLE
        if any(p.fullmatch(revision) for p in self._extra):
            return RevisionKind.IMMUTABLE
        return RevisionKind.BRANCH

    @staticmethod
    def is_commit_hash(revision: str) -> bool:
        return bool(_COMMIT_RE.match(revision))
