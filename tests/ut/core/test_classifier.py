"""revision 分类测试"""

from __future__ import annotations

import pytest

from repolock.core.dep.classifier import RevisionClassifier
from repolock.core.dep.models import RevisionKind


class TestRevisionClassifier:
    @pytest.mark.parametrize("revision", [
        "0123456789abcdef0123456789abcdef01234567",
        "abc1234",
        "DEADBEEF",
        "v1",
        "v1.0.0",
        "1.2.3",
        "v2.0.0-rc.1",
        "v1.4.0+build.7",
    ])
    def test_immutable(self, revision: str) -> None:
        assert RevisionClassifier().classify(revision) is RevisionKind.IMMUTABLE

    @pytest.mark.parametrize("revision", [
        "main",
        "master",
        "develop",
        "feature/login",
        "release-2024",
        "abc12",           # 过短，不视为 hash
        "0123456789abcdef0123456789abcdef012345678",  # 41 位
        "v1.x",
    ])
    def test_branch(self, revision: str) -> None:
        assert RevisionClassifier().classify(revision) is RevisionKind.BRANCH

    def test_extra_patterns(self) -> None:
        classifier = RevisionClassifier([r"release/\d{4}-\d{2}"])
        assert classifier.classify("release/2024-06") is RevisionKind.IMMUTABLE
        assert classifier.classify("release/2024-06-hotfix") is RevisionKind.BRANCH

    def test_is_commit_hash(self) -> None:
        assert RevisionClassifier.is_commit_hash("abcdef0")
        assert not RevisionClassifier.is_commit_hash("main")
