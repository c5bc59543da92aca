"""依赖数据模型测试"""

from __future__ import annotations

import pytest

from repolock.core.dep.models import DependencyRef, EventKind, FileTree, ResolutionEvent
from repolock.core.exceptions import ValidationError


class TestDependencyRef:
    def test_parse(self) -> None:
        dep = DependencyRef.parse("acme/widget@main")
        assert (dep.owner, dep.repo, dep.revision) == ("acme", "widget", "main")
        assert dep.identity == "acme/widget@main"
        assert str(dep) == "acme/widget@main"

    def test_revision_may_contain_slash(self) -> None:
        dep = DependencyRef.parse("acme/widget@feature/x")
        assert dep.revision == "feature/x"

    @pytest.mark.parametrize("text", [
        "acme/widget",
        "acme@main",
        "/widget@main",
        "acme/@main",
        "acme/widget@",
        "a/b/c@main",
        "acme/wid get@main",
    ])
    def test_parse_invalid(self, text: str) -> None:
        with pytest.raises(ValidationError, match="owner/repo@revision"):
            DependencyRef.parse(text)

    @pytest.mark.parametrize("owner, repo", [("..", "x"), ("acme", "."), ("a@b", "x")])
    def test_construct_invalid(self, owner: str, repo: str) -> None:
        with pytest.raises(ValidationError):
            DependencyRef(owner=owner, repo=repo, revision="main")

    def test_value_semantics(self) -> None:
        a = DependencyRef("acme", "widget", "main")
        b = DependencyRef.parse("acme/widget@main")
        assert a == b and hash(a) == hash(b)
        assert a != a.with_revision("v1")
        assert a.package == a.with_revision("v1").package


class TestResolutionEvent:
    def test_resolved_and_pins_branch(self) -> None:
        dep = DependencyRef.parse("acme/widget@main")
        event = ResolutionEvent(EventKind.LOCKED_HASH_REUSED, dep, "abc123")
        assert event.pins_branch
        assert event.resolved.identity == "acme/widget@abc123"

        hit = ResolutionEvent(EventKind.CACHE_HIT, dep.with_revision("v1"), "v1")
        assert not hit.pins_branch

    def test_file_tree(self) -> None:
        tree = FileTree({"a.proto": b"x"})
        assert len(tree) == 1
        assert tree.get("a.proto") == b"x"
        assert tree.get("missing") is None
