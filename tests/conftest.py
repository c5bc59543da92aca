"""测试共享 fixture: 内存版远程客户端 + 临时缓存

FakeRemote 满足 RemoteClient 协议:
  - add_branch("owner/repo@branch", sha)  配置分支最新 commit
  - add_tree("owner/repo@rev", deps=[...]) 配置可下载的文件树（可带嵌套清单）
  - fail(method, "owner/repo@rev", *errors) 预置按顺序抛出的异常
  - count(method, spec) 统计调用次数
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from pathlib import Path

import pytest
import yaml

from repolock.core.config import reset_config
from repolock.core.dep.cache import CacheStore
from repolock.core.dep.models import FileTree
from repolock.core.exceptions import AuthenticationFailed, RemoteNotFound


def make_tree(
    deps: Iterable[str] = (),
    files: dict[str, bytes] | None = None,
    manifest_name: str = "repolock.yml",
) -> FileTree:
    content = dict(files if files is not None else {"README.md": b"readme\n"})
    deps = list(deps)
    if deps:
        content[manifest_name] = yaml.safe_dump({"deps": deps}).encode()
    return FileTree(files=content)


class FakeRemote:
    def __init__(self, token_ok: bool = True) -> None:
        self.token_ok = token_ok
        self.heads: dict[str, str] = {}
        self.trees: dict[str, FileTree] = {}
        self.failures: dict[tuple[str, str], list[Exception]] = {}
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def add_branch(self, spec: str, sha: str) -> None:
        self.heads[spec] = sha

    def add_tree(
        self, spec: str, deps: Iterable[str] = (), files: dict[str, bytes] | None = None,
    ) -> None:
        self.trees[spec] = make_tree(deps, files)

    def fail(self, method: str, spec: str, *errors: Exception) -> None:
        self.failures.setdefault((method, spec), []).extend(errors)

    def count(self, method: str, spec: str | None = None) -> int:
        return sum(1 for m, s in self.calls if m == method and (spec is None or s == spec))

    def _record(self, method: str, spec: str) -> None:
        with self._lock:
            self.calls.append((method, spec))
            pending = self.failures.get((method, spec))
            if pending:
                raise pending.pop(0)

    def validate_token(self) -> None:
        self._record("validate_token", "")
        if not self.token_ok:
            raise AuthenticationFailed("令牌无效")

    def resolve_branch_head(self, owner: str, repo: str, branch: str) -> str:
        spec = f"{owner}/{repo}@{branch}"
        self._record("resolve_branch_head", spec)
        if spec not in self.heads:
            raise RemoteNotFound(spec)
        return self.heads[spec]

    def fetch_tree(self, owner: str, repo: str, revision: str) -> FileTree:
        spec = f"{owner}/{repo}@{revision}"
        self._record("fetch_tree", spec)
        if spec not in self.trees:
            raise RemoteNotFound(spec)
        return self.trees[spec]


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def cache(tmp_path: Path) -> CacheStore:
    return CacheStore(tmp_path / "cache")


@pytest.fixture()
def tree_factory():
    return make_tree


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """隔离全局配置与用户目录，避免读取真实的 ~/.config"""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("REPOLOCK_CONFIG", raising=False)
    monkeypatch.delenv("REPOLOCK_CACHE_DIR", raising=False)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    reset_config()
    yield
    reset_config()
