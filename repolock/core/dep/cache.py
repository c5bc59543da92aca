"""依赖缓存存储

职责:
- 以 (owner, repo, 不可变 revision) 为键定位本地缓存目录
- 原子化写入（暂存目录 + rename），不会留下半写入的条目
- 同一三元组的写入互斥，后到者观察到缓存命中
- 整体清理

目录布局:
  <root>/<owner>/<repo>@<revision>/   各段经过百分号编码，保证不同三元组不冲突
  <root>/@staging/                     写入中的临时目录
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path, PurePosixPath
from urllib.parse import quote, unquote

from repolock.core.dep.models import DependencyRef, FileTree
from repolock.core.exceptions import CacheWriteError

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_NAME = "repolock.yml"
_STAGING = "@staging"


def _encode(part: str) -> str:
    return quote(part, safe="")


class CacheStore:
    """依赖缓存存储 - 仅负责定位与读写目录，不解释文件内容"""

    def __init__(self, root: str | Path, manifest_name: str = DEFAULT_MANIFEST_NAME) -> None:
        self.root = Path(root)
        self.manifest_name = manifest_name
        self._guard = threading.Lock()
        # 三元组 -> [锁, 持有或等待中的线程数]，计数归零即移除
        self._locks: dict[DependencyRef, list] = {}

    # ------------------------------------------------------------------
    # 路径
    # ------------------------------------------------------------------

    def entry_dir(self, dep: DependencyRef) -> Path:
        return self.root / _encode(dep.owner) / f"{_encode(dep.repo)}@{_encode(dep.revision)}"

    def manifest_path(self, dep: DependencyRef) -> Path:
        return self.entry_dir(dep) / self.manifest_name

    def exists(self, dep: DependencyRef) -> bool:
        """条目目录只会通过 rename 一次性出现，存在即完整"""
        return self.entry_dir(dep).is_dir()

    def has_manifest(self, dep: DependencyRef) -> bool:
        return self.manifest_path(dep).is_file()

    # ------------------------------------------------------------------
    # 写入
    # ------------------------------------------------------------------

    @contextmanager
    def _locked(self, dep: DependencyRef) -> Iterator[None]:
        """同一三元组的写入互斥；最后一个使用者退出时释放锁对象"""
        with self._guard:
            slot = self._locks.setdefault(dep, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._guard:
                slot[1] -= 1
                if slot[1] == 0:
                    del self._locks[dep]

    def materialize(self, dep: DependencyRef, tree: FileTree) -> bool:
        """写入一个缓存条目

        参数:
            dep: 不可变的依赖三元组
            tree: 远端下载得到的文件树

        返回:
            bool: 真正发生写入时为 True；条目已存在（包括被并发写入者抢先）时为 False

        异常:
            CacheWriteError: 文件路径非法或写入失败，失败时暂存目录已清理，
                不会留下被 exists() 认作完整的条目

        示例:
            >>> store = CacheStore("/tmp/cache")
            >>> store.materialize(DependencyRef.parse("acme/widget@v1"), FileTree({"a.proto": b""}))
            True
        """
        final = self.entry_dir(dep)
        with self._locked(dep):
            if final.is_dir():
                logger.info("缓存已存在，跳过写入: %s", dep)
                return False

            relpaths = [self._safe_relpath(dep, p) for p in tree.files]
            try:
                staging_root = self.root / _STAGING
                staging_root.mkdir(parents=True, exist_ok=True)
                tmp = Path(tempfile.mkdtemp(dir=str(staging_root), prefix="entry-"))
            except OSError as e:
                raise CacheWriteError(str(final), str(e)) from e

            try:
                for rel, data in zip(relpaths, tree.files.values()):
                    dest = tmp.joinpath(*rel.parts)
                    dest.parent.mkdir(parents=True, exist_ok=True)
                    dest.write_bytes(data)
                final.parent.mkdir(parents=True, exist_ok=True)
                os.rename(tmp, final)
            except OSError as e:
                shutil.rmtree(tmp, ignore_errors=True)
                if final.is_dir():
                    # 其他进程抢先完成了同一条目
                    logger.info("缓存已由其他进程写入: %s", dep)
                    return False
                raise CacheWriteError(str(final), str(e)) from e

        logger.info("已写入缓存: %s (%d 个文件) -> %s", dep, len(tree), final)
        return True

    @staticmethod
    def _safe_relpath(dep: DependencyRef, path: str) -> PurePosixPath:
        rel = PurePosixPath(path)
        if rel.is_absolute() or not rel.parts or ".." in rel.parts:
            raise CacheWriteError(dep.identity, f"文件路径非法: {path!r}")
        return rel

    # ------------------------------------------------------------------
    # 查询与清理
    # ------------------------------------------------------------------

    def list_entries(self) -> list[DependencyRef]:
        """列出全部已缓存的三元组"""
        if not self.root.is_dir():
            return []
        entries: list[DependencyRef] = []
        for owner_dir in sorted(self.root.iterdir()):
            if not owner_dir.is_dir() or owner_dir.name == _STAGING:
                continue
            for entry in sorted(owner_dir.iterdir()):
                repo, sep, rev = entry.name.partition("@")
                if not entry.is_dir() or not sep:
                    continue
                entries.append(DependencyRef(
                    owner=unquote(owner_dir.name), repo=unquote(repo), revision=unquote(rev),
                ))
        return entries

    def clear(self) -> None:
        """删除整个缓存根目录；失败时抛出异常，不允许在"以为已清空"的状态下继续"""
        if not self.root.exists():
            return
        try:
            shutil.rmtree(self.root)
        except OSError as e:
            raise CacheWriteError(str(self.root), f"清理缓存失败: {e}") from e
        if self.root.exists():
            raise CacheWriteError(str(self.root), "清理缓存后目录仍存在")
        logger.info("已清理缓存目录: %s", self.root)
