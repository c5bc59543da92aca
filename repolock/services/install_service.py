"""安装服务: 校验令牌、解析依赖、写回锁表、填充输出目录

流程:
  1. 校验令牌（无效则在遍历开始前失败）
  2. 读取根清单，构建锁表
  3. 运行解析引擎并完整消费事件流
  4. 对账锁表，有变化时写回清单
  5. 把每个 (owner, repo) 先访问到的不可变版本从缓存复制到 <out_dir>/<owner>/<repo>，
     复制时对文本文件执行根清单的 replace-file-option 规则
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from repolock.core.config import Config, get_config
from repolock.core.dep.cache import CacheStore
from repolock.core.dep.classifier import RevisionClassifier
from repolock.core.dep.lock_table import LockTable
from repolock.core.dep.models import DependencyRef, ResolutionEvent
from repolock.core.dep.resolver import ResolutionEngine, ResolveOptions
from repolock.core.exceptions import InstallError
from repolock.core.manifest import ReplaceRule, load_manifest, save_lock
from repolock.core.protocols import RemoteClient

logger = logging.getLogger(__name__)


@dataclass
class InstallRequest:
    """安装请求参数"""

    manifest_path: str
    out_dir: str = ""
    clean: bool = False
    force_update: bool = False
    prune_lock: bool = False


@dataclass
class InstallReport:
    events: list[ResolutionEvent] = field(default_factory=list)
    lock_table: LockTable = field(default_factory=LockTable)
    lock_changed: bool = False
    installed: dict[DependencyRef, Path] = field(default_factory=dict)


class InstallService:
    """依赖安装服务"""

    def __init__(
        self,
        client: RemoteClient,
        config: Config | None = None,
        cache: CacheStore | None = None,
    ) -> None:
        self.config = config or get_config()
        self.client = client
        self.cache = cache or CacheStore(self.config.cache_dir, self.config.manifest_name)

    @classmethod
    def from_token(cls, token: str = "", config: Config | None = None) -> InstallService:
        """使用 GitHub 客户端构建服务"""
        from repolock.services.credentials import load_token
        from repolock.services.github_client import GitHubClient

        cfg = config or get_config()
        client = GitHubClient(
            load_token(token), api_url=cfg.api_url, timeout=cfg.request_timeout,
        )
        return cls(client, config=cfg)

    def install(
        self,
        req: InstallRequest,
        on_event: Callable[[ResolutionEvent], None] | None = None,
    ) -> InstallReport:
        """执行一次完整安装

        参数:
            req: 安装请求（清单路径、输出目录、clean / force_update / prune_lock）
            on_event: 每产出一个解析事件时回调，用于 CLI 实时输出

        返回:
            InstallReport: 全部事件、对账后的锁表、锁表是否变化、已安装的依赖

        异常:
            AuthenticationFailed: 令牌无效，在遍历开始前抛出
            ManifestParseError: 根清单或依赖清单格式错误
            RemoteError / CacheWriteError / CycleBudgetExceeded: 解析失败，锁表不会写回
            InstallError: 复制到输出目录失败

        示例:
            >>> svc = InstallService.from_token()
            >>> report = svc.install(InstallRequest("repolock.yml", out_dir=".repolock"))
            >>> report.lock_changed
            False
        """
        self.client.validate_token()

        manifest = load_manifest(req.manifest_path)
        original = manifest.lock_table()
        logger.info(
            "开始解析: %s (%d 个直接依赖, %d 条锁定)",
            req.manifest_path, len(manifest.dependencies), len(original),
        )

        engine = ResolutionEngine(
            self.client,
            self.cache,
            original.copy(),
            classifier=RevisionClassifier(self.config.immutable_patterns),
            options=ResolveOptions(
                clean=req.clean,
                force_update=req.force_update,
                max_workers=self.config.max_workers,
                max_retries=self.config.max_retries,
                retry_backoff=self.config.retry_backoff,
                max_visited=self.config.max_visited,
            ),
        )

        report = InstallReport()
        for event in engine.resolve(manifest.dependencies):
            report.events.append(event)
            if on_event is not None:
                on_event(event)

        report.lock_table = original.reconcile(report.events, prune=req.prune_lock)
        report.lock_changed = report.lock_table != original
        if report.lock_changed:
            save_lock(req.manifest_path, report.lock_table)

        out_dir = Path(req.out_dir or self.config.out_dir)
        report.installed = self.populate(out_dir, report.events, manifest.file_replace_rules)
        return report

    # ------------------------------------------------------------------
    # 输出目录
    # ------------------------------------------------------------------

    @staticmethod
    def select_installs(events: list[ResolutionEvent]) -> list[DependencyRef]:
        """每个 (owner, repo) 取 BFS 顺序中先访问到的不可变版本"""
        chosen: dict[tuple[str, str], DependencyRef] = {}
        for event in events:
            if event.pins_branch:
                continue
            dep = event.dep
            first = chosen.get(dep.package)
            if first is None:
                chosen[dep.package] = dep
            elif first != dep:
                logger.warning(
                    "%s/%s 存在多个版本，安装先访问到的 %s，忽略 %s",
                    dep.owner, dep.repo, first.revision, dep.revision,
                )
        return list(chosen.values())

    def populate(
        self,
        out_dir: Path,
        events: list[ResolutionEvent],
        rules: list[ReplaceRule],
    ) -> dict[DependencyRef, Path]:
        installed: dict[DependencyRef, Path] = {}
        for dep in self.select_installs(events):
            dest = out_dir / dep.owner / dep.repo
            self._install_one(dep, dest, rules)
            installed[dep] = dest
        logger.info("已安装 %d 个依赖到 %s", len(installed), out_dir)
        return installed

    def _install_one(self, dep: DependencyRef, dest: Path, rules: list[ReplaceRule]) -> None:
        src = self.cache.entry_dir(dep)
        if not src.is_dir():
            raise InstallError(f"缓存条目不存在: {dep} ({src})")
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(dir=str(dest.parent), prefix=f".{dest.name}-"))
        except OSError as e:
            raise InstallError(f"无法创建输出目录 {dest.parent}: {e}") from e

        try:
            for path in sorted(src.rglob("*")):
                rel = path.relative_to(src)
                if not path.is_file() or rel.as_posix() == self.cache.manifest_name:
                    continue
                target = staging / rel
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(self._apply_rules(path.read_bytes(), rules))
            self._swap_in(staging, dest)
        except OSError as e:
            shutil.rmtree(staging, ignore_errors=True)
            raise InstallError(f"安装失败 {dep} -> {dest}: {e}") from e
        logger.info("  安装: %s -> %s", dep, dest)

    @staticmethod
    def _swap_in(staging: Path, dest: Path) -> None:
        """用 staging 替换 dest

        旧目录先整体 rename 到一旁，新目录 rename 成功后才删除旧目录；
        rename 失败时把旧目录原样放回，dest 不会处于删了一半的状态。
        """
        if not dest.exists():
            staging.rename(dest)
            return
        backup = dest.with_name(f"{staging.name}.old")
        dest.rename(backup)
        try:
            staging.rename(dest)
        except OSError:
            backup.rename(dest)
            raise
        try:
            shutil.rmtree(backup)
        except OSError as e:
            logger.warning("清理旧安装目录失败 %s: %s", backup, e)

    @staticmethod
    def _apply_rules(data: bytes, rules: list[ReplaceRule]) -> bytes:
        if not rules:
            return data
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return data
        for rule in rules:
            text = rule.apply(text)
        return text.encode("utf-8")
