"""依赖解析引擎

从根清单的直接依赖出发做广度优先遍历，每个 (owner, repo, revision)
三元组至多处理一次，逐个产出 ResolutionEvent。

单节点处理规则:
  - 不可变 revision: 缓存命中 -> CacheHit（不访问远端）;
    未命中 -> 下载并写入缓存 -> Downloaded
    两种情况都会把该节点缓存中的清单依赖加入队列
  - 分支: 锁表中有记录且未要求强制校验 -> LockedHashReused（不访问远端）;
    否则向远端查询当前 commit -> HashCheckedAndUpdated 并更新锁表
    两种情况都会派生出 revision=commit 的节点加入队列

并发模型:
  队列按"波次"推进。协调者（调用 resolve() 的线程）按入队顺序完成去重、
  分类、锁表查询和锁表写入；每个波次内的远程 I/O（查询分支、下载、写缓存）
  交给有界线程池并行执行，结果按入队顺序收集并产出事件。
  这与串行 BFS 的处理顺序完全一致。
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from repolock.core.dep.cache import CacheStore
from repolock.core.dep.classifier import RevisionClassifier
from repolock.core.dep.lock_table import LockTable
from repolock.core.dep.models import (
    DependencyRef,
    EventKind,
    ResolutionEvent,
    RevisionKind,
)
from repolock.core.exceptions import (
    CycleBudgetExceeded,
    RemoteTransientError,
    ResolutionAborted,
)
from repolock.core.protocols import RemoteClient

if TYPE_CHECKING:
    from repolock.core.manifest import Manifest

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ResolveOptions:
    """单次解析的策略参数"""

    clean: bool = False          # 遍历前清空整个缓存
    force_update: bool = False   # 忽略锁表，重新查询所有分支
    max_workers: int = 8
    max_retries: int = 3
    retry_backoff: float = 1.0   # 秒，第 n 次重试等待 backoff * 2^n
    max_visited: int = 10000


@dataclass(frozen=True)
class _QueueItem:
    dep: DependencyRef
    derived: bool = False  # 由分支解析派生的 commit 节点，始终按不可变处理


@dataclass(frozen=True)
class _Plan:
    item: _QueueItem
    kind: RevisionKind
    locked: str | None = None


@dataclass
class _Outcome:
    event: ResolutionEvent
    children: list[_QueueItem]


class ResolutionEngine:
    """依赖解析引擎

    已访问集合与锁表都属于引擎实例，多个引擎可以互不干扰地并行运行。
    锁表会被原地更新，调用方需要独立副本时应先 copy()。
    """

    def __init__(
        self,
        client: RemoteClient,
        cache: CacheStore,
        lock_table: LockTable | None = None,
        *,
        classifier: RevisionClassifier | None = None,
        options: ResolveOptions | None = None,
        manifest_loader: Callable[[str], Manifest] | None = None,
        sleep: Callable[[float], object] | None = None,
    ) -> None:
        self.client = client
        self.cache = cache
        self.lock_table = lock_table if lock_table is not None else LockTable()
        self.classifier = classifier or RevisionClassifier()
        self.options = options or ResolveOptions()
        self.visited: set[DependencyRef] = set()
        self.stats: Counter[EventKind] = Counter()
        if manifest_loader is None:
            from repolock.core.manifest import load_manifest as manifest_loader
        self._load_manifest = manifest_loader
        self._abort = threading.Event()
        # 默认的等待可被 abort() 打断
        self._sleep = sleep or self._abort.wait

    def abort(self) -> None:
        """请求中止：不再发起新的工作，已在执行的 I/O 正常收尾"""
        self._abort.set()

    # ------------------------------------------------------------------
    # 遍历
    # ------------------------------------------------------------------

    def resolve(self, roots: Iterable[DependencyRef]) -> Iterator[ResolutionEvent]:
        """从根依赖开始一次完整的广度优先解析

        参数:
            roots: 根清单中的直接依赖，按声明顺序入队

        返回:
            Iterator[ResolutionEvent]: 惰性事件流，按出队顺序每个遍历节点产出一个事件。
            必须完整消费后锁表才是最终结果。

        异常:
            CycleBudgetExceeded: 已访问节点数超过 max_visited
            ResolutionAborted: 调用了 abort()
            RemoteError / CacheWriteError / ManifestParseError: 致命错误，直接抛出

        说明:
            每次调用都会重置已访问集合、统计与中止标记，同一引擎可重复解析；
            锁表不重置，上一次解析写入的锁定会被下一次复用。

        示例:
            >>> engine = ResolutionEngine(client, CacheStore("~/.cache/repolock"))
            >>> for event in engine.resolve([DependencyRef.parse("acme/widget@main")]):
            ...     print(event.kind.value, event.dep)
        """
        self.visited = set()
        self.stats = Counter()
        self._abort.clear()
        return self._traverse(list(roots))

    def _traverse(self, roots: list[DependencyRef]) -> Iterator[ResolutionEvent]:
        if self.options.clean:
            self.cache.clear()

        queue: deque[_QueueItem] = deque(_QueueItem(dep) for dep in roots)
        executor = ThreadPoolExecutor(
            max_workers=self.options.max_workers, thread_name_prefix="repolock",
        )
        try:
            while queue:
                self._check_abort()
                wave = self._plan_wave(queue)
                if not wave:
                    continue
                logger.debug("处理波次: %d 个节点", len(wave))
                futures = [executor.submit(self._process, plan) for plan in wave]
                for future in futures:
                    outcome = future.result()
                    event = outcome.event
                    if event.kind is EventKind.HASH_CHECKED_AND_UPDATED:
                        self.lock_table.pin(event.dep, event.resolved_revision)
                    queue.extend(outcome.children)
                    self.stats[event.kind] += 1
                    yield event
                    self._check_abort()
        except BaseException:
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        executor.shutdown(wait=True)
        logger.info(
            "解析完成: 访问 %d 个节点 (%s)",
            len(self.visited),
            ", ".join(f"{k.value}={v}" for k, v in sorted(self.stats.items())) or "无",
        )

    def resolve_all(self, roots: Iterable[DependencyRef]) -> list[ResolutionEvent]:
        return list(self.resolve(roots))

    def _check_abort(self) -> None:
        if self._abort.is_set():
            raise ResolutionAborted("解析已中止")

    def _plan_wave(self, queue: deque[_QueueItem]) -> list[_Plan]:
        """取出当前队列中的全部节点，按顺序去重、分类、查询锁表"""
        wave: list[_Plan] = []
        for _ in range(len(queue)):
            item = queue.popleft()
            if item.dep in self.visited:
                continue
            if len(self.visited) >= self.options.max_visited:
                raise CycleBudgetExceeded(self.options.max_visited)
            self.visited.add(item.dep)

            if item.derived:
                kind = RevisionKind.IMMUTABLE
            else:
                kind = self.classifier.classify(item.dep.revision)

            locked = None
            if kind is RevisionKind.BRANCH and not self.options.force_update:
                locked = self.lock_table.get(item.dep)
            wave.append(_Plan(item=item, kind=kind, locked=locked))
        return wave

    # ------------------------------------------------------------------
    # 单节点处理（在工作线程中执行，不修改共享状态）
    # ------------------------------------------------------------------

    def _process(self, plan: _Plan) -> _Outcome:
        if plan.kind is RevisionKind.BRANCH:
            return self._process_branch(plan)
        return self._process_immutable(plan.item.dep)

    def _process_branch(self, plan: _Plan) -> _Outcome:
        dep = plan.item.dep
        if plan.locked:
            logger.info("使用锁定 commit: %s -> %s", dep, plan.locked)
            kind, commit = EventKind.LOCKED_HASH_REUSED, plan.locked
        else:
            commit = self._with_retry(
                f"resolve {dep}",
                self.client.resolve_branch_head, dep.owner, dep.repo, dep.revision,
            )
            logger.info("远端分支最新 commit: %s -> %s", dep, commit)
            kind = EventKind.HASH_CHECKED_AND_UPDATED

        return _Outcome(
            event=ResolutionEvent(kind=kind, dep=dep, resolved_revision=commit),
            children=[_QueueItem(dep.with_revision(commit), derived=True)],
        )

    def _process_immutable(self, dep: DependencyRef) -> _Outcome:
        if self.cache.exists(dep):
            logger.info("缓存命中: %s", dep)
            kind = EventKind.CACHE_HIT
        else:
            logger.info("缓存未命中，下载: %s", dep)
            tree = self._with_retry(
                f"fetch {dep}",
                self.client.fetch_tree, dep.owner, dep.repo, dep.revision,
            )
            written = self.cache.materialize(dep, tree)
            kind = EventKind.DOWNLOADED if written else EventKind.CACHE_HIT

        return _Outcome(
            event=ResolutionEvent(kind=kind, dep=dep, resolved_revision=dep.revision),
            children=[_QueueItem(child) for child in self._nested_deps(dep)],
        )

    def _nested_deps(self, dep: DependencyRef) -> list[DependencyRef]:
        """读取缓存条目中的清单依赖，没有清单视为无依赖"""
        if not self.cache.has_manifest(dep):
            return []
        return self._load_manifest(str(self.cache.manifest_path(dep))).dependencies

    def _with_retry(self, label: str, fn: Callable[..., T], *args: str) -> T:
        """临时性远程错误按指数退避重试，超出次数后作为致命错误抛出"""
        attempt = 0
        while True:
            try:
                return fn(*args)
            except RemoteTransientError as e:
                if attempt >= self.options.max_retries or self._abort.is_set():
                    logger.error("远程调用失败 (%s)，已重试 %d 次: %s", label, attempt, e)
                    raise
                delay = self.options.retry_backoff * (2 ** attempt)
                delay = max(delay, getattr(e, "retry_after", 0.0))
                attempt += 1
                logger.warning(
                    "远程调用失败 (%s)，%.1f 秒后重试 %d/%d: %s",
                    label, delay, attempt, self.options.max_retries, e,
                )
                self._sleep(delay)
