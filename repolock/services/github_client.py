"""GitHub 远程仓库客户端

职责:
- 校验令牌
- 把分支解析为当前 commit hash
- 下载指定 revision 的 tarball 并在内存中展开为 FileTree

HTTP 状态映射到统一异常:
  401          -> AuthenticationFailed
  403/429 限流 -> RemoteRateLimited（可重试）
  403 其他     -> AuthenticationFailed
  404/422      -> RemoteNotFound
  5xx / 网络   -> RemoteTransientError（可重试）
  超时         -> RemoteTimeout（可重试）
"""

from __future__ import annotations

import http.client
import io
import json
import logging
import tarfile
import time
import urllib.error
import urllib.request
from pathlib import PurePosixPath
from typing import Any
from urllib.parse import quote

from repolock.core.dep.models import FileTree
from repolock.core.exceptions import (
    AuthenticationFailed,
    RemoteError,
    RemoteNotFound,
    RemoteRateLimited,
    RemoteTimeout,
    RemoteTransientError,
)
from repolock.utils.net import validate_url_scheme

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
_MAX_RATE_LIMIT_WAIT = 300


class GitHubClient:
    """基于 urllib 的 GitHub REST API 同步客户端（线程安全，无共享可变状态）"""

    def __init__(
        self, token: str, api_url: str = DEFAULT_API_URL, timeout: float = 30.0,
    ) -> None:
        validate_url_scheme(api_url, context="GitHub api_url")
        self.token = token.strip()
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    # ------------------------------------------------------------------
    # RemoteClient 协议
    # ------------------------------------------------------------------

    def validate_token(self) -> None:
        if not self.token:
            raise AuthenticationFailed(
                "未找到 GitHub 令牌，请通过 --token、GITHUB_TOKEN 或 gh auth login 提供"
            )
        try:
            user = self._get_json("/user", target="当前用户")
        except RemoteNotFound as e:
            raise AuthenticationFailed(f"令牌校验失败: {e}") from e
        logger.info("令牌有效: %s", user.get("login", "?"))

    def resolve_branch_head(self, owner: str, repo: str, branch: str) -> str:
        target = f"{owner}/{repo}@{branch}"
        data = self._get_json(
            f"/repos/{quote(owner)}/{quote(repo)}/commits/{quote(branch, safe='/')}",
            target=target,
        )
        sha = data.get("sha")
        if not isinstance(sha, str) or not sha:
            raise RemoteError(f"远端响应缺少 commit sha: {target}")
        return sha

    def fetch_tree(self, owner: str, repo: str, revision: str) -> FileTree:
        """下载 revision 对应的 tarball 并在内存中展开

        参数:
            owner / repo: 仓库坐标
            revision: tag 或 commit hash

        返回:
            FileTree: 去掉顶层目录后的 相对路径 -> 内容，仅包含普通文件

        异常:
            RemoteNotFound: 仓库或 revision 不存在
            RemoteRateLimited / RemoteTimeout / RemoteTransientError: 可重试的临时错误
            AuthenticationFailed: 令牌无权访问该仓库
        """
        target = f"{owner}/{repo}@{revision}"
        payload = self._request(
            f"/repos/{quote(owner)}/{quote(repo)}/tarball/{quote(revision, safe='/')}",
            target=target,
        )
        tree = self._unpack_tarball(payload, target)
        logger.info("已下载 %s: %d 个文件 (%d 字节)", target, len(tree), len(payload))
        return tree

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "repolock",
        }
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    def _get_json(self, path: str, *, target: str) -> dict[str, Any]:
        body = self._request(path, target=target)
        try:
            data = json.loads(body)
        except ValueError as e:
            raise RemoteTransientError(f"远端响应不是合法 JSON ({target}): {e}") from e
        if not isinstance(data, dict):
            raise RemoteError(f"远端响应格式异常 ({target})")
        return data

    def _request(self, path: str, *, target: str) -> bytes:
        url = f"{self.api_url}{path}"
        req = urllib.request.Request(url, headers=self._headers())
        logger.debug("GET %s", url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                return resp.read()
        except urllib.error.HTTPError as e:
            raise self._map_http_error(e, target) from e
        except TimeoutError as e:
            raise RemoteTimeout(f"请求超时 ({self.timeout}s): {target}") from e
        except urllib.error.URLError as e:
            if isinstance(e.reason, TimeoutError):
                raise RemoteTimeout(f"请求超时 ({self.timeout}s): {target}") from e
            raise RemoteTransientError(f"网络错误 ({target}): {e.reason}") from e
        except (http.client.HTTPException, ConnectionError) as e:
            raise RemoteTransientError(f"网络错误 ({target}): {e}") from e

    @classmethod
    def _map_http_error(cls, e: urllib.error.HTTPError, target: str) -> RemoteError:
        status = e.code
        if status in (403, 429) and cls._is_rate_limited(e):
            wait = cls._rate_limit_wait(e)
            return RemoteRateLimited(f"触发 GitHub 限流 ({target})，{wait}s 后重置", retry_after=wait)
        if status in (401, 403):
            return AuthenticationFailed(f"GitHub 拒绝访问 (HTTP {status}): {target}")
        if status in (404, 422):
            return RemoteNotFound(target, f"远端不存在 (HTTP {status}): {target}")
        if status == 429 or status >= 500:
            return RemoteTransientError(f"GitHub 服务端错误 (HTTP {status}): {target}")
        return RemoteError(f"GitHub 请求失败 (HTTP {status}): {target}")

    @staticmethod
    def _is_rate_limited(e: urllib.error.HTTPError) -> bool:
        headers = e.headers
        if headers is None:
            return False
        if headers.get("X-RateLimit-Remaining") == "0":
            return True
        return headers.get("Retry-After") is not None

    @staticmethod
    def _rate_limit_wait(e: urllib.error.HTTPError) -> int:
        """优先 Retry-After，其次 X-RateLimit-Reset，最多等待 5 分钟"""
        headers = e.headers
        for name, relative in (("Retry-After", True), ("X-RateLimit-Reset", False)):
            raw = headers.get(name) if headers is not None else None
            if raw is None:
                continue
            try:
                value = int(raw)
            except ValueError:
                continue
            wait = value if relative else value - int(time.time())
            return min(max(wait, 1), _MAX_RATE_LIMIT_WAIT)
        return 60

    # ------------------------------------------------------------------
    # tarball
    # ------------------------------------------------------------------

    @staticmethod
    def _unpack_tarball(payload: bytes, target: str) -> FileTree:
        """展开 GitHub tarball，去掉顶层 "<owner>-<repo>-<sha>/" 目录"""
        files: dict[str, bytes] = {}
        try:
            with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as tf:
                for member in tf.getmembers():
                    if not member.isfile():
                        continue
                    parts = PurePosixPath(member.name).parts[1:]
                    if not parts or ".." in parts or member.name.startswith("/"):
                        logger.warning("跳过非法路径 (%s): %s", target, member.name)
                        continue
                    fobj = tf.extractfile(member)
                    if fobj is None:
                        continue
                    files[PurePosixPath(*parts).as_posix()] = fobj.read()
        except tarfile.TarError as e:
            raise RemoteTransientError(f"tarball 损坏 ({target}): {e}") from e
        return FileTree(files=files)
