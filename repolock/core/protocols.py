"""领域协议定义

解析引擎只依赖这里的抽象，真实实现（GitHub API）与测试替身均可注入。
"""

from __future__ import annotations

from typing import Protocol

from repolock.core.dep.models import FileTree


class RemoteClient(Protocol):
    """远程仓库客户端协议

    所有方法失败时抛出 RemoteError 子类:
      RemoteNotFound / AuthenticationFailed 为致命错误，
      RemoteTransientError（含限流、超时）允许解析引擎有限次重试。
    """

    def validate_token(self) -> None:
        """校验令牌有效，无效时抛出 AuthenticationFailed"""
        ...

    def resolve_branch_head(self, owner: str, repo: str, branch: str) -> str:
        """把分支解析为当前 commit hash"""
        ...

    def fetch_tree(self, owner: str, repo: str, revision: str) -> FileTree:
        """下载指定 revision 的完整文件树"""
        ...
