"""统一异常体系

所有业务异常继承 RepolockError，替代散落的 ValueError / RuntimeError。
CLI 层据此输出友好提示；解析引擎据此区分可重试与致命错误。
"""

from __future__ import annotations


class RepolockError(Exception):
    """框架基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(RepolockError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(RepolockError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class AuthenticationFailed(RepolockError):
    """令牌缺失或无效，在遍历开始前报告"""

    code = "AUTHENTICATION_FAILED"


class ManifestParseError(RepolockError):
    """清单文件内容格式错误"""

    code = "MANIFEST_PARSE_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"清单解析失败 {path}: {reason}")
        self.path = path
        self.reason = reason


class RemoteError(RepolockError):
    """远程仓库调用失败"""

    code = "REMOTE_ERROR"


class RemoteNotFound(RemoteError):
    """引用的 owner/repo/revision 在远端不存在"""

    code = "REMOTE_NOT_FOUND"

    def __init__(self, ref: str, message: str = "") -> None:
        super().__init__(message or f"远端不存在: {ref}")
        self.ref = ref


class RemoteTransientError(RemoteError):
    """网络抖动等临时错误，可有限次重试"""

    code = "REMOTE_TRANSIENT"


class RemoteRateLimited(RemoteTransientError):
    """触发远端限流"""

    code = "REMOTE_RATE_LIMITED"

    def __init__(self, message: str, retry_after: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RemoteTimeout(RemoteTransientError):
    """单次远程调用超时"""

    code = "REMOTE_TIMEOUT"


class CacheWriteError(RepolockError):
    """缓存写入失败，不会留下被误认为完整的缓存条目"""

    code = "CACHE_WRITE_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"缓存写入失败 {path}: {reason}")
        self.path = path


class CycleBudgetExceeded(RepolockError):
    """已访问节点数超过上限"""

    code = "CYCLE_BUDGET_EXCEEDED"

    def __init__(self, limit: int) -> None:
        super().__init__(f"已访问依赖节点超过上限 {limit}")
        self.limit = limit


class ResolutionAborted(RepolockError):
    """解析被调用方主动中止"""

    code = "RESOLUTION_ABORTED"


class InstallError(RepolockError):
    """把缓存内容安装到输出目录时失败"""

    code = "INSTALL_ERROR"
