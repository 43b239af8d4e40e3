"""
KernelFetch 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional


class KernelFetchError(Exception):
    """KernelFetch 基础异常类"""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self._get_default_code()
        self.context = context or {}

    def _get_default_code(self) -> str:
        """获取默认错误代码"""
        return "E000"

    def to_dict(self) -> Dict[str, Any]:
        """将异常转换为字典格式"""
        return {
            "error": True,
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class ConfigError(KernelFetchError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ManifestParseError(ConfigError):
    """清单解析错误（致命，任何下载开始前中止）"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class DownloadError(KernelFetchError):
    """下载相关错误"""

    #: 是否属于可重试的瞬时错误
    transient = False

    def _get_default_code(self) -> str:
        return "E300"


class DownloadNetworkError(DownloadError):
    """下载网络错误（连接失败、重定向过多等）"""

    transient = True

    def _get_default_code(self) -> str:
        return "E301"


class DownloadChecksumError(DownloadError):
    """下载校验错误（CRC32 不匹配）"""

    def __init__(
        self,
        message: str,
        expected: int,
        actual: int,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code, context)
        self.expected = expected
        self.actual = actual
        self.context.setdefault("expected", f"{expected:#010x}")
        self.context.setdefault("actual", f"{actual:#010x}")

    def _get_default_code(self) -> str:
        return "E302"


class DownloadFileError(DownloadError):
    """下载文件操作错误"""

    def _get_default_code(self) -> str:
        return "E303"


class DownloadTimeoutError(DownloadError):
    """下载超时"""

    transient = True

    def _get_default_code(self) -> str:
        return "E304"


class DownloadHTTPError(DownloadError):
    """HTTP 非 2xx 响应"""

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.status = status
        super().__init__(message, code, context)
        self.context.setdefault("status", status)

    @property
    def transient(self) -> bool:  # type: ignore[override]
        return self.status >= 500 or self.status == 429

    def _get_default_code(self) -> str:
        return f"E{self.status}"


__all__ = [
    # 基础异常
    "KernelFetchError",
    # 配置异常
    "ConfigError",
    "ManifestParseError",
    "ConfigValidationError",
    # 下载异常
    "DownloadError",
    "DownloadNetworkError",
    "DownloadChecksumError",
    "DownloadFileError",
    "DownloadTimeoutError",
    "DownloadHTTPError",
]
