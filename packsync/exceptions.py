"""
PackSync 统一异常体系

提供分层的异常结构，支持错误代码、上下文信息和 JSON 序列化。
"""

from typing import Any, Dict, Optional


class PackSyncError(Exception):
    """PackSync 基础异常类"""

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


class ConfigError(PackSyncError):
    """配置相关错误"""

    def _get_default_code(self) -> str:
        return "E100"


class ConfigParseError(ConfigError):
    """配置解析错误"""

    def _get_default_code(self) -> str:
        return "E101"


class ConfigValidationError(ConfigError):
    """配置验证错误"""

    def _get_default_code(self) -> str:
        return "E102"


class ManifestError(PackSyncError):
    """分发清单获取错误（网络、超时、HTTP 状态）"""

    def _get_default_code(self) -> str:
        return "E200"


class ManifestParseError(ManifestError):
    """分发清单结构错误"""

    def _get_default_code(self) -> str:
        return "E201"


class SyncError(PackSyncError):
    """
    同步流程错误基类

    context 中的 ``stage`` 标明失败所在阶段。
    """

    def _get_default_code(self) -> str:
        return "E300"

    @property
    def stage(self) -> Optional[str]:
        return self.context.get("stage")


class DownloadError(SyncError):
    """下载相关错误"""

    def _get_default_code(self) -> str:
        return "E310"


class DownloadNetworkError(DownloadError):
    """下载网络错误"""

    def _get_default_code(self) -> str:
        return "E311"


class DownloadCancelledError(DownloadError):
    """下载被取消"""

    def _get_default_code(self) -> str:
        return "E312"


class IntegrityError(SyncError):
    """压缩包校验值不匹配"""

    def _get_default_code(self) -> str:
        return "E320"


class ExtractError(SyncError):
    """压缩包损坏或写入目标目录失败"""

    def _get_default_code(self) -> str:
        return "E330"


class FileSystemError(SyncError):
    """目录创建或删除失败"""

    def _get_default_code(self) -> str:
        return "E340"


__all__ = [
    # 基础异常
    "PackSyncError",
    # 配置异常
    "ConfigError",
    "ConfigParseError",
    "ConfigValidationError",
    # 清单异常
    "ManifestError",
    "ManifestParseError",
    # 同步异常
    "SyncError",
    "DownloadError",
    "DownloadNetworkError",
    "DownloadCancelledError",
    "IntegrityError",
    "ExtractError",
    "FileSystemError",
]
