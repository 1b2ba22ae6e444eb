"""
启动器配置模型
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from packsync.exceptions import ConfigValidationError

# 配置文件中保存版本记录的表名
LEDGER_TABLE = "content_versions"


@dataclass
class LauncherConfig:
    """启动器配置"""

    distribution_url: str
    server_id: str
    launcher_dir: str
    instance_dir: Optional[str] = None
    manifest_timeout: float = 10.0
    download_timeout: float = 60.0
    max_retries: int = 0
    retry_delay: float = 1.0
    skip_check: bool = False

    def __post_init__(self):
        if not self.distribution_url:
            raise ConfigValidationError("请配置 distribution_url")
        if not self.server_id:
            raise ConfigValidationError("请配置 server_id")
        if not self.launcher_dir:
            raise ConfigValidationError("请配置 launcher_dir")
        if self.instance_dir is None:
            self.instance_dir = str(Path(self.launcher_dir) / "instances")
        if self.manifest_timeout <= 0 or self.download_timeout <= 0:
            raise ConfigValidationError(
                "超时时间必须大于 0",
                context={
                    "manifest_timeout": self.manifest_timeout,
                    "download_timeout": self.download_timeout,
                },
            )
        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ConfigValidationError(
                "max_retries 必须为非负整数", context={"max_retries": self.max_retries}
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LauncherConfig":
        """从配置字典创建（支持嵌套的 [launcher] 表）"""
        section = data.get("launcher")
        if section is None:
            # 扁平配置：同一文件中的版本记录表不属于启动器配置
            section = {k: v for k, v in data.items() if k != LEDGER_TABLE}
        if not isinstance(section, dict):
            raise ConfigValidationError("launcher 配置必须是表")

        known = {f.name for f in fields(cls)}
        unknown = set(section) - known
        if unknown:
            raise ConfigValidationError(
                f"未知的配置项: {', '.join(sorted(unknown))}",
                context={"fields": sorted(unknown)},
            )
        try:
            return cls(**section)
        except TypeError as e:
            raise ConfigValidationError(f"配置缺少必要字段: {e}")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}
