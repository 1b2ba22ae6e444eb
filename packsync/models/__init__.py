"""
PackSync 数据模型包

包含分发清单、启动器配置以及同步/检查结果定义。
"""

from packsync.models.manifest import (
    DIGEST_ALGORITHM,
    Checksum,
    CheckerPolicy,
    Module,
    Manifest,
)
from packsync.models.config import LauncherConfig
from packsync.models.report import (
    SyncStage,
    StageResult,
    ModuleSyncResult,
    SyncReport,
)

__all__ = [
    # 清单模型
    "DIGEST_ALGORITHM",
    "Checksum",
    "CheckerPolicy",
    "Module",
    "Manifest",
    # 配置模型
    "LauncherConfig",
    # 结果模型
    "SyncStage",
    "StageResult",
    "ModuleSyncResult",
    "SyncReport",
]
