"""
PackSync

按服务器分发清单同步本地整合包内容：下载、校验、解压、记录版本，并检查本地文件漂移。
"""

from packsync.models import (
    Checksum,
    CheckerPolicy,
    Manifest,
    Module,
    SyncReport,
)
from packsync.services import (
    ContentChecker,
    DistributionClient,
    MemoryLedger,
    Synchronizer,
    VersionLedger,
)

__version__ = "0.1.0"

__all__ = [
    "Checksum",
    "CheckerPolicy",
    "Manifest",
    "Module",
    "SyncReport",
    "ContentChecker",
    "DistributionClient",
    "MemoryLedger",
    "Synchronizer",
    "VersionLedger",
]
