"""
PackSync 服务层

包含业务逻辑服务：分发清单客户端、版本账本、内容同步、内容检查。
"""

from packsync.services.distribution import DistributionClient
from packsync.services.ledger import VersionLedger, MemoryLedger
from packsync.services.locks import instance_lock
from packsync.services.synchronizer import Synchronizer
from packsync.services.checker import ContentChecker

__all__ = [
    "DistributionClient",
    "VersionLedger",
    "MemoryLedger",
    "instance_lock",
    "Synchronizer",
    "ContentChecker",
]
