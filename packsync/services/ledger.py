"""
版本账本

记录每个 (服务器, 模块) 已安装的内容版本。核心流程只依赖 get/set 两个操作。
"""

from typing import Dict, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class VersionLedger(Protocol):
    """版本账本接口"""

    def get(self, server_id: str, module_id: str) -> Optional[str]:
        ...

    def set(self, server_id: str, module_id: str, version: str) -> None:
        ...


class MemoryLedger:
    """内存版本账本（不持久化）"""

    def __init__(self, initial: Optional[Dict[Tuple[str, str], str]] = None):
        self._versions: Dict[Tuple[str, str], str] = dict(initial or {})

    def get(self, server_id: str, module_id: str) -> Optional[str]:
        return self._versions.get((server_id, module_id))

    def set(self, server_id: str, module_id: str, version: str) -> None:
        self._versions[(server_id, module_id)] = version

    def __len__(self) -> int:
        return len(self._versions)
