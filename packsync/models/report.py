"""
同步结果与检查报告模型
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from loguru import logger


class SyncStage(Enum):
    """单个模块同步的线性阶段"""

    FETCHING = "fetching"
    VERIFYING = "verifying"
    CLEANING = "cleaning"
    EXTRACTING = "extracting"
    RECORDING = "recording"
    DONE = "done"


@dataclass
class StageResult:
    """阶段转换结果"""

    stage: SyncStage
    ok: bool
    detail: str = ""


@dataclass
class ModuleSyncResult:
    """单个模块的同步结果"""

    module_id: str
    version: str
    stages: List[StageResult] = field(default_factory=list)
    bytes_downloaded: int = 0
    files_extracted: int = 0

    @property
    def stage(self) -> Optional[SyncStage]:
        """最后到达的阶段"""
        return self.stages[-1].stage if self.stages else None

    @property
    def ok(self) -> bool:
        return self.stage == SyncStage.DONE


@dataclass
class SyncReport:
    """
    内容检查报告

    ``extraneous`` 只包含策略不允许的多余文件；``missing`` 只包含未安排修复的缺失文件。
    ``mismatched`` 记录摘要不一致的文件，仅供参考，不影响 ``success``。
    """

    extraneous: Dict[str, Set[str]] = field(default_factory=dict)
    missing: Dict[str, Set[str]] = field(default_factory=dict)
    mismatched: Dict[str, Set[str]] = field(default_factory=dict)
    repairs: Dict[str, "asyncio.Task"] = field(default_factory=dict)
    repair_errors: Dict[str, BaseException] = field(default_factory=dict)
    # 已安排修复的模块在修复失败时需要回填的缺失文件
    pending_missing: Dict[str, Set[str]] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not any(self.extraneous.values()) and not any(self.missing.values())

    async def wait_for_repairs(self) -> Dict[str, BaseException]:
        """
        等待所有修复任务完成

        修复失败的模块会把原本的缺失文件重新计入 ``missing``。

        Returns:
            模块 ID -> 异常 的映射（仅包含失败的修复）
        """
        if not self.repairs:
            return {}

        module_ids = list(self.repairs)
        results = await asyncio.gather(
            *(self.repairs[module_id] for module_id in module_ids),
            return_exceptions=True,
        )
        for module_id, result in zip(module_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"[修复] 模块 '{module_id}' 修复失败: {result}")
                self.repair_errors[module_id] = result
                pending = self.pending_missing.get(module_id)
                if pending:
                    self.missing.setdefault(module_id, set()).update(pending)
            else:
                logger.success(f"[修复] 模块 '{module_id}' 修复完成")
        return dict(self.repair_errors)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "extraneous": {k: sorted(v) for k, v in self.extraneous.items() if v},
            "missing": {k: sorted(v) for k, v in self.missing.items() if v},
            "mismatched": {k: sorted(v) for k, v in self.mismatched.items() if v},
            "repairs": sorted(self.repairs),
            "repair_errors": {k: str(v) for k, v in self.repair_errors.items()},
        }
