"""
内容检查服务

把模块目录中的实际文件与清单中的期望文件对比，分类为多余、缺失和摘要不一致。
检查本身不删除任何文件；策略允许时为缺失或不一致的模块安排修复任务。
"""

import asyncio
import os
from typing import Awaitable, Callable, Optional, Set

from loguru import logger

from packsync.download import FileVerifier
from packsync.models import Manifest, Module, SyncReport
from packsync.progress import ProgressCallback, percent_of
from packsync.services.locks import instance_lock

# 修复回调：重新同步整个模块
RepairCallback = Callable[[Module], Awaitable[object]]


def list_files(folder: str, recursive: bool = False) -> Set[str]:
    """
    列出目录中的文件

    递归模式下返回以 ``/`` 分隔的相对路径；目录不存在时返回空集合。
    """
    files: Set[str] = set()
    if not os.path.isdir(folder):
        return files

    if not recursive:
        with os.scandir(folder) as entries:
            for entry in entries:
                if entry.is_file():
                    files.add(entry.name)
        return files

    for root, _dirs, names in os.walk(folder):
        rel_root = os.path.relpath(root, folder)
        for name in names:
            if not os.path.isfile(os.path.join(root, name)):
                continue
            rel = name if rel_root == "." else os.path.join(rel_root, name)
            files.add(rel.replace(os.sep, "/"))
    return files


class ContentChecker:
    """内容检查器"""

    def __init__(
        self,
        repair: Optional[RepairCallback] = None,
        verifier: Optional[FileVerifier] = None,
    ):
        self.repair = repair
        self.verifier = verifier or FileVerifier()

    async def check_content(
        self,
        manifest: Manifest,
        instance_dir: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SyncReport:
        """
        检查实例目录中各模块的内容

        Args:
            manifest: 服务器清单
            instance_dir: 实例目录
            on_progress: 进度回调 (模块 ID, 百分比)

        Returns:
            SyncReport；其中 ``repairs`` 为已安排的修复任务，需由调用方等待
        """
        report = SyncReport()
        logger.info(f"[检查] 开始检查服务器 '{manifest.server_id}' 的内容")

        async with instance_lock(instance_dir):
            for module in manifest.modules:
                if module.checker is None:
                    logger.debug(f"[检查] 模块 '{module.id}' 未配置检查策略，跳过")
                    continue
                await self._check_module(module, instance_dir, report, on_progress)

        if report.success and not report.repairs:
            logger.success("[检查] 内容检查完成，没有发现问题")
        return report

    async def _check_module(
        self,
        module: Module,
        instance_dir: str,
        report: SyncReport,
        on_progress: Optional[ProgressCallback],
    ):
        policy = module.checker
        folder = os.path.join(instance_dir, module.id)
        logger.info(f"[检查] 检查内容类型: {module.id}")

        actual = await asyncio.to_thread(list_files, folder, policy.scan_subfolders)
        expected = set(module.expected_files)

        extra = actual - expected
        missing = expected - actual

        if extra:
            logger.warning(f"[检查] {folder} 中发现多余文件: {sorted(extra)}")
            if not policy.allow_external_content:
                report.extraneous[module.id] = extra

        needs_repair = False
        if missing:
            logger.warning(f"[检查] {folder} 中缺少文件: {sorted(missing)}")
            if policy.update_on_mismatch and self.repair is not None:
                needs_repair = True
                report.pending_missing[module.id] = missing
            else:
                report.missing[module.id] = missing

        mismatched = await self._verify_files(module, folder, actual & expected, on_progress)
        if mismatched:
            report.mismatched[module.id] = mismatched
            if policy.update_on_mismatch and self.repair is not None:
                needs_repair = True

        if needs_repair:
            logger.info(f"[修复] 为模块 '{module.id}' 安排重新同步")
            report.repairs[module.id] = asyncio.create_task(
                self.repair(module), name=f"repair-{module.id}"
            )

    async def _verify_files(
        self,
        module: Module,
        folder: str,
        names: Set[str],
        on_progress: Optional[ProgressCallback],
    ) -> Set[str]:
        mismatched: Set[str] = set()
        total = len(names)

        if on_progress:
            on_progress(module.id, 0 if total else 100)

        for index, name in enumerate(sorted(names), start=1):
            path = os.path.join(folder, *name.split("/"))
            expected = module.expected_files[name]
            try:
                actual = await self.verifier.calc_sha256(path)
            except OSError as e:
                logger.warning(f"[检查] 无法读取 {path}: {e}")
                actual = None

            if actual != expected:
                logger.warning(
                    f"[检查] 文件摘要不一致: {name}. 期望: {expected}, 实际: {actual}"
                )
                mismatched.add(name)

            if on_progress:
                on_progress(module.id, percent_of(index, total))

        return mismatched
