"""
启动准备协调器

整合清单获取、内容同步与内容检查，实现启动前的完整准备流程。
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger

from packsync.config import ConfigStore
from packsync.download import DownloadManager
from packsync.models import Manifest, Module, ModuleSyncResult, SyncReport
from packsync.progress import ProgressCallback, ProgressReporter
from packsync.services import ContentChecker, DistributionClient, Synchronizer


@dataclass
class PreparationResult:
    """启动准备结果"""

    manifest: Manifest
    synced: List[ModuleSyncResult] = field(default_factory=list)
    report: Optional[SyncReport] = None

    @property
    def blocked(self) -> bool:
        """存在不允许的外部内容时阻止启动"""
        return self.report is not None and any(self.report.extraneous.values())


@dataclass
class ModuleStatus:
    """模块版本状态"""

    module_id: str
    installed: Optional[str]
    available: str
    pending: bool


class LaunchPreparation:
    """启动准备协调器"""

    def __init__(
        self,
        store: ConfigStore,
        client: Optional[DistributionClient] = None,
        synchronizer: Optional[Synchronizer] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.store = store
        config = store.config
        self.client = client or DistributionClient(
            config.distribution_url, timeout=config.manifest_timeout
        )
        self.synchronizer = synchronizer or Synchronizer(
            ledger=store,
            launcher_dir=store.get_launcher_dir(),
            downloader=DownloadManager(
                max_retries=config.max_retries,
                retry_delay=config.retry_delay,
                timeout=config.download_timeout,
            ),
        )
        self.on_progress = on_progress

    async def fetch_manifest(self) -> Manifest:
        return await self.client.get_manifest(self.store.config.server_id)

    async def run(
        self,
        skip_check: Optional[bool] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> PreparationResult:
        """
        运行完整的准备流程

        Args:
            skip_check: 跳过内容检查（默认取配置中的 skip_check）
            cancel: 下载取消信号

        Returns:
            PreparationResult
        """
        if skip_check is None:
            skip_check = self.store.config.skip_check

        try:
            manifest = await self.fetch_manifest()
            instance_dir = self.store.get_instance_dir(manifest.server_id)
            result = PreparationResult(manifest=manifest)

            result.synced = await self.synchronizer.sync_all(
                manifest, instance_dir, self._reporter(), cancel
            )

            if skip_check:
                logger.info("[检查] 已跳过内容检查")
                return result

            result.report = await self.check(manifest, instance_dir, cancel)
            return result
        finally:
            await self.close()

    async def check(
        self,
        manifest: Manifest,
        instance_dir: str,
        cancel: Optional[asyncio.Event] = None,
    ) -> SyncReport:
        """运行内容检查并等待修复任务完成"""

        async def repair(module: Module):
            return await self.synchronizer.sync_module(
                manifest, module, instance_dir, self._reporter(), cancel
            )

        checker = ContentChecker(repair=repair)
        report = await checker.check_content(manifest, instance_dir, self._reporter())
        await report.wait_for_repairs()

        for module_id, files in report.extraneous.items():
            logger.warning(f"[检查] 发现外部内容 {module_id}: {', '.join(sorted(files))}")
        for module_id, files in report.missing.items():
            logger.warning(f"[检查] 缺少内容 {module_id}: {', '.join(sorted(files))}")
        return report

    async def status(self) -> List[ModuleStatus]:
        """对比账本与清单中的版本"""
        try:
            manifest = await self.fetch_manifest()
        finally:
            await self.close()

        instance_dir = self.store.get_instance_dir(manifest.server_id)
        pending = {m.id for m in self.synchronizer.plan(manifest, instance_dir)}
        return [
            ModuleStatus(
                module_id=module.id,
                installed=self.store.get(manifest.server_id, module.id),
                available=module.version,
                pending=module.id in pending,
            )
            for module in manifest.modules
        ]

    def _reporter(self) -> Optional[ProgressReporter]:
        if self.on_progress is None:
            return None
        return ProgressReporter(self.on_progress, step=5)

    async def close(self):
        await self.client.close()
        await self.synchronizer.downloader.close()
