"""
内容同步服务

按清单逐个模块执行：下载 -> 校验 -> 预清理 -> 解压 -> 记录版本。
"""

import asyncio
import os
import shutil
from dataclasses import dataclass
from typing import List, Optional

from loguru import logger

from packsync.download import DownloadManager, DownloadTask, FileVerifier
from packsync.exceptions import FileSystemError, IntegrityError, SyncError
from packsync.installer import ArchiveInstaller
from packsync.logger import get_logger
from packsync.models import (
    Manifest,
    Module,
    ModuleSyncResult,
    StageResult,
    SyncStage,
)
from packsync.progress import ProgressCallback
from packsync.services.ledger import VersionLedger
from packsync.services.locks import instance_lock


@dataclass
class _Job:
    """单个模块同步的运行上下文"""

    manifest: Manifest
    module: Module
    temp_path: str
    content_dir: str
    result: ModuleSyncResult
    on_progress: Optional[ProgressCallback] = None
    cancel: Optional[asyncio.Event] = None


def is_dir_empty(path: str) -> bool:
    """目录不存在也视为空"""
    try:
        with os.scandir(path) as entries:
            return next(entries, None) is None
    except FileNotFoundError:
        return True


class Synchronizer:
    """内容同步器"""

    def __init__(
        self,
        ledger: VersionLedger,
        launcher_dir: str,
        downloader: Optional[DownloadManager] = None,
        installer: Optional[ArchiveInstaller] = None,
        verifier: Optional[FileVerifier] = None,
    ):
        self.ledger = ledger
        self.launcher_dir = launcher_dir
        self.downloader = downloader or DownloadManager()
        self.installer = installer or ArchiveInstaller()
        self.verifier = verifier or FileVerifier()

        self._stages = (
            (SyncStage.FETCHING, self._fetch),
            (SyncStage.VERIFYING, self._verify),
            (SyncStage.CLEANING, self._clean),
            (SyncStage.EXTRACTING, self._extract),
            (SyncStage.RECORDING, self._record),
        )

    def plan(self, manifest: Manifest, instance_dir: str) -> List[Module]:
        """
        计算需要同步的模块

        实例目录为空时全部同步，否则只同步账本版本与清单版本不一致的模块。
        """
        if is_dir_empty(instance_dir):
            return list(manifest.modules)
        return [
            module
            for module in manifest.modules
            if self.ledger.get(manifest.server_id, module.id) != module.version
        ]

    async def sync_all(
        self,
        manifest: Manifest,
        instance_dir: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> List[ModuleSyncResult]:
        """
        同步清单中所有需要更新的模块

        任一模块失败立即中止剩余模块并向上抛出异常。
        """
        async with instance_lock(instance_dir):
            work = self.plan(manifest, instance_dir)
            if not work:
                logger.info(f"[同步] 服务器 '{manifest.server_id}' 所有模块均为最新")
                return []

            logger.info(
                f"[同步] 需要同步 {len(work)} 个模块: {', '.join(m.id for m in work)}"
            )
            try:
                os.makedirs(instance_dir, exist_ok=True)
            except OSError as e:
                raise FileSystemError(
                    f"无法创建实例目录: {e}", context={"path": instance_dir}
                ) from e

            results = []
            for module in work:
                results.append(
                    await self._sync_module(
                        manifest, module, instance_dir, on_progress, cancel
                    )
                )
            logger.success(f"[同步] 完成 {len(results)} 个模块")
            return results

    async def sync_module(
        self,
        manifest: Manifest,
        module: Module,
        instance_dir: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> ModuleSyncResult:
        """同步单个模块（持有实例目录锁）"""
        async with instance_lock(instance_dir):
            return await self._sync_module(
                manifest, module, instance_dir, on_progress, cancel
            )

    async def _sync_module(
        self,
        manifest: Manifest,
        module: Module,
        instance_dir: str,
        on_progress: Optional[ProgressCallback],
        cancel: Optional[asyncio.Event],
    ) -> ModuleSyncResult:
        job = _Job(
            manifest=manifest,
            module=module,
            temp_path=os.path.join(self.launcher_dir, module.archive_name),
            content_dir=os.path.join(instance_dir, module.id),
            result=ModuleSyncResult(module_id=module.id, version=module.version),
            on_progress=on_progress,
            cancel=cancel,
        )
        log = get_logger(module.id)
        log.info(f"[同步] 模块 '{module.id}' -> 版本 {module.version}")

        stage = SyncStage.FETCHING
        try:
            for stage, step in self._stages:
                detail = await step(job)
                job.result.stages.append(StageResult(stage, True, detail))
                log.debug(f"[同步] '{module.id}' {stage.value}: {detail}")
        except SyncError as e:
            e.context.setdefault("stage", stage.value)
            e.context.setdefault("module", module.id)
            job.result.stages.append(StageResult(stage, False, str(e)))
            log.error(f"[同步] 模块 '{module.id}' 在 {stage.value} 阶段失败: {e}")
            raise
        finally:
            self._remove_temp(job)

        job.result.stages.append(StageResult(SyncStage.DONE, True))
        log.success(f"[同步] 模块 '{module.id}' 已更新到版本 {module.version}")
        return job.result

    async def _fetch(self, job: _Job) -> str:
        try:
            os.makedirs(self.launcher_dir, exist_ok=True)
        except OSError as e:
            raise FileSystemError(
                f"无法创建启动器目录: {e}", context={"path": self.launcher_dir}
            ) from e
        task = DownloadTask(
            url=job.module.url,
            dest_path=job.temp_path,
            progress=job.on_progress,
            label=job.module.id,
        )
        job.result.bytes_downloaded = await self.downloader.download(task, job.cancel)
        return f"{job.result.bytes_downloaded} 字节"

    async def _verify(self, job: _Job) -> str:
        logger.info(f"[校验] 正在校验 '{job.module.id}' 压缩包")
        try:
            actual = await self.verifier.calc_sha256(job.temp_path)
        except OSError as e:
            raise FileSystemError(
                f"无法读取压缩包: {e}", context={"path": job.temp_path}
            ) from e

        if not job.module.checksum.matches(actual):
            self._remove_temp(job)
            raise IntegrityError(
                f"压缩包校验失败: {job.module.id}",
                context={
                    "expected": job.module.checksum.hexdigest,
                    "actual": actual,
                },
            )
        return actual

    async def _clean(self, job: _Job) -> str:
        if not job.module.remove_folder_before_update:
            return "跳过"
        if not os.path.exists(job.content_dir):
            return "目录不存在"

        logger.info(f"[清理] 删除内容目录: {job.content_dir}")
        try:
            await asyncio.to_thread(shutil.rmtree, job.content_dir)
        except OSError as e:
            raise FileSystemError(
                f"无法删除内容目录: {e}", context={"path": job.content_dir}
            ) from e
        return "已删除"

    async def _extract(self, job: _Job) -> str:
        logger.info(f"[解压] 正在解压 '{job.module.id}' -> {job.content_dir}")
        files = await self.installer.extract(job.temp_path, job.content_dir)
        job.result.files_extracted = len(files)

        # 压缩包必须在记录版本前删除
        try:
            os.remove(job.temp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise FileSystemError(
                f"无法删除临时压缩包: {e}", context={"path": job.temp_path}
            ) from e
        return f"{len(files)} 个文件"

    async def _record(self, job: _Job) -> str:
        try:
            self.ledger.set(job.manifest.server_id, job.module.id, job.module.version)
        except OSError as e:
            raise FileSystemError(
                f"无法保存版本记录: {e}", context={"module": job.module.id}
            ) from e
        logger.info(f"[记录] '{job.module.id}' = {job.module.version}")
        return job.module.version

    @staticmethod
    def _remove_temp(job: _Job):
        if os.path.exists(job.temp_path):
            try:
                os.remove(job.temp_path)
            except OSError as e:
                logger.error(f"[清理] 无法删除临时压缩包 {job.temp_path}: {e}")
