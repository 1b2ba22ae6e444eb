"""
下载管理器

流式下载单个文件，支持字节级进度、取消信号、超时与可选重试。
"""

import asyncio
import os
from typing import AsyncIterator, Callable, Optional

import aiofiles
import aiohttp
from loguru import logger

from packsync.download.task import DownloadTask
from packsync.exceptions import (
    DownloadCancelledError,
    DownloadError,
    DownloadNetworkError,
)
from packsync.progress import percent_of


class DownloadManager:
    """下载管理器"""

    def __init__(
        self,
        max_retries: int = 0,
        retry_delay: float = 1.0,
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
        chunk_size: int = 8192,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = aiohttp.ClientTimeout(
            total=None, connect=connect_timeout, sock_read=timeout
        )
        self.chunk_size = chunk_size
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def download(
        self, task: DownloadTask, cancel: Optional[asyncio.Event] = None
    ) -> int:
        """
        下载单个文件到 ``task.dest_path``

        Args:
            task: 下载任务
            cancel: 取消信号，置位后在下一个数据块前中止

        Returns:
            写入的字节数

        Raises:
            DownloadCancelledError: 下载被取消（目标文件已删除）
            DownloadNetworkError: 网络或 HTTP 错误
            DownloadError: 其他下载错误
        """
        parent = os.path.dirname(task.dest_path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        logger.info(f"[下载] 开始: {task.label}")

        for attempt in range(self.max_retries + 1):
            try:
                if task.is_local:
                    written = await self._copy_local_file(task, cancel)
                else:
                    written = await self._fetch(task, cancel)

                if task.size and written != task.size:
                    raise DownloadError(
                        f"文件大小不符: {task.label}",
                        context={"expected": task.size, "actual": written},
                    )

                logger.success(f"[下载] '{task.label}' 下载完成 ({written} 字节)")
                return written

            except (DownloadCancelledError, asyncio.CancelledError):
                self._remove_partial(task.dest_path)
                logger.warning(f"[下载] '{task.label}' 已取消，已删除不完整文件")
                raise

            except Exception as e:
                self._remove_partial(task.dest_path)

                if attempt < self.max_retries:
                    delay = self.retry_delay * (2**attempt)
                    logger.warning(
                        f"[重试] 下载 '{task.label}' 失败 (第 {attempt + 1} 次): {e}. "
                        f"{delay:.1f}s 后重试..."
                    )
                    await asyncio.sleep(delay)
                    continue

                logger.error(f"[错误] 下载 '{task.label}' 最终失败: {e}")
                if isinstance(e, DownloadError):
                    raise
                if isinstance(e, (aiohttp.ClientError, asyncio.TimeoutError)):
                    raise DownloadNetworkError(
                        f"下载失败: {task.label}",
                        context={"url": task.url, "error": str(e) or type(e).__name__},
                    ) from e
                raise DownloadError(
                    f"下载失败: {task.label}",
                    context={"url": task.url, "error": str(e)},
                ) from e

        # max_retries >= 0 时循环至少执行一次
        raise DownloadError(f"下载失败: {task.label}")

    async def _fetch(
        self, task: DownloadTask, cancel: Optional[asyncio.Event]
    ) -> int:
        async with self.session.get(task.url, timeout=self.timeout) as response:
            if response.status != 200:
                raise DownloadNetworkError(
                    f"HTTP {response.status}",
                    context={"url": task.url, "status": response.status},
                )

            total = task.size or (response.content_length or 0)
            if total:
                logger.info(f"[信息] 文件大小: {total / (1024 * 1024):.2f} MB")

            return await self._write_stream(
                task,
                response.content.iter_chunked(self.chunk_size),
                total,
                cancel,
                on_cancel=response.close,
            )

    async def _copy_local_file(
        self, task: DownloadTask, cancel: Optional[asyncio.Event]
    ) -> int:
        """复制本地文件（file:// 地址）"""
        src_path = task.local_path
        if not os.path.isfile(src_path):
            raise DownloadError(
                f"本地文件不存在: {src_path}", context={"url": task.url}
            )

        async def chunks() -> AsyncIterator[bytes]:
            async with aiofiles.open(src_path, "rb") as src:
                while True:
                    data = await src.read(self.chunk_size)
                    if not data:
                        break
                    yield data

        total = task.size or os.path.getsize(src_path)
        return await self._write_stream(task, chunks(), total, cancel)

    async def _write_stream(
        self,
        task: DownloadTask,
        chunks: AsyncIterator[bytes],
        total: int,
        cancel: Optional[asyncio.Event],
        on_cancel: Optional[Callable[[], None]] = None,
    ) -> int:
        downloaded = 0
        last_percent = -1

        if task.progress:
            task.progress(task.label, 0)
            last_percent = 0

        async with aiofiles.open(task.dest_path, "wb") as f:
            async for chunk in chunks:
                if cancel is not None and cancel.is_set():
                    if on_cancel:
                        on_cancel()
                    raise DownloadCancelledError(
                        f"下载已取消: {task.label}",
                        context={"url": task.url, "bytes": downloaded},
                    )
                await f.write(chunk)
                downloaded += len(chunk)

                if task.progress and total > 0:
                    percent = percent_of(downloaded, total)
                    if percent > last_percent:
                        task.progress(task.label, percent)
                        last_percent = percent

        if task.progress and last_percent < 100:
            task.progress(task.label, 100)
        return downloaded

    @staticmethod
    def _remove_partial(path: str):
        if os.path.exists(path):
            try:
                os.remove(path)
            except OSError as e:
                logger.error(f"[错误] 无法删除不完整文件 {path}: {e}")

    async def close(self):
        """关闭 session"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
