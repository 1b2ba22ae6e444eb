"""
分发清单客户端

获取服务器发布的分发文档并解析出指定服务器的清单。
"""

import asyncio
import json
from typing import Any, Dict, Optional

import aiofiles
import aiohttp
from loguru import logger

from packsync.download.task import file_url_to_path, is_file_url
from packsync.exceptions import ManifestError, ManifestParseError
from packsync.models import Manifest


class DistributionClient:
    """分发清单客户端"""

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owned_session = session is None

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _request(self) -> Dict[str, Any]:
        """获取分发文档"""
        if is_file_url(self.url):
            async with aiofiles.open(file_url_to_path(self.url), "r", encoding="utf-8") as f:
                text = await f.read()
        else:
            async with self.session.get(self.url, timeout=self.timeout) as response:
                if response.status != 200:
                    raise ManifestError(
                        f"获取分发清单失败 (状态码: {response.status})",
                        context={"url": self.url, "status": response.status},
                    )
                text = await response.text()

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ManifestParseError(
                f"分发清单不是有效的 JSON: {e}", context={"url": self.url}
            ) from e
        if not isinstance(data, dict):
            raise ManifestParseError("分发清单顶层必须是对象", context={"url": self.url})
        return data

    async def get_distribution(self) -> Dict[str, Any]:
        """获取原始分发文档（超时或网络错误时抛出 ManifestError）"""
        logger.info(f"[清单] 正在获取分发清单: {self.url}")
        try:
            return await self._request()
        except ManifestError:
            raise
        except asyncio.TimeoutError as e:
            raise ManifestError(
                "获取分发清单超时",
                context={"url": self.url, "timeout": self.timeout.total},
            ) from e
        except (aiohttp.ClientError, OSError) as e:
            raise ManifestError(
                f"获取分发清单失败: {e}", context={"url": self.url}
            ) from e

    async def get_manifest(self, server_id: str) -> Manifest:
        """获取指定服务器的清单"""
        data = await self.get_distribution()
        manifest = Manifest.from_distribution(data, server_id)
        logger.info(
            f"[清单] 服务器 '{manifest.server_id}' 共 {len(manifest)} 个内容模块"
        )
        return manifest

    async def close(self):
        """关闭客户端"""
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        """异步上下文管理器入口"""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()
