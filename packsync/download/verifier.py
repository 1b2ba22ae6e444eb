"""
文件校验器

分块计算文件摘要，大文件不会整体读入内存。
"""

import hashlib

import aiofiles

from packsync.models import DIGEST_ALGORITHM

# 单次读取字节数
CHUNK_SIZE = 64 * 1024


class FileVerifier:
    """文件校验器"""

    @staticmethod
    async def calc_sha256(file_path: str, chunk_size: int = CHUNK_SIZE) -> str:
        """
        计算文件的 SHA256 值

        Args:
            file_path: 文件路径
            chunk_size: 单次读取字节数

        Returns:
            十六进制 SHA256 摘要

        Raises:
            OSError: 文件无法打开或读取
        """
        digest = hashlib.new(DIGEST_ALGORITHM)
        async with aiofiles.open(file_path, "rb") as f:
            while True:
                data = await f.read(chunk_size)
                if not data:
                    break
                digest.update(data)
        return digest.hexdigest()
