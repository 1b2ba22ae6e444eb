"""
压缩包安装器

把下载的 ZIP 压缩包解压到目标目录，覆盖已有文件。
"""

import asyncio
import os
import shutil
import zipfile
import zlib
from typing import List

from loguru import logger

from packsync.exceptions import ExtractError


class ArchiveInstaller:
    """ZIP 安装器"""

    async def extract(self, archive_path: str, dest_dir: str) -> List[str]:
        """
        解压压缩包

        失败时不回滚，已经写出的文件保留在目标目录中。

        Args:
            archive_path: 压缩包路径
            dest_dir: 目标目录（不存在时创建）

        Returns:
            解压出的文件相对路径列表

        Raises:
            ExtractError: 压缩包损坏、截断，或写入目标目录失败
        """
        try:
            return await asyncio.to_thread(self._extract, archive_path, dest_dir)
        except ExtractError:
            raise
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError) as e:
            raise ExtractError(
                f"解压失败: {e}",
                context={"archive": archive_path, "dest_dir": dest_dir},
            ) from e

    def _extract(self, archive_path: str, dest_dir: str) -> List[str]:
        os.makedirs(dest_dir, exist_ok=True)
        root = os.path.realpath(dest_dir)
        extracted = []

        with zipfile.ZipFile(archive_path) as archive:
            for member in archive.infolist():
                target = os.path.realpath(os.path.join(root, member.filename))
                if target != root and not target.startswith(root + os.sep):
                    raise ExtractError(
                        f"压缩包条目越出目标目录: {member.filename}",
                        context={"archive": archive_path, "member": member.filename},
                    )

                if member.is_dir():
                    _make_dirs(root, target)
                    continue

                # 目标位置是同名目录时先移除，保证覆盖语义
                if os.path.isdir(target):
                    shutil.rmtree(target)
                _make_dirs(root, os.path.dirname(target))

                with archive.open(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                extracted.append(member.filename)

        logger.debug(f"[解压] {archive_path} -> {dest_dir}: {len(extracted)} 个文件")
        return extracted


def _make_dirs(root: str, path: str):
    """在 root 下创建目录；路径上占位的普通文件会被删除"""
    current = root
    rel = os.path.relpath(path, root)
    if rel != os.curdir:
        for part in rel.split(os.sep):
            current = os.path.join(current, part)
            if os.path.lexists(current) and not os.path.isdir(current):
                os.remove(current)
    os.makedirs(path, exist_ok=True)
