"""
PackSync 安装层

包含压缩包解压安装器。
"""

from packsync.installer.archive import ArchiveInstaller

__all__ = [
    "ArchiveInstaller",
]
