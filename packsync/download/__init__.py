"""
PackSync 下载层

包含下载任务、流式下载和文件校验。
"""

from packsync.download.manager import DownloadManager
from packsync.download.task import DownloadTask
from packsync.download.verifier import FileVerifier

__all__ = [
    "DownloadManager",
    "DownloadTask",
    "FileVerifier",
]
