"""
下载任务
"""

import os
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse
from urllib.request import url2pathname

from packsync.progress import ProgressCallback


def is_file_url(url: str) -> bool:
    return urlparse(url).scheme == "file"


def file_url_to_path(url: str) -> str:
    """file:// 地址转本地路径（解码百分号转义）"""
    return url2pathname(urlparse(url).path)


@dataclass
class DownloadTask:
    """下载任务"""

    url: str
    dest_path: str
    size: int = 0  # 预期字节数，0 表示未知
    progress: Optional[ProgressCallback] = None
    label: str = ""

    def __post_init__(self):
        if not self.label:
            self.label = os.path.basename(self.dest_path)

    @property
    def is_local(self) -> bool:
        return is_file_url(self.url)

    @property
    def local_path(self) -> str:
        return file_url_to_path(self.url)
