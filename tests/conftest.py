"""测试配置与公共夹具"""

import hashlib
import zipfile
from pathlib import Path

import pytest

from packsync.download import DownloadManager
from packsync.models import Checksum, CheckerPolicy, Manifest, Module

SERVER_ID = "example"


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path) -> str:
    with open(path, "rb") as f:
        return hashlib.sha256(f.read()).hexdigest()


def make_zip(path, files: dict) -> str:
    """创建 ZIP，files 为 {压缩包内路径: 内容}"""
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return str(path)


def make_module(
    module_id: str,
    archive: str,
    version: str = "1",
    files: dict = None,
    remove_folder_before_update: bool = False,
    policy: CheckerPolicy = None,
    checksum: str = None,
) -> Module:
    """用本地压缩包构造模块（file:// 地址）"""
    expected = {name: sha256_bytes(data) for name, data in (files or {}).items()}
    return Module(
        id=module_id,
        url=Path(archive).resolve().as_uri(),
        checksum=Checksum(checksum or sha256_file(archive)),
        version=version,
        remove_folder_before_update=remove_folder_before_update,
        expected_files=expected,
        checker=policy,
    )


class CountingDownloader(DownloadManager):
    """记录下载次数的下载管理器"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.calls = []

    async def download(self, task, cancel=None):
        self.calls.append(task.label)
        return await super().download(task, cancel)


@pytest.fixture
def launcher_dir(tmp_path):
    path = tmp_path / "launcher"
    path.mkdir()
    return str(path)


@pytest.fixture
def instance_dir(tmp_path):
    return str(tmp_path / "instances" / SERVER_ID)


@pytest.fixture
def archives(tmp_path):
    path = tmp_path / "archives"
    path.mkdir()
    return path


@pytest.fixture
def strict_policy():
    return CheckerPolicy(
        allow_external_content=False,
        update_on_mismatch=False,
        scan_subfolders=False,
    )


@pytest.fixture
def manifest_factory():
    def factory(*modules):
        return Manifest(server_id=SERVER_ID, modules=tuple(modules))

    return factory


def distribution_doc(modules, server_id: str = SERVER_ID) -> dict:
    """由模块列表生成分发文档"""
    files = {}
    checkers = {}
    for module in modules:
        files[module.id] = {
            "url": module.url,
            "sha256": module.checksum.hexdigest,
            "version": module.version,
            "remove_folder_before_update": module.remove_folder_before_update,
        }
        if module.checker is not None:
            checkers[module.id] = {
                "allow_external_content": module.checker.allow_external_content,
                "update_if_checksum_mismatch": module.checker.update_on_mismatch,
                "scan_subfolder": module.checker.scan_subfolders,
                "sha256": dict(module.expected_files),
            }
    return {
        "version": "1.0.0",
        "servers": [
            {
                "id": server_id,
                "name": "Example",
                "game_file": {"files": files, "content_checker": checkers},
            }
        ],
    }
