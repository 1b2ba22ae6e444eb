"""启动准备流程测试"""

import json
import os

import pytest

from conftest import SERVER_ID, distribution_doc, make_module, make_zip
from packsync.config import ConfigStore
from packsync.exceptions import IntegrityError
from packsync.models import CheckerPolicy, LauncherConfig
from packsync.orchestrator import LaunchPreparation

FILES = {"a.jar": b"a", "b.jar": b"b"}


@pytest.fixture
def publish(tmp_path):
    """写入分发文档并返回 file:// 地址"""

    def _publish(modules):
        path = tmp_path / "distribution.json"
        path.write_text(json.dumps(distribution_doc(modules)), encoding="utf-8")
        return f"file://{path}"

    return _publish


@pytest.fixture
def make_store(tmp_path, launcher_dir):
    def _make_store(url, **overrides):
        config = LauncherConfig(
            distribution_url=url,
            server_id=SERVER_ID,
            launcher_dir=launcher_dir,
            **overrides,
        )
        return ConfigStore(config)

    return _make_store


def mods_module(archives, policy, version="1", files=FILES):
    return make_module(
        "mods",
        make_zip(archives / f"mods-{version}.zip", files),
        version=version,
        files=files,
        policy=policy,
    )


@pytest.mark.asyncio
async def test_run_syncs_and_checks(archives, publish, make_store, strict_policy):
    store = make_store(publish([mods_module(archives, strict_policy)]))

    result = await LaunchPreparation(store).run()

    assert [r.module_id for r in result.synced] == ["mods"]
    assert result.report.success
    assert not result.blocked
    assert store.get(SERVER_ID, "mods") == "1"
    # 版本记录已写入配置文件
    assert ConfigStore.load(store.path).get(SERVER_ID, "mods") == "1"


@pytest.mark.asyncio
async def test_skip_check_from_config(archives, publish, make_store, strict_policy):
    store = make_store(publish([mods_module(archives, strict_policy)]), skip_check=True)

    result = await LaunchPreparation(store).run()

    assert result.report is None
    assert len(result.synced) == 1


@pytest.mark.asyncio
async def test_external_content_blocks_launch(archives, publish, make_store, strict_policy):
    store = make_store(publish([mods_module(archives, strict_policy)]))
    await LaunchPreparation(store).run(skip_check=True)
    extra = os.path.join(store.get_instance_dir(), "mods", "cheat.jar")
    with open(extra, "wb") as f:
        f.write(b"x")

    result = await LaunchPreparation(store).run()

    assert result.synced == []
    assert result.blocked
    assert result.report.extraneous == {"mods": {"cheat.jar"}}


@pytest.mark.asyncio
async def test_missing_file_is_repaired(archives, publish, make_store):
    policy = CheckerPolicy(
        allow_external_content=False, update_on_mismatch=True, scan_subfolders=False
    )
    store = make_store(publish([mods_module(archives, policy)]))
    await LaunchPreparation(store).run(skip_check=True)
    removed = os.path.join(store.get_instance_dir(), "mods", "b.jar")
    os.remove(removed)

    preparation = LaunchPreparation(store)
    try:
        manifest = await preparation.fetch_manifest()
        report = await preparation.check(manifest, store.get_instance_dir())
    finally:
        await preparation.close()

    assert report.success
    assert list(report.repairs) == ["mods"]
    assert report.repair_errors == {}
    with open(removed, "rb") as f:
        assert f.read() == b"b"


@pytest.mark.asyncio
async def test_sync_failure_propagates(archives, publish, make_store, strict_policy):
    module = make_module(
        "mods",
        make_zip(archives / "mods.zip", FILES),
        files=FILES,
        policy=strict_policy,
        checksum="0" * 64,
    )
    store = make_store(publish([module]))

    with pytest.raises(IntegrityError):
        await LaunchPreparation(store).run()

    assert store.get(SERVER_ID, "mods") is None


@pytest.mark.asyncio
async def test_status(archives, publish, make_store, strict_policy):
    store = make_store(publish([mods_module(archives, strict_policy)]))
    await LaunchPreparation(store).run(skip_check=True)

    store.config.distribution_url = publish([mods_module(archives, strict_policy, version="2")])
    rows = await LaunchPreparation(store).status()

    assert len(rows) == 1
    assert rows[0].module_id == "mods"
    assert rows[0].installed == "1"
    assert rows[0].available == "2"
    assert rows[0].pending is True


@pytest.mark.asyncio
async def test_progress_is_monotone(archives, publish, make_store, strict_policy):
    store = make_store(publish([mods_module(archives, strict_policy)]))
    seen = {}

    await LaunchPreparation(
        store, on_progress=lambda label, p: seen.setdefault(label, []).append(p)
    ).run(skip_check=True)

    assert seen["mods"][0] == 0
    assert seen["mods"] == sorted(seen["mods"])
    assert seen["mods"][-1] == 100
