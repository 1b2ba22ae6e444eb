"""内容检查测试"""

import os
from unittest.mock import AsyncMock

import pytest

from conftest import make_module, make_zip, sha256_bytes
from packsync.models import Checksum, CheckerPolicy, Module
from packsync.services import ContentChecker, MemoryLedger, Synchronizer
from packsync.services.checker import list_files

FILES = {"a.jar": b"a", "b.jar": b"b"}


def module_with(policy: CheckerPolicy, files=FILES, module_id="mods") -> Module:
    return Module(
        id=module_id,
        url="https://cdn.example/mods.zip",
        checksum=Checksum("0" * 64),
        version="1",
        expected_files={name: sha256_bytes(data) for name, data in files.items()},
        checker=policy,
    )


def policy(allow=False, update=False, recursive=False) -> CheckerPolicy:
    return CheckerPolicy(
        allow_external_content=allow,
        update_on_mismatch=update,
        scan_subfolders=recursive,
    )


def write_files(folder: str, files: dict):
    for name, data in files.items():
        path = os.path.join(folder, *name.split("/"))
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)


class TestExtraneous:
    @pytest.mark.asyncio
    async def test_reported_when_not_allowed(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {**FILES, "c.jar": b"c"})
        manifest = manifest_factory(module_with(policy(allow=False)))

        report = await ContentChecker().check_content(manifest, instance_dir)

        assert report.extraneous == {"mods": {"c.jar"}}
        assert report.success is False
        # 检查不会删除文件
        assert os.path.exists(os.path.join(instance_dir, "mods", "c.jar"))

    @pytest.mark.asyncio
    async def test_omitted_when_allowed(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {**FILES, "c.jar": b"c"})
        manifest = manifest_factory(module_with(policy(allow=True)))

        report = await ContentChecker().check_content(manifest, instance_dir)

        assert report.extraneous == {}
        assert report.success is True


class TestMissing:
    @pytest.mark.asyncio
    async def test_reported_without_repair(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {"a.jar": b"a"})
        manifest = manifest_factory(module_with(policy(update=False)))
        repair = AsyncMock()

        report = await ContentChecker(repair=repair).check_content(manifest, instance_dir)

        assert report.missing == {"mods": {"b.jar"}}
        assert report.success is False
        assert report.repairs == {}
        repair.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_module_folder(self, instance_dir, manifest_factory):
        manifest = manifest_factory(module_with(policy()))

        report = await ContentChecker().check_content(manifest, instance_dir)

        assert report.missing == {"mods": {"a.jar", "b.jar"}}

    @pytest.mark.asyncio
    async def test_triggers_exactly_one_repair(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {"a.jar": b"tampered"})
        module = module_with(policy(update=True))
        repair = AsyncMock()

        report = await ContentChecker(repair=repair).check_content(
            manifest_factory(module), instance_dir
        )
        errors = await report.wait_for_repairs()

        assert errors == {}
        assert list(report.repairs) == ["mods"]
        repair.assert_awaited_once_with(module)
        assert report.missing == {}
        assert report.mismatched == {"mods": {"a.jar"}}

    @pytest.mark.asyncio
    async def test_failed_repair_restores_missing(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {"a.jar": b"a"})
        repair = AsyncMock(side_effect=RuntimeError("offline"))

        report = await ContentChecker(repair=repair).check_content(
            manifest_factory(module_with(policy(update=True))), instance_dir
        )
        errors = await report.wait_for_repairs()

        assert isinstance(errors["mods"], RuntimeError)
        assert report.missing == {"mods": {"b.jar"}}
        assert report.success is False

    @pytest.mark.asyncio
    async def test_repair_starts_after_check_ends(
        self, instance_dir, launcher_dir, archives, manifest_factory
    ):
        """修复与检查共用实例锁，检查结束后修复才开始"""
        mods = make_module(
            "mods",
            make_zip(archives / "mods.zip", FILES),
            files=FILES,
            policy=policy(update=True),
        )
        config = module_with(policy(), module_id="config")
        manifest = manifest_factory(mods, config)
        write_files(os.path.join(instance_dir, "mods"), {"a.jar": b"a"})
        write_files(os.path.join(instance_dir, "config"), FILES)
        events = []

        def on_check_progress(module_id, percent):
            if module_id == "config" and percent == 100:
                events.append("check-end")

        def on_repair_progress(module_id, percent):
            if percent == 0:
                events.append("repair-start")

        synchronizer = Synchronizer(MemoryLedger(), launcher_dir)

        async def repair(module):
            return await synchronizer.sync_module(
                manifest, module, instance_dir, on_repair_progress
            )

        report = await ContentChecker(repair=repair).check_content(
            manifest, instance_dir, on_progress=on_check_progress
        )
        errors = await report.wait_for_repairs()

        assert errors == {}
        assert events == ["check-end", "repair-start"]
        assert sorted(os.listdir(os.path.join(instance_dir, "mods"))) == ["a.jar", "b.jar"]


class TestDigests:
    @pytest.mark.asyncio
    async def test_mismatch_not_folded_into_missing(self, instance_dir, manifest_factory):
        write_files(os.path.join(instance_dir, "mods"), {"a.jar": b"wrong", "b.jar": b"b"})
        manifest = manifest_factory(module_with(policy(update=False)))

        report = await ContentChecker().check_content(manifest, instance_dir)

        assert report.mismatched == {"mods": {"a.jar"}}
        assert report.missing == {}
        assert report.success is True

    @pytest.mark.asyncio
    async def test_progress_non_decreasing_to_100(self, instance_dir, manifest_factory):
        files = {f"mod{i}.jar": bytes([i]) for i in range(7)}
        write_files(os.path.join(instance_dir, "mods"), files)
        manifest = manifest_factory(module_with(policy(), files=files))
        seen = []

        await ContentChecker().check_content(
            manifest, instance_dir, on_progress=lambda m, p: seen.append(p)
        )

        assert seen[0] == 0
        assert seen[-1] == 100
        assert seen == sorted(seen)
        assert all(0 <= p <= 100 for p in seen)
        assert len(seen) == len(files) + 1

    @pytest.mark.asyncio
    async def test_progress_with_nothing_to_hash(self, instance_dir, manifest_factory):
        manifest = manifest_factory(module_with(policy()))
        seen = []

        await ContentChecker().check_content(
            manifest, instance_dir, on_progress=lambda m, p: seen.append(p)
        )

        assert seen == [100]

    @pytest.mark.asyncio
    async def test_module_without_policy_skipped(self, instance_dir, manifest_factory):
        module = Module(
            id="config",
            url="https://cdn.example/config.zip",
            checksum=Checksum("0" * 64),
            version="1",
        )
        write_files(os.path.join(instance_dir, "config"), {"anything.cfg": b"x"})

        report = await ContentChecker().check_content(manifest_factory(module), instance_dir)

        assert report.success
        assert report.extraneous == {}


class TestSubfolders:
    def test_top_level_only(self, tmp_path):
        write_files(str(tmp_path), {"a.jar": b"a", "sub/b.jar": b"b"})

        assert list_files(str(tmp_path)) == {"a.jar"}

    def test_recursive(self, tmp_path):
        write_files(str(tmp_path), {"a.jar": b"a", "sub/deep/b.jar": b"b"})

        assert list_files(str(tmp_path), recursive=True) == {"a.jar", "sub/deep/b.jar"}

    @pytest.mark.asyncio
    async def test_recursive_check(self, instance_dir, manifest_factory):
        files = {"a.jar": b"a", "lib/b.jar": b"b"}
        write_files(os.path.join(instance_dir, "mods"), {**files, "lib/c.jar": b"c"})
        manifest = manifest_factory(module_with(policy(recursive=True), files=files))

        report = await ContentChecker().check_content(manifest, instance_dir)

        assert report.extraneous == {"mods": {"lib/c.jar"}}
        assert report.mismatched == {}
