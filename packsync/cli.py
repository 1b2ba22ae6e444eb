"""
CLI 模块

命令行接口实现。
"""

import asyncio
import json
import sys

import click
from loguru import logger

from packsync.config import ConfigStore
from packsync.exceptions import PackSyncError
from packsync.logger import setup_logger
from packsync.orchestrator import LaunchPreparation
from packsync.progress import log_progress


def _load_store(config_path: str) -> ConfigStore:
    try:
        return ConfigStore.load(config_path)
    except PackSyncError as e:
        raise click.ClickException(str(e))


def _run(coro):
    try:
        return asyncio.run(coro)
    except PackSyncError as e:
        logger.error(f"同步失败: {e}")
        raise click.ClickException(str(e))


async def sync_async(config_path: str, skip_check: bool):
    """同步并（可选）检查内容"""
    store = _load_store(config_path)
    preparation = LaunchPreparation(store, on_progress=log_progress)
    result = await preparation.run(skip_check=True if skip_check else None)

    if result.synced:
        logger.success(f"完成! 更新了 {len(result.synced)} 个模块")
    else:
        logger.success("所有模块均为最新")

    if result.report is not None:
        if result.blocked:
            lines = [
                f"  {module_id}: {', '.join(sorted(files))}"
                for module_id, files in result.report.extraneous.items()
                if files
            ]
            raise click.ClickException("发现外部内容:\n" + "\n".join(lines))
        if not result.report.success:
            logger.warning("内容检查发现缺失文件，请查看日志")


async def check_async(config_path: str, as_json: bool) -> bool:
    """仅运行内容检查"""
    store = _load_store(config_path)
    preparation = LaunchPreparation(store, on_progress=None if as_json else log_progress)
    try:
        manifest = await preparation.fetch_manifest()
        report = await preparation.check(
            manifest, store.get_instance_dir(manifest.server_id)
        )
    finally:
        await preparation.close()

    if as_json:
        click.echo(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
    elif report.success:
        click.echo("内容检查通过")
    else:
        for module_id, files in report.extraneous.items():
            click.echo(f"[多余] {module_id}: {', '.join(sorted(files))}")
        for module_id, files in report.missing.items():
            click.echo(f"[缺失] {module_id}: {', '.join(sorted(files))}")
    return report.success


async def status_async(config_path: str):
    """显示版本状态"""
    store = _load_store(config_path)
    rows = await LaunchPreparation(store).status()
    for row in rows:
        mark = "*" if row.pending else " "
        click.echo(
            f"[{mark}] {row.module_id}: 已安装 {row.installed or '-'} / 最新 {row.available}"
        )


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(),
    default="launcher.toml",
    show_default=True,
    help="启动器配置文件",
)
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    envvar="PACKSYNC_LOG_FILE",
    help="同时写入日志文件",
)
@click.version_option(version="0.1.0")
@click.pass_context
def main(ctx: click.Context, config_path: str, debug: bool, log_file: str):
    """PackSync - 整合包内容同步与检查工具"""
    setup_logger(
        level="DEBUG" if debug else None,
        sink=sys.stderr,
        enqueue=False,
        log_file=log_file,
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path


@main.command()
@click.option("--skip-check", is_flag=True, help="同步后跳过内容检查")
@click.pass_context
def sync(ctx: click.Context, skip_check: bool):
    """同步所有需要更新的模块"""
    _run(sync_async(ctx.obj["config"], skip_check))


@main.command()
@click.option("--json", "as_json", is_flag=True, help="以 JSON 输出报告")
@click.pass_context
def check(ctx: click.Context, as_json: bool):
    """检查本地内容与清单是否一致"""
    if not _run(check_async(ctx.obj["config"], as_json)):
        ctx.exit(1)


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """显示已安装版本与清单版本"""
    _run(status_async(ctx.obj["config"]))


if __name__ == "__main__":
    main()
