"""
CLI 模块

命令行接口实现。
"""

import asyncio
import sys
from typing import Optional

import click
from loguru import logger

from kernelfetch import __version__
from kernelfetch.exceptions import KernelFetchError
from kernelfetch.logger import resolve_level, setup_logger
from kernelfetch.models import EntryState, FetchConfig, load_manifest
from kernelfetch.orchestrator import SyncOrchestrator


async def run_async(
    manifest_path: str,
    overrides: dict,
    dry_run: bool = False,
) -> bool:
    """
    异步运行

    Returns:
        True 如果所有条目都已下载或跳过
    """
    try:
        manifest = await load_manifest(manifest_path)
        config = FetchConfig.from_dict(manifest.settings).merge(**overrides)
    except KernelFetchError as e:
        logger.error(f"配置错误: {e}")
        raise click.ClickException(str(e))

    logger.info(f"清单 {manifest_path}: {len(manifest)} 个文件 -> {config.download_dir}")
    orchestrator = SyncOrchestrator(config)

    if dry_run:
        plan = await orchestrator.plan(manifest)
        for entry in manifest:
            action = "跳过" if plan[entry.uri] is EntryState.SKIP else "下载"
            click.echo(f"[计划] {action} {entry}")
        return True

    try:
        results = await orchestrator.sync(manifest)
    except Exception as e:
        logger.exception(f"运行时错误: {e}")
        raise click.ClickException(f"运行时错误: {e}")

    for result in results.values():
        click.echo(result.describe())

    return all(result.ok for result in results.values())


@click.command()
@click.argument("manifest", default="manifest.toml")
@click.option("-o", "--output", "download_dir", help="下载目录（默认 data）")
@click.option("-j", "--jobs", "max_concurrent", type=int, help="最大并发下载数")
@click.option("--retries", "max_retries", type=int, help="瞬时错误的最大重试次数")
@click.option("--timeout", type=float, help="单次下载超时（秒）")
@click.option("--connect-timeout", type=float, help="连接超时（秒）")
@click.option("--sync-timeout", type=float, help="整次同步的超时（秒）")
@click.option("--force", is_flag=True, help="忽略本地文件，重新下载所有条目")
@click.option("--dry-run", is_flag=True, help="干运行模式（只检查本地状态）")
@click.option("-q", "--quiet", is_flag=True, help="只输出警告与错误日志")
@click.option("--debug", is_flag=True, help="启用调试模式")
@click.version_option(version=__version__)
def main(
    manifest: str,
    download_dir: Optional[str],
    max_concurrent: Optional[int],
    max_retries: Optional[int],
    timeout: Optional[float],
    connect_timeout: Optional[float],
    sync_timeout: Optional[float],
    force: bool,
    dry_run: bool,
    quiet: bool,
    debug: bool,
):
    """KernelFetch - 星历与定向数据文件同步工具"""
    setup_logger(level=resolve_level(debug, quiet))

    overrides = {
        "download_dir": download_dir,
        "max_concurrent": max_concurrent,
        "max_retries": max_retries,
        "timeout": timeout,
        "connect_timeout": connect_timeout,
        "sync_timeout": sync_timeout,
        "force": True if force else None,
    }
    ok = asyncio.run(run_async(manifest, overrides, dry_run))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
