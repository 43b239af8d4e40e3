"""
同步协调器

对清单中的每个条目决定跳过、下载或下载并校验，以有界并发执行，
并汇总每个条目的最终结果。单个条目失败不会中止其他条目。
"""

import asyncio
import os
from typing import Dict, Iterable, List, Optional

from loguru import logger

from kernelfetch.download import ArtifactFetcher, DownloadQueue, FileVerifier
from kernelfetch.download.fetcher import ProgressCallback
from kernelfetch.exceptions import (
    ConfigValidationError,
    DownloadError,
    DownloadFileError,
    DownloadTimeoutError,
    KernelFetchError,
)
from kernelfetch.models import (
    EntryState,
    FetchConfig,
    ManifestEntry,
    SyncResult,
    SyncStats,
)
from kernelfetch.utils import format_size


class LocalArtifact:
    """条目在本地存储中的状态，CRC32 在首次需要时计算并缓存"""

    def __init__(self, path: str):
        self.path = path
        self._checksum: Optional[int] = None
        self._computed = False

    @property
    def present(self) -> bool:
        return FileVerifier.exists(self.path)

    async def verified_checksum(self) -> Optional[int]:
        if not self._computed:
            self._checksum = await FileVerifier.compute_file(self.path)
            self._computed = True
        return self._checksum


class SyncOrchestrator:
    """同步协调器"""

    def __init__(
        self,
        config: FetchConfig,
        fetcher: Optional[ArtifactFetcher] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.stats = SyncStats()
        self._progress_callback = progress_callback

    def local_artifact(self, entry: ManifestEntry) -> LocalArtifact:
        return LocalArtifact(os.path.join(self.config.download_dir, entry.filename))

    @staticmethod
    def _transition(entry: ManifestEntry, state: EntryState):
        logger.debug(f"[状态] {entry.filename}: {state.value}")

    async def _check(
        self, entry: ManifestEntry, artifact: LocalArtifact
    ) -> Optional[SyncResult]:
        """检查本地文件，可跳过时返回跳过结果"""
        if not artifact.present:
            return None

        if entry.checksum is None:
            logger.info(f"[跳过] '{entry.filename}' 已存在（无校验值）")
            return SyncResult.skipped(entry.uri, artifact.path, None, verified=False)

        checksum = await artifact.verified_checksum()
        if checksum is None:
            return None
        if checksum == entry.checksum:
            logger.info(f"[跳过] '{entry.filename}' 已存在且校验通过")
            return SyncResult.skipped(
                entry.uri, artifact.path, checksum, verified=True
            )

        logger.warning(
            f"[警告] '{entry.filename}' 已存在，但 CRC32 不匹配 "
            f"(预期 {entry.checksum:#010x}, 实际 {checksum:#010x})，将重新下载"
        )
        return None

    async def plan(self, entries: Iterable[ManifestEntry]) -> Dict[str, EntryState]:
        """
        只执行检查步骤，不访问网络

        Returns:
            uri -> EntryState.SKIP、EntryState.DOWNLOADING，
            无法确定本地路径的条目为 EntryState.FAILED
        """
        plan: Dict[str, EntryState] = {}
        for entry in entries:
            try:
                artifact = self.local_artifact(entry)
            except KernelFetchError:
                plan[entry.uri] = EntryState.FAILED
                continue
            if not self.config.force and await self._check(entry, artifact):
                plan[entry.uri] = EntryState.SKIP
            else:
                plan[entry.uri] = EntryState.DOWNLOADING
        return plan

    async def process(
        self, entry: ManifestEntry, fetcher: ArtifactFetcher
    ) -> SyncResult:
        """处理单个条目，所有下载错误都记录在结果中"""
        artifact = self.local_artifact(entry)
        self._transition(entry, EntryState.CHECKING)

        try:
            if not self.config.force:
                skipped = await self._check(entry, artifact)
                if skipped is not None:
                    self._transition(entry, EntryState.SKIP)
                    return skipped

            self._transition(entry, EntryState.DOWNLOADING)
            logger.info(f"[开始] 下载: {entry.filename}")
            outcome = await fetcher.fetch(entry.uri, artifact.path, entry.checksum)
        except KernelFetchError as e:
            self._transition(entry, EntryState.FAILED)
            logger.error(f"[错误] '{entry.filename}' 同步失败: {e}")
            return SyncResult.failed(entry.uri, e, artifact.path)
        except OSError as e:
            self._transition(entry, EntryState.FAILED)
            error = DownloadFileError(
                f"本地文件访问失败: {artifact.path}",
                context={"uri": entry.uri, "error": str(e)},
            )
            logger.error(f"[错误] '{entry.filename}' 同步失败: {error}")
            return SyncResult.failed(entry.uri, error, artifact.path)

        if outcome.verified:
            self._transition(entry, EntryState.VERIFYING)
        else:
            logger.warning(
                f"[警告] '{entry.filename}' 未提供校验值，未进行完整性校验"
            )
        self._transition(entry, EntryState.DONE)
        logger.success(
            f"[完成] '{entry.filename}' 下载完成 ({format_size(outcome.size)})"
        )
        return SyncResult.fetched(
            entry.uri,
            outcome.path,
            outcome.checksum,
            verified=outcome.verified,
            size=outcome.size,
        )

    async def _worker(
        self,
        queue: DownloadQueue,
        fetcher: ArtifactFetcher,
        results: Dict[str, SyncResult],
    ):
        """同步工作协程"""
        while True:
            task = await queue.get()
            try:
                results[task.entry.uri] = await self.process(task.entry, fetcher)
            except Exception as e:
                # 工作协程不应该因为单个任务失败而退出
                logger.exception(f"[错误] 处理 '{task.entry.uri}' 时发生意外: {e}")
                results[task.entry.uri] = SyncResult.failed(
                    task.entry.uri,
                    DownloadError(f"意外错误: {e}", context={"error": repr(e)}),
                    task.dest_path,
                )
            finally:
                queue.task_done()

    async def sync(self, entries: Iterable[ManifestEntry]) -> Dict[str, SyncResult]:
        """
        同步全部条目

        Returns:
            按清单顺序排列的 uri -> SyncResult，键集合等于清单的 URI 集合
        """
        unique: Dict[str, ManifestEntry] = {}
        for entry in entries:
            if entry.uri in unique:
                logger.warning(f"[警告] 忽略重复的 uri: {entry.uri}")
                continue
            unique[entry.uri] = entry
        entries = list(unique.values())
        self.stats = SyncStats(total=len(entries))
        results: Dict[str, SyncResult] = {}

        queue = DownloadQueue()
        for entry in entries:
            try:
                dest_path = self.local_artifact(entry).path
            except KernelFetchError as e:
                logger.error(f"[错误] 无效条目 '{entry.uri}': {e}")
                results[entry.uri] = SyncResult.failed(entry.uri, e)
                continue
            if not await queue.put(entry, dest_path):
                results[entry.uri] = SyncResult.failed(
                    entry.uri,
                    ConfigValidationError(
                        f"多个条目指向同一本地文件: {entry.filename}",
                        context={"uri": entry.uri},
                    ),
                    dest_path,
                )

        fetcher = self.fetcher or ArtifactFetcher.from_config(
            self.config, progress_callback=self._progress_callback
        )
        worker_count = max(1, min(self.config.max_concurrent, queue.qsize()))
        logger.info(f"[启动] 同步 {len(entries)} 个文件，最大并发数: {worker_count}")
        workers: List[asyncio.Task] = [
            asyncio.create_task(
                self._worker(queue, fetcher, results), name=f"sync-worker-{i}"
            )
            for i in range(worker_count)
        ]

        try:
            if self.config.sync_timeout:
                await asyncio.wait_for(queue.join(), self.config.sync_timeout)
            else:
                await queue.join()
        except asyncio.TimeoutError:
            logger.error(
                f"[超时] 同步超过 {self.config.sync_timeout:.1f}s，取消未完成的下载"
            )
        finally:
            # 取消工作协程，进行中的下载会清理各自的临时文件
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            if fetcher is not self.fetcher:
                await fetcher.close()

        ordered: Dict[str, SyncResult] = {}
        for entry in entries:
            result = results.get(entry.uri)
            if result is None:
                result = SyncResult.failed(
                    entry.uri,
                    DownloadTimeoutError(
                        "同步超时，条目未完成", context={"uri": entry.uri}
                    ),
                    self.local_artifact(entry).path,
                )
            ordered[entry.uri] = result
            self.stats.record(result)

        logger.success(
            f"同步完成: {self.stats.fetched} 下载, {self.stats.skipped} 跳过, "
            f"{self.stats.failed} 失败 (共 {format_size(self.stats.bytes_downloaded)})"
        )
        return ordered

    def get_stats(self) -> SyncStats:
        """获取同步统计"""
        return self.stats
