"""
同步任务队列

按清单顺序分发任务，并按目标文件去重。
"""

import asyncio
from dataclasses import dataclass, field

from kernelfetch.models import ManifestEntry


@dataclass(order=True)
class SyncTask:
    """同步任务"""

    index: int
    entry: ManifestEntry = field(compare=False)
    dest_path: str = field(compare=False)


class DownloadQueue:
    """同步任务队列"""

    def __init__(self):
        self._queue: asyncio.PriorityQueue = asyncio.PriorityQueue()
        self._paths: set[str] = set()  # 用于去重
        self._total_queued = 0

    async def put(self, entry: ManifestEntry, dest_path: str) -> bool:
        """
        添加任务到队列

        Returns:
            True 如果任务是新添加的，False 如果目标文件已被其他任务占用
        """
        if dest_path in self._paths:
            return False

        self._paths.add(dest_path)
        await self._queue.put(SyncTask(self._total_queued, entry, dest_path))
        self._total_queued += 1
        return True

    async def get(self) -> SyncTask:
        """获取下一个任务"""
        return await self._queue.get()

    def task_done(self):
        """标记任务完成"""
        self._queue.task_done()

    def qsize(self) -> int:
        """获取队列大小"""
        return self._queue.qsize()

    async def join(self):
        """等待所有任务完成"""
        await self._queue.join()
