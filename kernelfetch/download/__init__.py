"""
KernelFetch 下载层

包含制品下载、任务队列、CRC32 校验等功能。
"""

from kernelfetch.download.fetcher import ArtifactFetcher, FetchOutcome
from kernelfetch.download.queue import DownloadQueue
from kernelfetch.download.verifier import Crc32, FileVerifier

__all__ = [
    "ArtifactFetcher",
    "FetchOutcome",
    "DownloadQueue",
    "Crc32",
    "FileVerifier",
]
