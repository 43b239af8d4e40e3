"""
同步结果模型

定义条目状态机的状态、每个条目的最终结果以及整次运行的统计。
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from kernelfetch.exceptions import DownloadChecksumError, KernelFetchError


class EntryState(Enum):
    """条目处理状态"""

    PENDING = "pending"
    CHECKING = "checking"
    SKIP = "skip"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    DONE = "done"
    FAILED = "failed"


class SyncStatus(Enum):
    """条目最终状态"""

    SKIPPED = "skipped"
    FETCHED = "fetched"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncResult:
    """单个条目的同步结果"""

    uri: str
    status: SyncStatus
    path: Optional[str] = None
    checksum: Optional[int] = None
    verified: bool = False
    bytes_downloaded: int = 0
    error: Optional[KernelFetchError] = None

    @classmethod
    def skipped(
        cls, uri: str, path: str, checksum: Optional[int], verified: bool
    ) -> "SyncResult":
        return cls(
            uri=uri,
            status=SyncStatus.SKIPPED,
            path=path,
            checksum=checksum,
            verified=verified,
        )

    @classmethod
    def fetched(
        cls, uri: str, path: str, checksum: int, verified: bool, size: int
    ) -> "SyncResult":
        return cls(
            uri=uri,
            status=SyncStatus.FETCHED,
            path=path,
            checksum=checksum,
            verified=verified,
            bytes_downloaded=size,
        )

    @classmethod
    def failed(
        cls, uri: str, error: KernelFetchError, path: Optional[str] = None
    ) -> "SyncResult":
        return cls(uri=uri, status=SyncStatus.FAILED, path=path, error=error)

    @property
    def ok(self) -> bool:
        return self.status is not SyncStatus.FAILED

    @property
    def checksum_mismatch(self) -> bool:
        return isinstance(self.error, DownloadChecksumError)

    @property
    def reason(self) -> Optional[str]:
        if self.error is None:
            return None
        return str(self.error)

    def describe(self) -> str:
        """单行可读描述"""
        if self.status is SyncStatus.FAILED:
            return f"[失败] {self.uri}: {self.reason}"

        tag = "[跳过]" if self.status is SyncStatus.SKIPPED else "[完成]"
        if self.verified:
            detail = f"crc32={self.checksum:#010x} 校验通过"
        else:
            detail = "未校验"
        return f"{tag} {self.uri} -> {self.path} ({detail})"


@dataclass
class SyncStats:
    """同步统计"""

    total: int = 0
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    bytes_downloaded: int = 0

    def record(self, result: SyncResult) -> None:
        if result.status is SyncStatus.FETCHED:
            self.fetched += 1
            self.bytes_downloaded += result.bytes_downloaded
        elif result.status is SyncStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
