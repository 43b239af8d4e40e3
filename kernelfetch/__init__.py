"""
KernelFetch

按清单下载星历与定向参数数据文件，CRC32 校验后原子落盘。
"""

__version__ = "0.1.0"

from kernelfetch.download import ArtifactFetcher, FileVerifier
from kernelfetch.models import (
    FetchConfig,
    Manifest,
    ManifestEntry,
    SyncResult,
    SyncStatus,
    load_manifest,
)
from kernelfetch.orchestrator import SyncOrchestrator

__all__ = [
    "__version__",
    "ArtifactFetcher",
    "FileVerifier",
    "FetchConfig",
    "Manifest",
    "ManifestEntry",
    "SyncResult",
    "SyncStatus",
    "SyncOrchestrator",
    "load_manifest",
]
