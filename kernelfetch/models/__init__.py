"""
KernelFetch 数据模型包

包含清单模型、运行配置和同步结果定义。
"""

from kernelfetch.models.manifest import (
    ManifestEntry,
    Manifest,
    decode_manifest,
    load_manifest,
)
from kernelfetch.models.config import FetchConfig
from kernelfetch.models.result import (
    EntryState,
    SyncStatus,
    SyncResult,
    SyncStats,
)

__all__ = [
    # 清单模型
    "ManifestEntry",
    "Manifest",
    "decode_manifest",
    "load_manifest",
    # 配置模型
    "FetchConfig",
    # 结果模型
    "EntryState",
    "SyncStatus",
    "SyncResult",
    "SyncStats",
]
