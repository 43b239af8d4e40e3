"""
运行配置模型

FetchConfig 汇总一次同步运行所需的全部参数，由清单顶层设置与命令行选项合并而来。
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

from kernelfetch.exceptions import ConfigValidationError


@dataclass(frozen=True)
class FetchConfig:
    """同步运行配置"""

    download_dir: str = "data"
    max_concurrent: int = 4
    max_retries: int = 3
    retry_delay: float = 1.0
    connect_timeout: float = 30.0
    timeout: float = 60.0
    max_redirects: int = 5
    chunk_size: int = 8192
    sync_timeout: Optional[float] = None
    force: bool = False

    def __post_init__(self):
        if not self.download_dir:
            raise ConfigValidationError("download_dir 不能为空")
        if self.max_concurrent <= 0:
            raise ConfigValidationError(
                "max_concurrent 必须为正整数",
                context={"max_concurrent": self.max_concurrent},
            )
        if self.max_retries < 0:
            raise ConfigValidationError(
                "max_retries 不能为负数", context={"max_retries": self.max_retries}
            )
        if self.max_redirects < 0:
            raise ConfigValidationError(
                "max_redirects 不能为负数",
                context={"max_redirects": self.max_redirects},
            )
        if self.chunk_size <= 0:
            raise ConfigValidationError(
                "chunk_size 必须为正整数", context={"chunk_size": self.chunk_size}
            )
        for name in ("retry_delay", "connect_timeout", "timeout"):
            if getattr(self, name) < 0:
                raise ConfigValidationError(
                    f"{name} 不能为负数", context={name: getattr(self, name)}
                )
        if self.sync_timeout is not None and self.sync_timeout <= 0:
            raise ConfigValidationError(
                "sync_timeout 必须为正数", context={"sync_timeout": self.sync_timeout}
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FetchConfig":
        """从字典创建配置，忽略未知键"""
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known:
                continue
            kwargs[key] = cls._coerce(key, value)
        return cls(**kwargs)

    @staticmethod
    def _coerce(key: str, value: Any) -> Any:
        if key in ("max_concurrent", "max_retries", "max_redirects", "chunk_size"):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigValidationError(
                    f"{key} 必须为整数", context={key: value}
                )
            return value
        if key in ("retry_delay", "connect_timeout", "timeout", "sync_timeout"):
            if value is None and key == "sync_timeout":
                return None
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigValidationError(
                    f"{key} 必须为数字", context={key: value}
                )
            return float(value)
        if key == "force":
            if not isinstance(value, bool):
                raise ConfigValidationError("force 必须为布尔值", context={key: value})
            return value
        if not isinstance(value, str):
            raise ConfigValidationError(f"{key} 必须为字符串", context={key: value})
        return value

    def merge(self, **overrides: Any) -> "FetchConfig":
        """用非 None 的覆盖值生成新配置"""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)
