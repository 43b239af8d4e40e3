"""
清单模型

定义清单条目以及清单的加载与校验。清单是一组 (uri, 可选 CRC32) 记录，
加载后只读。
"""

import asyncio
import json
import os
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union
from urllib.parse import urlsplit

import aiofiles
import aiohttp
import toml
import yaml

from kernelfetch.exceptions import ManifestParseError
from kernelfetch.utils import filename_from_uri, get_manifest_text, is_absolute_url

CHECKSUM_KEYS = ("checksum", "crc32")
MANIFEST_SUFFIXES = (".toml", ".json", ".yaml", ".yml")


@dataclass(frozen=True)
class ManifestEntry:
    """
    清单条目

    checksum 为 None 表示不请求完整性校验，与校验值 0 是不同的状态。
    """

    uri: str
    checksum: Optional[int] = None

    @property
    def filename(self) -> str:
        """由 URI 最后一段路径推导出的本地文件名"""
        name = filename_from_uri(self.uri)
        if name is None:
            raise ManifestParseError(
                f"URI 缺少文件名: {self.uri}", context={"uri": self.uri}
            )
        return name

    @property
    def has_checksum(self) -> bool:
        return self.checksum is not None

    def __str__(self) -> str:
        if self.checksum is None:
            return self.uri
        return f"{self.uri} (crc32={self.checksum:#010x})"


def _parse_checksum(value: Any, index: int) -> Optional[int]:
    """解析校验值，支持整数与十进制 / 0x 十六进制字符串"""
    if value is None:
        return None

    context = {"index": index, "checksum": value}
    if isinstance(value, bool):
        raise ManifestParseError(f"第 {index} 项的校验值不是数字", context=context)

    if isinstance(value, int):
        checksum = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                checksum = int(text, 16)
            else:
                checksum = int(text, 10)
        except ValueError:
            raise ManifestParseError(
                f"第 {index} 项的校验值不是数字: {value!r}", context=context
            ) from None
    else:
        raise ManifestParseError(
            f"第 {index} 项的校验值不是数字: {value!r}", context=context
        )

    if not 0 <= checksum <= 0xFFFFFFFF:
        raise ManifestParseError(
            f"第 {index} 项的校验值超出 32 位无符号整数范围: {value!r}",
            context=context,
        )
    return checksum


def _parse_entry(record: Any, index: int) -> ManifestEntry:
    if not isinstance(record, dict):
        raise ManifestParseError(
            f"第 {index} 项不是键值记录", context={"index": index}
        )

    uri = record.get("uri")
    if not isinstance(uri, str) or not uri.strip():
        raise ManifestParseError(
            f"第 {index} 项缺少必需字段 'uri'", context={"index": index}
        )
    uri = uri.strip()

    if not is_absolute_url(uri):
        raise ManifestParseError(
            f"第 {index} 项的 uri 不是有效的绝对 URL: {uri}",
            context={"index": index, "uri": uri},
        )
    if filename_from_uri(uri) is None:
        raise ManifestParseError(
            f"第 {index} 项的 uri 缺少文件名: {uri}",
            context={"index": index, "uri": uri},
        )

    checksum = None
    for key in CHECKSUM_KEYS:
        if key in record:
            checksum = _parse_checksum(record[key], index)
            break

    return ManifestEntry(uri=uri, checksum=checksum)


class Manifest(Sequence):
    """
    只读清单

    按源顺序保存条目；settings 保存清单顶层除 files 以外的设置项，
    供 FetchConfig 读取。
    """

    def __init__(
        self,
        entries: List[ManifestEntry],
        settings: Optional[Dict[str, Any]] = None,
    ):
        self._entries = tuple(entries)
        self.settings = dict(settings or {})

    @classmethod
    def load(cls, source: Union[List[Any], Dict[str, Any]]) -> "Manifest":
        """
        从已解码的数据构建清单

        Args:
            source: 记录列表，或包含 files 列表的字典

        Raises:
            ManifestParseError: 数据格式不正确
        """
        settings: Dict[str, Any] = {}
        if isinstance(source, dict):
            if "files" not in source:
                raise ManifestParseError("清单缺少 'files' 列表")
            records = source["files"]
            settings = {k: v for k, v in source.items() if k != "files"}
        else:
            records = source

        if not isinstance(records, list):
            raise ManifestParseError("清单的 'files' 必须是列表")

        entries: List[ManifestEntry] = []
        seen_uris = set()
        seen_names = set()
        for index, record in enumerate(records):
            entry = _parse_entry(record, index)
            if entry.uri in seen_uris:
                raise ManifestParseError(
                    f"重复的 uri: {entry.uri}", context={"index": index}
                )
            if entry.filename in seen_names:
                raise ManifestParseError(
                    f"多个条目指向同一本地文件: {entry.filename}",
                    context={"index": index, "uri": entry.uri},
                )
            seen_uris.add(entry.uri)
            seen_names.add(entry.filename)
            entries.append(entry)

        return cls(entries, settings)

    @property
    def uris(self) -> List[str]:
        return [entry.uri for entry in self._entries]

    def __getitem__(self, index):
        return self._entries[index]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"Manifest({len(self._entries)} entries)"


def decode_manifest(text: str, suffix: str) -> Any:
    """按文件后缀解码清单文本"""
    suffix = suffix.lower()
    try:
        if suffix == ".toml":
            return toml.loads(text)
        elif suffix == ".json":
            return json.loads(text)
        elif suffix in (".yaml", ".yml"):
            return yaml.safe_load(text)
    except (toml.TomlDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestParseError(
            f"清单解码失败: {e}", context={"format": suffix}
        ) from e
    raise ManifestParseError(f"不支持的清单格式: {suffix}")


async def load_manifest(source: str) -> Manifest:
    """
    读取并解析清单文件

    Args:
        source: 本地路径或 http(s) URL，格式由后缀决定
            (.toml / .json / .yaml / .yml)

    Raises:
        ManifestParseError: 文件无法读取或格式不正确
    """
    if source.startswith(("http://", "https://")):
        suffix = os.path.splitext(urlsplit(source).path)[1]
        if suffix.lower() not in MANIFEST_SUFFIXES:
            raise ManifestParseError(f"不支持的清单格式: {suffix or source}")
        try:
            text = await get_manifest_text(source)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ManifestParseError(
                f"无法下载清单: {source}", context={"error": str(e)}
            ) from e
        if text is None:
            raise ManifestParseError(f"无法下载清单: {source}")
    else:
        suffix = os.path.splitext(source)[1]
        if suffix.lower() not in MANIFEST_SUFFIXES:
            raise ManifestParseError(f"不支持的清单格式: {suffix or source}")
        try:
            async with aiofiles.open(source, encoding="utf-8") as f:
                text = await f.read()
        except OSError as e:
            raise ManifestParseError(
                f"无法读取清单文件: {source}", context={"error": str(e)}
            ) from e

    return Manifest.load(decode_manifest(text, suffix))
