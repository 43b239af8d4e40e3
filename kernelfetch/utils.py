from typing import Optional
from urllib.parse import unquote, urlsplit

import aiohttp

SUPPORTED_SCHEMES = ("http", "https", "file")


def is_absolute_url(uri: str) -> bool:
    """检查 URI 是否为受支持的绝对 URL"""
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    if parts.scheme not in SUPPORTED_SCHEMES:
        return False
    if parts.scheme == "file":
        return bool(parts.path)
    return bool(parts.netloc)


def filename_from_uri(uri: str) -> Optional[str]:
    """
    从 URI 的最后一段路径推导本地文件名

    Returns:
        文件名，若 URI 没有可用的最后一段则返回 None
    """
    path = urlsplit(uri).path
    name = unquote(path.rsplit("/", 1)[-1])
    if name in ("", ".", "..") or "/" in name or "\\" in name:
        return None
    return name


def local_path_from_uri(uri: str) -> str:
    """file:// URI 对应的本地路径"""
    return unquote(urlsplit(uri).path)


def format_size(size: int) -> str:
    return f"{size / (1024 * 1024):.2f} MB"


async def get_manifest_text(url: str, timeout: float = 60.0) -> Optional[str]:
    """下载远程清单文本，非 200 响应返回 None"""
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(url) as response:
            if response.status != 200:
                return None
            return await response.text()
