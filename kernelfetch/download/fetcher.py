"""
制品下载器

以流的方式获取 URI 对应的数据，写入临时文件，校验通过后原子重命名到最终路径。
"""

import asyncio
import os
from contextlib import aclosing, contextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

import aiofiles
import aiohttp
from loguru import logger

from kernelfetch.download.verifier import Crc32
from kernelfetch.exceptions import (
    DownloadChecksumError,
    DownloadError,
    DownloadFileError,
    DownloadHTTPError,
    DownloadNetworkError,
    DownloadTimeoutError,
)
from kernelfetch.models import FetchConfig
from kernelfetch.utils import format_size, local_path_from_uri

ProgressCallback = Callable[[str, int, int], None]


@dataclass(frozen=True)
class FetchOutcome:
    """一次成功下载的结果"""

    path: str
    size: int
    checksum: int
    verified: bool


def temp_path_for(dest_path: str) -> str:
    """最终路径对应的临时文件路径（同目录，点号开头）"""
    directory, name = os.path.split(dest_path)
    return os.path.join(directory, f".{name}.part")


@contextmanager
def _translate_errors(uri: str):
    """将 aiohttp / asyncio 异常转换为下载异常"""
    try:
        yield
    except asyncio.TimeoutError as e:
        raise DownloadTimeoutError(f"下载超时: {uri}", context={"uri": uri}) from e
    except aiohttp.TooManyRedirects as e:
        raise DownloadNetworkError(
            f"重定向次数过多: {uri}", context={"uri": uri}
        ) from e
    except aiohttp.ClientError as e:
        raise DownloadNetworkError(
            f"网络错误: {e}", context={"uri": uri, "error": str(e)}
        ) from e


class ArtifactFetcher:
    """制品下载器"""

    def __init__(
        self,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        connect_timeout: float = 30.0,
        timeout: float = 60.0,
        max_redirects: int = 5,
        chunk_size: int = 8192,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.chunk_size = chunk_size
        self._session = session
        self._owned_session = session is None
        self._progress_callback = progress_callback

    @classmethod
    def from_config(
        cls,
        config: FetchConfig,
        session: Optional[aiohttp.ClientSession] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> "ArtifactFetcher":
        return cls(
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            connect_timeout=config.connect_timeout,
            timeout=config.timeout,
            max_redirects=config.max_redirects,
            chunk_size=config.chunk_size,
            session=session,
            progress_callback=progress_callback,
        )

    @property
    def session(self) -> aiohttp.ClientSession:
        """获取或创建 aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self):
        if self._owned_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def stream(self, uri: str) -> AsyncIterator[bytes]:
        """获取 URI 对应资源的字节流（单次尝试，不重试）"""
        return self._stream(uri)

    async def _stream(
        self, uri: str, on_start: Optional[Callable[[int], None]] = None
    ) -> AsyncIterator[bytes]:
        if uri.startswith("file://"):
            async for chunk in self._stream_local(uri, on_start):
                yield chunk
            return

        timeout = aiohttp.ClientTimeout(
            total=self.timeout or None, connect=self.connect_timeout or None
        )
        # aiohttp 在第 max_redirects 次重定向时即报错，且 0 表示不限制
        with _translate_errors(uri):
            async with self.session.get(
                uri,
                timeout=timeout,
                allow_redirects=self.max_redirects > 0,
                max_redirects=self.max_redirects + 1,
            ) as response:
                if not 200 <= response.status < 300:
                    raise DownloadHTTPError(
                        f"HTTP {response.status}: {uri}",
                        status=response.status,
                        context={"uri": uri},
                    )

                if on_start is not None:
                    on_start(response.content_length or 0)

                async for chunk in response.content.iter_chunked(self.chunk_size):
                    yield chunk

    async def _stream_local(
        self, uri: str, on_start: Optional[Callable[[int], None]] = None
    ) -> AsyncIterator[bytes]:
        """读取 file:// URI 指向的本地文件"""
        src_path = local_path_from_uri(uri)
        try:
            async with aiofiles.open(src_path, "rb") as f:
                if on_start is not None:
                    on_start(os.path.getsize(src_path))
                while True:
                    chunk = await f.read(self.chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except OSError as e:
            raise DownloadFileError(
                f"无法读取本地文件: {src_path}",
                context={"uri": uri, "error": str(e)},
            ) from e

    async def fetch(
        self,
        uri: str,
        dest_path: str,
        expected_checksum: Optional[int] = None,
    ) -> FetchOutcome:
        """
        下载单个文件，瞬时错误按指数退避重试

        Args:
            uri: 资源地址
            dest_path: 最终本地路径
            expected_checksum: 预期的 CRC32，None 表示不校验

        Raises:
            DownloadError: 重试耗尽或遇到不可重试的错误
        """
        filename = os.path.basename(dest_path)
        attempt = 0
        while True:
            try:
                return await self._fetch_once(uri, dest_path, expected_checksum)
            except DownloadError as e:
                if not e.transient or attempt >= self.max_retries:
                    raise
                delay = self.retry_delay * (2**attempt)
                logger.warning(
                    f"[重试] 下载 '{filename}' 失败 (第 {attempt + 1} 次): {e}. "
                    f"{delay:.1f}s 后重试..."
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _fetch_once(
        self,
        uri: str,
        dest_path: str,
        expected_checksum: Optional[int],
    ) -> FetchOutcome:
        filename = os.path.basename(dest_path)
        temp_path = temp_path_for(dest_path)
        total_size = 0
        downloaded = 0
        last_percent = 0.0
        crc = Crc32()
        committed = False

        def on_start(size: int):
            nonlocal total_size
            total_size = size
            if size > 0:
                logger.info(f"[信息] {filename} 文件大小: {format_size(size)}")

        try:
            os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)
            async with aiofiles.open(temp_path, "wb") as f:
                async with aclosing(self._stream(uri, on_start)) as chunks:
                    async for chunk in chunks:
                        await f.write(chunk)
                        crc.update(chunk)
                        downloaded += len(chunk)

                        # 进度回调
                        if total_size > 0:
                            percent = (downloaded / total_size) * 100
                            if percent - last_percent >= 5:
                                if self._progress_callback:
                                    self._progress_callback(
                                        filename, downloaded, total_size
                                    )
                                logger.debug(f"[进度] {filename}: {percent:.1f}%")
                                last_percent = percent

            checksum = crc.value
            if expected_checksum is not None:
                logger.debug(f"[校验] {filename}: crc32={checksum:#010x}")
                if checksum != expected_checksum:
                    raise DownloadChecksumError(
                        f"CRC32 校验失败: {filename} "
                        f"(预期 {expected_checksum:#010x}, 实际 {checksum:#010x})",
                        expected=expected_checksum,
                        actual=checksum,
                        context={"uri": uri},
                    )

            os.replace(temp_path, dest_path)
            committed = True
        except OSError as e:
            raise DownloadFileError(
                f"写入文件失败: {dest_path}", context={"uri": uri, "error": str(e)}
            ) from e
        finally:
            # 失败或被取消时清理临时文件，最终路径保持不变
            if not committed:
                try:
                    os.remove(temp_path)
                except OSError:
                    pass

        return FetchOutcome(
            path=dest_path,
            size=downloaded,
            checksum=checksum,
            verified=expected_checksum is not None,
        )
