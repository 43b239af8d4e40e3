"""Shared test fixtures for KernelFetch."""

import asyncio
import zlib
from typing import Dict

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from loguru import logger

_POLY = 0xEDB88320


def _crc_table():
    table = []
    for i in range(256):
        c = i
        for _ in range(8):
            c = (c >> 1) ^ _POLY if c & 1 else c >> 1
        table.append(c)
    return table


_TABLE = _crc_table()
_TOP_BYTE_INDEX = {value >> 24: index for index, value in enumerate(_TABLE)}


def forge_crc32(prefix: bytes, target: int) -> bytes:
    """Append four bytes to ``prefix`` so that the CRC32 of the result is ``target``."""
    register = zlib.crc32(prefix) ^ 0xFFFFFFFF
    wanted = target ^ 0xFFFFFFFF

    indices = []
    for _ in range(4):
        index = _TOP_BYTE_INDEX[wanted >> 24]
        indices.append(index)
        wanted = ((wanted ^ _TABLE[index]) << 8) & 0xFFFFFFFF
    indices.reverse()

    suffix = bytearray()
    for index in indices:
        suffix.append((register ^ index) & 0xFF)
        register = (register >> 8) ^ _TABLE[index]
    return prefix + bytes(suffix)


class FileServer:
    """Local HTTP server serving in-memory files plus a few misbehaving routes."""

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.hits: Dict[str, int] = {}
        # name -> number of 503 responses to send before serving the file
        self.failures: Dict[str, int] = {}
        # name -> number of stalled responses on /stall before serving the file
        self.stalls: Dict[str, int] = {}
        self.release = asyncio.Event()
        self.server: TestServer = None

    def add(self, name: str, data: bytes) -> str:
        self.files[name] = data
        return self.url(f"/files/{name}")

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/files/{name}", self.handle_file)
        app.router.add_get("/redirect/{n}/{name}", self.handle_redirect)
        app.router.add_get("/status/{code}/{name}", self.handle_status)
        app.router.add_get("/slow/{name}", self.handle_slow)
        app.router.add_get("/stall/{name}", self.handle_stall)
        app.router.add_get("/hang/{name}", self.handle_hang)
        return app

    async def handle_file(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.hits[name] = self.hits.get(name, 0) + 1
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            return web.Response(status=503)
        if name not in self.files:
            raise web.HTTPNotFound()
        return web.Response(body=self.files[name])

    async def handle_redirect(self, request: web.Request) -> web.StreamResponse:
        n = int(request.match_info["n"])
        name = request.match_info["name"]
        if n <= 1:
            raise web.HTTPFound(f"/files/{name}")
        raise web.HTTPFound(f"/redirect/{n - 1}/{name}")

    async def handle_status(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.hits[name] = self.hits.get(name, 0) + 1
        return web.Response(status=int(request.match_info["code"]))

    async def handle_slow(self, request: web.Request) -> web.StreamResponse:
        try:
            await asyncio.wait_for(self.release.wait(), timeout=5)
        except asyncio.TimeoutError:
            pass
        return web.Response(body=b"late")

    async def handle_stall(self, request: web.Request) -> web.StreamResponse:
        name = request.match_info["name"]
        self.hits[name] = self.hits.get(name, 0) + 1
        if self.stalls.get(name, 0) > 0:
            self.stalls[name] -= 1
            try:
                await asyncio.wait_for(self.release.wait(), timeout=5)
            except asyncio.TimeoutError:
                pass
        return web.Response(body=self.files[name])

    async def handle_hang(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse()
        response.content_length = 1_000_000
        await response.prepare(request)
        await response.write(b"x" * 65536)
        try:
            await asyncio.wait_for(self.release.wait(), timeout=10)
        except asyncio.TimeoutError:
            pass
        return response


@pytest_asyncio.fixture
async def file_server():
    fs = FileServer()
    server = TestServer(fs.build_app())
    await server.start_server()
    fs.server = server
    try:
        yield fs
    finally:
        fs.release.set()
        await server.close()


@pytest.fixture
def log_records():
    """Collect loguru records emitted during the test."""
    records = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(handler_id)
