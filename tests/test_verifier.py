"""Tests for the CRC32 file verifier."""

import zlib

import pytest

from kernelfetch.download.verifier import Crc32, FileVerifier

from conftest import forge_crc32


class TestCompute:
    def test_standard_check_value(self) -> None:
        """ISO-3309 CRC32 of the ASCII digits 1-9 is 0xCBF43926."""
        assert FileVerifier.compute(b"123456789") == 0xCBF43926

    def test_empty_input(self) -> None:
        assert FileVerifier.compute(b"") == 0

    def test_result_is_unsigned(self) -> None:
        data = b"\xff" * 64
        assert FileVerifier.compute(data) == zlib.crc32(data) & 0xFFFFFFFF
        assert FileVerifier.compute(data) >= 0

    def test_streamed_equals_whole(self) -> None:
        data = bytes(range(256)) * 100
        crc = Crc32()
        for i in range(0, len(data), 1000):
            crc.update(data[i : i + 1000])
        assert crc.value == FileVerifier.compute(data)

    def test_rejects_text(self) -> None:
        with pytest.raises(TypeError):
            FileVerifier.compute("not bytes")

    def test_forged_payload_hits_target(self) -> None:
        payload = forge_crc32(b"ephemeris", 0x12345678)
        assert FileVerifier.compute(payload) == 0x12345678


class TestVerify:
    def test_match(self) -> None:
        assert FileVerifier.verify(b"123456789", 0xCBF43926)

    def test_mismatch(self) -> None:
        assert not FileVerifier.verify(b"123456789", 0x12345678)


class TestFileChecks:
    @pytest.mark.asyncio
    async def test_compute_file(self, tmp_path) -> None:
        path = tmp_path / "de440s.bsp"
        path.write_bytes(b"123456789")
        assert await FileVerifier.compute_file(str(path)) == 0xCBF43926

    @pytest.mark.asyncio
    async def test_compute_missing_file(self, tmp_path) -> None:
        assert await FileVerifier.compute_file(str(tmp_path / "missing.bsp")) is None

    @pytest.mark.asyncio
    async def test_is_valid(self, tmp_path) -> None:
        path = tmp_path / "pck11.pca"
        path.write_bytes(b"123456789")

        assert await FileVerifier.is_valid(str(path))
        assert await FileVerifier.is_valid(str(path), 0xCBF43926)
        assert not await FileVerifier.is_valid(str(path), 0xCBF43927)
        assert not await FileVerifier.is_valid(str(tmp_path / "missing"), None)

    @pytest.mark.asyncio
    async def test_zero_checksum_is_a_real_checksum(self, tmp_path) -> None:
        """An expected checksum of 0 is checked, not treated as absent."""
        path = tmp_path / "a.bin"
        path.write_bytes(b"123456789")
        assert not await FileVerifier.is_valid(str(path), 0)

        empty = tmp_path / "empty.bin"
        empty.write_bytes(b"")
        assert await FileVerifier.is_valid(str(empty), 0)
