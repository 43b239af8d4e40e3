"""
文件校验器

实现 CRC32 计算、文件存在性检查、文件完整性验证。
CRC32 为 ISO-3309 标准变体（反射，多项式 0xEDB88320），与 zlib.crc32 一致。
"""

import os
import zlib
from typing import Optional

import aiofiles

READ_CHUNK_SIZE = 64 * 1024


class Crc32:
    """流式 CRC32 累加器"""

    def __init__(self):
        self._value = 0

    def update(self, data: bytes) -> "Crc32":
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"CRC32 需要字节数据，得到 {type(data).__name__}")
        self._value = zlib.crc32(data, self._value)
        return self

    @property
    def value(self) -> int:
        return self._value & 0xFFFFFFFF


class FileVerifier:
    """文件校验器"""

    @staticmethod
    def compute(data: bytes) -> int:
        """计算字节序列的 CRC32（无符号 32 位）"""
        return Crc32().update(data).value

    @staticmethod
    def verify(data: bytes, expected: int) -> bool:
        return FileVerifier.compute(data) == expected

    @staticmethod
    async def compute_file(file_path: str) -> Optional[int]:
        """
        计算文件的 CRC32 值

        Args:
            file_path: 文件路径

        Returns:
            CRC32 值或 None（如果文件不存在）
        """
        if not os.path.isfile(file_path):
            return None

        crc = Crc32()
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(READ_CHUNK_SIZE)
                    if not data:
                        break
                    crc.update(data)
            return crc.value
        except FileNotFoundError:
            return None

    @staticmethod
    def exists(file_path: str) -> bool:
        """检查文件是否存在"""
        return os.path.isfile(file_path)

    @staticmethod
    async def is_valid(file_path: str, expected: Optional[int] = None) -> bool:
        """
        检查文件是否有效（存在且校验通过）

        Args:
            file_path: 文件路径
            expected: 预期的 CRC32 值，None 表示只检查存在性

        Returns:
            是否有效
        """
        if not FileVerifier.exists(file_path):
            return False

        if expected is None:
            return True

        return await FileVerifier.compute_file(file_path) == expected
