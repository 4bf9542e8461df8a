"""
File verifier

SHA-1 and size checks for downloaded artifacts.
"""

import hashlib
import os
from typing import Optional

import aiofiles


class FileVerifier:
    """File verifier"""

    @staticmethod
    async def calc_sha1(file_path: str) -> Optional[str]:
        """
        Compute the SHA-1 of a file.

        Args:
            file_path: file path

        Returns:
            hex digest, or None if the file cannot be read
        """
        if not os.path.exists(file_path):
            return None

        sha1 = hashlib.sha1()
        try:
            async with aiofiles.open(file_path, "rb") as f:
                while True:
                    data = await f.read(65536)
                    if not data:
                        break
                    sha1.update(data)
            return sha1.hexdigest()
        except OSError:
            return None

    @staticmethod
    async def verify_sha1(file_path: str, expected_sha1: Optional[str]) -> bool:
        """True when no hash is expected or the file matches it"""
        if not expected_sha1:
            return True

        current_sha1 = await FileVerifier.calc_sha1(file_path)
        if current_sha1 is None:
            return False

        return current_sha1.lower() == expected_sha1.lower()

    @staticmethod
    def verify_size(file_path: str, expected_size: Optional[int]) -> bool:
        """True when no size is expected or the file has exactly that size"""
        if expected_size is None:
            return True
        return FileVerifier.get_size(file_path) == expected_size

    @staticmethod
    def exists(file_path: str) -> bool:
        return os.path.isfile(file_path)

    @staticmethod
    def get_size(file_path: str) -> int:
        try:
            return os.path.getsize(file_path)
        except OSError:
            return -1

    @staticmethod
    async def is_valid(
        file_path: str,
        expected_sha1: Optional[str] = None,
        expected_size: Optional[int] = None,
    ) -> bool:
        """
        Check that a file exists and matches the expected size and hash.
        """
        if not FileVerifier.exists(file_path):
            return False
        if not FileVerifier.verify_size(file_path, expected_size):
            return False
        return await FileVerifier.verify_sha1(file_path, expected_sha1)
