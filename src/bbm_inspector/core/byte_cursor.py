"""
Sequential byte reader over a NAND image.

The cursor reads one byte at a time and tracks the absolute offset of the
next byte. Every detector seeks back to 0 and makes its own pass, so the
cursor never holds more than the current byte.
"""

import io
import os
import logging
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Tuple, Union

from bbm_inspector.core.errors import EndOfDataError, ImageIOError

# Module logger
logger = logging.getLogger(__name__)


class ByteCursor:
    """
    Seekable single-byte reader with end-of-data signalling.

    Attributes:
        name: Path of the image, or "<memory>" for in-memory sources

    Example:
        >>> with ByteCursor.from_bytes(b"\\xDB\\xC0") as cursor:
        ...     cursor.read_byte(), cursor.position
        (219, 1)
    """

    def __init__(self, source: BinaryIO, name: str = "<memory>"):
        self._source = source
        self._position = 0
        self._size: Optional[int] = None
        self.name = name
        self._source.seek(0)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "ByteCursor":
        """
        Open an image file read-only.

        Raises:
            OSError: If the file cannot be opened
        """
        source = open(path, "rb")
        logger.debug(f"Opened image {path}")
        return cls(source, name=str(path))

    @classmethod
    def from_bytes(cls, data: Union[bytes, bytearray]) -> "ByteCursor":
        """Wrap an in-memory image."""
        return cls(io.BytesIO(data))

    # =========================================================================
    # Positioning
    # =========================================================================

    @property
    def position(self) -> int:
        """Offset of the next byte to be read."""
        return self._position

    @property
    def size(self) -> int:
        """Total length of the source in bytes."""
        if self._size is None:
            try:
                self._size = self._source.seek(0, os.SEEK_END)
                self._source.seek(self._position)
            except OSError as e:
                raise ImageIOError(f"Cannot determine image size: {e}") from e
        return self._size

    def seek(self, offset: int) -> None:
        """
        Reposition the cursor to an absolute offset.

        Raises:
            ValueError: If offset is negative
            ImageIOError: If the underlying seek fails
        """
        if offset < 0:
            raise ValueError(f"Negative offset: {offset}")
        try:
            self._source.seek(offset)
        except OSError as e:
            raise ImageIOError(f"Seek to {offset:08X} failed: {e}", offset) from e
        self._position = offset

    # =========================================================================
    # Reading
    # =========================================================================

    def read_byte(self) -> int:
        """
        Read the next byte and advance by one.

        Returns:
            Byte value (0-255)

        Raises:
            EndOfDataError: If the cursor is at the end of the source
            ImageIOError: If the read fails
        """
        try:
            data = self._source.read(1)
        except OSError as e:
            raise ImageIOError(f"Read at {self._position:08X} failed: {e}",
                               self._position) from e
        if not data:
            raise EndOfDataError(self._position)
        self._position += 1
        return data[0]

    def read_bytes(self, count: int) -> bytes:
        """
        Read a fixed-size field one byte at a time.

        Raises:
            EndOfDataError: If the source ends before count bytes were read
        """
        return bytes(self.read_byte() for _ in range(count))

    def iter_from(self, offset: int = 0) -> Iterator[Tuple[int, int]]:
        """
        Yield (offset, byte) pairs from an offset until end of data.

        Example:
            >>> for offset, byte in cursor.iter_from(0):
            ...     if byte == 0xE7:
            ...         print(f"E7 at {offset:08X}")
        """
        self.seek(offset)
        while True:
            current = self._position
            try:
                byte = self.read_byte()
            except EndOfDataError:
                return
            yield current, byte

    # =========================================================================
    # Lifetime
    # =========================================================================

    @property
    def closed(self) -> bool:
        return self._source.closed

    def close(self) -> None:
        if not self._source.closed:
            self._source.close()
            logger.debug(f"Closed image {self.name}")

    def __enter__(self) -> "ByteCursor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"ByteCursor(name={self.name!r}, position={self._position})"
