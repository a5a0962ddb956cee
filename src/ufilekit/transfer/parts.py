"""Splitting objects into parts and reading part bytes.

The split rule is shared by multipart uploads and ranged downloads: part
``i`` covers ``[i * block_size, min((i + 1) * block_size, total_size))``.
"""

import os
from pathlib import Path
from typing import Protocol

from ufilekit.models import ByteRange, TransferPart
from ufilekit.validation import validate_block_size


def part_count(total_size: int, block_size: int) -> int:
    """Return ``ceil(total_size / block_size)``."""
    validate_block_size(block_size)
    if total_size < 0:
        raise ValueError(f"total size must not be negative, got {total_size}")
    return -(-total_size // block_size)


def split_into_ranges(total_size: int, block_size: int) -> list[ByteRange]:
    """Split ``[0, total_size)`` into contiguous block-sized ranges.

    Args:
        total_size: Object length in bytes.
        block_size: Maximum range length.

    Returns:
        Ranges in offset order; the last one may be shorter. Empty when
        ``total_size`` is zero.

    Raises:
        InvalidBlockSize: If ``block_size`` is not positive.
    """
    return [
        ByteRange(
            index=i,
            start=i * block_size,
            end=min((i + 1) * block_size, total_size),
        )
        for i in range(part_count(total_size, block_size))
    ]


def plan_parts(total_size: int, block_size: int, origin: int = 0) -> list[TransferPart]:
    """Assign contiguous part numbers, starting at ``origin``, to each range."""
    return [
        TransferPart(part_number=origin + r.index, range=r)
        for r in split_into_ranges(total_size, block_size)
    ]


class PartSource(Protocol):
    """Random-access source of upload bytes."""

    @property
    def size(self) -> int:
        ...

    def read(self, byte_range: ByteRange) -> bytes:
        ...

    def close(self) -> None:
        ...


class BytesSource:
    """Serves parts from an in-memory buffer."""

    def __init__(self, data: bytes) -> None:
        self._view = memoryview(data)

    @property
    def size(self) -> int:
        return len(self._view)

    def read(self, byte_range: ByteRange) -> bytes:
        return bytes(self._view[byte_range.start:byte_range.end])

    def close(self) -> None:
        self._view.release()


class FileSource:
    """Serves parts from a local file with positional reads.

    ``os.pread`` reads at an offset without moving a shared file cursor, so
    concurrent part tasks never contend on the descriptor. Unix only.

    Attributes:
        path: The file being read.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._fd = os.open(str(self.path), os.O_RDONLY)
        self._size = os.fstat(self._fd).st_size

    @property
    def size(self) -> int:
        return self._size

    def read(self, byte_range: ByteRange) -> bytes:
        """Read exactly the bytes of ``byte_range``.

        Raises:
            OSError: If the file is shorter than the range (it changed
                after the split was computed).
        """
        chunks = []
        offset = byte_range.start
        remaining = byte_range.length
        while remaining > 0:
            chunk = os.pread(self._fd, remaining, offset)
            if not chunk:
                raise OSError(
                    f"unexpected end of file {self.path} at offset {offset}, "
                    f"{remaining} bytes short"
                )
            chunks.append(chunk)
            offset += len(chunk)
            remaining -= len(chunk)
        return b"".join(chunks)

    def close(self) -> None:
        if self._fd >= 0:
            os.close(self._fd)
            self._fd = -1
