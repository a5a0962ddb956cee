"""Content digests used by the UFile protocol.

``content_md5`` produces the hex MD5 sent as ``Content-MD5`` on part
uploads. ``compute_etag`` reproduces the service's whole-file ETag so a
local file can be compared with a stored object without downloading it.
"""

import base64
import hashlib
import struct
from dataclasses import dataclass, field
from pathlib import Path

from ufilekit.validation import validate_block_size

_READ_CHUNK = 512 << 10


def content_md5(data: bytes) -> str:
    """Return the lowercase hex MD5 of ``data``."""
    return hashlib.md5(data).hexdigest()


@dataclass
class FileETag:
    """A UFile ETag and the per-block digests it was derived from.

    Attributes:
        etag: URL-safe base64 of ``u32le(block_count) || sha1``.
        part_etags: URL-safe base64 SHA-1 of each block (multi-block files only).
    """

    etag: str
    part_etags: list[str] = field(default_factory=list)


def _sha1_of_range(fh, length: int) -> bytes:
    digest = hashlib.sha1()
    remaining = length
    while remaining > 0:
        chunk = fh.read(min(_READ_CHUNK, remaining))
        if not chunk:
            break
        digest.update(chunk)
        remaining -= len(chunk)
    return digest.digest()


def compute_etag(path: str | Path, block_size: int) -> FileETag:
    """Compute the UFile ETag of a local file.

    Single-block files hash their content directly. Larger files hash the
    concatenation of the per-block SHA-1 digests.

    Args:
        path: File to digest.
        block_size: Block size the object is split by.

    Returns:
        The file's ETag and per-block digests.

    Raises:
        InvalidBlockSize: If ``block_size`` is not positive.
    """
    validate_block_size(block_size)
    path = Path(path)
    size = path.stat().st_size
    block_count = -(-size // block_size)
    head = struct.pack("<I", block_count)

    part_etags: list[str] = []
    with open(path, "rb") as fh:
        if block_count > 1:
            outer = hashlib.sha1()
            for _ in range(block_count):
                block_hash = _sha1_of_range(fh, block_size)
                part_etags.append(base64.urlsafe_b64encode(block_hash).decode("ascii"))
                outer.update(block_hash)
            sha1 = outer.digest()
        elif size > 0:
            sha1 = _sha1_of_range(fh, size)
        else:
            sha1 = bytes(hashlib.sha1().digest_size)

    return FileETag(
        etag=base64.urlsafe_b64encode(head + sha1).decode("ascii"),
        part_etags=part_etags,
    )
