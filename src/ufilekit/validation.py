"""Input validation helpers for ufilekit.

These run before any network call. Each function raises an appropriate
``InvalidArgument`` subclass on invalid input.
"""

import re

from ufilekit.errors import (
    EmptyBucketName,
    EmptyKeyName,
    InvalidBlockSize,
    InvalidExpires,
    MissingMimeType,
)

# type "/" subtype, optionally followed by ";"-separated parameters.
_TOKEN = r"[A-Za-z0-9!#$&^_.+\-]+"
_MIME_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}(\s*;\s*{_TOKEN}=(\"[^\"]*\"|{_TOKEN}))*$")


def validate_bucket_name(name: str) -> None:
    """Raise EmptyBucketName if ``name`` is empty."""
    if not name:
        raise EmptyBucketName()


def validate_key_name(key: str) -> None:
    """Raise EmptyKeyName if ``key`` is empty."""
    if not key:
        raise EmptyKeyName()


def validate_expires(expires: int) -> None:
    """Validate a private-URL expiry.

    Args:
        expires: Expiry in seconds.

    Raises:
        InvalidExpires: If the value is zero or negative.
    """
    if expires <= 0:
        raise InvalidExpires()


def validate_mime_type(mime_type: str | None) -> str:
    """Validate a mime type and return it stripped.

    Args:
        mime_type: Candidate Content-Type value.

    Returns:
        The stripped mime type.

    Raises:
        MissingMimeType: If the value is empty or not ``type/subtype``.
    """
    if not mime_type or not mime_type.strip():
        raise MissingMimeType("mime_type can not be empty")
    mime_type = mime_type.strip()
    if not _MIME_RE.match(mime_type):
        raise MissingMimeType(f"mime type [{mime_type}] is invalid")
    return mime_type


def validate_block_size(block_size: int) -> None:
    """Raise InvalidBlockSize unless ``block_size`` is positive."""
    if block_size <= 0:
        raise InvalidBlockSize(block_size)
