"""Data model types for ufilekit transfers.

Dataclasses describe the state a transfer produces (upload sessions, part
results, byte ranges, final outcomes). The Pydantic models at the bottom
decode the service's JSON wire format.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MetadataDirective(str, Enum):
    """How Finish treats user metadata set at Init time."""

    UNCHANGED = "UNCHANGED"
    REPLACE = "REPLACE"


@dataclass(frozen=True)
class ByteRange:
    """A half-open byte range ``[start, end)``.

    Attributes:
        index: Zero-based position in split order.
        start: First byte offset.
        end: One past the last byte offset.
    """

    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start

    def header_value(self) -> str:
        """Return the inclusive HTTP ``Range`` header value for this range."""
        return f"bytes={self.start}-{self.end - 1}"


@dataclass(frozen=True)
class TransferPart:
    """One unit of work of a multipart transfer.

    Attributes:
        part_number: The server-visible part number.
        range: The byte range this part covers.
        data: The part's bytes (uploads only; None for downloads, which
            write to ``range.start``).
    """

    part_number: int
    range: ByteRange
    data: bytes | None = None

    @property
    def offset(self) -> int:
        return self.range.start

    @property
    def length(self) -> int:
        return self.range.length


@dataclass(frozen=True)
class UploadSession:
    """Server-side multipart upload state returned by Init.

    Attributes:
        upload_id: Opaque upload identifier.
        block_size: Part size negotiated by the service.
        bucket: The bucket name.
        key: The object key.
        mime_type: Content type, back-filled from the Init request.
    """

    upload_id: str
    block_size: int
    bucket: str
    key: str
    mime_type: str | None = None

    def with_mime_type(self, mime_type: str) -> UploadSession:
        return replace(self, mime_type=mime_type)


@dataclass(frozen=True)
class PartResult:
    """The outcome of one successful part upload.

    Attributes:
        part_number: The part number the bytes were uploaded under.
        etag: ETag returned by the service, surrounding quotes stripped.
        headers: Raw response headers (lowercase names).
    """

    part_number: int
    etag: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FinishResult:
    """The result of finishing a multipart upload.

    Attributes:
        bucket: The bucket name.
        key: The final object key.
        file_size: Size of the assembled object in bytes.
        etag: Final object ETag (response header wins over body field).
        headers: Raw response headers (lowercase names).
    """

    bucket: str
    key: str
    file_size: int
    etag: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HeadResult:
    """Object metadata returned by a HEAD request.

    Attributes:
        content_type: The object's Content-Type.
        content_length: The object's size in bytes.
        etag: ETag, if present.
        last_modified: Last-Modified header, if present.
        headers: Raw response headers (lowercase names).
    """

    content_type: str
    content_length: int
    etag: str | None = None
    last_modified: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TransferOutcome:
    """Terminal success of a whole transfer.

    Failures are raised as ``UFileError`` subclasses instead.

    Attributes:
        bucket: The bucket name.
        key: The object key.
        size: Bytes transferred.
        etag: Final ETag (uploads) or the HEAD ETag (downloads), if known.
        parts: Number of parts or ranges the transfer was split into.
        headers: Headers of the final response, when there was one.
    """

    bucket: str
    key: str
    size: int
    etag: str | None = None
    parts: int = 0
    headers: dict[str, str] = field(default_factory=dict)


# -- Wire format ---------------------------------------------------------------


class ServiceErrorEnvelope(BaseModel):
    """Error body of a non-2xx response."""

    model_config = ConfigDict(populate_by_name=True)

    ret_code: int = Field(alias="RetCode")
    message: str | None = Field(
        default=None, validation_alias=AliasChoices("Message", "ErrMsg")
    )


class InitMultipartBody(BaseModel):
    """JSON body of a successful Init call."""

    upload_id: str = Field(alias="UploadId")
    blk_size: int = Field(alias="BlkSize")
    bucket: str = Field(alias="Bucket")
    key: str = Field(alias="Key")


class FinishMultipartBody(BaseModel):
    """JSON body of a successful Finish call."""

    bucket: str = Field(default="", alias="Bucket")
    key: str = Field(default="", alias="Key")
    file_size: int = Field(default=0, alias="FileSize")
    etag: str = Field(default="", validation_alias=AliasChoices("ETag", "Etag"))
