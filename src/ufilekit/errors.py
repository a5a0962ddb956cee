"""UFile client error definitions for ufilekit."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ufilekit.models import UploadSession


class UFileError(Exception):
    """A ufilekit error with code, message, and HTTP status.

    Attributes:
        code: Short error code string (e.g. "InvalidArgument", "ServiceError").
        message: Human-readable error description.
        http_status: The HTTP status involved, or 0 when no response was seen.
        extra_fields: Additional context (operation, part number, upload id, ...).
        session: The multipart ``UploadSession`` a failed upload left open, so
            the caller can abort it. None for every other failure.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 0,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 0, no response).
            extra_fields: Optional context fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}
        self.session: UploadSession | None = None

    def __str__(self) -> str:
        context = " ".join(f"{k}={v}" for k, v in sorted(self.extra_fields.items()))
        if context:
            return f"{self.code}: {self.message} ({context})"
        return f"{self.code}: {self.message}"


# -- Validation errors (raised before any network call) -----------------------


class InvalidArgument(UFileError):
    """An invalid argument was provided."""

    def __init__(self, message: str = "Invalid Argument") -> None:
        super().__init__(code="InvalidArgument", message=message)


class EmptyBucketName(InvalidArgument):
    """The bucket name is empty."""

    def __init__(self) -> None:
        super().__init__("bucket name can not be empty")
        self.code = "EmptyBucketName"


class EmptyKeyName(InvalidArgument):
    """The object key is empty."""

    def __init__(self) -> None:
        super().__init__("key_name can not be empty")
        self.code = "EmptyKeyName"


class InvalidExpires(InvalidArgument):
    """The expiry of a private URL is not a positive number of seconds."""

    def __init__(self, message: str = "expires must not be zero.") -> None:
        super().__init__(message)
        self.code = "InvalidExpires"


class MissingMimeType(InvalidArgument):
    """The mime type is unset or malformed."""

    def __init__(self, message: str = "mime type is unset.") -> None:
        super().__init__(message)
        self.code = "MissingMimeType"


class InvalidBlockSize(InvalidArgument):
    """The block size used to split an object is not positive."""

    def __init__(self, block_size: int) -> None:
        super().__init__(f"block size must be positive, got {block_size}")
        self.code = "InvalidBlockSize"


class DestinationExists(InvalidArgument):
    """The download destination exists and overwriting was not allowed."""

    def __init__(self, path: str) -> None:
        super().__init__(f"File {path} already exists. Set overwrite=True to replace it.")
        self.code = "DestinationExists"
        self.extra_fields = {"path": path}


# -- Signing -------------------------------------------------------------------


class SigningError(UFileError):
    """The HMAC signature could not be computed."""

    def __init__(self, message: str = "Failed to compute request signature.") -> None:
        super().__init__(code="SigningError", message=message)


# -- Transport / protocol ------------------------------------------------------


class TransportError(UFileError):
    """A connection or timeout failure reported by the HTTP transport."""

    def __init__(self, operation: str, message: str) -> None:
        super().__init__(
            code="TransportError",
            message=message,
            extra_fields={"operation": operation},
        )
        self.operation = operation


class ServiceError(UFileError):
    """The service answered with a non-2xx status.

    Attributes:
        ret_code: The ``RetCode`` from the error envelope, or None when the
            body was not a well-formed envelope.
    """

    def __init__(
        self,
        operation: str,
        http_status: int,
        message: str = "",
        ret_code: int | None = None,
    ) -> None:
        extra = {"operation": operation}
        if ret_code is not None:
            extra["ret_code"] = str(ret_code)
        super().__init__(
            code="ServiceError",
            message=message or f"{operation} failed with status {http_status}",
            http_status=http_status,
            extra_fields=extra,
        )
        self.operation = operation
        self.ret_code = ret_code


class UnexpectedResponse(UFileError):
    """A 2xx response whose body could not be decoded."""

    def __init__(self, operation: str, message: str, http_status: int = 200) -> None:
        super().__init__(
            code="UnexpectedResponse",
            message=message,
            http_status=http_status,
            extra_fields={"operation": operation},
        )


# -- Part-level errors ---------------------------------------------------------


def _describe(cause: Exception) -> str:
    if isinstance(cause, UFileError):
        return cause.message
    return f"{type(cause).__name__}: {cause}"


class PartUploadError(UFileError):
    """A single part of a multipart upload failed.

    The underlying error is chained as ``__cause__`` and kept on ``cause``.
    """

    def __init__(self, part_number: int, upload_id: str, cause: Exception) -> None:
        extra = dict(getattr(cause, "extra_fields", {}))
        extra.update({"part_number": str(part_number), "upload_id": upload_id})
        super().__init__(
            code="PartUploadError",
            message=f"part {part_number} failed: {_describe(cause)}",
            http_status=getattr(cause, "http_status", 0),
            extra_fields=extra,
        )
        self.part_number = part_number
        self.upload_id = upload_id
        self.cause = cause


class RangeDownloadError(UFileError):
    """A single byte range of a ranged download failed."""

    def __init__(self, start: int, end: int, cause: Exception) -> None:
        extra = dict(getattr(cause, "extra_fields", {}))
        extra["range"] = f"{start}-{end}"
        super().__init__(
            code="RangeDownloadError",
            message=f"range [{start}, {end}) failed: {_describe(cause)}",
            http_status=getattr(cause, "http_status", 0),
            extra_fields=extra,
        )
        self.start = start
        self.end = end
        self.cause = cause


# -- Session state -------------------------------------------------------------


class SessionClosed(UFileError):
    """The multipart session is terminal (finished or aborted) or was never opened."""

    def __init__(self, state: str) -> None:
        super().__init__(
            code="SessionClosed",
            message=f"multipart session is not usable in state {state}",
            extra_fields={"state": state},
        )
        self.state = state
