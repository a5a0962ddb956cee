"""Multipart upload operations for the UFile API.

Implements the four calls of the multipart protocol:
    - Init   (POST   {host}?uploads)
    - Part   (PUT    {host}?uploadId={id}&partNumber={n})
    - Finish (POST   {host}?uploadId={id}&newKey={new_key})
    - Abort  (DELETE {host}?uploadId={id})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import httpx
from pydantic import ValidationError

from ufilekit import metrics as _metrics
from ufilekit.config import quote_component
from ufilekit.digest import content_md5
from ufilekit.errors import InvalidArgument, MissingMimeType, UnexpectedResponse
from ufilekit.models import (
    FinishMultipartBody,
    FinishResult,
    InitMultipartBody,
    MetadataDirective,
    PartResult,
    UploadSession,
)
from ufilekit.operations.base import (
    HttpCall,
    Operation,
    metadata_headers,
    response_headers,
    strip_quotes,
)
from ufilekit.validation import validate_bucket_name, validate_key_name, validate_mime_type

logger = logging.getLogger(__name__)


def _session_mime_type(session: UploadSession) -> str:
    if not session.mime_type:
        raise MissingMimeType()
    return session.mime_type


# ---------------------------------------------------------------------------
# Init
# ---------------------------------------------------------------------------


@dataclass
class InitMultipartRequest:
    """Parameters of an Init call.

    Attributes:
        bucket: The bucket name.
        key: The object key.
        mime_type: Content type of the final object.
        metadata: User metadata sent as X-Ufile-Meta-* headers.
        storage_class: STANDARD | IA | ARCHIVE, sent as X-Ufile-Storage-Class.
        security_token: STS token, sent as SecurityToken.
    """

    bucket: str
    key: str
    mime_type: str
    metadata: dict[str, str] | None = None
    storage_class: str | None = None
    security_token: str | None = None


class InitMultipartOperation(Operation[InitMultipartRequest, UploadSession]):
    """Create a multipart upload session."""

    name = "InitMultipart"

    def build_call(self, request: InitMultipartRequest) -> HttpCall:
        validate_bucket_name(request.bucket)
        validate_key_name(request.key)
        mime_type = validate_mime_type(request.mime_type)

        headers = self.signed_headers(
            "POST",
            request.bucket,
            request.key,
            mime_type,
            security_token=request.security_token,
        )
        if request.storage_class:
            headers["X-Ufile-Storage-Class"] = request.storage_class
        headers.update(metadata_headers(request.metadata))
        url = f"{self.object_config.host(request.bucket, request.key)}?uploads"
        return HttpCall("POST", url, headers)

    def parse_response(
        self, request: InitMultipartRequest, response: httpx.Response
    ) -> UploadSession:
        try:
            body = InitMultipartBody.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise UnexpectedResponse(
                self.name, f"malformed init response: {e}", response.status_code
            ) from e
        session = UploadSession(
            upload_id=body.upload_id,
            block_size=body.blk_size,
            bucket=body.bucket or request.bucket,
            key=body.key or request.key,
        ).with_mime_type(validate_mime_type(request.mime_type))
        logger.info(
            "Initialised multipart upload %s for %s/%s (block size %d)",
            session.upload_id,
            session.bucket,
            session.key,
            session.block_size,
            extra={"operation": self.name, "upload_id": session.upload_id},
        )
        return session


# ---------------------------------------------------------------------------
# Upload part
# ---------------------------------------------------------------------------


@dataclass
class UploadPartRequest:
    """Parameters of a single part upload.

    Attributes:
        session: The session returned by Init.
        part_number: Server-visible part number.
        data: The part's bytes; must not be empty.
        verify_md5: Send and sign a Content-MD5 of ``data``.
        security_token: STS token.
    """

    session: UploadSession
    part_number: int
    data: bytes
    verify_md5: bool = False
    security_token: str | None = None


class UploadPartOperation(Operation[UploadPartRequest, PartResult]):
    """Upload one part of a multipart session."""

    name = "UploadPart"

    def build_call(self, request: UploadPartRequest) -> HttpCall:
        if not request.data:
            raise InvalidArgument("buffer can not be empty")
        session = request.session
        mime_type = _session_mime_type(session)
        md5 = content_md5(request.data) if request.verify_md5 else None

        headers = self.signed_headers(
            "PUT",
            session.bucket,
            session.key,
            mime_type,
            content_md5=md5,
            security_token=request.security_token,
        )
        headers["Content-Length"] = str(len(request.data))
        url = (
            f"{self.object_config.host(session.bucket, session.key)}"
            f"?uploadId={quote_component(session.upload_id)}&partNumber={request.part_number}"
        )
        return HttpCall("PUT", url, headers, request.data)

    def parse_response(
        self, request: UploadPartRequest, response: httpx.Response
    ) -> PartResult:
        headers = response_headers(response)
        _metrics.record_bytes_uploaded(len(request.data))
        return PartResult(
            part_number=request.part_number,
            etag=strip_quotes(headers.get("etag", "")),
            headers=headers,
        )


# ---------------------------------------------------------------------------
# Finish
# ---------------------------------------------------------------------------


def finish_body(parts: list[PartResult]) -> str:
    """Join part ETags with ',' in ascending part-number order."""
    return ",".join(part.etag for part in sorted(parts, key=lambda p: p.part_number))


@dataclass
class FinishMultipartRequest:
    """Parameters of a Finish call.

    Attributes:
        session: The session returned by Init.
        parts: Results of every uploaded part, in any order.
        new_key: Optional key to rename the assembled object to.
        metadata_directive: UNCHANGED keeps Init metadata, REPLACE applies ``metadata``.
        metadata: User metadata sent as X-Ufile-Meta-* headers.
        security_token: STS token.
    """

    session: UploadSession
    parts: list[PartResult] = field(default_factory=list)
    new_key: str | None = None
    metadata_directive: MetadataDirective | None = None
    metadata: dict[str, str] | None = None
    security_token: str | None = None


class FinishMultipartOperation(Operation[FinishMultipartRequest, FinishResult]):
    """Commit a multipart session by submitting the ordered part ETags."""

    name = "FinishMultipart"

    def build_call(self, request: FinishMultipartRequest) -> HttpCall:
        session = request.session
        mime_type = _session_mime_type(session)
        body = finish_body(request.parts).encode("utf-8")

        headers = self.signed_headers(
            "POST",
            session.bucket,
            session.key,
            mime_type,
            security_token=request.security_token,
        )
        if request.metadata_directive is not None:
            headers["X-Ufile-Metadata-Directive"] = MetadataDirective(
                request.metadata_directive
            ).value
        headers["Content-Length"] = str(len(body))
        headers.update(metadata_headers(request.metadata))
        url = (
            f"{self.object_config.host(session.bucket, session.key)}"
            f"?uploadId={quote_component(session.upload_id)}"
            f"&newKey={quote_component(request.new_key or '')}"
        )
        logger.debug("Finish multipart body: %s", body)
        return HttpCall("POST", url, headers, body)

    def parse_response(
        self, request: FinishMultipartRequest, response: httpx.Response
    ) -> FinishResult:
        headers = response_headers(response)
        body = FinishMultipartBody()
        if response.content:
            try:
                body = FinishMultipartBody.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                raise UnexpectedResponse(
                    self.name, f"malformed finish response: {e}", response.status_code
                ) from e

        # The response header wins over the body field when both exist.
        etag = headers.get("etag", body.etag)
        session = request.session
        result = FinishResult(
            bucket=body.bucket or session.bucket,
            key=body.key or request.new_key or session.key,
            file_size=body.file_size,
            etag=strip_quotes(etag),
            headers=headers,
        )
        logger.info(
            "Finished multipart upload %s: %s/%s etag=%s",
            session.upload_id,
            result.bucket,
            result.key,
            result.etag,
            extra={"operation": self.name, "upload_id": session.upload_id},
        )
        return result


# ---------------------------------------------------------------------------
# Abort
# ---------------------------------------------------------------------------


@dataclass
class AbortMultipartRequest:
    """Parameters of an Abort call.

    Attributes:
        session: The session to discard.
        metadata: User metadata sent as X-Ufile-Meta-* headers.
        security_token: STS token.
    """

    session: UploadSession
    metadata: dict[str, str] | None = None
    security_token: str | None = None


class AbortMultipartOperation(Operation[AbortMultipartRequest, None]):
    """Discard a multipart session server-side."""

    name = "AbortMultipart"

    def build_call(self, request: AbortMultipartRequest) -> HttpCall:
        session = request.session
        mime_type = _session_mime_type(session)
        headers = self.signed_headers(
            "DELETE",
            session.bucket,
            session.key,
            mime_type,
            security_token=request.security_token,
        )
        headers.update(metadata_headers(request.metadata))
        url = (
            f"{self.object_config.host(session.bucket, session.key)}"
            f"?uploadId={quote_component(session.upload_id)}"
        )
        return HttpCall("DELETE", url, headers)

    def parse_response(self, request: AbortMultipartRequest, response: httpx.Response) -> None:
        logger.info(
            "Aborted multipart upload %s",
            request.session.upload_id,
            extra={"operation": self.name, "upload_id": request.session.upload_id},
        )
