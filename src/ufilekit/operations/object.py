"""Single-object read operations: HEAD and ranged GET."""

from __future__ import annotations

from dataclasses import dataclass

import httpx

from ufilekit import metrics as _metrics
from ufilekit.errors import UnexpectedResponse
from ufilekit.models import ByteRange, HeadResult
from ufilekit.operations.base import HttpCall, Operation, response_headers, strip_quotes
from ufilekit.validation import validate_bucket_name, validate_key_name

# HEAD carries no body but the service still expects a signed content type.
HEAD_CONTENT_TYPE = "application/json"


@dataclass
class HeadObjectRequest:
    bucket: str
    key: str
    security_token: str | None = None


class HeadObjectOperation(Operation[HeadObjectRequest, HeadResult]):
    """Fetch an object's size, type, and ETag without its body."""

    name = "HeadObject"

    def build_call(self, request: HeadObjectRequest) -> HttpCall:
        validate_bucket_name(request.bucket)
        validate_key_name(request.key)
        headers = self.signed_headers(
            "HEAD",
            request.bucket,
            request.key,
            HEAD_CONTENT_TYPE,
            security_token=request.security_token,
        )
        return HttpCall("HEAD", self.object_config.host(request.bucket, request.key), headers)

    def parse_response(self, request: HeadObjectRequest, response: httpx.Response) -> HeadResult:
        headers = response_headers(response)
        try:
            content_length = int(headers.get("content-length", ""))
        except ValueError as e:
            raise UnexpectedResponse(
                self.name, "HEAD response has no usable Content-Length", response.status_code
            ) from e
        etag = headers.get("etag")
        return HeadResult(
            content_type=headers.get("content-type", ""),
            content_length=content_length,
            etag=strip_quotes(etag) if etag is not None else None,
            last_modified=headers.get("last-modified"),
            headers=headers,
        )


@dataclass
class RangeGetRequest:
    """One ranged GET against a pre-signed URL.

    Attributes:
        url: A private URL from ``ObjectConfig.private_url``.
        byte_range: The half-open range to fetch.
        security_token: STS token.
    """

    url: str
    byte_range: ByteRange
    security_token: str | None = None


class RangeGetOperation(Operation[RangeGetRequest, bytes]):
    """Fetch exactly the bytes of one range."""

    name = "RangeGet"

    def build_call(self, request: RangeGetRequest) -> HttpCall:
        # Authorisation lives in the URL's query string.
        headers = {"Range": request.byte_range.header_value()}
        if request.security_token:
            headers["SecurityToken"] = request.security_token
        return HttpCall("GET", request.url, headers)

    def parse_response(self, request: RangeGetRequest, response: httpx.Response) -> bytes:
        body = response.content
        expected = request.byte_range.length
        if len(body) != expected:
            raise UnexpectedResponse(
                self.name,
                f"expected {expected} bytes for {request.byte_range.header_value()}, "
                f"got {len(body)}",
                response.status_code,
            )
        _metrics.record_bytes_downloaded(len(body))
        return body
