"""Generic request/response operation for the UFile HTTP API.

Every API call follows the same shape: build an HTTP call from a typed
request (signing it on the way), send it, map transport failures and
non-2xx statuses onto the ``UFileError`` hierarchy, and parse a typed
response. ``Operation`` implements that once; concrete operations supply
only ``build_call`` and ``parse_response``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Generic, TypeVar

import httpx
from pydantic import ValidationError

from ufilekit import metrics as _metrics
from ufilekit.auth import AuthorizationService, SigningRequest, request_date
from ufilekit.config import ObjectConfig
from ufilekit.errors import ServiceError, TransportError
from ufilekit.models import ServiceErrorEnvelope

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")

META_HEADER_PREFIX = "X-Ufile-Meta-"


@dataclass
class HttpCall:
    """A fully built HTTP call, ready to send.

    Attributes:
        method: HTTP method.
        url: Absolute URL including the query string.
        headers: Request headers.
        body: Request body, or None for no body.
    """

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None


def response_headers(response: httpx.Response) -> dict[str, str]:
    """Return the response headers as a plain dict with lowercase names."""
    return {name.lower(): value for name, value in response.headers.items()}


def strip_quotes(value: str) -> str:
    """Strip surrounding double or single quotes from an ETag."""
    return value.strip("\"'")


def metadata_headers(metadata: dict[str, str] | None) -> dict[str, str]:
    """Turn user metadata into ``X-Ufile-Meta-{key}`` headers."""
    if not metadata:
        return {}
    return {f"{META_HEADER_PREFIX}{key}": value for key, value in metadata.items()}


class Operation(Generic[RequestT, ResponseT]):
    """One UFile API operation.

    Attributes:
        name: Operation name used in errors, logs, and metrics.
        object_config: Endpoint and credentials.
        client: The shared httpx client.
        auth_service: Produces Authorization header values.
    """

    name = "Operation"

    def __init__(
        self,
        object_config: ObjectConfig,
        client: httpx.AsyncClient,
        auth_service: AuthorizationService | None = None,
    ) -> None:
        self.object_config = object_config
        self.client = client
        self.auth_service = auth_service or AuthorizationService()

    # -- Strategy hooks --------------------------------------------------------

    def build_call(self, request: RequestT) -> HttpCall:
        """Build the HTTP call for ``request``. Must not touch the network."""
        raise NotImplementedError

    def parse_response(self, request: RequestT, response: httpx.Response) -> ResponseT:
        """Parse a 2xx response into the operation's result."""
        raise NotImplementedError

    # -- Shared plumbing -------------------------------------------------------

    def signed_headers(
        self,
        method: str,
        bucket: str,
        key: str,
        content_type: str,
        content_md5: str | None = None,
        security_token: str | None = None,
    ) -> dict[str, str]:
        """Build the headers every signed call carries.

        Returns:
            ``Content-Type``, ``Accept``, ``Date``, ``Authorization`` and,
            when given, ``Content-MD5`` and ``SecurityToken``.
        """
        date = request_date()
        authorization = self.auth_service.authorize(
            SigningRequest(
                method=method,
                bucket=bucket,
                key=key,
                content_type=content_type,
                content_md5=content_md5,
                date=date,
            ),
            self.object_config,
        )
        headers = {
            "Content-Type": content_type,
            "Accept": "*/*",
            "Date": date,
            "Authorization": authorization,
        }
        if content_md5:
            headers["Content-MD5"] = content_md5
        if security_token:
            headers["SecurityToken"] = security_token
        return headers

    async def execute(self, request: RequestT) -> ResponseT:
        """Send ``request`` and return the parsed result.

        Raises:
            InvalidArgument: If the request fails validation in ``build_call``.
            TransportError: On connection or timeout failures.
            ServiceError: On a non-2xx response.
        """
        call = self.build_call(request)
        start = time.monotonic()
        try:
            response = await self.client.request(
                call.method, call.url, headers=call.headers, content=call.body
            )
        except httpx.TransportError as e:
            _metrics.record_operation(self.name, "transport_error", time.monotonic() - start)
            logger.warning(
                "%s %s transport failure: %s",
                call.method,
                call.url,
                e,
                extra={"operation": self.name},
            )
            raise TransportError(self.name, f"{type(e).__name__}: {e}") from e

        elapsed = time.monotonic() - start
        logger.debug(
            "%s %s -> %d",
            call.method,
            call.url,
            response.status_code,
            extra={
                "operation": self.name,
                "status": response.status_code,
                "duration_ms": round(elapsed * 1000, 2),
            },
        )
        if not response.is_success:
            _metrics.record_operation(self.name, str(response.status_code), elapsed)
            raise self._service_error(response)

        result = self.parse_response(request, response)
        _metrics.record_operation(self.name, "ok", elapsed)
        return result

    def _service_error(self, response: httpx.Response) -> ServiceError:
        """Map a non-2xx response to ServiceError, using the envelope if well-formed."""
        try:
            envelope = ServiceErrorEnvelope.model_validate(response.json())
        except (ValueError, ValidationError):
            logger.error(
                "%s failed with status %d and an unparsable body",
                self.name,
                response.status_code,
            )
            return ServiceError(self.name, response.status_code)
        logger.error(
            "%s failed with status %d: RetCode=%d %s",
            self.name,
            response.status_code,
            envelope.ret_code,
            envelope.message,
        )
        return ServiceError(
            self.name,
            response.status_code,
            message=envelope.message or "",
            ret_code=envelope.ret_code,
        )
