"""UCloud request signing for ufilekit.

Every call to the object-storage service carries an ``Authorization`` header
of the form ``UCloud {public_key}:{signature}`` where the signature is the
base64 HMAC-SHA1 of a canonical string built from the request.

Canonical string layout (header auth)::

    METHOD\\n
    Content-MD5\\n
    Content-Type\\n
    Date\\n
    [x-ufile-copy-source:<value>\\n]
    [x-ufile-copy-source-range:<value>\\n]
    /bucket/key

The bracketed lines are omitted entirely when the header is absent, and the
bucket and key segments are joined without a newline.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Protocol

from ufilekit.errors import SigningError

if TYPE_CHECKING:
    from ufilekit.config import ObjectConfig

logger = logging.getLogger(__name__)

# Constants
AUTH_SCHEME = "UCloud"
DATE_FORMAT = "%Y%m%d%H%M%S"
COPY_SOURCE_HEADER = "x-ufile-copy-source"
COPY_SOURCE_RANGE_HEADER = "x-ufile-copy-source-range"


class Signer(Protocol):
    """Computes a signature over canonical data with a private key."""

    def signature(self, private_key: str, data: str) -> str:
        ...


class HmacSha1Signer:
    """Base64-encoded HMAC-SHA1 signer."""

    def signature(self, private_key: str, data: str) -> str:
        """Sign ``data`` with ``private_key``.

        Args:
            private_key: The account private key (UTF-8 encoded as HMAC key).
            data: The canonical string to sign.

        Returns:
            The base64 (standard alphabet, padded) digest.

        Raises:
            SigningError: If the HMAC could not be initialised.
        """
        try:
            mac = hmac.new(private_key.encode("utf-8"), data.encode("utf-8"), hashlib.sha1)
        except (TypeError, ValueError) as e:
            raise SigningError(f"Failed to initialise HMAC key: {e}") from e
        return base64.b64encode(mac.digest()).decode("ascii")


@dataclass(frozen=True)
class SigningRequest:
    """The parts of a request that participate in the signature.

    Attributes:
        method: HTTP method (case-insensitive, uppercased when signed).
        bucket: The bucket name.
        key: The object key.
        content_type: Content-Type header value, if any.
        content_md5: Content-MD5 header value, if any.
        date: Date header value (``YYYYMMDDhhmmss``), if any.
        copy_source: X-Ufile-Copy-Source header value, if any.
        copy_source_range: X-Ufile-Copy-Source-Range header value, if any.
    """

    method: str
    bucket: str
    key: str
    content_type: str | None = None
    content_md5: str | None = None
    date: str | None = None
    copy_source: str | None = None
    copy_source_range: str | None = None


def request_date(now: datetime | None = None) -> str:
    """Format a Date header value in the service's ``YYYYMMDDhhmmss`` form."""
    return (now or datetime.now()).strftime(DATE_FORMAT)


def build_canonical_string(req: SigningRequest) -> str:
    """Build the canonical string for header-based request signing.

    Args:
        req: The signing request.

    Returns:
        The exact string that is HMAC-signed.
    """
    lines = [
        req.method.upper(),
        req.content_md5 or "",
        req.content_type or "",
        req.date or "",
    ]
    sign_data = "".join(f"{line}\n" for line in lines)
    if req.copy_source is not None:
        sign_data += f"{COPY_SOURCE_HEADER}:{req.copy_source}\n"
    if req.copy_source_range is not None:
        sign_data += f"{COPY_SOURCE_RANGE_HEADER}:{req.copy_source_range}\n"
    sign_data += f"/{req.bucket}/{req.key}"
    return sign_data


def build_private_url_string(method: str, bucket: str, key: str, expires: int) -> str:
    """Build the canonical string signed for pre-signed private URLs.

    Content-MD5 and Content-Type are always empty, and the bucket and key
    segments sit on separate lines.
    """
    return f"{method.upper()}\n\n\n{expires}\n/{bucket}\n/{key}"


class AuthorizationService:
    """Produces ``Authorization`` header values for signed requests.

    Attributes:
        signer: The signer used to compute signatures.
    """

    def __init__(self, signer: Signer | None = None) -> None:
        self.signer = signer or HmacSha1Signer()

    def authorize(self, req: SigningRequest, object_config: ObjectConfig) -> str:
        """Compute the ``Authorization`` header value for a request.

        Args:
            req: The signing request.
            object_config: Supplies the public and private keys.

        Returns:
            ``"UCloud {public_key}:{signature}"``.

        Raises:
            SigningError: If the signature could not be computed.
        """
        sign_data = build_canonical_string(req)
        logger.debug("Canonical string: %r", sign_data)
        signature = self.signer.signature(object_config.private_key, sign_data)
        return f"{AUTH_SCHEME} {object_config.public_key}:{signature}"
