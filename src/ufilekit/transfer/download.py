"""Ranged download coordinator.

Fetches an object as contiguous byte ranges, concurrently and bounded by a
``ConcurrencyGate``, and writes each body at its range offset into one
shared sink. Only the seek+write pair is serialised; fetches overlap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Protocol

import httpx

from ufilekit.auth import AuthorizationService
from ufilekit.config import ObjectConfig, TransferConfig
from ufilekit.errors import DestinationExists, RangeDownloadError, UFileError
from ufilekit.models import ByteRange, TransferOutcome
from ufilekit.operations.object import RangeGetOperation, RangeGetRequest
from ufilekit.transfer.gate import ConcurrencyGate
from ufilekit.transfer.parts import split_into_ranges
from ufilekit.validation import validate_bucket_name, validate_key_name

logger = logging.getLogger(__name__)


class Sink(Protocol):
    """A writable, seekable binary destination."""

    def seek(self, offset: int, whence: int = 0) -> int:
        ...

    def write(self, data: bytes) -> int:
        ...


class RangedDownloadCoordinator:
    """Downloads one object by byte ranges into a file or sink.

    Attributes:
        bucket: Source bucket.
        key: Source key.
        gate: Bounds concurrent range fetches.
    """

    def __init__(
        self,
        object_config: ObjectConfig,
        client: httpx.AsyncClient,
        bucket: str,
        key: str,
        transfer_config: TransferConfig | None = None,
        gate: ConcurrencyGate | None = None,
        auth_service: AuthorizationService | None = None,
        security_token: str | None = None,
        iop_cmd: str | None = None,
    ) -> None:
        validate_bucket_name(bucket)
        validate_key_name(key)
        self.object_config = object_config
        self.bucket = bucket
        self.key = key
        self.security_token = security_token
        self.iop_cmd = iop_cmd
        self.transfer_config = transfer_config or TransferConfig()
        self.gate = gate or ConcurrencyGate(self.transfer_config.resolved_concurrency())
        self._get_op = RangeGetOperation(object_config, client, auth_service)
        self._write_lock = asyncio.Lock()

    def _download_url(self) -> str:
        return self.object_config.private_url(
            self.bucket,
            self.key,
            expires=self.transfer_config.private_url_expires,
            security_token=self.security_token,
            iop_cmd=self.iop_cmd,
        )

    async def _fetch_range(self, url: str, byte_range: ByteRange, sink: Sink) -> int:
        async with self.gate:
            data = await self._get_op.execute(
                RangeGetRequest(url=url, byte_range=byte_range, security_token=self.security_token)
            )
        async with self._write_lock:
            sink.seek(byte_range.start)
            sink.write(data)
        return len(data)

    async def download_to(
        self, sink: Sink, total_size: int, etag: str | None = None
    ) -> TransferOutcome:
        """Fetch ``[0, total_size)`` into ``sink``.

        Args:
            sink: Destination; written with ``seek`` + ``write`` at each
                range offset.
            total_size: Object length in bytes (from HEAD).
            etag: Reported back on the outcome.

        Returns:
            The transfer outcome.

        Raises:
            RangeDownloadError: For the lowest failed range, after every
                range has resolved. Bytes already written are left in place.
        """
        ranges = split_into_ranges(total_size, self.transfer_config.block_size)
        start = time.monotonic()
        if ranges:
            url = self._download_url()
            logger.info(
                "Downloading %s/%s: %d bytes in %d ranges (concurrency %d)",
                self.bucket,
                self.key,
                total_size,
                len(ranges),
                self.gate.limit,
                extra={"bucket": self.bucket, "key": self.key},
            )
            outcomes = await asyncio.gather(
                *(self._fetch_range(url, r, sink) for r in ranges),
                return_exceptions=True,
            )
            for byte_range, outcome in zip(ranges, outcomes):
                if isinstance(outcome, (UFileError, OSError)):
                    logger.error(
                        "Range %s of %s/%s failed: %s",
                        byte_range.header_value(),
                        self.bucket,
                        self.key,
                        outcome,
                    )
                    raise RangeDownloadError(byte_range.start, byte_range.end, outcome) from outcome
                if isinstance(outcome, BaseException):
                    raise outcome

        logger.info(
            "Downloaded %s/%s (%d bytes)",
            self.bucket,
            self.key,
            total_size,
            extra={
                "operation": "RangedDownload",
                "bucket": self.bucket,
                "key": self.key,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return TransferOutcome(
            bucket=self.bucket,
            key=self.key,
            size=total_size,
            etag=etag,
            parts=len(ranges),
        )

    async def download_file(
        self,
        dest: str | Path,
        total_size: int,
        overwrite: bool = True,
        etag: str | None = None,
    ) -> TransferOutcome:
        """Download into the file at ``dest``, creating or truncating it.

        Raises:
            DestinationExists: If ``dest`` exists and ``overwrite`` is False.
        """
        dest = Path(dest)
        if dest.exists() and not overwrite:
            raise DestinationExists(str(dest))
        with open(dest, "wb") as fh:
            return await self.download_to(fh, total_size, etag=etag)
