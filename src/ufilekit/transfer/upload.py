"""Multipart upload coordinator.

Drives one object through the two-phase commit protocol::

    INIT --init()--> UPLOADING --finish()--> FINISHING --> COMMITTED
      |                  |
      | Init failed      +--abort()--> ABORTED
      v
    FAILED

Parts are uploaded concurrently as asyncio tasks, at most ``gate.limit`` at
a time. A failed part never cancels its siblings; once every part has
resolved the first failure (in part order) is raised and the session stays
in UPLOADING, so the caller may re-upload the failed part or abort.
"""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum

import httpx

from ufilekit.auth import AuthorizationService
from ufilekit.config import ObjectConfig, TransferConfig
from ufilekit.errors import InvalidArgument, PartUploadError, SessionClosed, UFileError
from ufilekit.models import (
    FinishResult,
    MetadataDirective,
    PartResult,
    TransferOutcome,
    TransferPart,
    UploadSession,
)
from ufilekit.operations.multipart import (
    AbortMultipartOperation,
    AbortMultipartRequest,
    FinishMultipartOperation,
    FinishMultipartRequest,
    InitMultipartOperation,
    InitMultipartRequest,
    UploadPartOperation,
    UploadPartRequest,
)
from ufilekit.transfer.gate import ConcurrencyGate
from ufilekit.transfer.parts import PartSource, plan_parts

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    INIT = "INIT"
    UPLOADING = "UPLOADING"
    FINISHING = "FINISHING"
    COMMITTED = "COMMITTED"
    ABORTED = "ABORTED"
    FAILED = "FAILED"


class MultipartUploadCoordinator:
    """Uploads one object in parts and commits or aborts it.

    Attributes:
        bucket: Target bucket.
        key: Target key.
        mime_type: Content type of the assembled object.
        state: Current ``UploadState``.
        session: The session returned by Init, once known.
        gate: Bounds concurrent part uploads.
    """

    def __init__(
        self,
        object_config: ObjectConfig,
        client: httpx.AsyncClient,
        bucket: str,
        key: str,
        mime_type: str,
        transfer_config: TransferConfig | None = None,
        gate: ConcurrencyGate | None = None,
        auth_service: AuthorizationService | None = None,
        metadata: dict[str, str] | None = None,
        storage_class: str | None = None,
        security_token: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        self.mime_type = mime_type
        self.metadata = metadata
        self.storage_class = storage_class
        self.security_token = security_token
        self.transfer_config = transfer_config or TransferConfig()
        self.gate = gate or ConcurrencyGate(self.transfer_config.resolved_concurrency())
        self.state = UploadState.INIT
        self.session: UploadSession | None = None
        self._results: dict[int, PartResult] = {}

        auth_service = auth_service or AuthorizationService()
        self._init_op = InitMultipartOperation(object_config, client, auth_service)
        self._part_op = UploadPartOperation(object_config, client, auth_service)
        self._finish_op = FinishMultipartOperation(object_config, client, auth_service)
        self._abort_op = AbortMultipartOperation(object_config, client, auth_service)

    @property
    def parts(self) -> list[PartResult]:
        """Successfully uploaded parts, in part-number order."""
        return [self._results[n] for n in sorted(self._results)]

    @property
    def block_size(self) -> int:
        """Block size to split by: the server's choice, else the configured one."""
        if self.session is not None and self.session.block_size > 0:
            return self.session.block_size
        return self.transfer_config.block_size

    def _require(self, *states: UploadState) -> UploadSession:
        if self.state not in states:
            raise SessionClosed(self.state.value)
        assert self.session is not None
        return self.session

    # -- Phase 1 ---------------------------------------------------------------

    async def init(self) -> UploadSession:
        """Open the multipart session.

        Raises:
            SessionClosed: If Init already ran.
            InvalidArgument: On an empty bucket/key or bad mime type.
            TransportError: On connection failure (state becomes FAILED).
            ServiceError: On a non-2xx answer (state becomes FAILED).
        """
        if self.state is not UploadState.INIT:
            raise SessionClosed(self.state.value)
        try:
            self.session = await self._init_op.execute(
                InitMultipartRequest(
                    bucket=self.bucket,
                    key=self.key,
                    mime_type=self.mime_type,
                    metadata=self.metadata,
                    storage_class=self.storage_class,
                    security_token=self.security_token,
                )
            )
        except InvalidArgument:
            raise
        except UFileError:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.UPLOADING
        return self.session

    # -- Parts -----------------------------------------------------------------

    async def _send_part(self, part_number: int, data: bytes) -> PartResult:
        # Caller holds the gate; the session may have been aborted while queued.
        session = self._require(UploadState.UPLOADING)
        result = await self._part_op.execute(
            UploadPartRequest(
                session=session,
                part_number=part_number,
                data=data,
                verify_md5=self.transfer_config.verify_md5,
                security_token=self.security_token,
            )
        )
        if self.state is UploadState.UPLOADING:
            self._results[result.part_number] = result
        return result

    async def upload_part(self, part: TransferPart) -> PartResult:
        """Upload a single part whose bytes are already in ``part.data``.

        Uploading the same part number again replaces the earlier result.

        Raises:
            SessionClosed: Unless the session is UPLOADING, including when it
                is aborted while the part waits at the gate.
            InvalidArgument: If ``part.data`` is missing or empty.
        """
        session = self._require(UploadState.UPLOADING)
        if not part.data:
            raise InvalidArgument(f"part {part.part_number} has no data")
        async with self.gate:
            result = await self._send_part(part.part_number, part.data)
        logger.debug(
            "Uploaded part %d of %s (%d bytes)",
            part.part_number,
            session.upload_id,
            len(part.data),
            extra={"upload_id": session.upload_id, "part_number": part.part_number},
        )
        return result

    async def _upload_from_source(self, part: TransferPart, source: PartSource) -> PartResult:
        async with self.gate:
            self._require(UploadState.UPLOADING)
            data = await asyncio.to_thread(source.read, part.range)
            return await self._send_part(part.part_number, data)

    async def upload_parts(self, source: PartSource) -> list[PartResult]:
        """Split ``source`` by the session block size and upload every part.

        Returns:
            All part results in part-number order.

        Raises:
            SessionClosed: Unless the session is UPLOADING, or if it was
                aborted before every part resolved. Queued parts are not sent.
            PartUploadError: For the lowest-numbered failed part, after all
                parts have resolved. ``session`` on the error is the still
                open session, ready for ``abort()``.
        """
        session = self._require(UploadState.UPLOADING)
        plan = plan_parts(source.size, self.block_size, self.transfer_config.part_number_origin)
        logger.info(
            "Uploading %d bytes of %s/%s in %d parts (concurrency %d)",
            source.size,
            session.bucket,
            session.key,
            len(plan),
            self.gate.limit,
            extra={"upload_id": session.upload_id},
        )
        outcomes = await asyncio.gather(
            *(self._upload_from_source(part, source) for part in plan),
            return_exceptions=True,
        )
        if self.state is not UploadState.UPLOADING:
            raise SessionClosed(self.state.value)
        for part, outcome in zip(plan, outcomes):
            if isinstance(outcome, (UFileError, OSError)):
                logger.error(
                    "Part %d of %s failed: %s",
                    part.part_number,
                    session.upload_id,
                    outcome,
                    extra={"upload_id": session.upload_id, "part_number": part.part_number},
                )
                raise PartUploadError(part.part_number, session.upload_id, outcome) from outcome
            if isinstance(outcome, BaseException):
                raise outcome
        return list(outcomes)

    # -- Phase 2 ---------------------------------------------------------------

    async def finish(
        self,
        new_key: str | None = None,
        metadata_directive: MetadataDirective | None = None,
        metadata: dict[str, str] | None = None,
    ) -> FinishResult:
        """Commit the session with every uploaded part.

        A failed Finish returns the session to UPLOADING.

        Raises:
            SessionClosed: Unless the session is UPLOADING.
        """
        session = self._require(UploadState.UPLOADING)
        self.state = UploadState.FINISHING
        try:
            result = await self._finish_op.execute(
                FinishMultipartRequest(
                    session=session,
                    parts=self.parts,
                    new_key=new_key,
                    metadata_directive=metadata_directive,
                    metadata=metadata,
                    security_token=self.security_token,
                )
            )
        except UFileError:
            self.state = UploadState.UPLOADING
            raise
        self.state = UploadState.COMMITTED
        return result

    async def abort(self) -> None:
        """Discard the session server-side.

        Raises:
            SessionClosed: If the session is not open.
        """
        session = self._require(UploadState.UPLOADING, UploadState.FINISHING)
        await self._abort_op.execute(
            AbortMultipartRequest(session=session, security_token=self.security_token)
        )
        self.state = UploadState.ABORTED

    # -- Whole transfer --------------------------------------------------------

    async def run(
        self,
        source: PartSource,
        new_key: str | None = None,
        metadata_directive: MetadataDirective | None = None,
    ) -> TransferOutcome:
        """Init, upload every part of ``source``, and finish.

        No automatic abort: on failure the session stays open, is attached
        to the raised error as ``session``, and the caller decides whether
        to abort it.

        Raises:
            InvalidArgument: If ``source`` is empty.
        """
        if source.size == 0:
            raise InvalidArgument("multipart upload needs at least one byte")
        start = time.monotonic()
        await self.init()
        try:
            await self.upload_parts(source)
            result = await self.finish(new_key=new_key, metadata_directive=metadata_directive)
        except UFileError as exc:
            if self.state is UploadState.UPLOADING:
                exc.session = self.session
            raise
        logger.info(
            "Uploaded %s/%s: %d bytes, %d parts, etag=%s",
            result.bucket,
            result.key,
            source.size,
            len(self._results),
            result.etag,
            extra={
                "operation": "MultipartUpload",
                "bucket": result.bucket,
                "key": result.key,
                "duration_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return TransferOutcome(
            bucket=result.bucket,
            key=result.key,
            size=source.size,
            etag=result.etag,
            parts=len(self._results),
            headers=result.headers,
        )
