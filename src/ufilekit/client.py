"""High-level UFile client.

``UFileClient`` ties configuration, the shared HTTP client, and the two
transfer coordinators together::

    async with UFileClient(load_config(Path("ufilekit.yaml"))) as ufile:
        await ufile.upload_file("bucket", "big.bin", "/tmp/big.bin")
        await ufile.download_file("bucket", "big.bin", "/tmp/copy.bin")
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path

import httpx

from ufilekit import metrics as _metrics
from ufilekit.auth import AuthorizationService
from ufilekit.config import UFileKitConfig
from ufilekit.httpclient import create_http_client
from ufilekit.logging_config import configure_logging
from ufilekit.models import HeadResult, MetadataDirective, TransferOutcome, UploadSession
from ufilekit.operations.multipart import AbortMultipartOperation, AbortMultipartRequest
from ufilekit.operations.object import HeadObjectOperation, HeadObjectRequest
from ufilekit.transfer.download import RangedDownloadCoordinator
from ufilekit.transfer.parts import BytesSource, FileSource, PartSource
from ufilekit.transfer.upload import MultipartUploadCoordinator

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


def guess_mime_type(path: str | Path) -> str:
    """Guess a Content-Type from a file name, defaulting to octet-stream."""
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or DEFAULT_MIME_TYPE


class UFileClient:
    """Entry point for multipart uploads, ranged downloads, and private URLs.

    Args:
        config: Full configuration. Defaults to ``UFileKitConfig()``.
        http_client: An existing ``httpx.AsyncClient``. When omitted one is
            created from ``config.http`` and closed by ``aclose()``.
        setup_observability: Apply ``config.logging`` (log level/format and
            Prometheus metrics) on construction.
    """

    def __init__(
        self,
        config: UFileKitConfig | None = None,
        http_client: httpx.AsyncClient | None = None,
        setup_observability: bool = False,
    ) -> None:
        self.config = config or UFileKitConfig()
        if setup_observability:
            configure_logging(self.config.logging.level, self.config.logging.format)
            if self.config.logging.metrics_enabled:
                _metrics.init_metrics()
        self._owns_client = http_client is None
        self.http = http_client or create_http_client(self.config.http)
        self.auth_service = AuthorizationService()

    async def __aenter__(self) -> "UFileClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http.aclose()

    # -- Uploads ---------------------------------------------------------------

    def multipart_upload(
        self,
        bucket: str,
        key: str,
        mime_type: str,
        metadata: dict[str, str] | None = None,
        storage_class: str | None = None,
        security_token: str | None = None,
    ) -> MultipartUploadCoordinator:
        """Return a coordinator for driving a multipart upload step by step."""
        return MultipartUploadCoordinator(
            self.config.service,
            self.http,
            bucket,
            key,
            mime_type,
            transfer_config=self.config.transfer,
            auth_service=self.auth_service,
            metadata=metadata,
            storage_class=storage_class,
            security_token=security_token,
        )

    async def _upload(
        self,
        source: PartSource,
        bucket: str,
        key: str,
        mime_type: str,
        new_key: str | None,
        metadata: dict[str, str] | None,
        metadata_directive: MetadataDirective | None,
        storage_class: str | None,
        security_token: str | None,
    ) -> TransferOutcome:
        coordinator = self.multipart_upload(
            bucket,
            key,
            mime_type,
            metadata=metadata,
            storage_class=storage_class,
            security_token=security_token,
        )
        try:
            return await coordinator.run(
                source, new_key=new_key, metadata_directive=metadata_directive
            )
        finally:
            source.close()

    async def upload_file(
        self,
        bucket: str,
        key: str,
        path: str | Path,
        mime_type: str | None = None,
        new_key: str | None = None,
        metadata: dict[str, str] | None = None,
        metadata_directive: MetadataDirective | None = None,
        storage_class: str | None = None,
        security_token: str | None = None,
    ) -> TransferOutcome:
        """Upload a local file with the multipart protocol.

        Args:
            bucket: Target bucket.
            key: Target key.
            path: Local file.
            mime_type: Content type; guessed from ``path`` when omitted.
            new_key: Rename the object on Finish.
            metadata: User metadata set at Init.
            metadata_directive: UNCHANGED or REPLACE at Finish.
            storage_class: STANDARD, IA or ARCHIVE.
            security_token: STS token.

        Returns:
            The transfer outcome.

        Raises:
            UFileError: Any validation, transport, service or part failure.
                A failure after Init leaves the session open and sets
                ``session`` on the error; pass it to ``abort_upload``.
        """
        return await self._upload(
            FileSource(path),
            bucket,
            key,
            mime_type or guess_mime_type(path),
            new_key,
            metadata,
            metadata_directive,
            storage_class,
            security_token,
        )

    async def upload_bytes(
        self,
        bucket: str,
        key: str,
        data: bytes,
        mime_type: str = DEFAULT_MIME_TYPE,
        new_key: str | None = None,
        metadata: dict[str, str] | None = None,
        metadata_directive: MetadataDirective | None = None,
        storage_class: str | None = None,
        security_token: str | None = None,
    ) -> TransferOutcome:
        """Upload an in-memory buffer with the multipart protocol."""
        return await self._upload(
            BytesSource(data),
            bucket,
            key,
            mime_type,
            new_key,
            metadata,
            metadata_directive,
            storage_class,
            security_token,
        )

    async def abort_upload(
        self, session: UploadSession, security_token: str | None = None
    ) -> None:
        """Abort a multipart session left open by a failed upload."""
        op = AbortMultipartOperation(self.config.service, self.http, self.auth_service)
        await op.execute(AbortMultipartRequest(session=session, security_token=security_token))

    # -- Reads -----------------------------------------------------------------

    async def head_object(
        self, bucket: str, key: str, security_token: str | None = None
    ) -> HeadResult:
        """Return an object's size, type, and ETag."""
        op = HeadObjectOperation(self.config.service, self.http, self.auth_service)
        return await op.execute(
            HeadObjectRequest(bucket=bucket, key=key, security_token=security_token)
        )

    async def download_file(
        self,
        bucket: str,
        key: str,
        dest: str | Path | None = None,
        overwrite: bool = True,
        total_size: int | None = None,
        security_token: str | None = None,
        iop_cmd: str | None = None,
    ) -> TransferOutcome:
        """Download an object by ranges into a local file.

        Args:
            bucket: Source bucket.
            key: Source key.
            dest: Destination path; defaults to ``key`` in the working directory.
            overwrite: Replace an existing ``dest``.
            total_size: Object length; fetched with HEAD when omitted.
            security_token: STS token.
            iop_cmd: Image-processing command appended to the URL.

        Returns:
            The transfer outcome.
        """
        coordinator = RangedDownloadCoordinator(
            self.config.service,
            self.http,
            bucket,
            key,
            transfer_config=self.config.transfer,
            auth_service=self.auth_service,
            security_token=security_token,
            iop_cmd=iop_cmd,
        )
        etag = None
        if total_size is None:
            head = await self.head_object(bucket, key, security_token=security_token)
            total_size = head.content_length
            etag = head.etag
            logger.debug("HEAD %s/%s: %d bytes", bucket, key, total_size)
        return await coordinator.download_file(
            dest if dest is not None else Path(key),
            total_size,
            overwrite=overwrite,
            etag=etag,
        )

    def private_url(
        self,
        bucket: str,
        key: str,
        expires: int | None = None,
        attachment_filename: str | None = None,
        security_token: str | None = None,
        iop_cmd: str | None = None,
    ) -> str:
        """Build a pre-signed GET URL valid for ``expires`` seconds."""
        return self.config.service.private_url(
            bucket,
            key,
            expires=expires if expires is not None else self.config.transfer.private_url_expires,
            attachment_filename=attachment_filename,
            security_token=security_token,
            iop_cmd=iop_cmd,
        )
