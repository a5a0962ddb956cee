"""Tests for the UFileClient facade, including full upload/download round trips."""

import os
import time
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from conftest import BUCKET
from ufilekit.client import DEFAULT_MIME_TYPE, UFileClient, guess_mime_type
from ufilekit.config import UFileKitConfig
from ufilekit.errors import PartUploadError, ServiceError
from ufilekit.transfer.parts import BytesSource
from ufilekit.transfer.upload import UploadState


class TestRoundTrip:
    """Upload with the multipart protocol, then download by ranges."""

    @pytest.mark.parametrize("size", [1, 1023, 1024, 1025, 7 * 1024 + 17])
    async def test_file_round_trip(self, ufile_config, http_client, tmp_path, size):
        src = tmp_path / "src.bin"
        src.write_bytes(os.urandom(size))
        dest = tmp_path / "dest.bin"

        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            up = await ufile.upload_file(BUCKET, "round.bin", src)
            down = await ufile.download_file(BUCKET, "round.bin", dest)

        assert dest.read_bytes() == src.read_bytes()
        assert up.size == down.size == size
        assert down.etag == up.etag

    async def test_bytes_round_trip(self, ufile_config, http_client, tmp_path):
        data = os.urandom(4096 + 5)
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            await ufile.upload_bytes(BUCKET, "mem.bin", data, mime_type="text/plain")
            head = await ufile.head_object(BUCKET, "mem.bin")
            await ufile.download_file(BUCKET, "mem.bin", tmp_path / "mem.bin")

        assert head.content_length == len(data)
        assert head.content_type.startswith("text/plain")
        assert (tmp_path / "mem.bin").read_bytes() == data


class TestUFileClient:
    """Facade behaviour that is not a plain round trip."""

    async def test_mime_type_guessed_from_path(
        self, ufile_config, http_client, fake_state, tmp_path
    ):
        src = tmp_path / "page.html"
        src.write_text("<html></html>")
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            await ufile.upload_file(BUCKET, "page.html", src)
        assert fake_state.objects["page.html"][1] == "text/html"

    def test_guess_mime_type_default(self):
        assert guess_mime_type("no-extension") == DEFAULT_MIME_TYPE

    async def test_download_with_known_size_skips_head(
        self, ufile_config, http_client, fake_state, tmp_path
    ):
        fake_state.objects["k"] = (b"abcdef", "text/plain")
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            await ufile.download_file(BUCKET, "k", tmp_path / "k", total_size=6)
        assert fake_state.calls_for("HEAD") == []

    async def test_abort_after_failed_upload(
        self, ufile_config, http_client, fake_state
    ):
        """A failed upload leaves its session open until the caller aborts it."""
        fake_state.fail_parts = {0}
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            coordinator = ufile.multipart_upload(BUCKET, "fail.bin", "text/plain")
            with pytest.raises(PartUploadError):
                await coordinator.run(BytesSource(b"data"))
            assert coordinator.state is UploadState.UPLOADING
            assert len(fake_state.uploads) == 1

            await ufile.abort_upload(coordinator.session)
        assert fake_state.uploads == {}
        assert len(fake_state.calls_for("DELETE")) == 1

    async def test_failed_upload_bytes_carries_session(
        self, ufile_config, http_client, fake_state
    ):
        """The error from a failed upload_bytes holds the session to abort."""
        fake_state.fail_parts = {1}
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            with pytest.raises(PartUploadError) as exc_info:
                await ufile.upload_bytes(BUCKET, "fail.bin", os.urandom(3000))
            session = exc_info.value.session
            assert session is not None
            assert session.upload_id in fake_state.uploads
            assert session.block_size == fake_state.block_size

            await ufile.abort_upload(session)
        assert fake_state.uploads == {}
        assert fake_state.calls_for("DELETE") == [f"/fail.bin?uploadId={session.upload_id}"]

    async def test_failed_finish_carries_session(
        self, ufile_config, http_client, fake_state
    ):
        fake_state.fail_finish = True
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            with pytest.raises(ServiceError) as exc_info:
                await ufile.upload_bytes(BUCKET, "fin.bin", b"data")
            assert exc_info.value.http_status == 500
            await ufile.abort_upload(exc_info.value.session)
        assert fake_state.uploads == {}
        assert "fin.bin" not in fake_state.objects

    async def test_failed_init_has_no_session(self, ufile_config, http_client):
        ufile_config.service.private_key = "wrong"
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            with pytest.raises(ServiceError) as exc_info:
                await ufile.upload_bytes(BUCKET, "denied.bin", b"data")
        assert exc_info.value.session is None

    async def test_head_missing(self, ufile_config, http_client):
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            with pytest.raises(ServiceError):
                await ufile.download_file(BUCKET, "missing", "unused")

    async def test_private_url_uses_configured_expiry(self, ufile_config, http_client):
        ufile_config.transfer.private_url_expires = 60
        before = int(time.time())
        async with UFileClient(ufile_config, http_client=http_client) as ufile:
            query = parse_qs(urlsplit(ufile.private_url(BUCKET, "k")).query)
        assert set(query) == {"UCloudPublicKey", "Signature", "Expires"}
        assert before + 60 <= int(query["Expires"][0]) <= int(time.time()) + 60

    async def test_injected_client_not_closed(self, ufile_config, http_client):
        async with UFileClient(ufile_config, http_client=http_client):
            pass
        assert not http_client.is_closed

    async def test_owned_client_closed(self):
        async with UFileClient(UFileKitConfig()) as ufile:
            assert isinstance(ufile.http, httpx.AsyncClient)
        assert ufile.http.is_closed
