"""Shared pytest fixtures for ufilekit tests.

Tests run against an in-process FastAPI fake of the UFile object service,
reached through ``httpx.AsyncClient(transport=ASGITransport(app))``. The
fake verifies every signature, stores multipart parts, assembles objects on
Finish, serves inclusive ``Range`` reads, and records each call so tests
can assert on the exact wire traffic. Failures and delays are injected
through ``FakeUFileState``.
"""

import asyncio
import hashlib
import uuid
from dataclasses import dataclass, field

import httpx
import pytest
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from ufilekit.auth import (
    AUTH_SCHEME,
    HmacSha1Signer,
    SigningRequest,
    build_canonical_string,
    build_private_url_string,
)
from ufilekit.config import ObjectConfig, TransferConfig, UFileKitConfig

BUCKET = "test-bucket"
PUBLIC_KEY = "test-public-key"
PRIVATE_KEY = "test-private-key"
BASE_URL = "http://testserver"


@dataclass
class FakeUpload:
    key: str
    mime_type: str
    parts: dict[int, bytes] = field(default_factory=dict)


@dataclass
class FakeUFileState:
    """Server-side state and fault injection knobs of the fake service."""

    block_size: int = 1024
    objects: dict[str, tuple[bytes, str]] = field(default_factory=dict)
    uploads: dict[str, FakeUpload] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    headers: list[dict[str, str]] = field(default_factory=list)
    finish_bodies: list[str] = field(default_factory=list)
    fail_parts: set[int] = field(default_factory=set)
    short_ranges: set[int] = field(default_factory=set)
    upload_id: str | None = None
    delay: float = 0.0
    part_delays: dict[int, float] = field(default_factory=dict)
    completed_parts: list[int] = field(default_factory=list)
    fail_finish: bool = False
    in_flight: int = 0
    max_in_flight: int = 0

    def calls_for(self, method: str) -> list[str]:
        return [target for m, target in self.calls if m == method]


def _etag(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def _error(status: int, ret_code: int, message: str) -> JSONResponse:
    return JSONResponse({"RetCode": ret_code, "ErrMsg": message}, status_code=status)


def _authorized(request: Request, key: str) -> bool:
    expected_sig = HmacSha1Signer().signature(
        PRIVATE_KEY,
        build_canonical_string(
            SigningRequest(
                method=request.method,
                bucket=BUCKET,
                key=key,
                content_type=request.headers.get("content-type", ""),
                content_md5=request.headers.get("content-md5", ""),
                date=request.headers.get("date", ""),
            )
        ),
    )
    return request.headers.get("authorization") == f"{AUTH_SCHEME} {PUBLIC_KEY}:{expected_sig}"


def _url_authorized(request: Request, key: str) -> bool:
    params = request.query_params
    if params.get("UCloudPublicKey") != PUBLIC_KEY or "Expires" not in params:
        return False
    expected_sig = HmacSha1Signer().signature(
        PRIVATE_KEY,
        build_private_url_string(request.method, BUCKET, key, int(params["Expires"])),
    )
    return params.get("Signature") == expected_sig


def create_fake_ufile(state: FakeUFileState) -> FastAPI:
    """Create the fake UFile service bound to ``state``."""
    app = FastAPI()

    async def _slow(delay: float | None = None) -> None:
        state.in_flight += 1
        state.max_in_flight = max(state.max_in_flight, state.in_flight)
        try:
            await asyncio.sleep(state.delay if delay is None else delay)
        finally:
            state.in_flight -= 1

    @app.api_route("/{key:path}", methods=["GET", "HEAD", "PUT", "POST", "DELETE"])
    async def handle(key: str, request: Request) -> Response:
        target = request.url.path
        if request.url.query:
            target += f"?{request.url.query}"
        state.calls.append((request.method, target))
        state.headers.append(dict(request.headers))
        params = request.query_params

        if request.method == "GET":
            return await _get(key, request)
        if not _authorized(request, key):
            return _error(403, -30001, "signature mismatch")

        if request.method == "HEAD":
            if key not in state.objects:
                return Response(status_code=404)
            data, content_type = state.objects[key]
            return Response(
                status_code=200,
                headers={
                    "content-length": str(len(data)),
                    "content-type": content_type,
                    "etag": f'"{_etag(data)}"',
                },
            )
        if request.method == "POST" and "uploads" in params:
            return _init(key, request)
        upload = state.uploads.get(params.get("uploadId", ""))
        if upload is None:
            return _error(404, -30002, "upload not found")
        if request.method == "PUT":
            return await _part(upload, request)
        if request.method == "POST":
            return await _finish(params["uploadId"], upload, request)
        del state.uploads[params["uploadId"]]
        return Response(status_code=204)

    def _init(key: str, request: Request) -> Response:
        upload_id = state.upload_id or uuid.uuid4().hex
        state.uploads[upload_id] = FakeUpload(key=key, mime_type=request.headers["content-type"])
        return JSONResponse(
            {"UploadId": upload_id, "BlkSize": state.block_size, "Bucket": BUCKET, "Key": key}
        )

    async def _part(upload: FakeUpload, request: Request) -> Response:
        part_number = int(request.query_params["partNumber"])
        body = await request.body()
        await _slow(state.part_delays.get(part_number))
        if part_number in state.fail_parts:
            return _error(500, -1, f"injected failure for part {part_number}")
        if int(request.headers["content-length"]) != len(body):
            return _error(400, -2, "content length mismatch")
        md5 = request.headers.get("content-md5")
        if md5 is not None and md5 != hashlib.md5(body).hexdigest():
            return _error(400, -3, "content md5 mismatch")
        upload.parts[part_number] = body
        state.completed_parts.append(part_number)
        return Response(status_code=200, headers={"ETag": f'"{_etag(body)}"'})

    async def _finish(upload_id: str, upload: FakeUpload, request: Request) -> Response:
        body = (await request.body()).decode("utf-8")
        state.finish_bodies.append(body)
        if state.fail_finish:
            return _error(500, -5, "injected finish failure")
        numbers = sorted(upload.parts)
        if body.split(",") != [_etag(upload.parts[n]) for n in numbers]:
            return _error(400, -4, "part etags do not match")
        data = b"".join(upload.parts[n] for n in numbers)
        key = request.query_params.get("newKey") or upload.key
        state.objects[key] = (data, upload.mime_type)
        del state.uploads[upload_id]
        return JSONResponse(
            {"Bucket": BUCKET, "Key": key, "FileSize": len(data), "ETag": "body-etag"},
            headers={"ETag": f'"{_etag(data)}"'},
        )

    async def _get(key: str, request: Request) -> Response:
        if not _url_authorized(request, key):
            return _error(403, -30001, "signature mismatch")
        if key not in state.objects:
            return _error(404, -30010, "object not found")
        data, content_type = state.objects[key]
        range_header = request.headers.get("range")
        if range_header is None:
            return Response(content=data, media_type=content_type)
        first, last = range_header.removeprefix("bytes=").split("-")
        start, end = int(first), int(last) + 1
        await _slow()
        chunk = data[start:end]
        if start in state.short_ranges:
            chunk = chunk[:-1]
        return Response(
            content=chunk,
            status_code=206,
            media_type=content_type,
            headers={"Content-Range": f"bytes {start}-{end - 1}/{len(data)}"},
        )

    return app


class FlakyTransport(httpx.AsyncBaseTransport):
    """Wraps a transport and raises ConnectError for chosen part numbers."""

    def __init__(self, inner: httpx.AsyncBaseTransport, fail_parts: set[int]) -> None:
        self.inner = inner
        self.fail_parts = fail_parts

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        part = request.url.params.get("partNumber")
        if part is not None and int(part) in self.fail_parts:
            raise httpx.ConnectError("injected connection failure", request=request)
        return await self.inner.handle_async_request(request)


@pytest.fixture
def fake_state() -> FakeUFileState:
    return FakeUFileState()


@pytest.fixture
def fake_app(fake_state: FakeUFileState) -> FastAPI:
    return create_fake_ufile(fake_state)


@pytest.fixture
async def http_client(fake_app) -> AsyncClient:
    """An httpx client wired to the fake service."""
    async with AsyncClient(transport=ASGITransport(app=fake_app), base_url=BASE_URL) as ac:
        yield ac


@pytest.fixture
def object_config() -> ObjectConfig:
    return ObjectConfig(public_key=PUBLIC_KEY, private_key=PRIVATE_KEY, custom_host=BASE_URL)


@pytest.fixture
def transfer_config() -> TransferConfig:
    return TransferConfig(block_size=1024, concurrency=4)


@pytest.fixture
def ufile_config(object_config, transfer_config) -> UFileKitConfig:
    return UFileKitConfig(service=object_config, transfer=transfer_config)
