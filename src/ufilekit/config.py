"""Configuration loading and Pydantic models for ufilekit."""

import time
import urllib.parse
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

from ufilekit.auth import HmacSha1Signer, build_private_url_string
from ufilekit.transfer.gate import default_concurrency
from ufilekit.validation import validate_bucket_name, validate_expires, validate_key_name

DEFAULT_BLOCK_SIZE = 4 << 20  # 4 MiB
DEFAULT_PRIVATE_URL_EXPIRES = 24 * 3600


def quote_component(value: str) -> str:
    """Percent-encode every reserved character, including '/'."""
    return urllib.parse.quote(value, safe="")


class ObjectConfig(BaseModel):
    """Endpoint, region, and credentials for object operations.

    When ``custom_host`` is set it is used as the URL prefix (minus any
    trailing slash) and ``region``/``proxy_suffix`` are ignored.
    """

    endpoint: str = "https://api.ucloud.cn"
    public_key: str = ""
    private_key: str = ""
    region: str = "cn-sh2"
    proxy_suffix: str | None = None
    custom_host: str | None = None
    protocol: Literal["http", "https"] = "https"

    def host(self, bucket: str, key: str) -> str:
        """Build the full URL of an object.

        Args:
            bucket: The bucket name.
            key: The object key.

        Returns:
            ``{custom_host}/{key}`` or
            ``{protocol}://{bucket}.{region}.{proxy_suffix}/{key}``, every
            component percent-encoded independently.
        """
        encoded_key = quote_component(key)
        if self.custom_host:
            return f"{self.custom_host.rstrip('/')}/{encoded_key}"
        domain = ".".join(
            quote_component(part) for part in (bucket, self.region, self.proxy_suffix or "")
        )
        return f"{self.protocol}://{domain}/{encoded_key}"

    def authorization_private_url(
        self, method: str, bucket: str, key: str, expires: int
    ) -> str:
        """Sign a private-URL canonical string.

        Args:
            method: HTTP method the URL is valid for.
            bucket: The bucket name.
            key: The object key.
            expires: The value placed in the ``Expires`` slot of the
                canonical string.

        Returns:
            The base64 HMAC-SHA1 signature.

        Raises:
            EmptyBucketName: If ``bucket`` is empty.
            EmptyKeyName: If ``key`` is empty.
            InvalidExpires: If ``expires`` is zero.
        """
        validate_bucket_name(bucket)
        validate_key_name(key)
        validate_expires(expires)
        sign_data = build_private_url_string(method, bucket, key, expires)
        return HmacSha1Signer().signature(self.private_key, sign_data)

    def private_url(
        self,
        bucket: str,
        key: str,
        expires: int = DEFAULT_PRIVATE_URL_EXPIRES,
        method: str = "GET",
        attachment_filename: str | None = None,
        security_token: str | None = None,
        iop_cmd: str | None = None,
        now: float | None = None,
    ) -> str:
        """Build a time-limited pre-signed URL for an object.

        Args:
            bucket: The bucket name.
            key: The object key.
            expires: Lifetime in seconds from ``now``.
            method: HTTP method the URL is valid for.
            attachment_filename: Adds ``ufileattname`` when set.
            security_token: Adds ``SecurityToken`` when set.
            iop_cmd: Adds ``iopcmd`` (image processing) when set.
            now: Override for the current epoch time.

        Returns:
            The signed URL.
        """
        validate_expires(expires)
        expire_at = int(now if now is not None else time.time()) + expires
        signature = self.authorization_private_url(method, bucket, key, expire_at)
        params = [
            ("UCloudPublicKey", self.public_key),
            ("Signature", signature),
            ("Expires", str(expire_at)),
        ]
        if attachment_filename:
            params.append(("ufileattname", attachment_filename))
        if security_token:
            params.append(("SecurityToken", security_token))
        if iop_cmd:
            params.append(("iopcmd", iop_cmd))
        query = "&".join(f"{name}={quote_component(value)}" for name, value in params)
        return f"{self.host(bucket, key)}?{query}"


class TransferConfig(BaseModel):
    """Multipart transfer tuning."""

    block_size: int = DEFAULT_BLOCK_SIZE
    concurrency: int | None = Field(default=None, ge=1)
    verify_md5: bool = False
    part_number_origin: int = 0
    private_url_expires: int = DEFAULT_PRIVATE_URL_EXPIRES

    def resolved_concurrency(self) -> int:
        """Return the configured bound, or ``cpu_count * 2`` when unset."""
        if self.concurrency is not None:
            return self.concurrency
        return default_concurrency()


class HttpConfig(BaseModel):
    """HTTP transport settings for the underlying httpx client."""

    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    timeout: float = 3600.0
    max_keepalive_connections: int = 5
    keepalive_expiry: float = 300.0
    user_agent: str = "ufilekit"


class LoggingConfig(BaseModel):
    """Logging and observability configuration."""

    level: str = "INFO"
    format: Literal["text", "json"] = "text"
    metrics_enabled: bool = False


class UFileKitConfig(BaseModel):
    """Top-level ufilekit configuration."""

    service: ObjectConfig = Field(default_factory=ObjectConfig)
    transfer: TransferConfig = Field(default_factory=TransferConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _parse_service(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the service section from YAML data.

    Handles nested structure: service.credentials.public_key -> public_key
    """
    if data is None:
        return {}
    result: dict[str, Any] = {
        key: data[key]
        for key in ("endpoint", "region", "proxy_suffix", "custom_host", "protocol")
        if key in data
    }
    credentials = data.get("credentials")
    if isinstance(credentials, dict):
        result["public_key"] = credentials.get("public_key", "")
        result["private_key"] = credentials.get("private_key", "")
    return result


def _parse_transfer(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the transfer section from YAML data."""
    if data is None:
        return {}
    return {
        "block_size": data.get("block_size", DEFAULT_BLOCK_SIZE),
        "concurrency": data.get("concurrency"),
        "verify_md5": data.get("verify_md5", False),
        "part_number_origin": data.get("part_number_origin", 0),
        "private_url_expires": data.get("private_url_expires", DEFAULT_PRIVATE_URL_EXPIRES),
    }


def _parse_http(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the http section from YAML data.

    Handles nested structure: http.timeouts.connect -> connect_timeout, etc.
    """
    if data is None:
        return {}
    result: dict[str, Any] = {}
    timeouts = data.get("timeouts")
    if isinstance(timeouts, dict):
        result["connect_timeout"] = timeouts.get("connect", 5.0)
        result["read_timeout"] = timeouts.get("read", 30.0)
        result["timeout"] = timeouts.get("total", 3600.0)
    pool = data.get("pool")
    if isinstance(pool, dict):
        result["max_keepalive_connections"] = pool.get("max_keepalive", 5)
        result["keepalive_expiry"] = pool.get("keepalive_expiry", 300.0)
    if "user_agent" in data:
        result["user_agent"] = data["user_agent"]
    return result


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
        "metrics_enabled": data.get("metrics_enabled", False),
    }


def load_config(path: Path) -> UFileKitConfig:
    """Load a UFileKitConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated UFileKitConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a value is out of range, such as a
            concurrency below 1.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return UFileKitConfig(
        service=ObjectConfig(**_parse_service(raw.get("service"))),
        transfer=TransferConfig(**_parse_transfer(raw.get("transfer"))),
        http=HttpConfig(**_parse_http(raw.get("http"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
    )
