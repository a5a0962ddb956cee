"""Tests for ufilekit configuration loading and URL building."""

import tempfile
from pathlib import Path
from urllib.parse import parse_qs, urlsplit

import pytest
import yaml
from pydantic import ValidationError

from ufilekit.auth import HmacSha1Signer, build_private_url_string
from ufilekit.config import (
    DEFAULT_BLOCK_SIZE,
    ObjectConfig,
    TransferConfig,
    UFileKitConfig,
    load_config,
)
from ufilekit.errors import EmptyBucketName, EmptyKeyName, InvalidExpires


def _load(data: dict) -> UFileKitConfig:
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(data, f)
        f.flush()
        return load_config(Path(f.name))


class TestLoadConfig:
    """Tests for load_config()."""

    def test_load_example_config(self):
        """Loading the example config file populates all sections."""
        config = load_config(Path(__file__).resolve().parent.parent / "ufilekit.example.yaml")
        assert config.service.region == "cn-bj2"
        assert config.service.proxy_suffix == "ufileos.com"
        assert config.service.public_key == "example-public-key"
        assert config.service.private_key == "example-private-key"
        assert config.transfer.concurrency == 8
        assert config.transfer.verify_md5 is True
        assert config.http.user_agent == "ufilekit/0.1"
        assert config.logging.format == "text"

    def test_load_minimal_config(self):
        """An empty YAML document yields defaults everywhere."""
        config = _load({})
        assert config.service.endpoint == "https://api.ucloud.cn"
        assert config.service.region == "cn-sh2"
        assert config.service.protocol == "https"
        assert config.service.custom_host is None
        assert config.transfer.block_size == DEFAULT_BLOCK_SIZE
        assert config.transfer.part_number_origin == 0
        assert config.http.connect_timeout == 5.0
        assert config.http.read_timeout == 30.0
        assert config.http.timeout == 3600.0
        assert config.logging.level == "INFO"
        assert config.logging.metrics_enabled is False

    def test_nested_http_sections(self):
        """http.timeouts and http.pool map onto flat HttpConfig fields."""
        config = _load(
            {
                "http": {
                    "timeouts": {"connect": 1, "read": 2, "total": 3},
                    "pool": {"max_keepalive": 9, "keepalive_expiry": 10},
                }
            }
        )
        assert config.http.connect_timeout == 1
        assert config.http.read_timeout == 2
        assert config.http.timeout == 3
        assert config.http.max_keepalive_connections == 9
        assert config.http.keepalive_expiry == 10

    def test_custom_host(self):
        config = _load({"service": {"custom_host": "http://localhost:9000"}})
        assert config.service.custom_host == "http://localhost:9000"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")


class TestObjectConfigHost:
    """Tests for ObjectConfig.host()."""

    def test_region_host(self):
        config = ObjectConfig(region="cn-bj2", proxy_suffix="ufileos.com")
        assert config.host("bucket", "file.bin") == "https://bucket.cn-bj2.ufileos.com/file.bin"

    def test_custom_host(self):
        config = ObjectConfig(custom_host="http://localhost:9000", region="ignored")
        assert config.host("bucket", "file.bin") == "http://localhost:9000/file.bin"

    def test_custom_host_trailing_slash(self):
        config = ObjectConfig(custom_host="http://localhost:9000/")
        assert config.host("bucket", "file.bin") == "http://localhost:9000/file.bin"

    def test_key_percent_encoded(self):
        """Every reserved character of the key is encoded, including '/'."""
        config = ObjectConfig(custom_host="http://h")
        assert config.host("bucket", "a b/c+d") == "http://h/a%20b%2Fc%2Bd"

    def test_http_protocol(self):
        config = ObjectConfig(protocol="http", proxy_suffix="example.com")
        assert config.host("b", "k").startswith("http://b.cn-sh2.example.com/")


class TestPrivateUrl:
    """Tests for ObjectConfig.authorization_private_url() and private_url()."""

    def setup_method(self):
        self.config = ObjectConfig(
            public_key="pub key", private_key="priv", custom_host="http://h"
        )

    def test_authorization_private_url(self):
        expected = HmacSha1Signer().signature(
            "priv", build_private_url_string("GET", "b", "k", 1000)
        )
        assert self.config.authorization_private_url("GET", "b", "k", 1000) == expected

    def test_empty_bucket(self):
        with pytest.raises(EmptyBucketName):
            self.config.authorization_private_url("GET", "", "k", 1000)

    def test_empty_key(self):
        with pytest.raises(EmptyKeyName):
            self.config.authorization_private_url("GET", "b", "", 1000)

    def test_zero_expires(self):
        with pytest.raises(InvalidExpires):
            self.config.authorization_private_url("GET", "b", "k", 0)

    def test_private_url_query(self):
        """Expires is now + lifetime and the signature covers that value."""
        url = self.config.private_url("b", "dir/k", expires=600, now=1_700_000_000)
        parts = urlsplit(url)
        assert f"{parts.scheme}://{parts.netloc}{parts.path}" == "http://h/dir%2Fk"
        query = parse_qs(parts.query)
        assert query["UCloudPublicKey"] == ["pub key"]
        assert query["Expires"] == ["1700000600"]
        assert query["Signature"] == [
            self.config.authorization_private_url("GET", "b", "dir/k", 1_700_000_600)
        ]

    def test_private_url_optional_params(self):
        url = self.config.private_url(
            "b",
            "k",
            now=0,
            attachment_filename="report.pdf",
            security_token="tok",
            iop_cmd="imageView2/1/w/100",
        )
        query = parse_qs(urlsplit(url).query)
        assert query["ufileattname"] == ["report.pdf"]
        assert query["SecurityToken"] == ["tok"]
        assert query["iopcmd"] == ["imageView2/1/w/100"]

    def test_private_url_omits_unset_params(self):
        query = parse_qs(urlsplit(self.config.private_url("b", "k", now=0)).query)
        assert set(query) == {"UCloudPublicKey", "Signature", "Expires"}

    def test_private_url_rejects_zero_expires(self):
        with pytest.raises(InvalidExpires):
            self.config.private_url("b", "k", expires=0)


class TestTransferConfig:
    def test_explicit_concurrency(self):
        assert TransferConfig(concurrency=3).resolved_concurrency() == 3

    @pytest.mark.parametrize("value", [0, -1])
    def test_rejects_non_positive_concurrency(self, value):
        with pytest.raises(ValidationError):
            TransferConfig(concurrency=value)

    def test_load_rejects_zero_concurrency(self):
        with pytest.raises(ValidationError):
            _load({"transfer": {"concurrency": 0}})

    def test_default_concurrency_is_positive_and_even(self):
        value = TransferConfig().resolved_concurrency()
        assert value >= 2
        assert value % 2 == 0
