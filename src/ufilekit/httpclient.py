"""HTTP client construction for ufilekit."""

import httpx

from ufilekit.config import HttpConfig


def create_http_client(config: HttpConfig | None = None) -> httpx.AsyncClient:
    """Create the shared ``httpx.AsyncClient`` used by every operation.

    Connection pooling, TLS and socket-level behaviour are httpx's concern;
    this only applies the configured timeouts, pool limits and user agent.
    HTTP/1.1 only.

    Args:
        config: HTTP settings. Defaults to ``HttpConfig()``.

    Returns:
        A new client. The caller owns it and must close it.
    """
    config = config or HttpConfig()
    timeout = httpx.Timeout(
        config.timeout,
        connect=config.connect_timeout,
        read=config.read_timeout,
    )
    limits = httpx.Limits(
        max_keepalive_connections=config.max_keepalive_connections,
        keepalive_expiry=config.keepalive_expiry,
    )
    return httpx.AsyncClient(
        timeout=timeout,
        limits=limits,
        http1=True,
        http2=False,
        headers={"User-Agent": config.user_agent},
    )
