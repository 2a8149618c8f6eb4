"""Outbound HTTP client factory shared by the proxy routes."""

from collections.abc import Callable

import httpx

DEFAULT_TIMEOUT = 10.0
BOT_USER_AGENT = "Mozilla/5.0 (compatible; FloatyBot/1.0)"

HTTPClientFactory = Callable[..., httpx.AsyncClient]


def new_http_client(**kwargs) -> httpx.AsyncClient:
    kwargs.setdefault("timeout", DEFAULT_TIMEOUT)
    return httpx.AsyncClient(**kwargs)


def get_http_client_factory() -> HTTPClientFactory:
    """FastAPI dependency; tests override it to inject a mock transport."""
    return new_http_client
