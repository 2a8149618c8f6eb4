"""In-memory sliding window rate limiter keyed by client IP."""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from floaty.config.settings import get_settings
from floaty.middleware.error_handler import error_body

EXEMPT_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

# Paths that call paid or slow third-party services use the stricter tier
PROXY_PREFIXES = ("/api/search", "/api/visit-page", "/api/tts")

WINDOW_SECONDS = 60.0


def client_ip(request: Request) -> str:
    """Socket peer address, or the first x-forwarded-for hop when the peer is a trusted proxy."""
    peer = request.client.host if request.client else "unknown"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and peer in get_settings().trusted_proxies_list:
        return forwarded.split(",")[0].strip() or peer
    return peer


class RateLimiterMiddleware(BaseHTTPMiddleware):
    def __init__(self, app):
        super().__init__(app)
        # client ip -> request timestamps inside the current window
        self._standard_windows: dict[str, list[float]] = {}
        self._proxy_windows: dict[str, list[float]] = {}
        self._last_eviction = 0.0

    def _is_proxy_path(self, path: str) -> bool:
        return path.startswith(PROXY_PREFIXES)

    def _check_limit(self, windows: dict[str, list[float]], key: str, limit: int, now: float) -> tuple[bool, int]:
        """Remove expired entries, check if under limit. Returns (allowed, retry_after_seconds)."""
        cutoff = now - WINDOW_SECONDS
        window = [t for t in windows.get(key, ()) if t >= cutoff]

        if len(window) >= limit:
            windows[key] = window
            retry_after = int(window[0] - cutoff) + 1
            return False, retry_after

        window.append(now)
        windows[key] = window
        return True, 0

    def _evict_idle(self, now: float) -> None:
        if now - self._last_eviction < WINDOW_SECONDS:
            return
        self._last_eviction = now
        cutoff = now - WINDOW_SECONDS
        for windows in (self._standard_windows, self._proxy_windows):
            for key in [k for k, w in windows.items() if not w or w[-1] < cutoff]:
                del windows[key]

    def _reject(self, request: Request, message: str, retry_after: int) -> Response:
        request_id = getattr(request.state, "request_id", "unknown")
        return JSONResponse(
            status_code=429,
            content=error_body(429, "rate_limit", message, request_id),
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path in EXEMPT_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        settings = get_settings()
        ip = client_ip(request)
        now = time.time()
        self._evict_idle(now)

        if self._is_proxy_path(request.url.path):
            allowed, retry_after = self._check_limit(self._proxy_windows, ip, settings.RATE_LIMIT_PROXY, now)
            if not allowed:
                return self._reject(request, "Proxy rate limit exceeded", retry_after)

        allowed, retry_after = self._check_limit(self._standard_windows, ip, settings.RATE_LIMIT_STANDARD, now)
        if not allowed:
            return self._reject(request, "Rate limit exceeded", retry_after)

        return await call_next(request)
