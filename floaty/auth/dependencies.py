"""Auth dependencies for FastAPI route injection."""

import hmac
import logging
from dataclasses import dataclass

import jwt
from fastapi import HTTPException, Request

from floaty.auth.jwt import verify_token
from floaty.config.settings import get_settings
from floaty.middleware.rate_limiter import client_ip

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    id: str
    email: str


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


async def require_api_key(request: Request) -> None:
    """FastAPI dependency: the x-api-key header must match API_SECRET."""
    settings = get_settings()
    if not settings.API_SECRET:
        logger.error("API_SECRET is not set; rejecting %s", request.url.path)
        raise HTTPException(status_code=500, detail="Server API key not configured")

    api_key = request.headers.get("x-api-key")
    if not api_key or not hmac.compare_digest(api_key.encode(), settings.API_SECRET.encode()):
        logger.warning(
            "Unauthorized access attempt - ip=%s path=%s key=%s",
            client_ip(request), request.url.path, "***" if api_key else "none",
        )
        raise HTTPException(status_code=401, detail="Unauthorized: invalid API key")


async def get_current_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticate via a Supabase Bearer JWT."""
    token = _extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication credentials")

    try:
        payload = verify_token(token)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    request.state.user_id = payload["sub"]
    return CurrentUser(id=payload["sub"], email=payload.get("email", ""))
