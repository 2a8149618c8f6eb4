"""Verification of Supabase-issued access tokens."""

import jwt

from floaty.config.settings import get_settings

# Supabase signs user sessions with the project JWT secret
SUPABASE_AUDIENCE = "authenticated"


def verify_token(token: str) -> dict:
    """Decode and validate a Supabase JWT. Raises jwt.ExpiredSignatureError or jwt.InvalidTokenError."""
    settings = get_settings()
    return jwt.decode(
        token,
        settings.SUPABASE_JWT_SECRET,
        algorithms=["HS256"],
        audience=SUPABASE_AUDIENCE,
        options={"require": ["exp", "sub"]},
    )
