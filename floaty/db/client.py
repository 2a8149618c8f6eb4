"""Supabase client singletons."""

from collections.abc import Awaitable, Callable
from functools import lru_cache

from supabase import AsyncClient, Client, acreate_client, create_client

from floaty.config.settings import get_settings


@lru_cache()
def get_supabase() -> Client:
    """Synchronous client using the service role key (bypasses RLS)."""
    settings = get_settings()
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)


_async_client: AsyncClient | None = None


async def get_async_supabase() -> AsyncClient:
    """Async client used for realtime channels, created on first use."""
    global _async_client
    if _async_client is None:
        settings = get_settings()
        _async_client = await acreate_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    return _async_client


def get_realtime_connector() -> Callable[[], Awaitable[AsyncClient]]:
    """Dependency for SSE routes: the client is acquired once the stream starts."""
    return get_async_supabase
