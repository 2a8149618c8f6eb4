"""Bridge realtime subscriptions to Server-Sent Event streams."""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from floaty.config.settings import Settings
from floaty.db.models import CHAT_SESSIONS, MESSAGES
from floaty.messages import service as message_service
from floaty.messages.streaming import KEEPALIVE, format_change, format_error, format_status
from floaty.realtime.subscription import RealtimeSubscription, RetryPolicy
from floaty.sessions import repository as session_repository

logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


class ChangeFeed:
    """Fan-in of one or more subscriptions into a single event queue.

    The realtime client is acquired when the feed starts, inside the stream,
    so a connection failure reaches the client as an ``error`` event.
    """

    def __init__(self, connect: Callable[[], Awaitable[Any]]):
        self._connect = connect
        self._tables: list[tuple[str, dict]] = []
        self.queue: asyncio.Queue[tuple[str, dict]] = asyncio.Queue()
        self.subscriptions: list[RealtimeSubscription] = []

    def add(self, table: str, **kwargs) -> None:
        self._tables.append((table, kwargs))

    def _push_change(self, change: dict) -> None:
        self.queue.put_nowait(("change", change))

    def _push_status(self, status: dict) -> None:
        self.queue.put_nowait(("status", status))

    async def start(self) -> None:
        client = await self._connect()
        for table, kwargs in self._tables:
            subscription = RealtimeSubscription(
                client, table, self._push_change, on_status=self._push_status, **kwargs
            )
            self.subscriptions.append(subscription)
            await subscription.start()

    async def stop(self) -> None:
        for subscription in self.subscriptions:
            await subscription.stop()

    async def stream(
        self,
        is_disconnected: Callable[[], Awaitable[bool]],
        keepalive: float = KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """Yield SSE frames until the client goes away. Subscriptions are always stopped on exit."""
        try:
            try:
                await self.start()
            except Exception as exc:
                logger.exception("Failed to start change feed")
                yield format_error("realtime_error", str(exc))
                return
            while True:
                if await is_disconnected():
                    logger.info("Change feed client disconnected")
                    break
                try:
                    kind, payload = await asyncio.wait_for(self.queue.get(), timeout=keepalive)
                except asyncio.TimeoutError:
                    yield KEEPALIVE
                    continue
                yield format_change(payload) if kind == "change" else format_status(payload)
        finally:
            await self.stop()


def session_feed(connect: Callable[[], Awaitable[Any]], user_id: str, settings: Settings) -> ChangeFeed:
    async def poll(since: str | None) -> list[dict]:
        return await asyncio.to_thread(session_repository.list_updated_since, user_id, since)

    feed = ChangeFeed(connect)
    feed.add(
        CHAT_SESSIONS,
        filter=f"user_id=eq.{user_id}",
        poller=poll,
        cursor_field="updated_at",
        policy=RetryPolicy.from_settings(settings),
    )
    return feed


def message_feed(connect: Callable[[], Awaitable[Any]], session_id: str, settings: Settings) -> ChangeFeed:
    async def poll(since: str | None) -> list[dict]:
        return await asyncio.to_thread(message_service.list_created_since, session_id, since)

    feed = ChangeFeed(connect)
    feed.add(
        MESSAGES,
        filter=f"session_id=eq.{session_id}",
        poller=poll,
        cursor_field="created_at",
        policy=RetryPolicy.from_settings(settings),
    )
    return feed
