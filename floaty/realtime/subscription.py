"""Supabase realtime channel subscription with reconnection and polling fallback.

A subscription follows one table (optionally filtered) through the channel
lifecycle reported by the realtime client:

- ``SUBSCRIBED`` resets the retry budget and stops any fallback polling.
- ``CHANNEL_ERROR`` and ``TIMED_OUT`` schedule a reconnect with exponential
  backoff.
- ``CLOSED`` shortly after a successful subscribe is treated as abnormal and
  reconnects; a later close is a normal shutdown and does not.

Once the retry budget is spent the subscription falls back to polling the
table for rows newer than the last delivered change.
"""

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from floaty.utils.dates import timestamp_ms, utc_now_iso

logger = logging.getLogger(__name__)

Poller = Callable[[str | None], Awaitable[list[dict]]]


class ChannelState(str, Enum):
    IDLE = "idle"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "SUBSCRIBED"
    CHANNEL_ERROR = "CHANNEL_ERROR"
    TIMED_OUT = "TIMED_OUT"
    CLOSED = "CLOSED"
    POLLING = "polling"
    STOPPED = "stopped"


@dataclass
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 2.0
    max_delay: float = 15.0
    abnormal_close_window: float = 30.0
    poll_interval: float = 10.0

    def delay(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** attempt, self.max_delay)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.REALTIME_MAX_RETRIES,
            base_delay=settings.REALTIME_RETRY_BASE_SECONDS,
            max_delay=settings.REALTIME_RETRY_MAX_SECONDS,
            abnormal_close_window=settings.REALTIME_ABNORMAL_CLOSE_SECONDS,
            poll_interval=settings.REALTIME_POLL_INTERVAL_SECONDS,
        )


def _normalize_status(status: Any) -> ChannelState | None:
    value = getattr(status, "value", status)
    try:
        return ChannelState(str(value))
    except ValueError:
        return None


def normalize_change(payload: dict, table: str) -> dict:
    """Flatten a postgres_changes payload into {eventType, table, new, old}."""
    data = payload.get("data", payload) if isinstance(payload, dict) else {}
    return {
        "eventType": data.get("type") or data.get("eventType"),
        "table": data.get("table") or table,
        "new": data.get("record") or data.get("new") or {},
        "old": data.get("old_record") or data.get("old") or {},
    }


class RealtimeSubscription:
    def __init__(
        self,
        client: Any,
        table: str,
        on_change: Callable[[dict], None],
        *,
        filter: str | None = None,
        schema: str = "public",
        poller: Poller | None = None,
        cursor_field: str = "updated_at",
        policy: RetryPolicy | None = None,
        on_status: Callable[[dict], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.table = table
        self.filter = filter
        self.schema = schema
        self._on_change = on_change
        self._on_status = on_status
        self._poller = poller
        self._cursor_field = cursor_field
        self.policy = policy or RetryPolicy()
        self._clock = clock
        self._sleep = sleep

        self.state = ChannelState.IDLE
        self.retries = 0
        self.last_success_at: float | None = None
        self.cursor: str | None = None

        self._channel: Any = None
        # Bumped whenever a channel is replaced so late callbacks from it are ignored
        self._generation = 0
        self._retry_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._stopping = False

    # --- Public API ---

    async def start(self, since: str | None = None) -> None:
        self.cursor = since or utc_now_iso()
        await self._subscribe()

    async def reconnect(self) -> None:
        """Reset the retry budget and subscribe again, e.g. after connectivity returns."""
        if self._stopping:
            return
        self._cancel_retry()
        self._stop_polling()
        self.retries = 0
        await self._discard_channel()
        await self._subscribe()

    async def stop(self) -> None:
        if self.state is ChannelState.STOPPED:
            return
        self._stopping = True
        self._cancel_retry()
        self._stop_polling()
        await self._discard_channel()
        self._set_state(ChannelState.STOPPED)

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def status_snapshot(self) -> dict:
        return {
            "table": self.table,
            "state": self.state.value,
            "retries": self.retries,
            "polling": self.polling,
            "last_success_at": self.last_success_at,
        }

    # --- Channel lifecycle ---

    async def _subscribe(self) -> None:
        if self._stopping:
            return
        self._set_state(ChannelState.SUBSCRIBING)
        self._generation += 1
        generation = self._generation

        channel = self._client.channel(f"{self.table}-{uuid.uuid4().hex[:8]}")
        self._channel = channel
        channel.on_postgres_changes(
            "*",
            schema=self.schema,
            table=self.table,
            filter=self.filter,
            callback=self._handle_change,
        )
        try:
            await channel.subscribe(lambda status, err=None: self._handle_status(generation, status, err))
        except Exception as exc:
            self._handle_status(generation, ChannelState.CHANNEL_ERROR, exc)

    async def _discard_channel(self) -> None:
        self._generation += 1
        channel, self._channel = self._channel, None
        if channel is None:
            return
        try:
            await self._client.remove_channel(channel)
        except Exception as exc:
            logger.warning("Failed to remove %s channel: %s", self.table, exc)

    def _handle_status(self, generation: int, status: Any, err: Exception | None = None) -> None:
        if generation != self._generation or self._stopping:
            return
        state = _normalize_status(status)
        if state is None:
            logger.debug("Ignoring unknown %s channel status %r", self.table, status)
            return

        if state is ChannelState.SUBSCRIBED:
            logger.info("%s subscription established", self.table)
            self.retries = 0
            self.last_success_at = self._clock()
            self._stop_polling()
            self._set_state(state)
            return

        if state in (ChannelState.CHANNEL_ERROR, ChannelState.TIMED_OUT):
            logger.warning("%s subscription failed: %s %s", self.table, state.value, err or "")
            self._set_state(state)
            self._schedule_retry()
            return

        if state is ChannelState.CLOSED:
            self._set_state(state)
            since_success = None if self.last_success_at is None else self._clock() - self.last_success_at
            if since_success is not None and since_success < self.policy.abnormal_close_window:
                logger.warning("%s subscription closed %.1fs after subscribing; reconnecting", self.table, since_success)
                self._schedule_retry()
            else:
                logger.info("%s subscription closed", self.table)

    def _schedule_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            return
        if self.retries >= self.policy.max_retries:
            logger.warning("%s subscription exhausted %d retries; falling back to polling", self.table, self.retries)
            self._start_polling()
            return
        delay = self.policy.delay(self.retries)
        logger.info("Retrying %s subscription in %.1fs (attempt %d)", self.table, delay, self.retries + 1)
        self._retry_task = asyncio.create_task(self._retry_after(delay))

    async def _retry_after(self, delay: float) -> None:
        await self._sleep(delay)
        # Cleared first so a failure inside _subscribe can schedule the next attempt
        self._retry_task = None
        self.retries += 1
        await self._discard_channel()
        await self._subscribe()

    def _cancel_retry(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None

    # --- Change delivery ---

    def _advance_cursor(self, row: dict) -> None:
        value = row.get(self._cursor_field)
        if value and timestamp_ms(value) > timestamp_ms(self.cursor):
            self.cursor = value

    def _handle_change(self, payload: dict) -> None:
        change = normalize_change(payload, self.table)
        self._advance_cursor(change["new"])
        self._on_change(change)

    # --- Polling fallback ---

    def _start_polling(self) -> None:
        if self._poller is None:
            logger.warning("No poller configured for %s; change feed is paused", self.table)
            return
        if self.polling:
            return
        self._poll_task = asyncio.create_task(self._poll_loop())
        self._set_state(ChannelState.POLLING)

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    async def poll_once(self) -> int:
        """Fetch rows newer than the cursor and deliver them. Returns the number delivered."""
        try:
            rows = await self._poller(self.cursor)
        except Exception as exc:
            logger.warning("Polling %s failed: %s", self.table, exc)
            return 0
        for row in rows:
            self._advance_cursor(row)
            self._on_change({"eventType": "POLL", "table": self.table, "new": row, "old": {}})
        return len(rows)

    async def _poll_loop(self) -> None:
        while not self._stopping:
            await self.poll_once()
            await self._sleep(self.policy.poll_interval)

    def _set_state(self, state: ChannelState) -> None:
        self.state = state
        if self._on_status is not None:
            self._on_status(self.status_snapshot())
