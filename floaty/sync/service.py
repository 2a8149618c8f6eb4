"""Per-user queue that writes settings changes to the database.

Items are processed first in, first out. A failing item goes back to the
head of the queue after a linear backoff and is dropped once its retries
are spent; the run then finishes with an ``error`` status listing every
dropped item.
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from floaty.db.models import AI_ROLES, GLOBAL_PROMPTS, LLM_CONFIGS, VOICE_SETTINGS
from floaty.sync import mappers, repository
from floaty.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 1.0
# Services with nothing queued and no listeners are dropped after this long unused
IDLE_SERVICE_SECONDS = 600.0


class SyncType(str, Enum):
    LLM_CONFIG = "llm_config"
    AI_ROLE = "ai_role"
    GLOBAL_PROMPT = "global_prompt"
    VOICE_SETTINGS = "voice_settings"


class SyncStatus(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


@dataclass
class SyncItem:
    type: str
    data: dict
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))
    retries: int = 0


# type -> (table, row mapper, upsert conflict column)
_TABLES: dict[str, tuple[str, Callable[[dict, str], dict], str]] = {
    SyncType.LLM_CONFIG.value: (LLM_CONFIGS, mappers.llm_config_row, "id"),
    SyncType.AI_ROLE.value: (AI_ROLES, mappers.ai_role_row, "id"),
    SyncType.GLOBAL_PROMPT.value: (GLOBAL_PROMPTS, mappers.global_prompt_row, "id"),
    SyncType.VOICE_SETTINGS.value: (VOICE_SETTINGS, mappers.voice_settings_row, "user_id"),
}


class DataSyncService:
    def __init__(
        self,
        user_id: str,
        *,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.user_id = user_id
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep
        self.queue: deque[SyncItem] = deque()
        self.status = SyncStatus.IDLE
        self.last_sync_time: int | None = None
        self._callbacks: list[Callable[[SyncStatus], None]] = []
        self.last_used = time.monotonic()

    def on_status_change(self, callback: Callable[[SyncStatus], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def _set_status(self, status: SyncStatus) -> None:
        self.status = status
        for callback in list(self._callbacks):
            try:
                callback(status)
            except Exception:
                logger.exception("Sync status callback failed for user %s", self.user_id)

    def enqueue(self, sync_type: str, data: dict) -> SyncItem:
        item = SyncItem(type=str(getattr(sync_type, "value", sync_type)), data={**data, "updated_at": utc_now_iso()})
        self.queue.append(item)
        return item

    async def queue_sync(self, sync_type: str, data: dict) -> dict | None:
        """Enqueue one change and run the queue unless a run is already in progress."""
        self.enqueue(sync_type, data)
        if self.status is SyncStatus.SYNCING:
            return None
        return await self.process()

    async def process(self) -> dict:
        if self.status is SyncStatus.SYNCING:
            # The running loop drains anything queued meanwhile
            return {"success": True, "synced_items": 0}
        if not self.queue:
            return {"success": True, "synced_items": 0}

        synced = 0
        errors: list[str] = []
        drained = False
        try:
            self._set_status(SyncStatus.SYNCING)
            while self.queue:
                # The item stays at the head until it is written or given up
                item = self.queue[0]
                try:
                    await asyncio.to_thread(self._write, item)
                except Exception as exc:
                    if item.retries < self.max_retries:
                        item.retries += 1
                        logger.warning("Sync of %s failed (attempt %d): %s", item.type, item.retries, exc)
                        await self._sleep(self.retry_delay * item.retries)
                        continue
                    logger.error("Sync of %s gave up after %d retries: %s", item.type, item.retries, exc)
                    errors.append(f"{item.type}: {exc}")
                else:
                    synced += 1
                if self.queue and self.queue[0] is item:
                    self.queue.popleft()
            drained = True
        finally:
            if not drained and self.status is SyncStatus.SYNCING:
                # Interrupted before the queue drained; the next run resumes it
                logger.warning("Sync run for user %s interrupted with %d item(s) queued", self.user_id, len(self.queue))
                self._set_status(SyncStatus.ERROR)

        if errors:
            self._set_status(SyncStatus.ERROR)
            return {"success": False, "error": "; ".join(errors), "synced_items": synced}

        self.last_sync_time = int(time.time() * 1000)
        self._set_status(SyncStatus.SYNCED)
        logger.info("Synced %d settings items for user %s", synced, self.user_id)
        return {"success": True, "synced_items": synced}

    def _write(self, item: SyncItem) -> None:
        if item.type not in _TABLES:
            raise ValueError(f"Unknown sync type: {item.type}")
        table, to_row, on_conflict = _TABLES[item.type]
        row = to_row(item.data, self.user_id)
        if on_conflict == "id":
            if not row.get("id"):
                raise ValueError("Missing id")
            owner = repository.get_owner(table, row["id"])
            if owner is not None and owner != self.user_id:
                raise PermissionError(f"{table} row {row['id']} belongs to another user")
        repository.upsert(table, row, on_conflict=on_conflict)

    def clear_queue(self) -> None:
        self.queue.clear()
        self._set_status(SyncStatus.IDLE)

    async def pull_from_cloud(self) -> dict[str, Any]:
        llm_configs, ai_roles, global_prompts, voice = await asyncio.gather(
            asyncio.to_thread(repository.list_by_user, LLM_CONFIGS, self.user_id),
            asyncio.to_thread(repository.list_by_user, AI_ROLES, self.user_id),
            asyncio.to_thread(repository.list_by_user, GLOBAL_PROMPTS, self.user_id),
            asyncio.to_thread(repository.get_voice_settings, self.user_id),
        )
        return {
            "llmConfigs": [mappers.llm_config_from_row(row) for row in llm_configs],
            "aiRoles": [mappers.ai_role_from_row(row) for row in ai_roles],
            "globalPrompts": [mappers.global_prompt_from_row(row) for row in global_prompts],
            "voiceSettings": mappers.voice_settings_from_row(voice) if voice else None,
        }

    def status_snapshot(self) -> dict:
        return {
            "status": self.status.value,
            "last_sync_time": self.last_sync_time,
            "queued": len(self.queue),
        }


_services: dict[str, DataSyncService] = {}


def _is_idle(service: DataSyncService, now: float) -> bool:
    return (
        not service.queue
        and service.status is not SyncStatus.SYNCING
        and not service._callbacks
        and now - service.last_used > IDLE_SERVICE_SECONDS
    )


def get_sync_service(user_id: str) -> DataSyncService:
    now = time.monotonic()
    for key in [k for k, s in _services.items() if k != user_id and _is_idle(s, now)]:
        del _services[key]
    if user_id not in _services:
        _services[user_id] = DataSyncService(user_id)
    service = _services[user_id]
    service.last_used = now
    return service


def reset_services() -> None:
    _services.clear()
