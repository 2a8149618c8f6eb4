"""Client snapshot mapping, batched upload and local/cloud merge.

The web client keeps sessions and their messages locally, keyed by ids it
generated itself. Uploads normalize those ids to UUIDs, write sessions and
messages in batches, and retry transient failures with exponential backoff.
"""

import asyncio
import logging
import re
import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from fastapi import HTTPException

from floaty.sessions import repository
from floaty.sessions.schemas import ClientMessage, ClientSession
from floaty.utils.dates import timestamp_ms, to_iso, utc_now_iso
from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

SESSION_BATCH_SIZE = 50
MESSAGE_BATCH_SIZE = 100

MAX_SYNC_RETRIES = 3
RETRY_BASE_SECONDS = 2.0
RETRY_MAX_SECONDS = 15.0

DEFAULT_ROLE_ID = "default-assistant"
DEFAULT_MODEL_ID = "gpt-3.5-turbo"

_UUID_V4 = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

_NON_RETRYABLE = ("jwt", "not authenticated", "permission denied")
_RETRYABLE = ("timeout", "timed out", "network", "fetch", "connection")


def is_valid_uuid(value: str) -> bool:
    return bool(_UUID_V4.match(value or ""))


def normalize_id(value: str, id_map: dict[str, str]) -> str:
    if is_valid_uuid(value):
        return value
    if value not in id_map:
        id_map[value] = str(uuid.uuid4())
    return id_map[value]


# --- Row mapping ---

def to_session_row(session: ClientSession, user_id: str) -> dict:
    return {
        "id": session.id,
        "user_id": user_id,
        "title": session.title,
        "is_hidden": session.is_hidden,
        "is_pinned": session.is_pinned,
        "metadata": {
            "roleId": session.role_id,
            "modelId": session.model_id,
            "createdAt": to_iso(session.created_at),
            "updatedAt": to_iso(session.updated_at),
        },
        "updated_at": utc_now_iso(),
    }


def to_message_row(message: ClientMessage, session_id: str) -> dict:
    return {
        "id": message.id,
        "session_id": session_id,
        "role": message.role,
        "content": message.content,
        "reasoning_content": message.reasoning_content or None,
        "metadata": {
            "timestamp": to_iso(message.timestamp),
            "roleId": message.role_id,
            "userProfileId": message.user_profile_id,
        },
        "created_at": to_iso(message.timestamp) or utc_now_iso(),
    }


def to_client_message(row: dict) -> dict:
    metadata = row.get("metadata") or {}
    message = {
        "id": row["id"],
        "role": row["role"],
        "content": row.get("content") or "",
        "timestamp": to_iso(metadata.get("timestamp") or row.get("created_at")),
        "roleId": metadata.get("roleId"),
        "userProfileId": metadata.get("userProfileId"),
    }
    if row.get("reasoning_content"):
        message["reasoningContent"] = row["reasoning_content"]
    return message


def to_client_session(row: dict, messages: list[dict]) -> dict:
    metadata = row.get("metadata") or {}
    return {
        "id": row["id"],
        "title": row.get("title") or "",
        "messages": [to_client_message(m) for m in messages],
        "roleId": metadata.get("roleId") or DEFAULT_ROLE_ID,
        "modelId": metadata.get("modelId") or DEFAULT_MODEL_ID,
        "isHidden": bool(row.get("is_hidden")),
        "isPinned": bool(row.get("is_pinned")),
        "createdAt": to_iso(metadata.get("createdAt") or row.get("created_at")),
        "updatedAt": to_iso(metadata.get("updatedAt") or row.get("updated_at")),
    }


def load_snapshot(user_id: str) -> list[dict]:
    """All of a user's sessions with messages, in the client's shape."""
    sessions = repository.list_all_by_user(user_id)
    messages = repository.get_messages_for_sessions([s["id"] for s in sessions])
    by_session: dict[str, list[dict]] = {}
    for message in messages:
        by_session.setdefault(message["session_id"], []).append(message)
    return [to_client_session(s, by_session.get(s["id"], [])) for s in sessions]


# --- Merge ---

def merge_sessions(local: list[dict], cloud: list[dict]) -> list[dict]:
    """Merge client-shaped sessions, newest first.

    A local session with more messages than its cloud copy has unsynced
    messages and wins. Otherwise the cloud copy wins only when strictly newer.
    """
    merged: dict[str, dict] = {s["id"]: s for s in local}

    for cloud_session in cloud:
        local_session = merged.get(cloud_session["id"])
        if local_session is None:
            merged[cloud_session["id"]] = cloud_session
            continue

        local_count = len(local_session.get("messages") or [])
        cloud_count = len(cloud_session.get("messages") or [])
        if local_count > cloud_count:
            continue
        if timestamp_ms(cloud_session.get("updatedAt")) > timestamp_ms(local_session.get("updatedAt")):
            merged[cloud_session["id"]] = cloud_session

    return sorted(merged.values(), key=lambda s: timestamp_ms(s.get("updatedAt")), reverse=True)


# --- Upload ---

def is_transient(exc: Exception) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    message = str(exc).lower()
    if any(marker in message for marker in _NON_RETRYABLE):
        return False
    return any(marker in message for marker in _RETRYABLE)


def retry_delay(attempt: int) -> float:
    return min(RETRY_BASE_SECONDS * 2 ** attempt, RETRY_MAX_SECONDS)


async def _with_retry(
    label: str,
    operation: Callable[[], Any],
    sleep: Callable[[float], Awaitable[None]],
) -> Any:
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= MAX_SYNC_RETRIES or not is_transient(exc):
                logger.error("%s failed after %d attempt(s): %s", label, attempt + 1, exc)
                raise APIError(502, f"{label} failed", details=str(exc))
            delay = retry_delay(attempt)
            logger.warning("%s failed (%s); retrying in %.1fs", label, exc, delay)
            await sleep(delay)
            attempt += 1


def _batches(rows: list[dict], size: int) -> list[list[dict]]:
    return [rows[i:i + size] for i in range(0, len(rows), size)]


def _check_ownership(user_id: str, sessions: list[ClientSession]) -> None:
    session_ids = [s.id for s in sessions]
    owners = repository.get_owners(session_ids)
    if any(owner != user_id for owner in owners.values()):
        raise HTTPException(status_code=403, detail="Snapshot contains sessions owned by another user")

    # Existing message ids must already belong to one of this user's sessions
    message_ids = [m.id for s in sessions for m in s.messages]
    existing = repository.get_message_sessions(message_ids)
    unknown = sorted({sid for sid in existing.values() if sid not in owners})
    owners.update(repository.get_owners(unknown))
    if any(owners.get(sid) != user_id for sid in existing.values()):
        raise HTTPException(status_code=403, detail="Snapshot contains messages owned by another user")


def normalize_ids(sessions: list[ClientSession]) -> tuple[list[ClientSession], dict]:
    """Replace non-UUID ids with fresh uuid4s.

    Session ids share one scope. Message ids are scoped to the session they
    arrive in, so the same legacy message id in two sessions maps to two
    different UUIDs. The returned map is
    ``{"sessions": {old: new}, "messages": {old_session_id: {old: new}}}``.
    """
    session_ids: dict[str, str] = {}
    message_ids: dict[str, dict[str, str]] = {}
    normalized: list[ClientSession] = []
    for session in sessions:
        scope = message_ids.setdefault(session.id, {})
        messages = [m.model_copy(update={"id": normalize_id(m.id, scope)}) for m in session.messages]
        normalized.append(session.model_copy(update={"id": normalize_id(session.id, session_ids), "messages": messages}))
    return normalized, {
        "sessions": session_ids,
        "messages": {sid: ids for sid, ids in message_ids.items() if ids},
    }


def _unique(rows: list[dict]) -> list[dict]:
    # One upsert statement cannot touch the same key twice; the last copy wins
    by_id: dict[str, dict] = {}
    for row in rows:
        by_id.pop(row["id"], None)
        by_id[row["id"]] = row
    return list(by_id.values())


async def upload_snapshot(
    user_id: str,
    sessions: list[ClientSession],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """Upsert a client snapshot. Returns counts and the old-to-new id map."""
    normalized, id_map = normalize_ids(sessions)

    _check_ownership(user_id, normalized)

    session_rows = _unique([to_session_row(s, user_id) for s in normalized])
    message_rows = _unique([to_message_row(m, s.id) for s in normalized for m in s.messages])

    session_batches = _batches(session_rows, SESSION_BATCH_SIZE)
    for index, batch in enumerate(session_batches, start=1):
        await _with_retry(
            f"Session batch {index}/{len(session_batches)}",
            lambda batch=batch: repository.upsert_sessions(batch),
            sleep,
        )

    message_batches = _batches(message_rows, MESSAGE_BATCH_SIZE)
    for index, batch in enumerate(message_batches, start=1):
        await _with_retry(
            f"Message batch {index}/{len(message_batches)}",
            lambda batch=batch: repository.upsert_messages(batch),
            sleep,
        )

    logger.info(
        "Uploaded snapshot for user %s: %d sessions, %d messages, %d ids remapped",
        user_id, len(session_rows), len(message_rows),
        len(id_map["sessions"]) + sum(len(ids) for ids in id_map["messages"].values()),
    )
    return {
        "synced_sessions": len(session_rows),
        "synced_messages": len(message_rows),
        "id_map": id_map,
    }
