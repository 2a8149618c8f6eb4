"""Business logic for knowledge bases with ownership verification."""

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable

from fastapi import HTTPException

from floaty.knowledge import enhancement, repository
from floaty.utils.dates import utc_now_iso

logger = logging.getLogger(__name__)

# A role created on the client may still be in the settings sync queue
ROLE_LOOKUP_ATTEMPTS = 3
ROLE_LOOKUP_DELAY_SECONDS = 1.0

ENTRY_CACHE_SECONDS = 300.0

_UUID = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)

# knowledge base id -> (loaded at, entries)
_entry_cache: dict[str, tuple[float, list[dict]]] = {}


def cached_entries(base_id: str) -> list[dict]:
    now = time.monotonic()
    cached = _entry_cache.get(base_id)
    if cached and now - cached[0] < ENTRY_CACHE_SECONDS:
        return cached[1]
    entries = repository.list_entries(base_id)
    _entry_cache[base_id] = (now, entries)
    return entries


def forget_entries(base_id: str | None = None) -> None:
    if base_id is None:
        _entry_cache.clear()
    else:
        _entry_cache.pop(base_id, None)


# --- Knowledge bases ---

def get_owned_base(base_id: str, user_id: str) -> dict:
    base = repository.get_base(base_id)
    if not base:
        raise HTTPException(status_code=404, detail="Knowledge base not found")
    if base["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="You do not have access to this knowledge base")
    return base


def list_bases(user_id: str) -> list[dict]:
    return repository.list_bases(user_id)


def base_stats(user_id: str) -> list[dict]:
    bases = repository.list_bases(user_id)
    counts = repository.count_entries([b["id"] for b in bases])
    return [
        {"id": b["id"], "name": b["name"], "entryCount": counts.get(b["id"], 0), "lastUpdated": b.get("updated_at")}
        for b in bases
    ]


def create_base(user_id: str, data: dict) -> dict:
    if data.get("id") and repository.get_base(data["id"]):
        raise HTTPException(status_code=409, detail="Knowledge base already exists")
    data.setdefault("description", "")
    return repository.create_base(user_id, data)


def update_base(base_id: str, user_id: str, data: dict) -> dict:
    base = get_owned_base(base_id, user_id)
    update_data = {k: v for k, v in data.items() if v is not None}
    if not update_data:
        return base
    update_data["updated_at"] = utc_now_iso()
    return repository.update_base(base_id, update_data)


def delete_base(base_id: str, user_id: str) -> None:
    get_owned_base(base_id, user_id)
    repository.delete_base(base_id)
    forget_entries(base_id)
    logger.info("Deleted knowledge base %s for user %s", base_id, user_id)


# --- Entries ---

def get_owned_entry(entry_id: str, user_id: str) -> dict:
    entry = repository.get_entry(entry_id)
    if not entry:
        raise HTTPException(status_code=404, detail="Knowledge entry not found")
    get_owned_base(entry["knowledge_base_id"], user_id)
    return entry


def list_entries(base_id: str, user_id: str) -> list[dict]:
    get_owned_base(base_id, user_id)
    return repository.list_entries(base_id)


def add_entries(base_id: str, user_id: str, entries: list[dict]) -> list[dict]:
    """Insert one or many entries and bump the base's ``updated_at``."""
    get_owned_base(base_id, user_id)
    created = repository.insert_entries([{**entry, "knowledge_base_id": base_id} for entry in entries])
    repository.update_base(base_id, {"updated_at": utc_now_iso()})
    forget_entries(base_id)
    return created


def update_entry(entry_id: str, user_id: str, data: dict) -> dict:
    entry = get_owned_entry(entry_id, user_id)
    update_data = {k: v for k, v in data.items() if v is not None}
    if not update_data:
        return entry
    update_data["updated_at"] = utc_now_iso()
    updated = repository.update_entry(entry_id, update_data)
    forget_entries(entry["knowledge_base_id"])
    return updated


def delete_entry(entry_id: str, user_id: str) -> None:
    entry = get_owned_entry(entry_id, user_id)
    repository.delete_entry(entry_id)
    forget_entries(entry["knowledge_base_id"])


def search_entries(base_id: str, user_id: str, keywords: list[str]) -> list[dict]:
    keywords = [k for k in keywords if k.strip()]
    if not keywords:
        return []
    get_owned_base(base_id, user_id)
    return enhancement.match_entries(repository.list_entries(base_id), keywords)


# --- Role binding ---

async def set_role_base(
    role_id: str,
    user_id: str,
    base_id: str | None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """Bind a role to a knowledge base, or unbind it with ``None``."""
    if base_id:
        get_owned_base(base_id, user_id)
    if not _UUID.match(role_id):
        raise HTTPException(status_code=404, detail="AI role not found")

    role = None
    for attempt in range(1, ROLE_LOOKUP_ATTEMPTS + 1):
        role = await asyncio.to_thread(repository.get_role, role_id)
        if role or attempt == ROLE_LOOKUP_ATTEMPTS:
            break
        logger.info("AI role %s not stored yet (attempt %d); retrying", role_id, attempt)
        await sleep(ROLE_LOOKUP_DELAY_SECONDS)

    if not role:
        raise HTTPException(status_code=404, detail="AI role not found")
    if role["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="You do not have access to this AI role")

    repository.set_role_base(role_id, base_id)
    return {"role_id": role_id, "knowledge_base_id": base_id}


def get_role_base(role_id: str, user_id: str) -> dict | None:
    """The knowledge base bound to a role, or None when there is none."""
    if not _UUID.match(role_id):
        return None
    role = repository.get_role(role_id)
    if not role:
        return None
    if role["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="You do not have access to this AI role")
    base_id = role.get("knowledge_base_id")
    if not base_id:
        return None
    base = repository.get_base(base_id)
    if not base or base["user_id"] != user_id:
        logger.warning("AI role %s points at missing knowledge base %s", role_id, base_id)
        return None
    return base


# --- Chat enhancement ---

def enhance_message(
    user_id: str,
    message: str,
    *,
    knowledge_base_id: str | None = None,
    role_id: str | None = None,
    system_prompt: str = "",
    max_results: int | None = None,
    min_relevance_score: float | None = None,
) -> dict:
    """Find knowledge for a message and return the system prompt with it appended."""
    base_id = knowledge_base_id
    if not base_id and role_id:
        base = get_role_base(role_id, user_id)
        base_id = base["id"] if base else None

    entries: list[dict] | None = None
    if base_id:
        get_owned_base(base_id, user_id)
        entries = cached_entries(base_id)

    context = enhancement.enhance(
        message,
        entries,
        enhancement.base_keywords(entries or []),
        max_results=max_results,
        min_relevance_score=min_relevance_score,
    )
    found = sum(len(r["entries"]) for r in context["knowledgeResults"])
    logger.info("Knowledge lookup for base %s: %d keywords, %d entries", base_id, len(context["extractedKeywords"]), found)
    return {
        **context,
        "knowledgeBaseId": base_id,
        "systemPrompt": enhancement.inject_knowledge_context(system_prompt, context),
    }
