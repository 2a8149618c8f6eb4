"""Data access layer for chat sessions."""

from typing import Any

from floaty.db.client import get_supabase
from floaty.db.models import CHAT_SESSIONS, MESSAGES


def create(user_id: str, data: dict[str, Any]) -> dict:
    db = get_supabase()
    row = {"user_id": user_id, **data}
    result = db.table(CHAT_SESSIONS).insert(row).execute()
    return result.data[0]


def list_by_user(user_id: str, page: int = 1, per_page: int = 20, include_hidden: bool = False) -> tuple[list[dict], int]:
    db = get_supabase()
    offset = (page - 1) * per_page

    count_query = db.table(CHAT_SESSIONS).select("id", count="exact").eq("user_id", user_id)
    page_query = db.table(CHAT_SESSIONS).select("*").eq("user_id", user_id)
    if not include_hidden:
        count_query = count_query.eq("is_hidden", False)
        page_query = page_query.eq("is_hidden", False)

    total = count_query.execute().count or 0
    result = (
        page_query
        .order("updated_at", desc=True)
        .range(offset, offset + per_page - 1)
        .execute()
    )
    return result.data, total


def list_all_by_user(user_id: str) -> list[dict]:
    db = get_supabase()
    result = (
        db.table(CHAT_SESSIONS)
        .select("*")
        .eq("user_id", user_id)
        .order("updated_at", desc=True)
        .execute()
    )
    return result.data


def list_updated_since(user_id: str, since: str | None) -> list[dict]:
    db = get_supabase()
    query = db.table(CHAT_SESSIONS).select("*").eq("user_id", user_id)
    if since:
        query = query.gt("updated_at", since)
    return query.order("updated_at").execute().data


def get_by_id(session_id: str) -> dict | None:
    db = get_supabase()
    result = db.table(CHAT_SESSIONS).select("*").eq("id", session_id).execute()
    return result.data[0] if result.data else None


def get_messages(session_id: str) -> list[dict]:
    db = get_supabase()
    result = (
        db.table(MESSAGES)
        .select("*")
        .eq("session_id", session_id)
        .order("created_at")
        .execute()
    )
    return result.data


def get_messages_for_sessions(session_ids: list[str]) -> list[dict]:
    if not session_ids:
        return []
    db = get_supabase()
    result = (
        db.table(MESSAGES)
        .select("*")
        .in_("session_id", session_ids)
        .order("created_at")
        .execute()
    )
    return result.data


def update(session_id: str, data: dict[str, Any]) -> dict | None:
    db = get_supabase()
    result = db.table(CHAT_SESSIONS).update(data).eq("id", session_id).execute()
    return result.data[0] if result.data else None


def delete(session_id: str) -> bool:
    db = get_supabase()
    db.table(MESSAGES).delete().eq("session_id", session_id).execute()
    result = db.table(CHAT_SESSIONS).delete().eq("id", session_id).execute()
    return bool(result.data)


def upsert_sessions(rows: list[dict]) -> list[dict]:
    db = get_supabase()
    return db.table(CHAT_SESSIONS).upsert(rows, on_conflict="id").execute().data


def upsert_messages(rows: list[dict]) -> list[dict]:
    db = get_supabase()
    return db.table(MESSAGES).upsert(rows, on_conflict="id").execute().data


def get_owners(session_ids: list[str]) -> dict[str, str]:
    """Map existing session ids to their user_id."""
    if not session_ids:
        return {}
    db = get_supabase()
    result = db.table(CHAT_SESSIONS).select("id, user_id").in_("id", session_ids).execute()
    return {row["id"]: row["user_id"] for row in result.data}


def get_message_sessions(message_ids: list[str]) -> dict[str, str]:
    """Map existing message ids to their session_id."""
    if not message_ids:
        return {}
    db = get_supabase()
    result = db.table(MESSAGES).select("id, session_id").in_("id", message_ids).execute()
    return {row["id"]: row["session_id"] for row in result.data}
