"""Message business logic scoped to a chat session."""

import logging

from fastapi import HTTPException

from floaty.db.client import get_supabase
from floaty.db.models import MESSAGES
from floaty.sessions.service import touch_session

logger = logging.getLogger(__name__)


def list_messages(session_id: str, page: int, per_page: int) -> tuple[list[dict], int]:
    db = get_supabase()
    offset = (page - 1) * per_page

    count_result = db.table(MESSAGES).select("id", count="exact").eq("session_id", session_id).execute()
    total = count_result.count or 0

    result = (
        db.table(MESSAGES)
        .select("*")
        .eq("session_id", session_id)
        .order("created_at")
        .range(offset, offset + per_page - 1)
        .execute()
    )
    return result.data, total


def list_created_since(session_id: str, since: str | None) -> list[dict]:
    db = get_supabase()
    query = db.table(MESSAGES).select("*").eq("session_id", session_id)
    if since:
        query = query.gt("created_at", since)
    return query.order("created_at").execute().data


def add_message(session_id: str, data: dict) -> dict:
    db = get_supabase()
    row = {"session_id": session_id, **data}
    result = db.table(MESSAGES).insert(row).execute()
    touch_session(session_id)
    return result.data[0]


def delete_message(session_id: str, message_id: str) -> None:
    db = get_supabase()
    result = db.table(MESSAGES).delete().eq("id", message_id).eq("session_id", session_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Message not found")
    logger.info("Deleted message %s from session %s", message_id, session_id)
