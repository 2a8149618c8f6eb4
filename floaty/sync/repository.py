"""Data access layer for the per-user settings tables."""

from floaty.db.client import get_supabase
from floaty.db.models import VOICE_SETTINGS


def upsert(table: str, row: dict, on_conflict: str = "id") -> dict | None:
    db = get_supabase()
    result = db.table(table).upsert(row, on_conflict=on_conflict).execute()
    return result.data[0] if result.data else None


def get_owner(table: str, row_id: str) -> str | None:
    db = get_supabase()
    result = db.table(table).select("user_id").eq("id", row_id).execute()
    return result.data[0]["user_id"] if result.data else None


def list_by_user(table: str, user_id: str) -> list[dict]:
    db = get_supabase()
    return db.table(table).select("*").eq("user_id", user_id).execute().data


def get_voice_settings(user_id: str) -> dict | None:
    db = get_supabase()
    result = db.table(VOICE_SETTINGS).select("*").eq("user_id", user_id).limit(1).execute()
    return result.data[0] if result.data else None
