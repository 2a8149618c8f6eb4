"""Data access layer for knowledge bases, their entries and role bindings."""

from typing import Any

from floaty.db.client import get_supabase
from floaty.db.models import AI_ROLES, KNOWLEDGE_BASES, KNOWLEDGE_ENTRIES


# --- Knowledge bases ---

def create_base(user_id: str, data: dict[str, Any]) -> dict:
    db = get_supabase()
    result = db.table(KNOWLEDGE_BASES).insert({"user_id": user_id, **data}).execute()
    return result.data[0]


def list_bases(user_id: str) -> list[dict]:
    db = get_supabase()
    result = (
        db.table(KNOWLEDGE_BASES)
        .select("*")
        .eq("user_id", user_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data


def get_base(base_id: str) -> dict | None:
    db = get_supabase()
    result = db.table(KNOWLEDGE_BASES).select("*").eq("id", base_id).execute()
    return result.data[0] if result.data else None


def update_base(base_id: str, data: dict[str, Any]) -> dict | None:
    db = get_supabase()
    result = db.table(KNOWLEDGE_BASES).update(data).eq("id", base_id).execute()
    return result.data[0] if result.data else None


def delete_base(base_id: str) -> None:
    db = get_supabase()
    db.table(KNOWLEDGE_ENTRIES).delete().eq("knowledge_base_id", base_id).execute()
    db.table(AI_ROLES).update({"knowledge_base_id": None}).eq("knowledge_base_id", base_id).execute()
    db.table(KNOWLEDGE_BASES).delete().eq("id", base_id).execute()


def count_entries(base_ids: list[str]) -> dict[str, int]:
    if not base_ids:
        return {}
    db = get_supabase()
    result = db.table(KNOWLEDGE_ENTRIES).select("knowledge_base_id").in_("knowledge_base_id", base_ids).execute()
    counts = dict.fromkeys(base_ids, 0)
    for row in result.data:
        counts[row["knowledge_base_id"]] += 1
    return counts


# --- Entries ---

def list_entries(base_id: str) -> list[dict]:
    db = get_supabase()
    result = (
        db.table(KNOWLEDGE_ENTRIES)
        .select("*")
        .eq("knowledge_base_id", base_id)
        .order("created_at", desc=True)
        .execute()
    )
    return result.data


def get_entry(entry_id: str) -> dict | None:
    db = get_supabase()
    result = db.table(KNOWLEDGE_ENTRIES).select("*").eq("id", entry_id).execute()
    return result.data[0] if result.data else None


def insert_entries(rows: list[dict]) -> list[dict]:
    db = get_supabase()
    return db.table(KNOWLEDGE_ENTRIES).insert(rows).execute().data


def update_entry(entry_id: str, data: dict[str, Any]) -> dict | None:
    db = get_supabase()
    result = db.table(KNOWLEDGE_ENTRIES).update(data).eq("id", entry_id).execute()
    return result.data[0] if result.data else None


def delete_entry(entry_id: str) -> None:
    db = get_supabase()
    db.table(KNOWLEDGE_ENTRIES).delete().eq("id", entry_id).execute()


# --- Role binding ---

def get_role(role_id: str) -> dict | None:
    db = get_supabase()
    result = db.table(AI_ROLES).select("id, user_id, knowledge_base_id").eq("id", role_id).execute()
    return result.data[0] if result.data else None


def set_role_base(role_id: str, base_id: str | None) -> None:
    db = get_supabase()
    db.table(AI_ROLES).update({"knowledge_base_id": base_id}).eq("id", role_id).execute()
