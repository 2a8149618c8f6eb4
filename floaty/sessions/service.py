"""Business logic for chat sessions with ownership verification."""

from fastapi import HTTPException

from floaty.sessions import repository
from floaty.utils.dates import utc_now_iso

DEFAULT_TITLE = "New chat"


def verify_ownership(session: dict, user_id: str) -> None:
    if session["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="You do not have access to this chat session")


def get_owned_session(session_id: str, user_id: str) -> dict:
    session = repository.get_by_id(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Chat session not found")
    verify_ownership(session, user_id)
    return session


def create_session(user_id: str, data: dict) -> dict:
    if data.get("id") and repository.get_by_id(data["id"]):
        raise HTTPException(status_code=409, detail="Chat session already exists")
    data.setdefault("title", DEFAULT_TITLE)
    if not data["title"]:
        data["title"] = DEFAULT_TITLE
    return repository.create(user_id, data)


def list_sessions(user_id: str, page: int, per_page: int, include_hidden: bool = False) -> tuple[list[dict], int]:
    return repository.list_by_user(user_id, page, per_page, include_hidden)


def get_session(session_id: str, user_id: str) -> tuple[dict, list[dict]]:
    session = get_owned_session(session_id, user_id)
    return session, repository.get_messages(session_id)


def update_session(session_id: str, user_id: str, data: dict) -> dict:
    session = get_owned_session(session_id, user_id)
    # Filter out None values
    update_data = {k: v for k, v in data.items() if v is not None}
    if not update_data:
        return session
    update_data["updated_at"] = utc_now_iso()
    return repository.update(session_id, update_data)


def touch_session(session_id: str) -> None:
    repository.update(session_id, {"updated_at": utc_now_iso()})


def delete_session(session_id: str, user_id: str) -> None:
    get_owned_session(session_id, user_id)
    repository.delete(session_id)
