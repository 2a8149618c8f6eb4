"""Chat session endpoints: CRUD, snapshot sync, merge and change events."""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import StreamingResponse

from floaty.auth.dependencies import CurrentUser, get_current_user
from floaty.config.settings import get_settings
from floaty.db.client import get_realtime_connector
from floaty.realtime.feed import session_feed
from floaty.sessions import snapshot
from floaty.sessions.schemas import (
    CreateSessionRequest,
    SessionListResponse,
    SnapshotRequest,
    UpdateSessionRequest,
)
from floaty.sessions.service import (
    create_session,
    delete_session,
    get_session,
    list_sessions,
    update_session,
)

router = APIRouter(prefix="/api/v1/sessions", tags=["Sessions"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


@router.post("", status_code=201, summary="Create a chat session", description="Create a new chat session. The id may be supplied by the client.")
async def create(body: CreateSessionRequest, user: CurrentUser = Depends(get_current_user)):
    data = body.model_dump(exclude_none=True)
    session = create_session(user.id, data)
    return {"status": "success", "data": session}


@router.get("", summary="List chat sessions", description="List the authenticated user's sessions, paginated, most recently updated first.")
async def list_all(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    include_hidden: bool = False,
    user: CurrentUser = Depends(get_current_user),
):
    sessions, total = list_sessions(user.id, page, per_page, include_hidden)
    return SessionListResponse(data=sessions, page=page, per_page=per_page, total=total)


@router.get("/snapshot", summary="Download all sessions", description="Every session of the user with its messages, in the web client's shape.")
async def download_snapshot(user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": snapshot.load_snapshot(user.id)}


@router.post("/sync", summary="Upload local sessions", description="Upsert the client's local sessions and messages in batches. Non-UUID ids are replaced and reported in id_map.")
async def upload_snapshot(body: SnapshotRequest, user: CurrentUser = Depends(get_current_user)):
    result = await snapshot.upload_snapshot(user.id, body.sessions)
    return {"status": "success", "data": result}


@router.post("/merge", summary="Merge local and cloud sessions", description="Merge the client's local sessions with the stored ones and return the merged list, newest first.")
async def merge(body: SnapshotRequest, user: CurrentUser = Depends(get_current_user)):
    local = [s.model_dump(by_alias=True) for s in body.sessions]
    merged = snapshot.merge_sessions(local, snapshot.load_snapshot(user.id))
    return {"status": "success", "data": merged}


@router.get("/events", summary="Session change stream", description="Server-Sent Events for changes to the user's chat sessions, with polling fallback.")
async def events(
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    connect: Callable[[], Awaitable[Any]] = Depends(get_realtime_connector),
):
    feed = session_feed(connect, user.id, get_settings())
    return StreamingResponse(feed.stream(request.is_disconnected), media_type="text/event-stream", headers=SSE_HEADERS)


@router.get("/{session_id}", summary="Get a chat session", description="Retrieve a single session with its full message history.")
async def get(session_id: str, user: CurrentUser = Depends(get_current_user)):
    session, messages = get_session(session_id, user.id)
    return {"status": "success", "data": {**session, "messages": messages}}


@router.patch("/{session_id}", summary="Update a chat session", description="Update title, visibility, pin state or metadata.")
async def patch(session_id: str, body: UpdateSessionRequest, user: CurrentUser = Depends(get_current_user)):
    updated = update_session(session_id, user.id, body.model_dump())
    return {"status": "success", "data": updated}


@router.delete("/{session_id}", status_code=204, summary="Delete a chat session", description="Permanently delete a session and all its messages.")
async def delete(session_id: str, user: CurrentUser = Depends(get_current_user)):
    delete_session(session_id, user.id)
