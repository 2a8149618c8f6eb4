"""Message endpoints: list, append, delete and change events for one session."""

from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import StreamingResponse

from floaty.auth.dependencies import CurrentUser, get_current_user
from floaty.config.settings import get_settings
from floaty.db.client import get_realtime_connector
from floaty.messages.schemas import CreateMessageRequest, MessageListResponse
from floaty.messages.service import add_message, delete_message, list_messages
from floaty.realtime.feed import message_feed
from floaty.sessions.routes import SSE_HEADERS
from floaty.sessions.service import get_owned_session

router = APIRouter(prefix="/api/v1/sessions/{session_id}", tags=["Messages"])


@router.get("/messages", summary="List messages", description="Messages of a session in creation order, paginated.")
async def list_all(
    session_id: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    user: CurrentUser = Depends(get_current_user),
):
    get_owned_session(session_id, user.id)
    messages, total = list_messages(session_id, page, per_page)
    return MessageListResponse(data=messages, page=page, per_page=per_page, total=total)


@router.post("/messages", status_code=201, summary="Append a message", description="Store a message in the session and bump the session's updated_at.")
async def create(session_id: str, body: CreateMessageRequest, user: CurrentUser = Depends(get_current_user)):
    get_owned_session(session_id, user.id)
    message = add_message(session_id, body.model_dump(exclude_none=True))
    return {"status": "success", "data": message}


@router.delete("/messages/{message_id}", status_code=204, summary="Delete a message")
async def delete(session_id: str, message_id: str, user: CurrentUser = Depends(get_current_user)):
    get_owned_session(session_id, user.id)
    delete_message(session_id, message_id)


@router.get("/events", summary="Message change stream", description="Server-Sent Events for new or changed messages in the session, with polling fallback.")
async def events(
    session_id: str,
    request: Request,
    user: CurrentUser = Depends(get_current_user),
    connect: Callable[[], Awaitable[Any]] = Depends(get_realtime_connector),
):
    get_owned_session(session_id, user.id)
    feed = message_feed(connect, session_id, get_settings())
    return StreamingResponse(feed.stream(request.is_disconnected), media_type="text/event-stream", headers=SSE_HEADERS)
