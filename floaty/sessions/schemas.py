"""Pydantic schemas for chat session requests and responses."""

from typing import Any

from pydantic import BaseModel, Field

# Timestamps from the web client arrive as ISO strings or epoch milliseconds
Timestamp = str | float | None


# --- Requests ---

class CreateSessionRequest(BaseModel):
    id: str | None = None
    title: str | None = None
    is_hidden: bool = False
    is_pinned: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class UpdateSessionRequest(BaseModel):
    title: str | None = None
    is_hidden: bool | None = None
    is_pinned: bool | None = None
    metadata: dict[str, Any] | None = None


class ClientMessage(BaseModel):
    """A message as the web client stores it locally."""

    id: str
    role: str
    content: str = ""
    reasoning_content: str | None = Field(None, alias="reasoningContent")
    timestamp: Timestamp = None
    role_id: str | None = Field(None, alias="roleId")
    user_profile_id: str | None = Field(None, alias="userProfileId")

    model_config = {"populate_by_name": True}


class ClientSession(BaseModel):
    """A chat session as the web client stores it locally."""

    id: str
    title: str = ""
    messages: list[ClientMessage] = Field(default_factory=list)
    role_id: str | None = Field(None, alias="roleId")
    model_id: str | None = Field(None, alias="modelId")
    is_hidden: bool = Field(False, alias="isHidden")
    is_pinned: bool = Field(False, alias="isPinned")
    created_at: Timestamp = Field(None, alias="createdAt")
    updated_at: Timestamp = Field(None, alias="updatedAt")

    model_config = {"populate_by_name": True}


class SnapshotRequest(BaseModel):
    sessions: list[ClientSession]


# --- Responses ---

class SessionResponse(BaseModel):
    id: str
    user_id: str
    title: str | None
    is_hidden: bool = False
    is_pinned: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    updated_at: str

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    status: str = "success"
    data: list[SessionResponse]
    page: int
    per_page: int
    total: int
