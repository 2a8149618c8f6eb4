"""Pydantic schemas for message requests and responses."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class CreateMessageRequest(BaseModel):
    id: str | None = None
    role: Literal["user", "assistant", "system"]
    content: str
    reasoning_content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    id: str
    session_id: str
    role: str
    content: str
    reasoning_content: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: str

    model_config = {"from_attributes": True}


class MessageListResponse(BaseModel):
    status: str = "success"
    data: list[MessageResponse]
    page: int
    per_page: int
    total: int
