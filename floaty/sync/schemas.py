from pydantic import BaseModel, Field

from floaty.sync.service import SyncType


class SyncItemRequest(BaseModel):
    type: SyncType
    data: dict = Field(default_factory=dict)


class SyncItemsRequest(BaseModel):
    items: list[SyncItemRequest] = Field(..., min_length=1)


class SyncResult(BaseModel):
    success: bool
    synced_items: int
    error: str | None = None


class SyncStatusResponse(BaseModel):
    status: str
    last_sync_time: int | None = None
    queued: int = 0
