"""Settings sync endpoints: queue changes, run the queue, pull stored settings."""

from fastapi import APIRouter, Depends

from floaty.auth.dependencies import CurrentUser, get_current_user
from floaty.sync.schemas import SyncItemsRequest, SyncResult, SyncStatusResponse
from floaty.sync.service import DataSyncService, get_sync_service

router = APIRouter(prefix="/api/v1/sync", tags=["Sync"])


def current_sync_service(user: CurrentUser = Depends(get_current_user)) -> DataSyncService:
    return get_sync_service(user.id)


@router.post("/items", summary="Queue settings changes", description="Queue LLM configs, AI roles, global prompts or voice settings and write them to the database.")
async def queue_items(body: SyncItemsRequest, service: DataSyncService = Depends(current_sync_service)):
    for item in body.items:
        service.enqueue(item.type, item.data)
    result = await service.process()
    return {"status": "success", "data": SyncResult(**result)}


@router.post("/run", summary="Run the sync queue", description="Process whatever is left in the queue, e.g. after an earlier run failed.")
async def run(service: DataSyncService = Depends(current_sync_service)):
    result = await service.process()
    return {"status": "success", "data": SyncResult(**result)}


@router.get("/pull", summary="Pull stored settings", description="All stored settings of the user, mapped to the web client's shape.")
async def pull(service: DataSyncService = Depends(current_sync_service)):
    return {"status": "success", "data": await service.pull_from_cloud()}


@router.get("/status", summary="Sync status")
async def status(service: DataSyncService = Depends(current_sync_service)):
    return {"status": "success", "data": SyncStatusResponse(**service.status_snapshot())}


@router.delete("/queue", status_code=204, summary="Clear the sync queue")
async def clear(service: DataSyncService = Depends(current_sync_service)):
    service.clear_queue()
