"""Knowledge base endpoints: bases, entries, role binding and prompt enhancement."""

from fastapi import APIRouter, Depends, Query

from floaty.auth.dependencies import CurrentUser, get_current_user
from floaty.knowledge import service
from floaty.knowledge.schemas import (
    CreateKnowledgeBaseRequest,
    CreateKnowledgeEntryRequest,
    EnhanceRequest,
    ImportKnowledgeEntriesRequest,
    RoleKnowledgeBaseRequest,
    UpdateKnowledgeBaseRequest,
    UpdateKnowledgeEntryRequest,
)

router = APIRouter(prefix="/api/v1/knowledge", tags=["Knowledge"])


# --- Knowledge bases ---

@router.get("/bases", summary="List knowledge bases", description="The user's knowledge bases, newest first.")
async def list_bases(user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.list_bases(user.id)}


@router.post("/bases", status_code=201, summary="Create a knowledge base")
async def create_base(body: CreateKnowledgeBaseRequest, user: CurrentUser = Depends(get_current_user)):
    base = service.create_base(user.id, body.model_dump(exclude_none=True))
    return {"status": "success", "data": base}


@router.get("/bases/stats", summary="Knowledge base statistics", description="Entry count and last update per knowledge base.")
async def stats(user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.base_stats(user.id)}


@router.get("/bases/{base_id}", summary="Get a knowledge base")
async def get_base(base_id: str, user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.get_owned_base(base_id, user.id)}


@router.patch("/bases/{base_id}", summary="Update a knowledge base")
async def update_base(base_id: str, body: UpdateKnowledgeBaseRequest, user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.update_base(base_id, user.id, body.model_dump())}


@router.delete("/bases/{base_id}", status_code=204, summary="Delete a knowledge base", description="Deletes its entries and unbinds any role that uses it.")
async def delete_base(base_id: str, user: CurrentUser = Depends(get_current_user)):
    service.delete_base(base_id, user.id)


# --- Entries ---

@router.get("/bases/{base_id}/entries", summary="List entries", description="Entries of a knowledge base, newest first.")
async def list_entries(base_id: str, user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.list_entries(base_id, user.id)}


@router.post("/bases/{base_id}/entries", status_code=201, summary="Add an entry")
async def create_entry(base_id: str, body: CreateKnowledgeEntryRequest, user: CurrentUser = Depends(get_current_user)):
    (entry,) = service.add_entries(base_id, user.id, [body.model_dump(exclude_none=True)])
    return {"status": "success", "data": entry}


@router.post("/bases/{base_id}/entries/import", status_code=201, summary="Import entries", description="Insert many entries in one request.")
async def import_entries(base_id: str, body: ImportKnowledgeEntriesRequest, user: CurrentUser = Depends(get_current_user)):
    entries = service.add_entries(base_id, user.id, [e.model_dump() for e in body.entries])
    return {"status": "success", "data": entries}


@router.get("/bases/{base_id}/search", summary="Search entries by keyword", description="Entries whose name, keywords or explanation contain any of the keywords.")
async def search(base_id: str, keywords: list[str] = Query(default=[]), user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.search_entries(base_id, user.id, keywords)}


@router.patch("/entries/{entry_id}", summary="Update an entry")
async def update_entry(entry_id: str, body: UpdateKnowledgeEntryRequest, user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.update_entry(entry_id, user.id, body.model_dump())}


@router.delete("/entries/{entry_id}", status_code=204, summary="Delete an entry")
async def delete_entry(entry_id: str, user: CurrentUser = Depends(get_current_user)):
    service.delete_entry(entry_id, user.id)


# --- Roles ---

@router.get("/roles/{role_id}/base", summary="Knowledge base of an AI role", description="The bound knowledge base, or null.")
async def get_role_base(role_id: str, user: CurrentUser = Depends(get_current_user)):
    return {"status": "success", "data": service.get_role_base(role_id, user.id)}


@router.put("/roles/{role_id}/base", summary="Bind an AI role to a knowledge base", description="Pass a null knowledge_base_id to unbind.")
async def set_role_base(role_id: str, body: RoleKnowledgeBaseRequest, user: CurrentUser = Depends(get_current_user)):
    result = await service.set_role_base(role_id, user.id, body.knowledge_base_id)
    return {"status": "success", "data": result}


# --- Chat ---

@router.post("/enhance", summary="Add knowledge to a system prompt", description="Extract keywords from a message, look them up in a knowledge base and append what was found to the system prompt.")
async def enhance(body: EnhanceRequest, user: CurrentUser = Depends(get_current_user)):
    result = service.enhance_message(
        user.id,
        body.message,
        knowledge_base_id=body.knowledge_base_id,
        role_id=body.role_id,
        system_prompt=body.system_prompt,
        max_results=body.max_results,
        min_relevance_score=body.min_relevance_score,
    )
    return {"status": "success", "data": result}
