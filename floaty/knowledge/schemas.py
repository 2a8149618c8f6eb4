"""Pydantic schemas for knowledge base requests."""

from pydantic import BaseModel, Field


# --- Knowledge bases ---

class CreateKnowledgeBaseRequest(BaseModel):
    id: str | None = None
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)


class UpdateKnowledgeBaseRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = Field(None, max_length=2000)


# --- Entries ---

class KnowledgeEntryFields(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    keywords: list[str] = Field(default_factory=list)
    explanation: str = ""


class CreateKnowledgeEntryRequest(KnowledgeEntryFields):
    id: str | None = None


class UpdateKnowledgeEntryRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    keywords: list[str] | None = None
    explanation: str | None = None


class ImportKnowledgeEntriesRequest(BaseModel):
    entries: list[KnowledgeEntryFields] = Field(..., min_length=1, max_length=1000)


# --- Roles and chat ---

class RoleKnowledgeBaseRequest(BaseModel):
    knowledge_base_id: str | None = None


class EnhanceRequest(BaseModel):
    message: str = Field(..., min_length=1)
    knowledge_base_id: str | None = None
    role_id: str | None = None
    system_prompt: str = ""
    max_results: int | None = Field(None, ge=1)
    min_relevance_score: float | None = Field(None, ge=0, le=1)
