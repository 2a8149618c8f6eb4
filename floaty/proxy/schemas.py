"""Pydantic schemas for proxy request bodies."""

from pydantic import BaseModel, Field

from floaty.proxy.fish_audio import DEFAULT_MODEL


class ValidateKeyRequest(BaseModel):
    api_key: str | None = Field(None, alias="apiKey")
    api_url: str | None = Field(None, alias="apiUrl")

    model_config = {"populate_by_name": True}


class TTSRequest(BaseModel):
    text: str | None = None
    format: str = "mp3"
    mp3_bitrate: int = 128
    reference_id: str | None = None
    normalize: bool = True
    latency: str = "normal"
    chunk_length: int = 200
    model: str = DEFAULT_MODEL
