"""Field mapping between the web client's settings objects and database rows."""

from typing import Any

from floaty.utils.dates import to_iso, utc_now_iso

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048
DEFAULT_VOICE_PROVIDER = "fish-audio"
DEFAULT_VOICE_API_URL = "https://api.fish.audio"
DEFAULT_READING_MODE = "all"
DEFAULT_VOICE_MODEL_VERSION = "speech-1.6"


def _timestamps(data: dict) -> dict:
    return {
        "created_at": to_iso(data.get("createdAt")) or utc_now_iso(),
        "updated_at": to_iso(data.get("updatedAt")) or utc_now_iso(),
    }


# --- Client -> row ---

def llm_config_row(data: dict, user_id: str) -> dict:
    return {
        "id": data.get("id"),
        "user_id": user_id,
        "name": data.get("name"),
        "provider": data.get("provider"),
        "model": data.get("model"),
        "config": {
            "apiKey": data.get("apiKey"),
            "baseUrl": data.get("baseUrl"),
            "proxyUrl": data.get("proxyUrl"),
            "temperature": data.get("temperature"),
            "maxTokens": data.get("maxTokens"),
            "enabled": data.get("enabled"),
        },
        "is_default": False,
        **_timestamps(data),
    }


def ai_role_row(data: dict, user_id: str) -> dict:
    return {
        "id": data.get("id"),
        "user_id": user_id,
        "name": data.get("name"),
        "prompt": data.get("systemPrompt"),
        "avatar": data.get("avatar"),
        "settings": {
            "description": data.get("description"),
            "openingMessages": data.get("openingMessages"),
            "currentOpeningIndex": data.get("currentOpeningIndex"),
            "globalPromptId": data.get("globalPromptId"),
            "voiceModelId": data.get("voiceModelId"),
        },
        **_timestamps(data),
    }


def global_prompt_row(data: dict, user_id: str) -> dict:
    return {
        "id": data.get("id"),
        "user_id": user_id,
        "title": data.get("title"),
        "content": data.get("prompt"),
        "category": data.get("description") or "general",
        **_timestamps(data),
    }


def voice_settings_row(data: dict, user_id: str) -> dict:
    # One row per user, keyed on user_id
    return {
        "user_id": user_id,
        "provider": data.get("provider") or DEFAULT_VOICE_PROVIDER,
        "model": data.get("defaultVoiceModelId") or "default",
        "config": {
            "apiUrl": data.get("apiUrl"),
            "apiKey": data.get("apiKey"),
            "readingMode": data.get("readingMode"),
            "customModels": data.get("customModels"),
            "modelVersion": data.get("modelVersion"),
            "defaultVoiceModelId": data.get("defaultVoiceModelId"),
        },
        "voice_model_id": None,
        "speed": 1.0,
        "pitch": 1.0,
        "volume": 1.0,
        "enabled": True,
        "auto_play": False,
        "updated_at": to_iso(data.get("updated_at")) or utc_now_iso(),
    }


# --- Row -> client ---

def _config(row: dict, key: str = "config") -> dict[str, Any]:
    return row.get(key) or {}


def llm_config_from_row(row: dict) -> dict:
    config = _config(row)
    return {
        "id": row["id"],
        "name": row.get("name"),
        "provider": row.get("provider"),
        "model": row.get("model"),
        "apiKey": config.get("apiKey") or "",
        "baseUrl": config.get("baseUrl") or "",
        "proxyUrl": config.get("proxyUrl") or "",
        "temperature": config.get("temperature") or DEFAULT_TEMPERATURE,
        "maxTokens": config.get("maxTokens") or DEFAULT_MAX_TOKENS,
        "enabled": config.get("enabled") or False,
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def ai_role_from_row(row: dict) -> dict:
    settings = _config(row, "settings")
    return {
        "id": row["id"],
        "name": row.get("name"),
        "systemPrompt": row.get("prompt"),
        "avatar": row.get("avatar"),
        "description": settings.get("description") or "",
        "openingMessages": settings.get("openingMessages") or [],
        "currentOpeningIndex": settings.get("currentOpeningIndex") or 0,
        "globalPromptId": settings.get("globalPromptId") or "",
        "voiceModelId": settings.get("voiceModelId") or "",
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def global_prompt_from_row(row: dict) -> dict:
    return {
        "id": row["id"],
        "title": row.get("title"),
        "prompt": row.get("content"),
        "description": row.get("category"),
        "createdAt": row.get("created_at"),
        "updatedAt": row.get("updated_at"),
    }


def voice_settings_from_row(row: dict) -> dict:
    config = _config(row)
    return {
        "provider": row.get("provider") or DEFAULT_VOICE_PROVIDER,
        "apiUrl": config.get("apiUrl") or DEFAULT_VOICE_API_URL,
        "apiKey": config.get("apiKey") or "",
        "readingMode": config.get("readingMode") or DEFAULT_READING_MODE,
        "customModels": config.get("customModels") or [],
        "modelVersion": config.get("modelVersion") or DEFAULT_VOICE_MODEL_VERSION,
        "defaultVoiceModelId": config.get("defaultVoiceModelId") or "",
    }
