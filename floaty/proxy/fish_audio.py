"""Fish Audio API calls: model listing, model lookup, key validation and TTS."""

import logging
from typing import Any

import httpx
import msgpack

from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

SUPPORTED_MODELS = ["speech-1.5", "speech-1.6", "s1"]
DEFAULT_MODEL = "speech-1.6"

TTS_TIMEOUT = 30.0


def _auth(key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {key}"}


def _mask(model_id: str) -> str:
    return model_id[:8] + "..."


async def list_models(client: httpx.AsyncClient, base_url: str, fish_key: str) -> Any:
    try:
        resp = await client.get(f"{base_url}/v1/models", headers=_auth(fish_key))
        resp.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Fish Audio model list failed: %s", exc)
        raise APIError(500, "Failed to fetch model list", details=str(exc))
    return resp.json()


async def get_model_info(client: httpx.AsyncClient, base_url: str, model_id: str, fish_key: str) -> Any:
    logger.info("Fetching model info for %s", _mask(model_id))
    try:
        resp = await client.get(f"{base_url}/model/{model_id}", headers=_auth(fish_key))
    except httpx.TimeoutException:
        logger.error("Model info request timed out for %s", _mask(model_id))
        raise APIError(408, "Request timed out", details="Fish Audio API did not respond in time")
    except httpx.HTTPError as exc:
        logger.error("Model info request failed: %s", exc)
        raise APIError(500, "Failed to fetch model info", details=str(exc))

    if resp.status_code == 404:
        logger.warning("Model does not exist: %s", _mask(model_id))
        raise APIError(404, "Model not found", details="No model matches the given id")
    if resp.is_error:
        logger.error("Fish Audio API error: status=%d reason=%s", resp.status_code, resp.reason_phrase)
        raise APIError(resp.status_code, "Fish Audio API error", error_type="upstream_error", details=resp.reason_phrase)

    data = resp.json()
    logger.info("Model info fetched: %s title=%s", _mask(model_id), data.get("title", "unknown") if isinstance(data, dict) else "unknown")
    return data


async def validate_key(client: httpx.AsyncClient, base_url: str, fish_key: str | None, api_url: str | None = None) -> dict:
    """Check a user's Fish Audio key. Never raises: failures come back as {"valid": False, "error": ...}."""
    if not fish_key or not fish_key.strip():
        return {"valid": False, "error": "No Fish Audio API key provided"}

    url = f"{(api_url or base_url).rstrip('/')}/model"
    try:
        resp = await client.get(url, headers={**_auth(fish_key.strip()), "Content-Type": "application/json"})
    except httpx.TimeoutException:
        logger.error("Key validation timed out")
        return {"valid": False, "error": "Validation timed out, check the network connection"}
    except httpx.ConnectError:
        logger.error("Could not connect to Fish Audio API at %s", url)
        return {"valid": False, "error": "Unable to reach the Fish Audio API"}
    except httpx.HTTPError as exc:
        logger.error("Key validation failed: %s", exc)
        return {"valid": False, "error": "An error occurred during validation"}

    if resp.status_code == 200:
        logger.info("Fish Audio API key validated")
        return {"valid": True}
    if resp.status_code in (401, 403):
        logger.warning("Fish Audio API key rejected: status=%d", resp.status_code)
        return {"valid": False, "error": "API key is invalid or expired"}
    if resp.status_code == 429:
        logger.warning("Fish Audio API rate limited key validation")
        return {"valid": False, "error": "Too many requests, try again later"}

    logger.warning("Fish Audio API key validation failed: status=%d", resp.status_code)
    return {"valid": False, "error": "API key is invalid"}


def resolve_model(model: str | None) -> str:
    return model if model in SUPPORTED_MODELS else DEFAULT_MODEL


def build_tts_payload(
    text: str,
    format: str = "mp3",
    mp3_bitrate: int = 128,
    reference_id: str | None = None,
    normalize: bool = True,
    latency: str = "normal",
    chunk_length: int = 200,
) -> dict:
    return {
        "text": text,
        "chunk_length": int(chunk_length),
        "format": format,
        "mp3_bitrate": int(mp3_bitrate),
        "references": [],
        "reference_id": reference_id,
        "normalize": bool(normalize),
        "latency": latency,
    }


async def open_tts_stream(
    client: httpx.AsyncClient,
    base_url: str,
    api_key: str,
    payload: dict,
    model: str,
) -> httpx.Response:
    """Start a TTS request and return the upstream response with its body unread.

    The caller owns the response and must close it once the audio has been relayed.
    """
    preview = payload["text"][:100] + ("..." if len(payload["text"]) > 100 else "")
    logger.info("TTS request: text=%r format=%s reference_id=%s model=%s", preview, payload["format"], payload["reference_id"], model)

    request = client.build_request(
        "POST",
        f"{base_url}/v1/tts",
        content=msgpack.packb(payload),
        headers={
            **_auth(api_key),
            "Content-Type": "application/msgpack",
            "model": model,
        },
        timeout=TTS_TIMEOUT,
    )
    try:
        resp = await client.send(request, stream=True)
    except httpx.TimeoutException:
        raise APIError(408, "Request timed out", details="Fish Audio TTS did not respond in time")
    except httpx.HTTPError as exc:
        logger.error("TTS request failed: %s", exc)
        raise APIError(500, "Internal server error", details=str(exc))

    if resp.is_error:
        reason = resp.reason_phrase
        await resp.aclose()
        logger.error("TTS upstream error: status=%d reason=%s", resp.status_code, reason)
        raise APIError(resp.status_code, "Fish Audio API error", error_type="upstream_error", details=reason)
    return resp
