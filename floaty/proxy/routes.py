"""Third-party proxy endpoints, all guarded by the shared x-api-key secret."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, Query, Request
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from floaty.auth.dependencies import require_api_key
from floaty.config.settings import get_settings
from floaty.middleware.rate_limiter import client_ip
from floaty.proxy import fish_audio, pages, search
from floaty.proxy.http import HTTPClientFactory, get_http_client_factory
from floaty.proxy.schemas import TTSRequest, ValidateKeyRequest
from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Proxy"], dependencies=[Depends(require_api_key)])


@router.get("/health", summary="Proxy health check", description="Reports whether the server-side Fish Audio key is configured.")
async def health(request: Request):
    settings = get_settings()
    logger.info("Health check from %s", client_ip(request))
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "api_key_configured": bool(settings.FISH_AUDIO_API_KEY),
        "platform": "fastapi",
    }


@router.get("/models", summary="List Fish Audio voice models")
async def models(
    x_fish_api_key: str | None = Header(None),
    http: HTTPClientFactory = Depends(get_http_client_factory),
):
    if not x_fish_api_key:
        raise APIError(400, "Missing Fish Audio API key")
    settings = get_settings()
    async with http() as client:
        return await fish_audio.list_models(client, settings.FISH_AUDIO_BASE_URL, x_fish_api_key)


async def _model_info(model_id: str | None, fish_key: str | None, http: HTTPClientFactory):
    if not model_id:
        raise APIError(400, "Missing required modelId parameter")
    if not fish_key:
        raise APIError(400, "Missing required fish-audio-key header")
    settings = get_settings()
    async with http() as client:
        return await fish_audio.get_model_info(client, settings.FISH_AUDIO_BASE_URL, model_id, fish_key)


@router.get("/model-info", summary="Get a Fish Audio model by query parameter")
async def model_info_query(
    model_id: str | None = Query(None, alias="modelId"),
    fish_audio_key: str | None = Header(None),
    http: HTTPClientFactory = Depends(get_http_client_factory),
):
    return await _model_info(model_id, fish_audio_key, http)


@router.get("/model-info/{model_id}", summary="Get a Fish Audio model")
async def model_info(
    model_id: str,
    fish_audio_key: str | None = Header(None),
    http: HTTPClientFactory = Depends(get_http_client_factory),
):
    return await _model_info(model_id, fish_audio_key, http)


@router.post("/validate-key", summary="Validate a Fish Audio API key", description="Always answers 200 with {valid, error?}.")
async def validate_key(body: ValidateKeyRequest, http: HTTPClientFactory = Depends(get_http_client_factory)):
    settings = get_settings()
    async with http() as client:
        return await fish_audio.validate_key(client, settings.FISH_AUDIO_BASE_URL, body.api_key, body.api_url)


@router.get("/search", summary="Web search via Google Custom Search")
async def web_search(
    q: str | None = None,
    num: str = "5",
    lang: str | None = None,
    country: str | None = None,
    safe: str = "off",
    provider: str = search.PROVIDER,
    key: str | None = None,
    cx: str | None = None,
    with_date: str | None = Query(None, alias="withDate"),
    http: HTTPClientFactory = Depends(get_http_client_factory),
):
    if not q or not q.strip():
        raise APIError(400, "Missing required q parameter")
    if provider and provider != search.PROVIDER:
        raise APIError(400, "Unsupported provider", details={"provider": provider})

    # Keys supplied by the client win over the server defaults
    settings = get_settings()
    api_key = (key or "").strip() or settings.GOOGLE_SEARCH_API_KEY
    engine_id = (cx or "").strip() or settings.GOOGLE_SEARCH_CX
    if not api_key or not engine_id:
        raise APIError(400, "Search key or engine id not configured")

    async with http() as client:
        return await search.google_search(
            client,
            query=q,
            api_key=api_key,
            engine_id=engine_id,
            num=search.normalize_num(num),
            safe=search.normalize_safe(safe),
            lang=lang,
            country=country,
            with_date=(with_date or "").lower() in ("1", "true"),
        )


@router.get("/visit-page", summary="Fetch a page and return its readable text")
async def visit_page(url: str | None = None, http: HTTPClientFactory = Depends(get_http_client_factory)):
    if not url or not url.strip():
        raise APIError(400, "Missing required url parameter")
    async with http(follow_redirects=True, max_redirects=pages.MAX_REDIRECTS) as client:
        return await pages.visit_page(client, url.strip())


@router.get("/tts", summary="List supported TTS models")
async def tts_models():
    return {"success": True, "models": fish_audio.SUPPORTED_MODELS, "default": fish_audio.DEFAULT_MODEL}


@router.post("/tts", summary="Synthesize speech", description="Streams audio from Fish Audio back to the caller.")
async def tts(body: TTSRequest, http: HTTPClientFactory = Depends(get_http_client_factory)):
    if not body.text:
        raise APIError(400, "Missing required text parameter")
    settings = get_settings()
    if not settings.FISH_AUDIO_API_KEY:
        raise APIError(500, "Server Fish Audio key not configured")

    payload = fish_audio.build_tts_payload(
        body.text,
        format=body.format,
        mp3_bitrate=body.mp3_bitrate,
        reference_id=body.reference_id,
        normalize=body.normalize,
        latency=body.latency,
        chunk_length=body.chunk_length,
    )
    client = http(timeout=fish_audio.TTS_TIMEOUT)
    try:
        upstream = await fish_audio.open_tts_stream(
            client, settings.FISH_AUDIO_BASE_URL, settings.FISH_AUDIO_API_KEY,
            payload, fish_audio.resolve_model(body.model),
        )
    except Exception:
        await client.aclose()
        raise

    async def close():
        await upstream.aclose()
        await client.aclose()

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=f"audio/{body.format}",
        headers={"Content-Disposition": f'attachment; filename="tts.{body.format}"'},
        background=BackgroundTask(close),
    )
