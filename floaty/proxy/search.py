"""Google Custom Search proxy with best-effort publication dates."""

import asyncio
import logging
import re
import time
from typing import Any

import httpx

from floaty.proxy.http import BOT_USER_AGENT
from floaty.utils.dates import to_iso
from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

GOOGLE_CSE_ENDPOINT = "https://www.googleapis.com/customsearch/v1"
PROVIDER = "google-cse"

HEAD_TIMEOUT = 4.0

# Meta tag names that commonly carry a page date, in lookup order
DATE_META_KEYS = [
    "article:published_time",
    "article:modified_time",
    "og:updated_time",
    "date",
    "datePublished",
    "dateModified",
    "publish_date",
    "pubdate",
    "ptime",
    "utime",
    "sailthru.date",
    "parsely-pub-date",
]
HIGH_CONFIDENCE_KEYS = {"article:published_time", "datePublished", "pubdate", "parsely-pub-date"}
DATE_ENTITIES = ["article", "newsarticle", "blogposting", "webpage"]

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def to_iso_date(value: Any) -> str | None:
    """Parse a meta tag value into an ISO-8601 UTC string, or None.

    Values are always treated as text, so numbers are read as 10/13 digit epochs.
    """
    if value is None:
        return None
    return to_iso(str(value))


def extract_date(item: dict) -> dict | None:
    """Find a date in a CSE result's pagemap. Returns {date, source, confidence} or None."""
    pagemap = item.get("pagemap") or {}

    metatags = pagemap.get("metatags")
    for meta in metatags if isinstance(metatags, list) else []:
        if not isinstance(meta, dict):
            continue
        lowered = {str(k).lower(): v for k, v in meta.items()}
        for key in DATE_META_KEYS:
            iso = to_iso_date(lowered.get(key.lower()))
            if iso:
                confidence = "high" if key in HIGH_CONFIDENCE_KEYS else "medium"
                return {"date": iso, "source": "pagemap", "confidence": confidence}

    for entity_key in DATE_ENTITIES:
        entities = pagemap.get(entity_key)
        for entity in entities if isinstance(entities, list) else []:
            if not isinstance(entity, dict):
                continue
            published = to_iso_date(entity.get("datepublished") or entity.get("datePublished"))
            if published:
                return {"date": published, "source": "pagemap", "confidence": "high"}
            modified = to_iso_date(entity.get("datemodified") or entity.get("dateModified"))
            if modified:
                return {"date": modified, "source": "pagemap", "confidence": "medium"}

    return None


async def last_modified(client: httpx.AsyncClient, url: str | None) -> str | None:
    """HEAD the page and use Last-Modified as a low-confidence date."""
    if not url:
        return None
    try:
        resp = await client.head(url, headers={"User-Agent": BOT_USER_AGENT}, timeout=HEAD_TIMEOUT)
    except httpx.HTTPError:
        return None
    return to_iso_date(resp.headers.get("last-modified"))


def normalize_num(num: Any) -> int:
    """Leading integer of ``num`` (so "7.5" reads as 7), 5 when absent or zero, clamped to 1..10."""
    match = _LEADING_INT.match(str(num)) if num is not None else None
    value = int(match.group(1)) if match else 0
    if value == 0:
        value = 5
    return max(1, min(value, 10))


def normalize_safe(safe: Any) -> str:
    return "active" if str(safe).lower() in ("on", "active") else "off"


async def _build_item(client: httpx.AsyncClient, item: dict, header_fallback: bool) -> dict:
    meta = extract_date(item) or {}
    date = meta.get("date")
    date_source = meta.get("source")
    date_confidence = meta.get("confidence")

    if not date and header_fallback:
        header_date = await last_modified(client, item.get("link"))
        if header_date:
            date, date_source, date_confidence = header_date, "http-header", "low"

    return {
        "title": item.get("title"),
        "link": item.get("link"),
        "snippet": item.get("snippet"),
        "source": PROVIDER,
        "date": date,
        "dateSource": date_source,
        "dateConfidence": date_confidence,
    }


def _error_details(resp: httpx.Response) -> str:
    """Upstream ``error.message`` when the body carries one, else the reason phrase."""
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase
    error = body.get("error") if isinstance(body, dict) else None
    message = error.get("message") if isinstance(error, dict) else error
    return message if isinstance(message, str) and message else resp.reason_phrase


async def google_search(
    client: httpx.AsyncClient,
    *,
    query: str,
    api_key: str,
    engine_id: str,
    num: int = 5,
    safe: str = "off",
    lang: str | None = None,
    country: str | None = None,
    with_date: bool = False,
) -> dict:
    params: dict[str, Any] = {"key": api_key, "cx": engine_id, "q": query, "num": num, "safe": safe}
    if lang:
        params["hl"] = lang
    if country:
        params["gl"] = country

    logger.info(
        "Calling Google CSE q=%r num=%d lang=%s country=%s safe=%s",
        query if len(query) <= 80 else query[:80] + "...", num, lang, country, safe,
    )

    start = time.time()
    try:
        resp = await client.get(GOOGLE_CSE_ENDPOINT, params=params)
    except httpx.TimeoutException:
        logger.error("Search request timed out")
        raise APIError(408, "Request timed out", details="Google CSE did not respond in time")
    except httpx.HTTPError as exc:
        logger.error("Search request failed: %s", exc)
        raise APIError(500, "Internal server error", details=str(exc))
    duration = time.time() - start

    if resp.is_error:
        details = _error_details(resp)
        logger.warning("Google CSE error: status=%d details=%s", resp.status_code, details)
        raise APIError(resp.status_code, "Google CSE error", error_type="upstream_error", details=details)

    try:
        data = resp.json()
    except ValueError:
        raise APIError(502, "Google CSE error", details="Response was not JSON")
    if not isinstance(data, dict):
        data = {}
    raw_items = data.get("items") if isinstance(data.get("items"), list) else []
    items = await asyncio.gather(*(_build_item(client, item, with_date) for item in raw_items))

    info = data.get("searchInformation") or {}
    try:
        total_results = int(info.get("totalResults") or 0)
    except (TypeError, ValueError):
        total_results = 0
    search_time = info.get("searchTime")
    if not isinstance(search_time, (int, float)) or isinstance(search_time, bool):
        search_time = duration

    logger.info("Search succeeded: %d items in %.3fs", len(items), search_time)
    return {
        "items": list(items),
        "query": query,
        "provider": PROVIDER,
        "searchInformation": {"totalResults": total_results, "time": search_time},
    }
