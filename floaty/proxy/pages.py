"""Fetch a web page and reduce it to readable text."""

import logging
import re

import httpx
from bs4 import BeautifulSoup

from floaty.proxy.http import BOT_USER_AGENT
from floaty.utils.errors import APIError

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5
MAX_CONTENT_LENGTH = 20000
TRUNCATION_SUFFIX = "... (content truncated)"
EMPTY_CONTENT = "Unable to extract meaningful content"

# Boilerplate removed before measuring whether static HTML carries content
BOILERPLATE = "script, style, noscript, iframe, svg, header, footer, nav"
# Everything stripped from the final extraction
STRIPPED = BOILERPLATE + ", .nav, .menu, .ads, .sidebar"

MIN_HTML_LENGTH = 1000
MIN_TEXT_LENGTH = 200
JS_NOTICES = ("enable JavaScript", "You need to enable JavaScript")

_WHITESPACE = re.compile(r"\s+")


def _body_text(soup: BeautifulSoup) -> str:
    root = soup.body or soup
    return _WHITESPACE.sub(" ", root.get_text(" ")).strip()


def _strip(html: str, selectors: str) -> BeautifulSoup:
    soup = BeautifulSoup(html, "html.parser")
    for node in soup.select(selectors):
        node.decompose()
    return soup


def needs_javascript(html: str | None) -> bool:
    """Heuristic: would a JS-rendered fetch likely yield more content than this HTML?"""
    if not html:
        return True
    if len(html) < MIN_HTML_LENGTH:
        return True
    if any(notice in html for notice in JS_NOTICES):
        return True
    return len(_body_text(_strip(html, BOILERPLATE))) < MIN_TEXT_LENGTH


def extract_content(html: str) -> tuple[str, str]:
    """Return (title, text) with navigation and scripts removed."""
    soup = _strip(html or "", STRIPPED)
    title = soup.title.get_text(strip=True) if soup.title else ""
    text = _body_text(soup)
    if len(text) > MAX_CONTENT_LENGTH:
        text = text[:MAX_CONTENT_LENGTH] + TRUNCATION_SUFFIX
    return title, text


async def visit_page(client: httpx.AsyncClient, url: str) -> dict:
    logger.info("Visiting URL: %s", url)
    try:
        resp = await client.get(url, headers={"User-Agent": BOT_USER_AGENT})
    except httpx.TimeoutException:
        logger.warning("Page fetch timed out: %s", url)
        raise APIError(408, "Failed to visit page", details={"message": "Request timed out", "url": url})
    except httpx.HTTPError as exc:
        logger.warning("Page fetch failed: %s", exc)
        raise APIError(500, "Failed to visit page", details={"message": str(exc), "url": url})

    if resp.is_error:
        logger.warning("Page fetch returned %d for %s", resp.status_code, url)
        raise APIError(
            resp.status_code, "Failed to visit page",
            error_type="upstream_error", details={"message": resp.reason_phrase, "url": url},
        )

    html = resp.text
    js_needed = needs_javascript(html)
    if js_needed:
        logger.info("Static content looks thin for %s; returning it as-is", url)

    title, text = extract_content(html)
    logger.info("Page visited: title=%r length=%d", title, len(text))
    return {
        "url": url,
        "title": title,
        "content": text or EMPTY_CONTENT,
        "length": len(text),
        "needsJavaScript": js_needed,
    }
