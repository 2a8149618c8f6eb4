"""SSE event formatting utilities for realtime change feeds."""

import json

KEEPALIVE = ": keepalive\n\n"


def _sse(event: str, data: dict) -> str:
    return f"event: {event}\ndata: {json.dumps(data, default=str)}\n\n"


def format_change(payload: dict) -> str:
    return _sse("change", payload)


def format_status(status: dict) -> str:
    return _sse("status", status)


def format_error(error_type: str, message: str) -> str:
    return _sse("error", {"type": "error", "error": {"type": error_type, "message": message}})
