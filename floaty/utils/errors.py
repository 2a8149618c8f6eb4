"""Domain exception carrying an HTTP status and optional details."""

from typing import Any


class APIError(Exception):
    def __init__(
        self,
        status_code: int,
        message: str,
        error_type: str | None = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error_type = error_type
        self.details = details
