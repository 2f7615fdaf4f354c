"""Exception hierarchy for Home Connect API failures.

Every failure raised by the client derives from ``APIError`` and carries the
request that provoked it (and the response, when one was received). The
underlying cause, if any, is chained with ``raise ... from``.
"""

from __future__ import annotations

import json
from http import HTTPStatus
from typing import TYPE_CHECKING

import httpx

if TYPE_CHECKING:
    from hcapi.transport.models import Request


class APIError(Exception):
    """Base exception for all Home Connect API errors."""

    def __init__(
        self,
        request: Request,
        response: httpx.Response | None,
        message: str,
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None


class TransportError(APIError):
    """Raised when a request fails at the network level (connect, timeout)."""

    pass


class ResponseFormatError(APIError):
    """Raised when a response body has the wrong content type or cannot be parsed."""

    pass


class AuthorisationError(APIError):
    """Raised when credentials cannot be obtained or used."""

    pass


class EventStreamError(APIError):
    """Raised when the event stream terminates or delivers malformed data."""

    pass


class StreamEndedError(EventStreamError):
    """Raised when the server closes the event stream cleanly."""

    pass


class StreamFailedError(EventStreamError):
    """Raised when reading the event stream fails with an I/O error."""

    pass


class EventParseError(EventStreamError):
    """Raised when an event record cannot be converted into an event.

    The raw record is kept for diagnostics.
    """

    def __init__(
        self,
        request: Request,
        response: httpx.Response | None,
        message: str,
        record: dict[str, str],
    ) -> None:
        fields = "\n".join(f"    {name}: {value}" for name, value in record.items())
        super().__init__(request, response, f"Unable to parse {message}:\n{fields}")
        self.record = record


class APIValidationError(APIError):
    """Raised when a response body does not have the expected structure."""

    def __init__(
        self,
        request: Request,
        response: httpx.Response | None,
        errors: list[str],
    ) -> None:
        first = errors[0] if errors else "unknown mismatch"
        super().__init__(request, response, f"Structure validation failed ({first})")
        self.errors = errors


class StatusCodeError(APIError):
    """Raised when the API returns a status code outside the 2xx range.

    The raw body is kept; the error key and description are decoded from it on
    demand. Both the API error shape ``{"error": {"key": ..., ...}}`` and the
    OAuth shape ``{"error": ..., "error_description": ...}`` are understood.
    """

    def __init__(self, request: Request, response: httpx.Response, text: str) -> None:
        self.text = text
        super().__init__(request, response, self._build_message(response, text))

    @property
    def key(self) -> str | None:
        return parse_error_body(self.text)[0]

    @property
    def description(self) -> str | None:
        return parse_error_body(self.text)[1]

    @property
    def simple_message(self) -> str | None:
        """Description and key in the form ``"description [key]"``."""
        return describe_error_body(self.text)

    @staticmethod
    def _build_message(response: httpx.Response, text: str) -> str:
        status = response.status_code
        try:
            phrase = HTTPStatus(status).phrase
        except ValueError:
            phrase = "Unknown"
        description = describe_error_body(text) or "No error message returned"
        return f"[{status} {phrase}] {description}"


def parse_error_body(text: str) -> tuple[str | None, str | None]:
    """Extract the error key and description from an error response body.

    Args:
        text: Raw response body

    Returns:
        (key, description), either of which may be None
    """
    try:
        body = json.loads(text)
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None

    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("key"), str):
        description = (
            error.get("developerMessage") or error.get("description") or error.get("value")
        )
        return error["key"], description if isinstance(description, str) else None
    if isinstance(error, str) and isinstance(body.get("error_description"), str):
        return error, body["error_description"]
    return None, None


def describe_error_body(text: str) -> str | None:
    key, description = parse_error_body(text)
    if key:
        return f"{description} [{key}]" if description else f"[{key}]"
    return text or None
