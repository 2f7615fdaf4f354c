"""Request orchestration with retries and a shared rate-limit clock."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Mapping, TypeVar
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from hcapi.config import ClientConfig
from hcapi.settings import (
    CLIENT_NAME,
    CLIENT_VERSION,
    EVENT_STREAM_CONTENT_TYPE,
    FORM_CONTENT_TYPE,
    NO_RETRY_STATUS_CODES,
    RETRY_WARNING_THRESHOLD,
    VENDOR_JSON,
)
from hcapi.transport.errors import APIError, StatusCodeError, TransportError
from hcapi.transport.http_core import TransportCore
from hcapi.transport.models import Request
from hcapi.transport.sse import SSERecord
from hcapi.utils import format_duration

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Backoff after network failures and server errors (seconds)
RETRY_BACKOFF_INITIAL = 1.0
RETRY_BACKOFF_MAX = 60.0


class APIUserAgent:
    """Issues API requests, retrying those that fail transiently.

    All requests made through one user agent share a single "earliest time
    the next request may be issued" clock. A 429 response pushes the clock
    forward by its ``retry-after`` value, and every subsequent attempt waits
    for it. The clock only ever moves forward.
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: TransportCore | None = None,
    ) -> None:
        """Initialize the user agent.

        Args:
            config: Client configuration
            transport: Transport to issue requests through, mainly for tests
        """
        self.config = config
        self._transport = transport or TransportCore(config)
        self._default_headers = {
            "user-agent": f"{CLIENT_NAME}/{CLIENT_VERSION}",
            "accept-language": config.language,
        }
        self._request_count = 0
        self._earliest_request = 0.0
        self._sleep = asyncio.sleep

    # ================================
    # Rate limiting
    # ================================

    @property
    def retry_delay(self) -> float:
        """Seconds until the next request may be issued (negative if already allowed)."""
        return self._earliest_request - time.monotonic()

    @retry_delay.setter
    def retry_delay(self, seconds: float) -> None:
        self._earliest_request = max(self._earliest_request, time.monotonic() + seconds)

    # ================================
    # Request loop
    # ================================

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
        idempotent: bool | None = None,
    ) -> tuple[Request, httpx.Response]:
        """Issue a request, retrying while ``can_retry`` allows.

        Args:
            method: HTTP method
            path: Path relative to the API endpoint, including any query
            headers: Headers added to the defaults
            body: Encoded request body
            idempotent: Override the method-based idempotency flag

        Returns:
            The request as finally issued and its (unread) response

        Raises:
            APIError: If the request failed and cannot be retried
        """
        request_number: int | None = None
        retry_count = 0
        backoff = 0.0

        while True:
            try:
                delay = max(self.retry_delay, backoff)
                if delay > 0:
                    level = logging.DEBUG if delay < RETRY_WARNING_THRESHOLD else logging.WARNING
                    logger.log(
                        level,
                        f"Waiting {format_duration(delay)} before issuing Home Connect API request",
                    )
                    await self._sleep(delay)

                request = await self.prepare_request(
                    method, path, headers=headers, body=body, idempotent=idempotent
                )
                if request_number is None:
                    self._request_count += 1
                    request_number = self._request_count
                counter = f"{request_number}.{retry_count}" if retry_count else f"{request_number}"
                response = await self._transport.send(
                    request, f"Home Connect request #{counter}:"
                )
                return request, response
            except Exception as e:
                if not self.can_retry(e):
                    raise
                retry_count += 1
                backoff = self._next_backoff(e, backoff)

    async def prepare_request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        body: str | None = None,
        idempotent: bool | None = None,
    ) -> Request:
        """Build the Request for one attempt."""
        return Request(
            method=method,
            path=path,
            headers={**self._default_headers, **(headers or {})},
            body=body,
            idempotent=idempotent,
        )

    def can_retry(self, err: BaseException) -> bool:
        """Decide whether a failed request may be attempted again.

        A 429 response with ``retry-after`` advances the rate-limit clock
        before any other decision is taken.

        Args:
            err: The exception raised by the attempt

        Returns:
            True if the request should be retried
        """
        if not isinstance(err, APIError):
            return False

        if (
            isinstance(err, StatusCodeError)
            and err.status_code == 429
            and err.response.headers.get("retry-after")
        ):
            try:
                self.retry_delay = float(err.response.headers["retry-after"])
            except ValueError:
                logger.debug(
                    f"Ignoring unparseable retry-after header: {err.response.headers['retry-after']}"
                )

        if isinstance(err, StatusCodeError) and err.status_code in NO_RETRY_STATUS_CODES:
            logger.debug(f"Request will not be retried (status code {err.status_code})")
            return False

        if not err.request.idempotent:
            logger.debug(f"Request will not be retried ({err.request.method} is not idempotent)")
            return False

        return True

    @staticmethod
    def _next_backoff(err: BaseException, current: float) -> float:
        """Per-request delay before retrying a network failure or server error."""
        is_server_error = isinstance(err, StatusCodeError) and (err.status_code or 0) >= 500
        if isinstance(err, TransportError) or is_server_error:
            return min(max(current * 2, RETRY_BACKOFF_INITIAL), RETRY_BACKOFF_MAX)
        return 0.0

    # ================================
    # Convenience methods
    # ================================

    async def get(self, model: type[ModelT], path: str) -> ModelT:
        """GET a JSON resource and validate its structure."""
        request, response = await self.request("GET", path, headers={"accept": VENDOR_JSON})
        return await self._transport.decode_json(model, request, response)

    async def get_stream(
        self, path: str
    ) -> tuple[Request, httpx.Response, AsyncIterator[SSERecord]]:
        """GET an event stream, returning its records as an async iterator."""
        request, response = await self.request(
            "GET", path, headers={"accept": EVENT_STREAM_CONTENT_TYPE}
        )
        stream = self._transport.open_event_stream(request, response)
        return request, response, stream

    async def get_redirect(self, path: str) -> httpx.URL:
        """GET a resource that responds with a redirect, returning its target."""
        request, response = await self.request("GET", path)
        return await self._transport.decode_redirect(request, response)

    async def put(self, path: str, body: Any) -> None:
        """PUT a JSON body, expecting an empty response."""
        request, response = await self.request(
            "PUT",
            path,
            headers={"content-type": VENDOR_JSON},
            body=json.dumps(body),
        )
        await self._transport.decode_empty(request, response)

    async def post(
        self, model: type[ModelT], path: str, form: Mapping[str, str]
    ) -> ModelT:
        """POST a form-encoded body, expecting a JSON response."""
        request, response = await self.request(
            "POST",
            path,
            headers={"content-type": FORM_CONTENT_TYPE, "accept": "application/json"},
            body=urlencode(form),
        )
        return await self._transport.decode_json(model, request, response)

    async def delete(self, path: str) -> None:
        """DELETE a resource, expecting an empty response."""
        request, response = await self.request("DELETE", path)
        await self._transport.decode_empty(request, response)

    def log_validation(
        self,
        level: int,
        message: str,
        request: Request | None,
        errors: list[str],
        body: object,
    ) -> None:
        self._transport.log_validation(level, message, request, errors, body)

    async def close(self) -> None:
        """Close the underlying transport."""
        await self._transport.close()
