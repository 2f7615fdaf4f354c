"""Single-attempt HTTP transport and response decoders."""

from __future__ import annotations

import json
import logging
import re
import time
from http import HTTPStatus
from typing import AsyncIterator, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from hcapi.config import ClientConfig
from hcapi.models import extra_fields
from hcapi.settings import JSON_CONTENT_TYPES, REQUEST_TIMEOUT, STREAM_TIMEOUT
from hcapi.transport.errors import (
    APIValidationError,
    ResponseFormatError,
    StatusCodeError,
    StreamEndedError,
    StreamFailedError,
    TransportError,
)
from hcapi.transport.models import Request
from hcapi.transport.sse import SSEParser, SSERecord
from hcapi.utils import columns

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_SECRET_FIELD = re.compile(
    r'("(?:access_token|refresh_token|id_token|device_code)"\s*:\s*")[^"]*'
    r"|((?:access_token|refresh_token|device_code|client_secret|code)=)[^&\s]*"
)


def _mask_secrets(text: str) -> str:
    return _SECRET_FIELD.sub(lambda m: (m.group(1) or m.group(2)) + "***", text)


def _status_text(status_code: int) -> str:
    try:
        return f"{status_code} {HTTPStatus(status_code).phrase}"
    except ValueError:
        return str(status_code)


class TransportCore:
    """Issues individual requests to the API and decodes their responses.

    No retries happen here: each call to ``send`` is exactly one attempt.
    Responses are opened in streaming mode and belong to the caller, which
    must pass them to one of the ``decode_*`` methods (each of which releases
    the connection) or to ``open_event_stream``.
    """

    def __init__(
        self,
        config: ClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Client configuration (endpoint selection and debug flags)
            http_client: Pre-built client, mainly for tests
        """
        self._config = config
        self._http_client = http_client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=httpx.Timeout(STREAM_TIMEOUT, connect=REQUEST_TIMEOUT),
        )

    # ================================
    # Requests
    # ================================

    async def send(self, request: Request, log_prefix: str = "") -> httpx.Response:
        """Issue a single request.

        A 302 redirect is returned to the caller rather than followed.

        Args:
            request: The request to issue
            log_prefix: Prefix for debug records, identifying the attempt

        Returns:
            The response, with its body not yet read

        Raises:
            TransportError: If the request could not be completed
            StatusCodeError: If the status code is outside the 2xx range
        """
        start = time.monotonic()
        status = "OK"
        try:
            logger.debug(f"{log_prefix} {request.method} {request.path}")
            self.log_headers(f"{log_prefix} Request", request.headers)
            self.log_body(f"{log_prefix} Request", request.body)

            try:
                http_request = self._http_client.build_request(
                    request.method,
                    request.path,
                    headers=dict(request.headers),
                    content=request.body,
                )
                response = await self._http_client.send(
                    http_request, stream=True, follow_redirects=False
                )
            except httpx.HTTPError as e:
                status = f"ERROR: {e}"
                raise TransportError(request, None, status) from e

            self.log_headers(f"{log_prefix} Response", response.headers)
            status = _status_text(response.status_code)
            if response.status_code == 302:
                pass
            elif not 200 <= response.status_code < 300:
                text = await self._read_text(request, response)
                self.log_body(f"{log_prefix} Response", text)
                err = StatusCodeError(request, response, text)
                if err.simple_message:
                    status += f" - {err.simple_message}"
                raise err

            return response
        finally:
            elapsed_ms = round((time.monotonic() - start) * 1000)
            logger.debug(f"{log_prefix} {status} +{elapsed_ms}ms")

    # ================================
    # Response decoders
    # ================================

    async def decode_json(
        self, model: type[ModelT], request: Request, response: httpx.Response
    ) -> ModelT:
        """Read a JSON body and check its structure.

        Args:
            model: Pydantic model describing the expected structure
            request: The request that produced the response
            response: Response returned by ``send``

        Returns:
            The validated model instance

        Raises:
            ResponseFormatError: If the body is missing, not JSON, or unparseable
            APIValidationError: If the body does not match the model
        """
        if response.status_code == 204:
            await response.aclose()
            raise ResponseFormatError(
                request, response, "Unexpected empty response (status code 204 No Content)"
            )
        content_type = response.headers.get("content-type")
        if content_type is None or content_type.split(";")[0].strip() not in JSON_CONTENT_TYPES:
            await response.aclose()
            raise ResponseFormatError(
                request, response, f"Unexpected response content-type ({content_type})"
            )

        text = await self._read_text(request, response)
        self.log_body("Response", text)
        try:
            body = json.loads(text)
        except ValueError as e:
            raise ResponseFormatError(
                request, response, f"Failed to parse JSON response ({e})"
            ) from e

        try:
            result = model.model_validate(body)
        except ValidationError as e:
            errors = [
                f"response.{'.'.join(str(p) for p in err['loc'])} {err['msg']}"
                for err in e.errors()
            ]
            self.log_validation(
                logging.ERROR,
                "Unexpected structure of Home Connect API response",
                request,
                errors,
                body,
            )
            raise APIValidationError(request, response, errors) from e

        unexpected = extra_fields(result)
        if unexpected:
            self.log_validation(
                logging.WARNING,
                "Unexpected fields in Home Connect API response",
                request,
                [f"{path} is not expected" for path in unexpected],
                body,
            )
        return result

    async def decode_redirect(
        self, request: Request, response: httpx.Response
    ) -> httpx.URL:
        """Extract the target of a 302 redirect.

        Raises:
            StatusCodeError: If the response is not a redirect
            ResponseFormatError: If the location cannot be parsed
        """
        location = response.headers.get("location")
        if response.status_code != 302 or not location:
            text = await self._read_text(request, response)
            self.log_body("Redirect", text)
            raise StatusCodeError(request, response, text)

        await response.aclose()
        try:
            return self._http_client.base_url.join(location)
        except httpx.InvalidURL as e:
            raise ResponseFormatError(
                request, response, f'Failed to parse redirect location "{location}"'
            ) from e

    async def decode_empty(self, request: Request, response: httpx.Response) -> None:
        """Check that a response has no body.

        Raises:
            ResponseFormatError: If a non-empty body was returned
        """
        await response.aclose()
        content_length = response.headers.get("content-length")
        if not content_length:
            return
        try:
            length = int(content_length)
        except ValueError as e:
            raise ResponseFormatError(
                request, response, f"Invalid content-length header ({content_length!r})"
            ) from e
        if length:
            raise ResponseFormatError(
                request,
                response,
                f"Unexpected non-empty response ({content_length} bytes)",
            )

    async def open_event_stream(
        self, request: Request, response: httpx.Response
    ) -> AsyncIterator[SSERecord]:
        """Decode a live response body as Server-Sent Events.

        The iterator never finishes normally: it raises ``StreamEndedError``
        when the server closes the stream, or ``StreamFailedError`` when
        reading fails.
        """
        parser = SSEParser()
        try:
            try:
                async for chunk in response.aiter_text():
                    self.log_body("Stream", chunk)
                    for record in parser.feed(chunk):
                        yield record
            except (httpx.HTTPError, OSError) as e:
                logger.warning(f"Event stream error: {e}")
                raise StreamFailedError(request, response, "SSE stream terminated") from e
            logger.warning("Event stream ended")
            raise StreamEndedError(request, response, "SSE stream ended")
        finally:
            await response.aclose()

    async def _read_text(self, request: Request, response: httpx.Response) -> str:
        try:
            await response.aread()
        except httpx.HTTPError as e:
            raise TransportError(request, response, f"Failed to read response ({e})") from e
        finally:
            await response.aclose()
        return response.text

    # ================================
    # Debug logging
    # ================================

    def log_headers(self, name: str, headers: Mapping[str, str]) -> None:
        if not self._config.log_headers:
            return
        rows = []
        for key in sorted(headers.keys()):
            value = headers[key]
            if key.lower() == "authorization":
                value = value.split(" ")[0] + " ***"
            rows.append([f"{key}:", value])
        logger.debug(f"{name} headers:")
        for line in columns(rows):
            logger.debug(f"    {line}")

    def log_body(self, name: str, body: str | None) -> None:
        if not self._config.log_bodies or body is None:
            return
        if not body:
            logger.debug(f"{name} body: EMPTY")
            return
        logger.debug(f"{name} body:")
        for line in _mask_secrets(body).split("\n"):
            logger.debug(f"    {line}")

    def log_validation(
        self,
        level: int,
        message: str,
        request: Request | None,
        errors: list[str],
        body: object,
    ) -> None:
        """Log structural mismatches, with the offending body at debug level."""
        logger.log(level, f"{message}:")
        if request is not None:
            logger.log(level, f"{request.method} {request.path}")
        for line in errors:
            logger.log(level, f"    {line}")
        logger.debug("Received response (reformatted):")
        for line in _mask_secrets(json.dumps(body, indent=4)).split("\n"):
            logger.debug(f"    {line}")

    async def close(self) -> None:
        """Close the HTTP client and clean up resources."""
        await self._http_client.aclose()
