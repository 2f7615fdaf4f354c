import asyncio
import json
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from hcapi.config import ClientConfig
from hcapi.settings import VENDOR_JSON
from hcapi.transport.http_core import TransportCore

CLIENT_ID = "0123456789ABCDEF0123456789ABCDEF0123456789ABCDEF0123456789ABCDEF"
HAID = "SIEMENS-HB678GBS6B-68A40E000001"

ResponseFactory = Callable[[httpx.Request], httpx.Response]


def json_response(
    status_code: int,
    body: Any,
    headers: dict[str, str] | None = None,
    content_type: str = VENDOR_JSON,
) -> ResponseFactory:
    """Build a factory producing a fresh JSON response for each request."""

    def factory(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            status_code,
            headers={"content-type": content_type, **(headers or {})},
            content=json.dumps(body).encode(),
        )

    return factory


def empty_response(status_code: int = 204, headers: dict[str, str] | None = None) -> ResponseFactory:
    def factory(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, headers=headers or {})

    return factory


def stream_response(*chunks: str) -> ResponseFactory:
    """Event stream response delivering ``chunks`` and then ending."""

    async def body() -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk.encode()
            await asyncio.sleep(0)

    def factory(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body())

    return factory


def api_error(status_code: int, key: str, description: str) -> ResponseFactory:
    return json_response(status_code, {"error": {"key": key, "description": description}})


def oauth_error(status_code: int, error: str, description: str) -> ResponseFactory:
    return json_response(
        status_code,
        {"error": error, "error_description": description},
        content_type="application/json",
    )


def token_body(access_token: str = "access-1", refresh_token: str = "refresh-1", expires_in: int = 86400) -> dict:
    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": expires_in,
        "scope": "IdentifyAppliance Monitor Control Settings",
        "token_type": "Bearer",
    }


class FakeServer:
    """Scripted Home Connect server for ``httpx.MockTransport``.

    Each route holds a queue of response factories; the last one repeats.
    Unscripted routes answer 404.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], list[ResponseFactory]] = {}

    def add(self, method: str, path: str, *responses: ResponseFactory) -> None:
        self._routes.setdefault((method, path), []).extend(responses)

    def replace(self, method: str, path: str, *responses: ResponseFactory) -> None:
        self._routes[(method, path)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return api_error(404, "SDK.Error.NotFound", "Not found")(request)
        factory = queue.pop(0) if len(queue) > 1 else queue[0]
        return factory(request)

    def requests_to(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def transport(self, config: ClientConfig) -> TransportCore:
        http_client = httpx.AsyncClient(
            base_url=config.base_url, transport=httpx.MockTransport(self.handler)
        )
        return TransportCore(config, http_client)


class FakeSleep:
    """Replacement for ``asyncio.sleep`` that records delays without waiting.

    Delays of ``block_from`` seconds or more never finish, so long-running
    background loops (token refresh, prompt logging) stay parked.
    """

    def __init__(self, block_from: float = 1000.0):
        self.delays: list[float] = []
        self.block_from = block_from

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if delay >= self.block_from:
            await asyncio.Event().wait()
        await asyncio.sleep(0)


async def wait_until(condition: Callable[[], bool], iterations: int = 500) -> None:
    """Yield to the event loop until ``condition`` holds."""
    for _ in range(iterations):
        if condition():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("Condition never became true")


@pytest.fixture
def config(tmp_path: Path) -> ClientConfig:
    return ClientConfig(client_id=CLIENT_ID, persist_dir=tmp_path)


@pytest.fixture
def server() -> FakeServer:
    return FakeServer()
