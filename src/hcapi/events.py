"""Home Connect event stream dispatch.

``EventStream`` keeps a single server-sent event connection open for as
long as anyone is subscribed, reconnecting whenever it ends. Subscribers
receive a ``StreamStart`` each time the stream (re)starts, every validated
appliance event, and a ``StreamStop`` each time it ends (carrying the error
if it failed).
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Literal, Union

import httpx
from pydantic import ValidationError

from hcapi.models import Event, extra_fields
from hcapi.settings import APPLIANCES_PATH
from hcapi.transport.errors import APIValidationError, EventParseError, StreamEndedError
from hcapi.transport.models import Request
from hcapi.transport.sse import SSERecord
from hcapi.transport.user_agent import APIUserAgent
from hcapi.utils import format_duration, log_error
from hcapi.values.validator import KeyValueValidator

logger = logging.getLogger(__name__)

# Delay before reconnecting after the stream failed (seconds)
RECONNECT_DELAY = 5.0

# Minimum event stream interruption treated as an appliance disconnect (seconds)
DISCONNECT_DELAY = 3.0


@dataclass(frozen=True)
class StreamStart:
    """The event stream has (re)started."""

    event: Literal["START"] = "START"


@dataclass(frozen=True)
class StreamStop:
    """The event stream has ended; ``err`` is set if it failed."""

    err: BaseException | None = None
    event: Literal["STOP"] = "STOP"


StreamEvent = Union[Event, StreamStart, StreamStop]


class EventStream:
    """Reconnecting event stream for one appliance, or all of them.

    The connection is opened when the first subscriber arrives and is then
    kept open (or reopened) until ``close`` is called.
    """

    reconnect_delay = RECONNECT_DELAY

    def __init__(
        self,
        ua: APIUserAgent,
        validator: KeyValueValidator | None = None,
        haid: str | None = None,
    ) -> None:
        self._ua = ua
        self._validator = validator
        self._haid = haid
        self._subscribers: set[asyncio.Queue[StreamEvent]] = set()
        self._task: asyncio.Task | None = None
        self._sleep = asyncio.sleep

    @property
    def path(self) -> str:
        if self._haid:
            return f"{APPLIANCES_PATH}/{self._haid}/events"
        return f"{APPLIANCES_PATH}/events"

    @property
    def description(self) -> str:
        return f"events stream for {self._haid or 'all appliances'}"

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="hcapi-events")

    async def subscribe(self) -> AsyncIterator[StreamEvent]:
        """Receive events until the caller stops iterating."""
        queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._subscribers.add(queue)
        self.start()
        try:
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    def emit(self, event: StreamEvent) -> None:
        for queue in self._subscribers:
            queue.put_nowait(event)

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # ================================
    # Stream loop
    # ================================

    async def run(self) -> None:
        """Dispatch events, reconnecting each time the stream ends."""
        while True:
            start = time.monotonic()
            failed = False
            try:
                logger.info(f"Starting {self.description}")
                request, response, stream = await self._ua.get_stream(self.path)
                logger.debug(
                    f"Started {self.description} after {format_duration(time.monotonic() - start)}"
                )
                self.emit(StreamStart())

                async with aclosing(stream):
                    async for record in stream:
                        self.emit(self.parse(request, response, record))
            except StreamEndedError:
                self.emit(StreamStop())
            except Exception as err:
                log_error(logger, "API event stream", err)
                self.emit(StreamStop(err))
                failed = True
            finally:
                logger.debug(
                    f"Terminated {self.description} after {format_duration(time.monotonic() - start)}"
                )

            if failed:
                await self._sleep(self.reconnect_delay)

    def parse(self, request: Request, response: httpx.Response, record: SSERecord) -> Event:
        """Convert a raw SSE record into a validated event.

        Raises:
            EventParseError: If the ``data`` field is not valid JSON
            APIValidationError: If the event does not have the expected structure
        """
        body: dict = dict(record)

        if record.get("data"):
            try:
                body["data"] = json.loads(record["data"])
            except ValueError as e:
                raise EventParseError(
                    request, response, f"JSON event data ({e})", record
                ) from e

            # Some events omit the id field but include the appliance in the data
            data = body["data"]
            if isinstance(data, dict) and "haId" in data and not body.get("id"):
                logger.debug("Using data.haId as the missing event id")
                body["id"] = data["haId"]

        try:
            event = Event.model_validate(body)
        except ValidationError as e:
            errors = [
                f"event.{'.'.join(str(p) for p in err['loc'])} {err['msg']}" for err in e.errors()
            ]
            self._ua.log_validation(
                logging.ERROR, "Unexpected structure of Home Connect API event", request, errors, body
            )
            raise APIValidationError(request, response, errors) from e

        unexpected = extra_fields(event, "event")
        if unexpected:
            self._ua.log_validation(
                logging.WARNING,
                "Unexpected fields in Home Connect API event",
                request,
                [f"{path} is not expected" for path in unexpected],
                body,
            )

        if self._validator is not None:
            self._validator.event(event)
        return event


class ConnectionMonitor:
    """Derive an appliance's connection state from its events.

    A stream interruption shorter than ``grace`` is ignored; a longer one
    (or any failure of the stream) is treated as a disconnect, since events
    may have been missed.
    """

    grace = DISCONNECT_DELAY

    def __init__(
        self,
        connected: bool = False,
        on_change: Callable[[bool], None] | None = None,
    ) -> None:
        self._connected = connected
        self._on_change = on_change
        self._pending: asyncio.TimerHandle | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    def handle(self, event: StreamEvent) -> None:
        """Update the connection state from one event."""
        if event.event == "START":
            self._cancel_pending()
        elif event.event == "STOP":
            self._cancel_pending()
            delay = 0 if event.err is not None else self.grace
            self._pending = asyncio.get_running_loop().call_later(delay, self._disconnected)
        elif event.event in ("CONNECTED", "PAIRED"):
            self._set_connected(True)
        elif event.event in ("DISCONNECTED", "DEPAIRED"):
            self._set_connected(False)

    def close(self) -> None:
        self._cancel_pending()

    def _disconnected(self) -> None:
        self._pending = None
        logger.debug("Events may have been missed; treating appliance as disconnected")
        self._set_connected(False)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        logger.info(f"Appliance {'connected' if connected else 'disconnected'}")
        if self._on_change is not None:
            self._on_change(connected)
