"""Reconnecting server-sent-event subscriptions for call builders.

A ``Subscription`` owns one live ``text/event-stream`` connection at a time
and moves through ``SubscriptionState``:

    CONNECTING -> STREAMING -> RECONNECTING -> STREAMING ... -> CLOSED

If no message arrives within ``reconnect_timeout`` seconds the connection
is dropped and re-established without reporting an error; a stalled stream
is not a failure. Transport errors and non-2xx answers are passed to
``on_error`` before the next attempt. An exception raised by ``on_message``
or ``on_error`` is not a connection failure: it is logged, ends the
subscription and is re-raised by ``aclose()``. Each handled message carrying
a ``paging_token`` moves the builder's cursor, so a reconnect resumes from
the last record handled. Records around the reconnect boundary may be
delivered twice.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx

from memo_ledger.services.errors import ConfigurationError, LedgerError, NetworkError, check_response

if TYPE_CHECKING:
    from memo_ledger.services.call_builder import CallBuilder

# Configure logger for this module
logger = logging.getLogger(__name__)

# Delay before reopening a stream the server closed, unless it sent `retry:`
DEFAULT_RETRY_SECONDS = 1.0
STREAM_CONNECT_TIMEOUT_SECONDS = 10.0

MessageHandler = Callable[[dict[str, Any]], Awaitable[None] | None]
ErrorHandler = Callable[[Exception], Awaitable[None] | None]


class SubscriptionState(Enum):
    """Lifecycle states of a push subscription."""

    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


@dataclass(frozen=True)
class ServerSentEvent:
    """A single dispatched event from a ``text/event-stream`` body."""

    event: str = "message"
    data: str = ""
    id: str | None = None


class EventStreamParser:
    """Line-oriented parser for the ``text/event-stream`` format."""

    def __init__(self) -> None:
        self.retry_seconds: float | None = None
        self._reset()

    def _reset(self) -> None:
        self._event = "message"
        self._data: list[str] = []
        self._id: str | None = None

    def feed(self, line: str) -> ServerSentEvent | None:
        """Consume one line; return an event when a blank line completes one."""
        if line == "":
            if not self._data:
                self._reset()
                return None
            event = ServerSentEvent(event=self._event, data="\n".join(self._data), id=self._id)
            self._reset()
            return event

        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value or "message"
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            self._id = value
        elif name == "retry" and value.isdigit():
            self.retry_seconds = int(value) / 1000
        return None


async def _maybe_await(result: Awaitable[None] | None) -> None:
    if inspect.isawaitable(result):
        await result


async def _next_line(lines: AsyncIterator[str]) -> str:
    return await anext(lines)


class _HandlerError(Exception):
    """Carries an exception raised by a subscriber callback out of the connection."""

    def __init__(self, error: Exception) -> None:
        super().__init__(str(error))
        self.error = error


class Subscription:
    """Reconnecting push subscription bound to a call builder.

    Args:
        builder: Builder whose URL (and cursor) define the stream.
        on_message: Called with each normalised record. May be a coroutine function.
        on_error: Called with connection-level errors only.
        reconnect_timeout: Seconds without a message before reconnecting.
    """

    def __init__(
        self,
        builder: CallBuilder,
        on_message: MessageHandler,
        on_error: ErrorHandler | None = None,
        reconnect_timeout: float = 15.0,
    ) -> None:
        if reconnect_timeout <= 0:
            raise ConfigurationError("Reconnect timeout must be positive", reconnect_timeout)
        self._builder = builder
        self._on_message = on_message
        self._on_error = on_error
        self.reconnect_timeout = reconnect_timeout
        self.state = SubscriptionState.CONNECTING
        self.connections = 0
        self._task: asyncio.Task[None] | None = None
        self._retry_seconds = DEFAULT_RETRY_SECONDS

    @property
    def closed(self) -> bool:
        return self.state is SubscriptionState.CLOSED

    def start(self) -> None:
        """Start the background connection loop."""
        if self.closed:
            raise ConfigurationError("Subscription is closed")
        if self._task is None:
            self._task = asyncio.create_task(self._run())
            self._task.add_done_callback(_retrieve_exception)

    def close(self) -> None:
        """Tear down the connection; no callback fires after this returns."""
        if self.closed:
            return
        self.state = SubscriptionState.CLOSED
        if self._task is not None:
            self._task.cancel()

    async def aclose(self) -> None:
        """Close and wait for the connection loop to finish.

        Re-raises any exception a callback raised inside the loop.
        """
        self.close()
        if self._task is not None and self._task is not asyncio.current_task():
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _run(self) -> None:
        try:
            while not self.closed:
                try:
                    await self._connect_once()
                except _HandlerError as exc:
                    raise exc.error from None
                except LedgerError as exc:
                    if self.closed:
                        return
                    logger.warning("Stream connection failed: %s", exc)
                    self.state = SubscriptionState.RECONNECTING
                    await self._dispatch_error(exc)
                    await asyncio.sleep(self.reconnect_timeout)
                    continue

                if not self.closed:
                    self.state = SubscriptionState.RECONNECTING
                    await asyncio.sleep(min(self._retry_seconds, self.reconnect_timeout))
        except Exception:
            logger.exception("Stream subscription to %s stopped by a handler error", self._builder.url)
            raise
        finally:
            self.state = SubscriptionState.CLOSED

    async def _connect_once(self) -> None:
        url = self._builder.build_url()
        self.connections += 1
        parser = EventStreamParser()
        logger.debug("Opening stream %s (connection %d)", url, self.connections)
        try:
            async with self._builder.client.stream(
                "GET",
                url,
                headers={"Accept": "text/event-stream"},
                timeout=httpx.Timeout(STREAM_CONNECT_TIMEOUT_SECONDS, read=None),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    check_response(response)
                self.state = SubscriptionState.STREAMING
                await self._consume(response.aiter_lines(), parser)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Stream request to {url} failed: {exc}") from exc
        finally:
            if parser.retry_seconds is not None:
                self._retry_seconds = parser.retry_seconds

    async def _consume(self, lines: AsyncIterator[str], parser: EventStreamParser) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.reconnect_timeout
        while not self.closed:
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.debug("No message within %.1fs; reconnecting", self.reconnect_timeout)
                return
            try:
                line = await asyncio.wait_for(_next_line(lines), timeout=remaining)
            except asyncio.TimeoutError:
                logger.debug("No message within %.1fs; reconnecting", self.reconnect_timeout)
                return
            except StopAsyncIteration:
                logger.debug("Stream closed by server")
                return

            event = parser.feed(line)
            if event is None or event.event != "message":
                continue
            deadline = loop.time() + self.reconnect_timeout
            await self._dispatch_message(event)

    async def _dispatch_message(self, event: ServerSentEvent) -> None:
        if self.closed:
            return
        try:
            data = json.loads(event.data)
        except ValueError:
            logger.debug("Ignoring non-JSON stream event: %r", event.data)
            return
        if not isinstance(data, dict):
            logger.debug("Ignoring non-record stream event: %r", data)
            return

        record = self._builder.parse_record(data)
        try:
            await _maybe_await(self._on_message(record))
        except Exception as exc:
            raise _HandlerError(exc) from exc
        # The cursor moves only after the handler returned.
        if record.get("paging_token"):
            self._builder.cursor(str(record["paging_token"]))

    async def _dispatch_error(self, exc: Exception) -> None:
        if self.closed or self._on_error is None:
            return
        await _maybe_await(self._on_error(exc))


def _retrieve_exception(task: asyncio.Task[None]) -> None:
    # Logged in _run; marks the exception retrieved for callers that only close().
    if not task.cancelled():
        task.exception()
