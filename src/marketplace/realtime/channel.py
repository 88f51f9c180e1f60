"""Push channel port and its adapters.

``SsePushChannel`` streams Server-Sent Events over ``httpx``. ``FakePushChannel``
is scripted from tests: connections can be refused, messages pushed and the
stream dropped on demand.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import AsyncIterator, Callable

import httpx
import structlog

from marketplace.errors import ChannelError, SessionExpiredError
from marketplace.realtime.events import PushMessage
from marketplace.session.guard import SessionGuard

logger = structlog.get_logger(__name__)


class PushConnection(ABC):
    @abstractmethod
    def messages(self) -> AsyncIterator[PushMessage]:
        """Frames in arrival order. Raises ``ChannelError`` when the stream breaks."""
        ...

    @abstractmethod
    async def close(self) -> None: ...


class PushChannel(ABC):
    @abstractmethod
    async def connect(self) -> PushConnection:
        """Open a connection. Raises ``ChannelError`` if it cannot be opened."""
        ...


# ---------------------------------------------------------------------------
# Server-Sent Events over httpx
# ---------------------------------------------------------------------------
class SseConnection(PushConnection):
    def __init__(self, response: httpx.Response):
        self._response = response

    async def messages(self) -> AsyncIterator[PushMessage]:
        event, data = "message", []
        try:
            async for line in self._response.aiter_lines():
                if not line:
                    if data:
                        yield PushMessage(event=event, data="\n".join(data))
                    event, data = "message", []
                    continue
                if line.startswith(":"):
                    continue  # Comment / keep-alive
                name, _, value = line.partition(":")
                value = value[1:] if value.startswith(" ") else value
                if name == "event":
                    event = value
                elif name == "data":
                    data.append(value)
        except httpx.HTTPError as exc:
            raise ChannelError(f"Push stream broken: {exc}") from exc
        raise ChannelError("Push stream closed by server")

    async def close(self) -> None:
        await self._response.aclose()


class SsePushChannel(PushChannel):
    """Server-Sent Events channel.

    With a ``SessionGuard`` the stream is opened through it, so a 401 triggers
    the shared token refresh and one retry.
    """

    def __init__(
        self,
        url: str,
        guard: SessionGuard | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.guard = guard
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(10.0, read=None))

    async def _open(self, token) -> httpx.Response:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            request = self._client.build_request("GET", self.url, headers=headers)
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise ChannelError(f"Cannot open push channel: {exc}") from exc
        if response.status_code == 401:
            await response.aclose()
            raise SessionExpiredError("Push channel rejected the session token")
        if response.status_code != 200:
            await response.aclose()
            raise ChannelError(f"Push channel refused with HTTP {response.status_code}")
        return response

    async def connect(self) -> PushConnection:
        try:
            if self.guard is None:
                response = await self._open(None)
            else:
                response = await self.guard.call(self._open)
        except SessionExpiredError as exc:
            raise ChannelError(f"Cannot open push channel: {exc}") from exc
        logger.debug("Push channel opened", url=self.url)
        return SseConnection(response)

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Scripted fake
# ---------------------------------------------------------------------------
_DROP = object()


class FakeConnection(PushConnection):
    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    async def messages(self) -> AsyncIterator[PushMessage]:
        while True:
            item = await self.queue.get()
            try:
                if item is _DROP:
                    raise ChannelError("Push connection dropped")
                yield item
            finally:
                self.queue.task_done()

    async def close(self) -> None:
        self.closed = True


class FakePushChannel(PushChannel):
    """Scripted push channel for tests."""

    def __init__(self, refuse: int = 0):
        self.refuse = refuse  # Number of upcoming connects to refuse; -1 refuses forever
        self.connect_count = 0
        self.connections: list[FakeConnection] = []

    @property
    def current(self) -> FakeConnection | None:
        return self.connections[-1] if self.connections else None

    async def connect(self) -> PushConnection:
        self.connect_count += 1
        if self.refuse:
            if self.refuse > 0:
                self.refuse -= 1
            raise ChannelError("Push channel refused")
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    async def push(self, event: str, data: str = "") -> None:
        """Deliver a frame on the open connection and wait until it has been handled."""
        self.current.queue.put_nowait(PushMessage(event=event, data=data))
        await self.current.queue.join()

    def drop(self) -> None:
        self.current.queue.put_nowait(_DROP)

    async def wait_until(self, condition: Callable[[], bool], max_turns: int = 1000) -> None:
        """Yield to the event loop until ``condition()`` holds."""
        for _ in range(max_turns):
            if condition():
                return
            await asyncio.sleep(0)
        raise TimeoutError("Condition not reached")

