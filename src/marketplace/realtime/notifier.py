"""RealtimeNotifier: keeps local order views live over the push channel.

One supervisor task owns the connection and the reconnect timer. A failed
connect or a dropped stream moves to ``backoff`` and sleeps
``base_delay * 2 ** (attempt - 1)`` before trying again. Once
``max_attempts`` reconnects have failed the notifier settles in
``unavailable`` and stops trying; views then rely on ``refresh_order``.
``reconnect`` starts over with the attempt counter at zero, always closing
the previous connection first.

    idle → connecting → open
    connecting | open → backoff → connecting
    backoff → unavailable            (attempts exhausted)
    any → closed                     (close)
"""

import asyncio
import contextlib
from enum import Enum
from typing import Awaitable, Callable

import structlog
from protean.exceptions import ValidationError

from marketplace.config import MarketplaceConfig
from marketplace.errors import ChannelError
from marketplace.realtime.channel import PushChannel, PushConnection
from marketplace.realtime.events import (
    Connected,
    DiscountStatusChanged,
    OrderUpdated,
    PushMessage,
    ServerError,
    parse,
)

logger = structlog.get_logger(__name__)


class NotifierState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    BACKOFF = "backoff"
    UNAVAILABLE = "unavailable"
    CLOSED = "closed"


class RealtimeNotifier:
    def __init__(
        self,
        channel: PushChannel,
        board=None,
        resolver=None,
        base_delay: float = 3.0,
        max_attempts: int = 5,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        on_state_change: Callable[[NotifierState], None] | None = None,
    ):
        self.channel = channel
        self.board = board
        self.resolver = resolver
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.state = NotifierState.IDLE
        self.attempts = 0
        self._sleep = sleep
        self._on_state_change = on_state_change
        self._task: asyncio.Task | None = None
        self._connection: PushConnection | None = None

    @classmethod
    def from_config(cls, config: MarketplaceConfig, channel: PushChannel, **kwargs) -> "RealtimeNotifier":
        return cls(
            channel,
            base_delay=config.realtime_base_delay,
            max_attempts=config.realtime_max_attempts,
            **kwargs,
        )

    @property
    def is_live(self) -> bool:
        return self.state == NotifierState.OPEN

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * 2 ** (attempt - 1)

    def _set_state(self, state: NotifierState) -> None:
        if state == self.state:
            return
        logger.info("Realtime state changed", previous=self.state.value, state=state.value, attempts=self.attempts)
        self.state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def start(self) -> None:
        """Begin connecting. No-op while already connecting, open or backing off."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.ensure_future(self._supervise())

    async def _stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._close_connection()

    async def reconnect(self) -> None:
        """User-initiated retry: closes the old connection and resets the attempt counter."""
        await self._stop()
        self.attempts = 0
        self._set_state(NotifierState.IDLE)
        self.start()

    async def close(self) -> None:
        await self._stop()
        self._set_state(NotifierState.CLOSED)

    async def wait(self) -> None:
        """Wait for the supervisor to give up (``unavailable``)."""
        if self._task is not None:
            await self._task

    async def _close_connection(self) -> None:
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()

    # -------------------------------------------------------------------
    # Supervisor
    # -------------------------------------------------------------------
    async def _listen(self, connection: PushConnection) -> None:
        async with contextlib.aclosing(connection.messages()) as messages:
            async for message in messages:
                self._dispatch(message)
        raise ChannelError("Push stream ended")

    async def _supervise(self) -> None:
        while True:
            self._set_state(NotifierState.CONNECTING)
            try:
                self._connection = await self.channel.connect()
                self.attempts = 0
                self._set_state(NotifierState.OPEN)
                await self._listen(self._connection)
            except ChannelError as exc:
                logger.warning("Realtime channel failed", error=str(exc), attempts=self.attempts)
            finally:
                await self._close_connection()

            if self.attempts >= self.max_attempts:
                self._set_state(NotifierState.UNAVAILABLE)
                logger.warning("Realtime updates unavailable", attempts=self.attempts)
                return

            self.attempts += 1
            self._set_state(NotifierState.BACKOFF)
            await self._sleep(self.delay_for(self.attempts))

    # -------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------
    def _dispatch(self, message: PushMessage) -> None:
        try:
            event = parse(message)
        except ValueError as exc:
            logger.warning("Skipping malformed push message", push_event=message.event, error=str(exc))
            return

        if isinstance(event, ServerError):
            raise ChannelError(event.message or "Push channel reported an error")
        if isinstance(event, Connected):
            self.attempts = 0
            return

        try:
            if isinstance(event, OrderUpdated):
                self._on_order_updated(event)
            elif isinstance(event, DiscountStatusChanged):
                self._on_discount_status_changed(event)
        except ValidationError as exc:
            logger.warning("Push update rejected", push_event=message.event, error=str(exc))
        except Exception:
            logger.exception("Push update handler failed", push_event=message.event)

    def _on_order_updated(self, event: OrderUpdated) -> None:
        if self.board is not None:
            self.board.apply_update(event.order_id, event.status)

    def _on_discount_status_changed(self, event: DiscountStatusChanged) -> None:
        if self.resolver is not None and not event.is_active:
            self.resolver.invalidate(event.discount_id)

    async def refresh_order(self, order_id):
        """Poll one order on demand, for when live updates are unavailable."""
        return await self.board.refresh(order_id)
