"""SessionGuard: single-flight credential refresh under every network call.

When a call fails with ``SessionExpiredError`` the guard starts one refresh
task; every other call that fails while it runs awaits the same task. Each
call is retried at most once with the refreshed token. A failed refresh
rejects every waiter with ``SessionExpiredError`` and marks the session as
needing a fresh login, after which calls fail fast until ``authenticate``.

``SessionState`` is owned by one guard and only written by its refresh task.
"""

import asyncio
from typing import Awaitable, Callable

import structlog

from marketplace.errors import MarketplaceError, SessionExpiredError

logger = structlog.get_logger(__name__)


class SessionState:
    def __init__(self, token: str | None = None):
        self.token = token
        self.generation = 0
        self.requires_reauth = False

    def authenticate(self, token: str) -> None:
        """Install a token obtained from a fresh login."""
        self.token = token
        self.generation += 1
        self.requires_reauth = False

    def __repr__(self) -> str:
        return f"<SessionState generation={self.generation} requires_reauth={self.requires_reauth}>"


class SessionGuard:
    def __init__(self, state: SessionState, refresher: Callable[[], Awaitable[str]]):
        self.state = state
        self._refresher = refresher
        self._refresh_task: asyncio.Task | None = None
        self.refresh_count = 0

    @property
    def refreshing(self) -> bool:
        return self._refresh_task is not None

    async def _run_refresh(self) -> None:
        self.refresh_count += 1
        logger.info("Refreshing session", generation=self.state.generation)
        try:
            token = await self._refresher()
        except MarketplaceError as exc:
            self.state.requires_reauth = True
            logger.warning("Session refresh failed; login required", error=str(exc))
            raise SessionExpiredError("Session refresh failed; please sign in again") from exc
        finally:
            self._refresh_task = None
        self.state.token = token
        self.state.generation += 1
        logger.info("Session refreshed", generation=self.state.generation)

    async def refresh(self, failed_generation: int | None = None) -> None:
        """Join the in-flight refresh or start one.

        A caller whose request went out before the last completed refresh
        just retries with the new token. Once a refresh has failed, later
        callers are rejected instead of starting another one.
        """
        if self.state.requires_reauth:
            raise SessionExpiredError("Session expired; please sign in again")
        if failed_generation is not None and failed_generation != self.state.generation:
            return
        if self._refresh_task is None:
            self._refresh_task = asyncio.ensure_future(self._run_refresh())
        await asyncio.shield(self._refresh_task)

    async def call(self, request: Callable[[str | None], Awaitable]):
        """Run ``request(token)``, refreshing and retrying once on ``SessionExpiredError``."""
        if self.state.requires_reauth:
            raise SessionExpiredError("Session expired; please sign in again")

        generation = self.state.generation
        try:
            return await request(self.state.token)
        except SessionExpiredError:
            logger.debug("Request rejected with expired session", generation=generation)

        await self.refresh(generation)
        return await request(self.state.token)
