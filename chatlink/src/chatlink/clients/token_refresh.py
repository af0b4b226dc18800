"""
Single-flight access token refresh.

When several requests fail with an expired access token at the same
time, each of them asks the coordinator for a new token.  Only the first
request starts a network call; everyone else awaits the same in-flight
task and receives the same result.  Once the call settles the in-flight
marker is cleared so a later expiry starts a new cycle.

The coordinator is the only writer of the access token in the session
store, and writes it only after the refresh call has completed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .. import telemetry
from .session_store import ACCESS_TOKEN_KEY, SessionStore

logger = logging.getLogger(__name__)

RefreshCall = Callable[[str], Awaitable[Optional[str]]]


class TokenRefreshCoordinator:
    """Exchange a refresh token for an access token, one call at a time.

    Args:
        fetch: Coroutine function performing the refresh network call.
            It returns the new access token, or ``None`` when the server
            returned none.  Exceptions are treated as ``None``.
        store: Session store receiving the new access token.
    """

    def __init__(self, fetch: RefreshCall, store: SessionStore) -> None:
        self._fetch = fetch
        self.store = store
        self._in_flight: Optional["asyncio.Task[Optional[str]]"] = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None

    async def refresh(self, refresh_token: str) -> Optional[str]:
        """Return a new access token, joining a running refresh if any."""
        task = self._in_flight
        if task is None:
            task = asyncio.ensure_future(self._run(refresh_token))
            self._in_flight = task
        else:
            logger.debug("Joining in-flight token refresh")
        # A waiter that gets cancelled must not cancel the shared call
        return await asyncio.shield(task)

    async def _run(self, refresh_token: str) -> Optional[str]:
        try:
            try:
                token = await self._fetch(refresh_token)
            except Exception as exc:
                logger.warning("Token refresh call failed: %s", exc)
                token = None
            if token:
                self.store.set(ACCESS_TOKEN_KEY, token)
                telemetry.token_refreshes.labels(outcome="success").inc()
                logger.info("Access token refreshed")
                return token
            telemetry.token_refreshes.labels(outcome="failure").inc()
            logger.warning("Token refresh returned no access token")
            return None
        finally:
            self._in_flight = None
