from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from auth.models import TokenPair
from auth.token_store import TokenStore
from rowt.constants import LOGGER
from rowt.errors import RefreshFailedError

RefreshFn = Callable[[str], Awaitable[TokenPair]]


class RefreshCoordinator:
    """Owns the token pair and the single-flight refresh protocol.

    Any number of calls that observe an auth failure share one refresh
    exchange. Each caller gets a one-shot future that is settled exactly once
    when that exchange finishes, with the new access token or with a
    :class:`RefreshFailedError`.
    """

    def __init__(
        self,
        store: TokenStore,
        refresh_fn: RefreshFn,
        *,
        refresh_timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._refresh_fn = refresh_fn
        self._refresh_timeout = refresh_timeout
        self._logger = logger or LOGGER

        self._refresh_in_progress = False
        self._pending: list[asyncio.Future[str]] = []
        self._refresh_task: asyncio.Task | None = None

    @property
    def store(self) -> TokenStore:
        return self._store

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_in_progress

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def tokens(self) -> TokenPair | None:
        return await self._store.get()

    async def access_token(self) -> str | None:
        pair = await self._store.get()
        if pair is None:
            return None
        return pair.access_token

    async def establish(self, pair: TokenPair) -> None:
        await self._store.set(pair)

    async def clear(self) -> None:
        await self._store.clear()

    def on_auth_failure(self) -> asyncio.Future[str]:
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[str] = loop.create_future()
        self._pending.append(waiter)

        # No await between the check and the set.
        if not self._refresh_in_progress:
            self._refresh_in_progress = True
            self._logger.info("Refreshing access token...")
            self._refresh_task = loop.create_task(self._run_refresh())

        return waiter

    async def refresh(self) -> str:
        """Refresh proactively, joining any refresh that is already running."""
        return await self.on_auth_failure()

    async def _exchange(self) -> TokenPair:
        pair = await self._store.get()
        if pair is None:
            raise RefreshFailedError("No refresh token available.")

        if self._refresh_timeout is None:
            return await self._refresh_fn(pair.refresh_token)
        try:
            return await asyncio.wait_for(
                self._refresh_fn(pair.refresh_token), self._refresh_timeout
            )
        except asyncio.TimeoutError as error:
            raise RefreshFailedError(
                f"Token refresh timed out after {self._refresh_timeout}s."
            ) from error

    async def _run_refresh(self) -> None:
        try:
            pair = await self._exchange()
            await self._store.set(pair)
        except asyncio.CancelledError:
            self._drain(error=RefreshFailedError("Token refresh was cancelled."))
            raise
        except Exception as error:
            self._logger.warning("Token refresh failed, clearing tokens: %s", error)
            if isinstance(error, RefreshFailedError):
                failure = error
            else:
                failure = RefreshFailedError(f"Token refresh failed: {error}")
                failure.__cause__ = error
            try:
                await self._store.clear()
            finally:
                self._drain(error=failure)
        else:
            self._logger.info("Token refresh successful.")
            self._drain(token=pair.access_token)

    def _drain(
        self,
        *,
        token: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        pending, self._pending = self._pending, []
        self._refresh_in_progress = False
        self._refresh_task = None

        for waiter in pending:
            # The awaiting task may have been cancelled meanwhile.
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(token)
