from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from hlink_common.errors import NotAuthorized, RefreshFailed, UpstreamUnauthorized
from hlink_mcp.core_infrastructure.token_store import TokenRecord, now_ms
from hlink_mcp.domain.ports import TokenStorePort

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Refresh ahead of time when the stored token expires within this window.
PROACTIVE_WINDOW_MS = 5 * 60 * 1000

Operation = Callable[[str], Awaitable[T]]
Refresh = Callable[[TokenRecord], TokenRecord]


class AutoRefresher:
    """
    Runs an upstream call with a valid access token for one provider.

    - Proactive: a record expiring within five minutes is refreshed before the call.
      A rejected refresh there means the user has to authorize again (NotAuthorized).
    - Reactive: when the call fails with UpstreamUnauthorized, the stored record is
      reloaded, refreshed and the call is retried exactly once. Failures on that
      path propagate unchanged.

    `refresh` is a blocking function (HTTP); it runs in a worker thread.
    """

    def __init__(
        self,
        provider: str,
        store: TokenStorePort,
        refresh: Refresh,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.provider = provider
        self.store = store
        self._refresh = refresh
        self._clock = clock

    async def _refresh_and_save(self, record: TokenRecord) -> TokenRecord:
        fresh = await asyncio.to_thread(self._refresh, record)
        await asyncio.to_thread(self.store.save, fresh)
        return fresh

    async def ensure_valid_token(self) -> str:
        record = await asyncio.to_thread(self.store.load)
        if record is None:
            raise NotAuthorized(self.provider)

        if record.refresh_token and record.expires_within(PROACTIVE_WINDOW_MS, now=self._clock()):
            logger.info("%s token expires soon; refreshing before the call", self.provider)
            try:
                record = await self._refresh_and_save(record)
            except RefreshFailed as e:
                raise NotAuthorized(
                    self.provider,
                    f"{self.provider} token expired and could not be refreshed. Please authorize again.",
                ) from e

        return record.access_token

    async def call(self, operation: Operation[T]) -> T:
        access_token = await self.ensure_valid_token()

        try:
            return await operation(access_token)
        except UpstreamUnauthorized as e:
            logger.info("%s rejected the access token (status=%s); refreshing and retrying once", self.provider, e.status)
            record = await asyncio.to_thread(self.store.load)
            if record is None or not record.refresh_token:
                raise

        fresh = await self._refresh_and_save(record)
        logger.info("%s token refreshed; retrying", self.provider)
        return await operation(fresh.access_token)

    async def refresh_now(self) -> TokenRecord:
        """Explicit refresh for the manual refresh tools."""
        record = await asyncio.to_thread(self.store.load)
        if record is None:
            raise NotAuthorized(self.provider, f"No {self.provider} tokens configured.")
        return await self._refresh_and_save(record)
