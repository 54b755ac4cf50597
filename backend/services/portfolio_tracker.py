"""
Portfolio refresh pipeline.

``PortfolioTracker`` is the composition root: it builds the two caches, the
fetcher, the RPC client and the reader, and owns their lifecycle. A refresh
reads a full snapshot for one identity; at most one refresh per identity is
in flight, and a request arriving meanwhile is dropped rather than queued.

One identity at a time can be *tracked*. Tracking starts a periodic
auto-refresh task; switching identity stops the old task before starting
the new one and bumps a generation counter. A refresh that completes after
the switch is still cached under its own identity but is not published as
the current snapshot.
"""

import asyncio
import contextlib
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from config import settings
from models.analytics import AnalyticsSummary
from models.portfolio import PortfolioSnapshot
from services.cache_store import CacheStore
from services.portfolio_analytics import get_analytics
from services.portfolio_reader import PortfolioReader
from services.qubic_client import QubicRpcClient
from services.resilient_fetcher import ResilientFetcher
from services.snapshot_cache import SnapshotCacheService
from utils.logger import get_logger
from utils.retry import FetchFailure, RetryConfig
from utils.validation import validate_identity

logger = get_logger("portfolio_tracker")


class RefreshState(str, Enum):
    IDLE = "idle"
    REFRESHING = "refreshing"


class PortfolioTracker:
    """Refresh, cache and analyse portfolio snapshots"""

    def __init__(
        self,
        *,
        client: Optional[QubicRpcClient] = None,
        request_cache: Optional[CacheStore] = None,
        snapshot_cache: Optional[SnapshotCacheService] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transaction_limit: Optional[int] = None,
        auto_refresh_enabled: Optional[bool] = None,
        auto_refresh_interval: Optional[float] = None,
    ):
        self.request_cache = (
            request_cache
            if request_cache is not None
            else CacheStore(settings.REQUEST_CACHE_TTL_SECONDS, name="request")
        )
        self.snapshot_cache = (
            snapshot_cache
            if snapshot_cache is not None
            else SnapshotCacheService(
                CacheStore(settings.SNAPSHOT_CACHE_TTL_SECONDS, name="snapshot")
            )
        )
        self.client = client if client is not None else QubicRpcClient()
        self.fetcher = ResilientFetcher(
            self.request_cache,
            retry_config if retry_config is not None else RetryConfig.from_settings(settings),
            sleep=sleep,
        )
        self.reader = PortfolioReader(self.client, self.fetcher)

        self.transaction_limit = (
            settings.TRANSACTION_LIMIT if transaction_limit is None else transaction_limit
        )
        self.auto_refresh_enabled = (
            settings.AUTO_REFRESH_ENABLED if auto_refresh_enabled is None else auto_refresh_enabled
        )
        self.auto_refresh_interval = (
            settings.AUTO_REFRESH_INTERVAL_SECONDS
            if auto_refresh_interval is None
            else auto_refresh_interval
        )
        self._sleep = sleep

        self._states: dict[str, RefreshState] = {}
        self._generation = 0
        self.tracked_identity: Optional[str] = None
        self.current_snapshot: Optional[PortfolioSnapshot] = None
        self._auto_refresh_task: Optional[asyncio.Task] = None

    # ==================== REFRESH ====================

    def state_of(self, identity: str) -> RefreshState:
        return self._states.get(identity, RefreshState.IDLE)

    @property
    def generation(self) -> int:
        return self._generation

    async def refresh(self, identity: str) -> Optional[PortfolioSnapshot]:
        """Read a fresh snapshot for ``identity``.

        Returns ``None`` when a refresh for the same identity is already
        running. Raises ``InvalidIdentity`` before any I/O for a bad identity
        and ``FetchFailure`` when a read exhausted its retries; in that case
        the previously cached snapshot is left untouched.
        """
        identity = validate_identity(identity)
        log = logger.with_context(identity=identity)

        if self.state_of(identity) == RefreshState.REFRESHING:
            log.debug("Refresh already in flight, dropping request")
            return None

        generation = self._generation
        self._states[identity] = RefreshState.REFRESHING
        try:
            snapshot = await self.reader.read_snapshot(identity, self.transaction_limit)
        except FetchFailure as e:
            log.warning(
                "Refresh failed, keeping last cached snapshot",
                error=str(e),
                attempts=e.attempts,
            )
            raise
        finally:
            self._states[identity] = RefreshState.IDLE

        await self.snapshot_cache.put(snapshot)
        # Responses for identities nobody reads again would otherwise linger.
        purged = self.request_cache.purge_expired()
        if purged:
            log.debug("Purged expired request cache entries", purged=purged)

        if identity == self.tracked_identity:
            if generation == self._generation:
                self.current_snapshot = snapshot
            else:
                log.info(
                    "Discarding stale refresh result",
                    started_generation=generation,
                    current_generation=self._generation,
                )

        log.info(
            "Portfolio refreshed",
            balance=snapshot.balance,
            assets=len(snapshot.assets),
            transactions=len(snapshot.transactions),
            tick=snapshot.network_status.current_tick,
        )
        return snapshot

    def get_cached_snapshot(self, identity: str) -> Optional[PortfolioSnapshot]:
        return self.snapshot_cache.get(validate_identity(identity))

    def get_analytics(self, snapshot: PortfolioSnapshot) -> AnalyticsSummary:
        return get_analytics(snapshot)

    async def clear_caches(self) -> None:
        """Drop every cached request and snapshot (memory and disk)."""
        self.request_cache.clear()
        await self.snapshot_cache.clear()
        logger.info("Caches cleared")

    # ==================== TRACKING / AUTO REFRESH ====================

    async def track(self, identity: str, *, refresh_now: bool = True) -> Optional[PortfolioSnapshot]:
        """Make ``identity`` the tracked identity and restart auto-refresh.

        Tracking the identity that is already tracked is a no-op: the
        generation is unchanged, so a refresh in flight still publishes.
        """
        identity = validate_identity(identity)
        if identity == self.tracked_identity:
            return self.current_snapshot

        await self.stop_auto_refresh()
        self._generation += 1
        generation = self._generation
        self.tracked_identity = identity
        self.current_snapshot = self.snapshot_cache.get(identity)
        logger.info("Tracking identity", identity=identity, generation=generation)

        snapshot = None
        if refresh_now:
            try:
                snapshot = await self.refresh(identity)
            except FetchFailure:
                snapshot = None

        # Another track() may have switched identity while we were reading.
        if generation != self._generation:
            return snapshot

        if self.auto_refresh_enabled:
            self._auto_refresh_task = asyncio.create_task(
                self._auto_refresh_loop(identity, generation)
            )
        return snapshot or self.current_snapshot

    async def stop_auto_refresh(self) -> None:
        task = self._auto_refresh_task
        self._auto_refresh_task = None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def auto_refresh_running(self) -> bool:
        return self._auto_refresh_task is not None and not self._auto_refresh_task.done()

    async def _auto_refresh_loop(self, identity: str, generation: int) -> None:
        while generation == self._generation:
            await self._sleep(self.auto_refresh_interval)
            if generation != self._generation:
                break
            try:
                # Shielded: stopping the timer never cancels a read in flight.
                await asyncio.shield(self.refresh(identity))
            except FetchFailure as e:
                logger.warning("Auto-refresh failed", identity=identity, error=str(e))
            except Exception as e:
                logger.exception("Auto-refresh loop error", identity=identity, error=str(e))

    async def close(self) -> None:
        await self.stop_auto_refresh()
        await self.client.close()
