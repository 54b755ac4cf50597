"""
Snapshot cache with best-effort SQL persistence.

The in-memory ``CacheStore`` is authoritative for reads. Writes go to memory
first and are then upserted into the ``cached_snapshots`` table so a restart
can pick up recent snapshots again. Database errors are logged and never
surface to callers; the service keeps working with memory only.
"""

from typing import Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert

from models.database import CachedSnapshot
from models.portfolio import PortfolioSnapshot
from services.cache_store import CacheStore
from utils.logger import get_logger

logger = get_logger("snapshot_cache")


class SnapshotCacheService:
    """Identity -> last good ``PortfolioSnapshot``, with write-through to SQL."""

    def __init__(self, store: CacheStore, session_factory=None):
        self.store = store
        self._session_factory = session_factory
        self._loaded = False

    @property
    def persistent(self) -> bool:
        return self._session_factory is not None

    # -------------------- Startup --------------------

    async def load_from_db(self) -> int:
        """Restore unexpired snapshots into memory; returns how many."""
        if not self.persistent:
            self._loaded = True
            return 0

        restored = 0
        expired: list[str] = []
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(CachedSnapshot))
                now = self.store.now()
                for row in result.scalars().all():
                    if now - row.stored_at >= row.ttl_seconds:
                        expired.append(row.identity)
                        continue
                    try:
                        snapshot = PortfolioSnapshot.model_validate(row.payload)
                    except ValidationError as e:
                        logger.warning(
                            "Discarding unreadable persisted snapshot",
                            identity=row.identity,
                            error=str(e),
                        )
                        expired.append(row.identity)
                        continue
                    self.store.set(
                        row.identity,
                        snapshot,
                        ttl=row.ttl_seconds,
                        stored_at=row.stored_at,
                    )
                    restored += 1

                if expired:
                    await session.execute(
                        delete(CachedSnapshot).where(CachedSnapshot.identity.in_(expired))
                    )
                    await session.commit()
            logger.info("Snapshot cache loaded from database", restored=restored, expired=len(expired))
        except Exception as e:
            logger.error("Failed to load snapshot cache from database", error=str(e))
        self._loaded = True
        return restored

    # -------------------- Reads / writes --------------------

    def get(self, identity: str) -> Optional[PortfolioSnapshot]:
        return self.store.get(identity)

    async def put(self, snapshot: PortfolioSnapshot) -> None:
        """Cache a snapshot (write-through: memory + DB)."""
        entry = self.store.set(snapshot.identity, snapshot)
        if not self.persistent:
            return

        try:
            async with self._session_factory() as session:
                stmt = sqlite_upsert(CachedSnapshot).values(
                    identity=snapshot.identity,
                    payload=snapshot.model_dump(mode="json"),
                    stored_at=entry.stored_at,
                    ttl_seconds=entry.ttl,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["identity"],
                    set_={
                        "payload": stmt.excluded.payload,
                        "stored_at": stmt.excluded.stored_at,
                        "ttl_seconds": stmt.excluded.ttl_seconds,
                    },
                )
                await session.execute(stmt)
                await session.commit()
        except Exception as e:
            logger.error(
                "Failed to persist snapshot",
                identity=snapshot.identity,
                error=str(e),
            )

    async def invalidate(self, identity: str) -> None:
        self.store.invalidate(identity)
        if not self.persistent:
            return
        try:
            async with self._session_factory() as session:
                await session.execute(
                    delete(CachedSnapshot).where(CachedSnapshot.identity == identity)
                )
                await session.commit()
        except Exception as e:
            logger.error("Failed to delete persisted snapshot", identity=identity, error=str(e))

    async def clear(self) -> None:
        self.store.clear()
        if not self.persistent:
            return
        try:
            async with self._session_factory() as session:
                await session.execute(delete(CachedSnapshot))
                await session.commit()
        except Exception as e:
            logger.error("Failed to clear persisted snapshots", error=str(e))
