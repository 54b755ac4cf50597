from sqlalchemy import (
    Column,
    String,
    Float,
    DateTime,
    JSON,
    Index,
    event,
)
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ==================== SNAPSHOT CACHE ====================


class CachedSnapshot(Base):
    """Last portfolio snapshot per identity, persisted across restarts."""

    __tablename__ = "cached_snapshots"

    identity = Column(String, primary_key=True)
    payload = Column(JSON, nullable=False)  # PortfolioSnapshot.model_dump(mode="json")
    stored_at = Column(Float, nullable=False)  # cache clock seconds (epoch)
    ttl_seconds = Column(Float, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("idx_cs_stored_at", "stored_at"),)


# ==================== DATABASE SETUP ====================


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _ensure_sqlite_dir(url: str) -> None:
    for prefix in ("sqlite+aiosqlite:///", "sqlite:///"):
        if url.startswith(prefix):
            path_part = url[len(prefix) :]
            if path_part and path_part != ":memory:":
                Path(path_part).parent.mkdir(parents=True, exist_ok=True)
            return


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Configure SQLite for concurrent access (WAL mode, busy timeout)."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=30000")
    cursor.close()


def create_engine_for(url: str):
    kw: dict = {"echo": False}
    if _is_sqlite(url):
        _ensure_sqlite_dir(url)
        kw["connect_args"] = {"timeout": 30}  # Wait up to 30s when DB is locked
    engine = create_async_engine(url, **kw)
    if _is_sqlite(url):
        event.listen(engine.sync_engine, "connect", _set_sqlite_pragma)
    return engine


def create_session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_database(engine) -> None:
    """Create the snapshot table if it does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Snapshot store ready")
