import traceback
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from api import router
from models.database import create_engine_for, create_session_factory, init_database
from services.cache_store import CacheStore
from services.portfolio_tracker import PortfolioTracker
from services.snapshot_cache import SnapshotCacheService
from utils.logger import setup_logging, get_logger

setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
logger = get_logger("main")


async def build_tracker() -> tuple[PortfolioTracker, object]:
    """Compose caches, persistence and the tracker. Returns (tracker, engine)."""
    engine = None
    session_factory = None
    if settings.SNAPSHOT_PERSISTENCE_ENABLED:
        try:
            engine = create_engine_for(settings.DATABASE_URL)
            await init_database(engine)
            session_factory = create_session_factory(engine)
        except Exception as e:
            # Persistence is best effort; fall back to memory-only snapshots.
            logger.warning("Snapshot persistence unavailable", error=str(e))
            if engine is not None:
                await engine.dispose()
            engine = None
            session_factory = None

    snapshot_cache = SnapshotCacheService(
        CacheStore(settings.SNAPSHOT_CACHE_TTL_SECONDS, name="snapshot"),
        session_factory=session_factory,
    )
    await snapshot_cache.load_from_db()

    tracker = PortfolioTracker(
        request_cache=CacheStore(settings.REQUEST_CACHE_TTL_SECONDS, name="request"),
        snapshot_cache=snapshot_cache,
    )
    return tracker, engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Qubic portfolio tracker", rpc_url=settings.QUBIC_RPC_URL)
    tracker, engine = await build_tracker()
    app.state.tracker = tracker
    try:
        yield
    finally:
        logger.info("Shutting down...")
        await tracker.close()
        if engine is not None:
            await engine.dispose()
        logger.info("Shutdown complete")


app = FastAPI(
    title="Qubic Portfolio Tracker",
    description="Read-only Qubic portfolio snapshots and analytics",
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        traceback=traceback.format_exc(),
    )
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api", tags=["Portfolio"])


@app.get("/health")
async def health_check():
    """Basic health check - for load balancers"""
    return {"status": "ok"}


@app.get("/health/detailed")
async def detailed_health_check(request: Request):
    tracker: PortfolioTracker = request.app.state.tracker
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tracked_identity": tracker.tracked_identity,
        "auto_refresh": tracker.auto_refresh_running,
        "request_cache_entries": len(tracker.request_cache),
        "snapshot_cache_entries": len(tracker.snapshot_cache.store),
        "snapshot_persistence": tracker.snapshot_cache.persistent,
        "network_calls": tracker.fetcher.network_calls,
    }


if __name__ == "__main__":
    import os
    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    # Single worker: the tracker and its caches live in-process.
    uvicorn.run(app, host="0.0.0.0", port=port, timeout_keep_alive=30)
