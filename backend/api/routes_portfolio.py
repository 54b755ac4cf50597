"""Portfolio routes: refresh, cached snapshot, analytics, tracking, cache control."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from models.analytics import AnalyticsSummary
from models.portfolio import PortfolioSnapshot
from services.portfolio_analytics import (
    TRANSACTION_FILTERS,
    filter_transactions,
    transaction_stats,
)
from services.portfolio_tracker import PortfolioTracker
from utils.logger import api_logger as logger
from utils.retry import FetchFailure
from utils.validation import InvalidIdentity

router = APIRouter()


def get_tracker(request: Request) -> PortfolioTracker:
    return request.app.state.tracker


def _cached_or_none(tracker: PortfolioTracker, identity: str) -> Optional[PortfolioSnapshot]:
    try:
        return tracker.get_cached_snapshot(identity)
    except InvalidIdentity:
        return None


async def _refresh_or_raise(tracker: PortfolioTracker, identity: str) -> PortfolioSnapshot:
    try:
        snapshot = await tracker.refresh(identity)
    except InvalidIdentity as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FetchFailure as e:
        logger.warning("Portfolio refresh failed", identity=identity, error=str(e))
        cached = _cached_or_none(tracker, identity)
        raise HTTPException(
            status_code=502,
            detail={
                "error": str(e),
                "cached_snapshot": cached.model_dump(mode="json") if cached else None,
            },
        )

    if snapshot is not None:
        return snapshot

    # A refresh for this identity is already running; serve the last good one.
    cached = _cached_or_none(tracker, identity)
    if cached is None:
        raise HTTPException(status_code=409, detail="Refresh already in progress")
    return cached


@router.get("/portfolio/{identity}", response_model=PortfolioSnapshot)
async def refresh_portfolio(identity: str, tracker: PortfolioTracker = Depends(get_tracker)):
    """Refresh and return the portfolio snapshot for ``identity``."""
    return await _refresh_or_raise(tracker, identity)


@router.get("/portfolio/{identity}/snapshot", response_model=PortfolioSnapshot)
async def get_cached_portfolio(identity: str, tracker: PortfolioTracker = Depends(get_tracker)):
    try:
        cached = tracker.get_cached_snapshot(identity)
    except InvalidIdentity as e:
        raise HTTPException(status_code=400, detail=str(e))
    if cached is None:
        raise HTTPException(status_code=404, detail="No cached snapshot")
    return cached


@router.get("/portfolio/{identity}/analytics", response_model=AnalyticsSummary)
async def get_portfolio_analytics(identity: str, tracker: PortfolioTracker = Depends(get_tracker)):
    """Analytics for the cached snapshot, refreshing first when none is cached."""
    snapshot = _cached_or_none(tracker, identity)
    if snapshot is None:
        snapshot = await _refresh_or_raise(tracker, identity)
    return tracker.get_analytics(snapshot)


@router.get("/portfolio/{identity}/transactions")
async def get_portfolio_transactions(
    identity: str,
    direction: str = Query("all", description="all, incoming or outgoing"),
    tracker: PortfolioTracker = Depends(get_tracker),
):
    """Transactions of the cached snapshot, filtered by direction, with totals."""
    if direction not in TRANSACTION_FILTERS:
        raise HTTPException(status_code=400, detail=f"Invalid direction: {direction}")

    snapshot = _cached_or_none(tracker, identity)
    if snapshot is None:
        snapshot = await _refresh_or_raise(tracker, identity)
    transactions = filter_transactions(snapshot.transactions, direction)
    return {
        "identity": snapshot.identity,
        "direction": direction,
        "stats": transaction_stats(snapshot.transactions).model_dump(),
        "transactions": [tx.model_dump(mode="json") for tx in transactions],
    }


@router.post("/portfolio/{identity}/track")
async def track_portfolio(identity: str, tracker: PortfolioTracker = Depends(get_tracker)):
    try:
        snapshot = await tracker.track(identity)
    except InvalidIdentity as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "identity": tracker.tracked_identity,
        "generation": tracker.generation,
        "auto_refresh": tracker.auto_refresh_running,
        "snapshot": snapshot.model_dump(mode="json") if snapshot else None,
    }


@router.post("/cache/clear")
async def clear_caches(tracker: PortfolioTracker = Depends(get_tracker)):
    await tracker.clear_caches()
    return {"status": "cleared"}
