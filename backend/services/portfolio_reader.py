"""
Typed portfolio reads on top of the resilient fetcher.

Raw RPC payloads are cached by the fetcher; parsing into canonical models
happens on every read so that a different ``limit`` never needs a second
request. Payloads that reached us but lack the expected structure produce
zero / empty values. Transport failures after retries still raise
``FetchFailure``.
"""

import asyncio
from datetime import datetime, timezone
from typing import Optional

from config import settings
from models.portfolio import (
    AssetHolding,
    NetworkStatus,
    PortfolioSnapshot,
    Transaction,
    parse_balance_response,
    parse_owned_assets_response,
    parse_transfers_response,
)
from services.qubic_client import QubicRpcClient
from services.resilient_fetcher import ResilientFetcher
from utils.logger import get_logger
from utils.validation import validate_identity, validate_limit

logger = get_logger("portfolio_reader")


class PortfolioReader:
    """Balance, asset, transfer and network-status reads for one RPC node"""

    def __init__(self, client: QubicRpcClient, fetcher: ResilientFetcher):
        self.client = client
        self.fetcher = fetcher

    async def read_balance(self, identity: str) -> int:
        identity = validate_identity(identity)
        data = await self.fetcher.fetch(
            self.client.url_for(f"/v1/balances/{identity}"),
            lambda: self.client.get_balance(identity),
        )
        return parse_balance_response(data)

    async def read_assets(self, identity: str) -> list[AssetHolding]:
        identity = validate_identity(identity)
        data = await self.fetcher.fetch(
            self.client.url_for(f"/v1/assets/{identity}/owned"),
            lambda: self.client.get_owned_assets(identity),
        )
        return parse_owned_assets_response(data)

    async def read_transactions(
        self, identity: str, limit: Optional[int] = None
    ) -> list[Transaction]:
        identity = validate_identity(identity)
        limit = validate_limit(settings.TRANSACTION_LIMIT if limit is None else limit)
        data = await self.fetcher.fetch(
            self.client.url_for(f"/v2/identities/{identity}/transfers"),
            lambda: self.client.get_transfers(identity),
        )
        return parse_transfers_response(data, identity, limit)

    async def read_network_status(self) -> NetworkStatus:
        data = await self.fetcher.fetch(
            self.client.url_for("/v1/status"),
            self.client.get_status,
        )
        return NetworkStatus.from_status_response(data)

    async def read_snapshot(
        self, identity: str, limit: Optional[int] = None
    ) -> PortfolioSnapshot:
        """Issue all four reads concurrently and assemble one snapshot.

        Any failed read fails the whole snapshot; nothing partial is returned.
        The reads are independent, so they may reflect slightly different
        network ticks.
        """
        identity = validate_identity(identity)
        balance, assets, transactions, network_status = await asyncio.gather(
            self.read_balance(identity),
            self.read_assets(identity),
            self.read_transactions(identity, limit),
            self.read_network_status(),
        )
        logger.debug(
            "Snapshot assembled",
            identity=identity,
            balance=balance,
            assets=len(assets),
            transactions=len(transactions),
            tick=network_status.current_tick,
        )
        return PortfolioSnapshot(
            identity=identity,
            balance=balance,
            assets=assets,
            transactions=transactions,
            network_status=network_status,
            fetched_at=datetime.now(timezone.utc),
        )
