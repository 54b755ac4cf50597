"""Shared fixtures for portfolio tracker tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import pytest

from models.portfolio import (
    AssetHolding,
    NetworkStatus,
    PortfolioSnapshot,
    Transaction,
    TransactionDirection,
)

TRACKED_ID = "A" * 60
PEER_ID = "B" * 60
OTHER_ID = "C" * 60


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


class FakeRpcClient:
    """Stand-in for QubicRpcClient returning canned payloads.

    ``failures`` maps an endpoint name to how many leading calls should
    raise before the payload is returned (``-1`` = always fail).
    """

    base_url = "https://rpc.test"

    def __init__(self, payloads: dict, failures: dict | None = None):
        self.payloads = payloads
        self.failures = dict(failures or {})
        self.calls: dict[str, int] = {}
        self.closed = False

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _serve(self, endpoint: str, identity: str | None = None):
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1
        remaining = self.failures.get(endpoint, 0)
        if remaining == -1 or remaining >= self.calls[endpoint]:
            raise ConnectionError(f"{endpoint} unavailable (call {self.calls[endpoint]})")
        payload = self.payloads.get(endpoint, {})
        if isinstance(payload, dict) and identity in payload and endpoint != "status":
            return payload[identity]
        return payload

    async def get_balance(self, identity: str):
        return await self._serve("balance", identity)

    async def get_owned_assets(self, identity: str):
        return await self._serve("assets", identity)

    async def get_transfers(self, identity: str):
        return await self._serve("transfers", identity)

    async def get_status(self):
        return await self._serve("status")

    async def close(self):
        self.closed = True


def transfer(tx_id, source, dest, amount, money_flew=True):
    return {
        "transaction": {
            "id": tx_id,
            "sourceId": source,
            "destId": dest,
            "amount": str(amount),
            "moneyFlew": money_flew,
        }
    }


@pytest.fixture
def raw_balance_response():
    return {"balance": {"id": TRACKED_ID, "balance": "1500000", "validForTick": 15000000}}


@pytest.fixture
def raw_assets_response():
    return {
        "ownedAssets": [
            {"data": {"issuedAsset": {"name": "QX", "issuerIdentity": OTHER_ID}, "numberOfUnits": "40"}},
            {"data": {"issuedAsset": {"name": "QTRY"}, "numberOfUnits": 60}},
            {"data": {"issuedAsset": {"issuerIdentity": OTHER_ID}, "numberOfUnits": "5"}},
        ]
    }


@pytest.fixture
def raw_transfers_response():
    return {
        "transactions": [
            {
                "tickNumber": 15000100,
                "identity": TRACKED_ID,
                "transactions": [
                    transfer("tx-1", PEER_ID, TRACKED_ID, 1000),
                    transfer("tx-2", TRACKED_ID, PEER_ID, 250),
                ],
            },
            {
                "tickNumber": 15000200,
                "identity": TRACKED_ID,
                "transactions": [
                    transfer("tx-3", OTHER_ID, TRACKED_ID, 500, money_flew=False),
                ],
            },
        ]
    }


@pytest.fixture
def raw_status_response():
    return {
        "lastProcessedTick": {"tickNumber": 15000300, "epoch": 150, "timestamp": "2025-03-01T12:00:00Z"},
        "epoch": 150,
    }


@pytest.fixture
def rpc_payloads(
    raw_balance_response, raw_assets_response, raw_transfers_response, raw_status_response
):
    return {
        "balance": raw_balance_response,
        "assets": raw_assets_response,
        "transfers": raw_transfers_response,
        "status": raw_status_response,
    }


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


def make_tx(tx_id, amount, tick, direction="incoming", counterparty=PEER_ID, identity=TRACKED_ID):
    incoming = direction == "incoming"
    return Transaction(
        id=tx_id,
        source_id=counterparty if incoming else identity,
        dest_id=identity if incoming else counterparty,
        amount=amount,
        tick=tick,
        direction=TransactionDirection.INCOMING if incoming else TransactionDirection.OUTGOING,
    )


def make_snapshot(balance=0, assets=None, transactions=None, identity=TRACKED_ID):
    return PortfolioSnapshot(
        identity=identity,
        balance=balance,
        assets=[AssetHolding(name=n, amount=a) for n, a in (assets or [])],
        transactions=list(transactions or []),
        network_status=NetworkStatus(current_tick=15000000, epoch=150),
    )
