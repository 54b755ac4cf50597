import json
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from conftest import OTHER_ID, PEER_ID, TRACKED_ID, FakeRpcClient  # noqa: E402
from models.portfolio import (  # noqa: E402
    AssetHolding,
    NetworkStatus,
    TransactionDirection,
    parse_balance_response,
    parse_owned_assets_response,
    parse_transfers_response,
)
from services.cache_store import CacheStore  # noqa: E402
from services.portfolio_reader import PortfolioReader  # noqa: E402
from services.resilient_fetcher import ResilientFetcher  # noqa: E402
from utils.retry import FetchFailure, RetryConfig  # noqa: E402
from utils.validation import InvalidIdentity, truncate_identity, validate_identity  # noqa: E402


def _reader(payloads, failures=None, *, clock, sleep):
    client = FakeRpcClient(payloads, failures)
    fetcher = ResilientFetcher(CacheStore(30, clock=clock), RetryConfig(), sleep=sleep)
    return PortfolioReader(client, fetcher), client


# ==================== PARSERS ====================


def test_balance_parses_numeric_string(raw_balance_response):
    assert parse_balance_response(raw_balance_response) == 1_500_000


@pytest.mark.parametrize("payload", [{}, None, [], {"balance": {}}, {"balance": {"balance": "abc"}}])
def test_balance_defaults_to_zero_on_malformed_payload(payload):
    assert parse_balance_response(payload) == 0


def test_unnamed_asset_entry_is_excluded(raw_assets_response):
    holdings = parse_owned_assets_response(raw_assets_response)

    assert len(holdings) == len(raw_assets_response["ownedAssets"]) - 1
    assert holdings == [AssetHolding(name="QX", amount=40), AssetHolding(name="QTRY", amount=60)]


def test_asset_amount_parse_failure_yields_zero():
    payload = {"ownedAssets": [{"data": {"issuedAsset": {"name": "CFB"}, "numberOfUnits": "lots"}}]}
    assert parse_owned_assets_response(payload) == [AssetHolding(name="CFB", amount=0)]


def test_same_asset_from_several_contracts_is_merged():
    payload = {
        "ownedAssets": [
            {"data": {"issuedAsset": {"name": "QX"}, "numberOfUnits": "40"}},
            {"data": {"issuedAsset": {"name": "QTRY"}, "numberOfUnits": "60"}},
            {"data": {"issuedAsset": {"name": "QX"}, "numberOfUnits": "10"}},
        ]
    }

    assert parse_owned_assets_response(payload) == [
        AssetHolding(name="QX", amount=50),
        AssetHolding(name="QTRY", amount=60),
    ]


def test_non_finite_numbers_yield_zero():
    # json.loads turns 1e400 into float("inf")
    payload = json.loads(
        '{"balance": {"balance": 1e400},'
        ' "ownedAssets": [{"data": {"issuedAsset": {"name": "QX"}, "numberOfUnits": 1e400}}],'
        ' "transactions": [{"tickNumber": 5, "transactions": [{"transaction":'
        ' {"id": "t", "sourceId": "S", "destId": "D", "amount": 1e400}}]}]}'
    )

    assert parse_balance_response(payload) == 0
    assert parse_owned_assets_response(payload) == [AssetHolding(name="QX", amount=0)]
    (tx,) = parse_transfers_response(payload, TRACKED_ID, 10)
    assert tx.amount == 0
    assert parse_balance_response({"balance": {"balance": "nan"}}) == 0


def test_transfers_direction_and_settlement(raw_transfers_response):
    txs = parse_transfers_response(raw_transfers_response, TRACKED_ID, 100)

    assert [tx.id for tx in txs] == ["tx-1", "tx-2", "tx-3"]
    assert [tx.direction for tx in txs] == [
        TransactionDirection.INCOMING,
        TransactionDirection.OUTGOING,
        TransactionDirection.INCOMING,
    ]
    assert [tx.tick for tx in txs] == [15000100, 15000100, 15000200]
    assert txs[0].counterparty == PEER_ID
    assert txs[1].counterparty == PEER_ID
    assert txs[2].counterparty == OTHER_ID
    assert txs[2].settled is False
    assert all(tx.settled for tx in txs[:2])


def test_transfers_stop_at_limit(raw_transfers_response):
    txs = parse_transfers_response(raw_transfers_response, TRACKED_ID, 2)
    assert [tx.id for tx in txs] == ["tx-1", "tx-2"]


def test_transfer_missing_fields_use_defaults():
    payload = {"transactions": [{"tickNumber": 7, "transactions": [{"transaction": {"amount": "x"}}]}]}

    (tx,) = parse_transfers_response(payload, TRACKED_ID, 10)

    assert tx.id == "tx_7_0"
    assert tx.source_id == "Unknown"
    assert tx.dest_id == "Unknown"
    assert tx.amount == 0
    assert tx.direction == TransactionDirection.OUTGOING


def test_transfers_malformed_payload_is_empty():
    assert parse_transfers_response({"transactions": "nope"}, TRACKED_ID, 10) == []
    assert parse_transfers_response(None, TRACKED_ID, 10) == []


def test_network_status_parse(raw_status_response):
    status = NetworkStatus.from_status_response(raw_status_response)

    assert status.current_tick == 15000300
    assert status.epoch == 150
    assert status.last_update.year == 2025


def test_network_status_defaults():
    status = NetworkStatus.from_status_response({})
    assert status.current_tick == 0
    assert status.epoch == 0


# ==================== VALIDATION ====================


def test_validate_identity_strips_whitespace():
    assert validate_identity(f"  {TRACKED_ID}\n") == TRACKED_ID


@pytest.mark.parametrize("bad", [None, "", "   ", "A" * 59, "a" * 60, "A" * 59 + "1"])
def test_validate_identity_rejects(bad):
    with pytest.raises(InvalidIdentity):
        validate_identity(bad)


def test_truncate_identity():
    assert truncate_identity(TRACKED_ID) == "AAAAAAAA...AAAAAA"
    assert truncate_identity("Unknown") == "Unknown"
    assert truncate_identity("SHORT") == "SHORT"


# ==================== READER ====================


@pytest.mark.asyncio
async def test_read_snapshot_assembles_all_reads(rpc_payloads, fake_clock, recording_sleep):
    reader, client = _reader(rpc_payloads, clock=fake_clock, sleep=recording_sleep)

    snapshot = await reader.read_snapshot(TRACKED_ID)

    assert snapshot.identity == TRACKED_ID
    assert snapshot.balance == 1_500_000
    assert [a.name for a in snapshot.assets] == ["QX", "QTRY"]
    assert len(snapshot.transactions) == 3
    assert snapshot.network_status.current_tick == 15000300
    assert client.calls == {"balance": 1, "assets": 1, "transfers": 1, "status": 1}


@pytest.mark.asyncio
async def test_repeated_reads_hit_request_cache(rpc_payloads, fake_clock, recording_sleep):
    reader, client = _reader(rpc_payloads, clock=fake_clock, sleep=recording_sleep)

    await reader.read_transactions(TRACKED_ID, limit=1)
    txs = await reader.read_transactions(TRACKED_ID, limit=3)

    assert len(txs) == 3
    assert client.calls["transfers"] == 1


@pytest.mark.asyncio
async def test_invalid_identity_issues_no_requests(rpc_payloads, fake_clock, recording_sleep):
    reader, client = _reader(rpc_payloads, clock=fake_clock, sleep=recording_sleep)

    with pytest.raises(InvalidIdentity):
        await reader.read_snapshot("not-an-identity")
    assert client.calls == {}


@pytest.mark.asyncio
async def test_transient_failure_is_retried(rpc_payloads, fake_clock, recording_sleep):
    reader, client = _reader(
        rpc_payloads, {"balance": 2}, clock=fake_clock, sleep=recording_sleep
    )

    assert await reader.read_balance(TRACKED_ID) == 1_500_000
    assert client.calls["balance"] == 3
    assert recording_sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_failed_read_fails_whole_snapshot(rpc_payloads, fake_clock, recording_sleep):
    reader, client = _reader(
        rpc_payloads, {"assets": -1}, clock=fake_clock, sleep=recording_sleep
    )

    with pytest.raises(FetchFailure) as excinfo:
        await reader.read_snapshot(TRACKED_ID)

    assert excinfo.value.attempts == 3
    assert isinstance(excinfo.value.last_error, ConnectionError)
    assert client.calls["assets"] == 3


@pytest.mark.asyncio
async def test_malformed_payloads_give_empty_snapshot(fake_clock, recording_sleep):
    payloads = {"balance": {}, "assets": {"ownedAssets": None}, "transfers": [], "status": "?"}
    reader, _ = _reader(payloads, clock=fake_clock, sleep=recording_sleep)

    snapshot = await reader.read_snapshot(TRACKED_ID)

    assert snapshot.balance == 0
    assert snapshot.assets == []
    assert snapshot.transactions == []
    assert snapshot.network_status.current_tick == 0

