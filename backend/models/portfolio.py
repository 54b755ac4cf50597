import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from utils.logger import get_logger

logger = get_logger("rpc_parse")

UNKNOWN_IDENTITY = "Unknown"


def _to_int(raw: object, default: int = 0) -> int:
    """Coerce an RPC number (int, float or numeric string) to int."""
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return int(raw) if math.isfinite(raw) else default
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return default
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(float(text))
        except (ValueError, OverflowError):
            return default
    return default


def _to_non_negative_int(raw: object) -> int:
    return max(0, _to_int(raw))


def _as_dict(raw: object) -> dict:
    return raw if isinstance(raw, dict) else {}


def _as_list(raw: object) -> list:
    return raw if isinstance(raw, list) else []


def _parse_timestamp(raw: object) -> Optional[datetime]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # Epoch seconds or milliseconds
        seconds = raw / 1000.0 if raw > 1e11 else float(raw)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(raw).strip()
    if not text:
        return None
    if text.isdigit():
        return _parse_timestamp(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


class TransactionDirection(str, Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


class AssetHolding(BaseModel):
    """A quantity of one issued asset held by the tracked identity"""

    model_config = ConfigDict(frozen=True)

    name: str
    amount: int = Field(default=0, ge=0)

    @classmethod
    def from_owned_asset(cls, entry: object) -> Optional["AssetHolding"]:
        """Parse one ``ownedAssets`` entry; ``None`` when it has no name."""
        data = _as_dict(_as_dict(entry).get("data"))
        issued = _as_dict(data.get("issuedAsset"))
        name = str(issued.get("name") or "").strip()
        if not name:
            return None
        return cls(name=name, amount=_to_non_negative_int(data.get("numberOfUnits")))


class Transaction(BaseModel):
    """A transfer touching the tracked identity, as observed at ``tick``"""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str = UNKNOWN_IDENTITY
    dest_id: str = UNKNOWN_IDENTITY
    amount: int = Field(default=0, ge=0)
    tick: int = Field(default=0, ge=0)
    direction: TransactionDirection
    settled: bool = True

    @property
    def is_incoming(self) -> bool:
        return self.direction == TransactionDirection.INCOMING

    @property
    def counterparty(self) -> str:
        return self.source_id if self.is_incoming else self.dest_id

    @classmethod
    def from_transfer(
        cls,
        raw: object,
        *,
        identity: str,
        tick: int,
        fallback_id: str,
    ) -> "Transaction":
        """Parse the ``transaction`` object nested in a tick batch entry."""
        tx = _as_dict(raw)
        source_id = str(tx.get("sourceId") or UNKNOWN_IDENTITY)
        dest_id = str(tx.get("destId") or UNKNOWN_IDENTITY)
        direction = (
            TransactionDirection.INCOMING
            if tx.get("destId") == identity
            else TransactionDirection.OUTGOING
        )
        return cls(
            id=str(tx.get("id") or tx.get("txId") or fallback_id),
            source_id=source_id,
            dest_id=dest_id,
            amount=_to_non_negative_int(tx.get("amount")),
            tick=max(0, tick),
            direction=direction,
            settled=tx.get("moneyFlew") is not False,
        )


class NetworkStatus(BaseModel):
    """Last processed tick and epoch reported by the RPC node"""

    model_config = ConfigDict(frozen=True)

    current_tick: int = Field(default=0, ge=0)
    epoch: int = Field(default=0, ge=0)
    last_update: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_status_response(cls, data: object) -> "NetworkStatus":
        payload = _as_dict(data)
        last_tick = _as_dict(payload.get("lastProcessedTick"))
        if not last_tick:
            logger.debug("Status response missing lastProcessedTick")
        last_update = _parse_timestamp(last_tick.get("timestamp"))
        status = cls(
            current_tick=_to_non_negative_int(last_tick.get("tickNumber")),
            epoch=_to_non_negative_int(payload.get("epoch", last_tick.get("epoch"))),
        )
        if last_update is not None:
            status = status.model_copy(update={"last_update": last_update})
        return status


class PortfolioSnapshot(BaseModel):
    """One atomically assembled view of an identity.

    Analytics only ever read a complete snapshot; a refresh replaces it
    wholesale rather than patching fields.
    """

    model_config = ConfigDict(frozen=True)

    identity: str
    balance: int = Field(default=0, ge=0)
    assets: list[AssetHolding] = []
    transactions: list[Transaction] = []
    network_status: NetworkStatus = Field(default_factory=NetworkStatus)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ==================== RESPONSE PARSERS ====================
# Each parser accepts whatever the RPC returned and yields canonical
# entities. Missing structure falls back to zero / empty values.


def parse_balance_response(data: object) -> int:
    """``{"balance": {"balance": "123"}}`` -> 123"""
    balance = _as_dict(data).get("balance")
    if isinstance(balance, dict):
        return _to_non_negative_int(balance.get("balance"))
    if balance is not None:
        return _to_non_negative_int(balance)
    logger.debug("Balance response missing balance field")
    return 0


def parse_owned_assets_response(data: object) -> list[AssetHolding]:
    """One holding per asset name, in first-seen order.

    The same asset can be listed once per managing contract; those entries
    are merged and their amounts summed.
    """
    entries = _as_list(_as_dict(data).get("ownedAssets"))
    amounts: dict[str, int] = {}
    skipped = 0
    for entry in entries:
        holding = AssetHolding.from_owned_asset(entry)
        if holding is None:
            skipped += 1
            continue
        amounts[holding.name] = amounts.get(holding.name, 0) + holding.amount
    if skipped:
        logger.debug("Skipped unnamed asset entries", skipped=skipped)
    return [AssetHolding(name=name, amount=amount) for name, amount in amounts.items()]


def parse_transfers_response(data: object, identity: str, limit: int) -> list[Transaction]:
    """Flatten tick-grouped transfer batches, stopping once ``limit`` is hit."""
    transactions: list[Transaction] = []
    if limit <= 0:
        return transactions

    for batch in _as_list(_as_dict(data).get("transactions")):
        batch = _as_dict(batch)
        tick = _to_non_negative_int(batch.get("tickNumber"))
        for wrapper in _as_list(batch.get("transactions")):
            raw: Any = _as_dict(wrapper).get("transaction")
            transactions.append(
                Transaction.from_transfer(
                    raw,
                    identity=identity,
                    tick=tick,
                    fallback_id=f"tx_{tick}_{len(transactions)}",
                )
            )
            if len(transactions) >= limit:
                return transactions
    return transactions
