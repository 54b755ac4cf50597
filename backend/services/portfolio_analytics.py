"""
Portfolio analytics over a single snapshot.

Everything here is a pure function of one ``PortfolioSnapshot``: no I/O, no
wall-clock reads, no hidden state beyond the snapshot reference itself.
Empty inputs produce explicit sentinel results ("Unknown", "Insufficient
data", zero scores) rather than exceptions.

Asset performance matches transactions to holdings by comparing the asset
name with the transfer's source/destination identity. Transfers do not
carry an asset ticker upstream, so in practice this rarely matches; the
behaviour is kept as-is until the RPC exposes a transfer-to-asset link.
"""

import math
from collections import Counter
from typing import Optional, Sequence

from models.analytics import (
    ActivityPattern,
    AnalyticsSummary,
    AssetPerformance,
    AssetTrend,
    BalancePoint,
    BalanceTimeline,
    ConcentrationLevel,
    ConcentrationRisk,
    Counterparty,
    Insight,
    InsightKind,
    NetworkActivity,
    NetworkUtilization,
    TickRange,
    TransactionPatterns,
    TransactionStats,
)
from models.portfolio import (
    UNKNOWN_IDENTITY,
    AssetHolding,
    PortfolioSnapshot,
    Transaction,
    TransactionDirection,
)
from utils.validation import truncate_identity

# Roughly 10 ticks per second -> 8640 ticks per day.
TICKS_PER_DAY = 8640

# Concentration tiers on the top holding's share (percent, exclusive lower bound)
CONCENTRATION_HIGH = 70.0
CONCENTRATION_MEDIUM = 50.0
CONCENTRATION_LOW = 30.0

# Activity tiers on transactions per day
ACTIVITY_HIGH = 5.0
ACTIVITY_MODERATE = 2.0
ACTIVITY_QUIET = 0.1

# Network utilization tiers on average ticks between transactions
UTILIZATION_HIGH_TICKS = 100
UTILIZATION_MEDIUM_TICKS = 500

DIVERSITY_LOW = 30
DIVERSITY_HIGH = 70

TOP_COUNTERPARTIES = 5
TREND_WINDOW = 10
TREND_MIN_SAMPLES = 3
TREND_RATIO = 1.5

TIMELINE_SAMPLE_EVERY = 5
TIMELINE_SIGNIFICANT_FRACTION = 0.1
TIMELINE_MAX_POINTS = 20

TRANSACTION_FILTERS = ("all", "incoming", "outgoing")


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


# ==================== SCORING HELPERS ====================


def herfindahl_index(amounts: Sequence[int]) -> Optional[float]:
    """Sum of squared shares, or ``None`` when the total is zero."""
    total = sum(amounts)
    if total <= 0:
        return None
    return sum((amount / total) ** 2 for amount in amounts)


def diversity_score(holdings: Sequence[AssetHolding]) -> int:
    """Inverted HHI scaled to 0-100 (0 = one holding, higher = more spread)."""
    hhi = herfindahl_index([h.amount for h in holdings])
    if hhi is None:
        return 0
    return _round_half_up(max(0.0, min(100.0, (1.0 - hhi) * 100.0)))


def concentration_level(top_share: float) -> ConcentrationLevel:
    if top_share > CONCENTRATION_HIGH:
        return ConcentrationLevel.HIGH
    if top_share > CONCENTRATION_MEDIUM:
        return ConcentrationLevel.MEDIUM
    if top_share > CONCENTRATION_LOW:
        return ConcentrationLevel.LOW
    return ConcentrationLevel.VERY_LOW


def activity_pattern(frequency: float) -> ActivityPattern:
    if frequency > ACTIVITY_HIGH:
        return ActivityPattern.HIGH
    if frequency > ACTIVITY_MODERATE:
        return ActivityPattern.MODERATE
    return ActivityPattern.LOW


def network_utilization(average_ticks_per_tx: float) -> NetworkUtilization:
    if average_ticks_per_tx < UTILIZATION_HIGH_TICKS:
        return NetworkUtilization.HIGH
    if average_ticks_per_tx < UTILIZATION_MEDIUM_TICKS:
        return NetworkUtilization.MEDIUM
    return NetworkUtilization.LOW


def day_span(transactions: Sequence[Transaction]) -> float:
    """Days covered by the transactions' tick range, never less than one."""
    if len(transactions) < 2:
        return 1.0
    ticks = [tx.tick for tx in transactions if tx.tick > 0]
    if len(ticks) < 2:
        return 1.0
    return max(1.0, (max(ticks) - min(ticks)) / TICKS_PER_DAY)


def filter_transactions(
    transactions: Sequence[Transaction], direction: str = "all"
) -> list[Transaction]:
    """Transactions in ``direction``: ``"all"``, ``"incoming"`` or ``"outgoing"``."""
    if direction not in TRANSACTION_FILTERS:
        raise ValueError(f"Invalid direction: {direction}")
    if direction == "all":
        return list(transactions)
    wanted = TransactionDirection(direction)
    return [tx for tx in transactions if tx.direction == wanted]


def transaction_stats(transactions: Sequence[Transaction]) -> TransactionStats:
    received = sum(tx.amount for tx in transactions if tx.is_incoming)
    sent = sum(tx.amount for tx in transactions if not tx.is_incoming)
    incoming = sum(1 for tx in transactions if tx.is_incoming)
    return TransactionStats(
        total_received=received,
        total_sent=sent,
        incoming_count=incoming,
        outgoing_count=len(transactions) - incoming,
        net_flow=received - sent,
    )


def trend_for(related: Sequence[Transaction]) -> AssetTrend:
    recent = list(related)[-TREND_WINDOW:]
    if len(recent) < TREND_MIN_SAMPLES:
        return AssetTrend.STABLE
    incoming = sum(1 for tx in recent if tx.is_incoming)
    outgoing = len(recent) - incoming
    if incoming > outgoing * TREND_RATIO:
        return AssetTrend.INCREASING
    if outgoing > incoming * TREND_RATIO:
        return AssetTrend.DECREASING
    return AssetTrend.STABLE


def reconstruct_balance_timeline(
    current_balance: int,
    transactions: Sequence[Transaction],
    *,
    max_points: int = TIMELINE_MAX_POINTS,
) -> BalanceTimeline:
    """Rebuild historical balances by undoing transfers newest-first.

    The first point is the current balance at the newest tick. Walking back,
    an incoming transfer is subtracted and an outgoing one added back. A
    point is kept for every fifth transfer (by ascending position) and for
    any transfer larger than 10% of the current balance. Reported balances
    are clamped at zero and only the newest ``max_points`` are kept.

    Fees and other balance changes invisible to the transfer list are not
    accounted for.
    """
    if not transactions:
        return BalanceTimeline(current_balance=current_balance, opening_balance=current_balance)

    ordered = sorted(transactions, key=lambda tx: tx.tick)
    threshold = current_balance * TIMELINE_SIGNIFICANT_FRACTION

    running = current_balance
    points = [BalancePoint(tick=ordered[-1].tick, balance=current_balance)]
    for index in range(len(ordered) - 1, -1, -1):
        tx = ordered[index]
        if tx.is_incoming:
            running -= tx.amount
        else:
            running += tx.amount
        if index % TIMELINE_SAMPLE_EVERY == 0 or tx.amount > threshold:
            points.append(BalancePoint(tick=tx.tick, balance=max(0, running)))

    points.reverse()
    return BalanceTimeline(
        points=points[-max_points:] if max_points > 0 else [],
        current_balance=current_balance,
        opening_balance=running,
        opening_tick=ordered[0].tick,
    )


# ==================== ANALYTICS ENGINE ====================


class PortfolioAnalytics:
    """Analytics over one immutable snapshot.

    ``set_data`` swaps the snapshot wholesale; every method reads only the
    current snapshot and returns a fresh result.
    """

    def __init__(self, snapshot: Optional[PortfolioSnapshot] = None):
        self._snapshot = snapshot

    def set_data(self, snapshot: PortfolioSnapshot) -> None:
        self._snapshot = snapshot

    @property
    def snapshot(self) -> Optional[PortfolioSnapshot]:
        return self._snapshot

    @property
    def _assets(self) -> list[AssetHolding]:
        return list(self._snapshot.assets) if self._snapshot else []

    @property
    def _transactions(self) -> list[Transaction]:
        return list(self._snapshot.transactions) if self._snapshot else []

    @property
    def _balance(self) -> int:
        return self._snapshot.balance if self._snapshot else 0

    def calculate_diversity_score(self) -> int:
        return diversity_score(self._assets)

    def calculate_concentration_risk(self) -> ConcentrationRisk:
        assets = self._assets
        if not assets:
            return ConcentrationRisk()

        total = sum(a.amount for a in assets)
        top = sorted(assets, key=lambda a: a.amount, reverse=True)[0]
        top_share = (top.amount / total) * 100.0 if total > 0 else 0.0
        return ConcentrationRisk(
            level=concentration_level(top_share),
            percentage=_round_half_up(top_share),
            top_asset=top.name,
        )

    def analyze_transaction_patterns(self) -> TransactionPatterns:
        transactions = self._transactions
        if not transactions:
            return TransactionPatterns()

        average = sum(tx.amount for tx in transactions) / len(transactions)
        frequency = len(transactions) / day_span(transactions)

        counts = Counter(
            tx.counterparty
            for tx in transactions
            if tx.counterparty and tx.counterparty != UNKNOWN_IDENTITY
        )
        # Counter.most_common keeps first-seen order among equal counts.
        top = [
            Counterparty(address=truncate_identity(address), transactions=count)
            for address, count in counts.most_common(TOP_COUNTERPARTIES)
        ]

        return TransactionPatterns(
            average_amount=_round_half_up(average),
            frequency=_round_half_up(frequency * 10) / 10,
            pattern=activity_pattern(frequency),
            top_counterparties=top,
        )

    def calculate_transaction_stats(self) -> TransactionStats:
        return transaction_stats(self._transactions)

    def calculate_asset_performance(self) -> list[AssetPerformance]:
        transactions = self._transactions
        results = []
        for asset in self._assets:
            related = [
                tx for tx in transactions
                if tx.source_id == asset.name or tx.dest_id == asset.name
            ]
            incoming = sum(1 for tx in related if tx.is_incoming)
            outgoing = len(related) - incoming
            results.append(
                AssetPerformance(
                    name=asset.name,
                    amount=asset.amount,
                    incoming_count=incoming,
                    outgoing_count=outgoing,
                    net_flow=incoming - outgoing,
                    activity=len(related),
                    trend=trend_for(related),
                )
            )
        results.sort(key=lambda p: p.amount, reverse=True)
        return results

    def calculate_asset_trend(self, asset_name: str) -> AssetTrend:
        return trend_for(
            [
                tx for tx in self._transactions
                if tx.source_id == asset_name or tx.dest_id == asset_name
            ]
        )

    def analyze_network_activity(self) -> NetworkActivity:
        transactions = self._transactions
        ticks = [tx.tick for tx in transactions if tx.tick > 0]
        if not ticks:
            return NetworkActivity()

        low, high = min(ticks), max(ticks)
        span = high - low
        average = span / len(transactions)
        return NetworkActivity(
            tick_range=TickRange(min=low, max=high),
            tick_span=span,
            average_ticks_per_tx=_round_half_up(average),
            network_utilization=network_utilization(average),
        )

    def generate_insights(self) -> list[Insight]:
        insights: list[Insight] = []
        diversity = self.calculate_diversity_score()
        concentration = self.calculate_concentration_risk()
        patterns = self.analyze_transaction_patterns()

        if diversity < DIVERSITY_LOW:
            insights.append(
                Insight(
                    kind=InsightKind.WARNING,
                    title="Low Portfolio Diversity",
                    message=(
                        f"Your portfolio diversity score is {diversity}/100. "
                        "Consider diversifying across more assets."
                    ),
                    suggested_action="Diversify holdings",
                )
            )
        elif diversity > DIVERSITY_HIGH:
            insights.append(
                Insight(
                    kind=InsightKind.SUCCESS,
                    title="Well Diversified Portfolio",
                    message=(
                        f"Excellent diversity score of {diversity}/100. "
                        "Your portfolio is well-balanced."
                    ),
                    suggested_action="Maintain balance",
                )
            )

        if concentration.level == ConcentrationLevel.HIGH:
            insights.append(
                Insight(
                    kind=InsightKind.WARNING,
                    title="High Concentration Risk",
                    message=(
                        f"{concentration.percentage}% of your portfolio is in "
                        f"{concentration.top_asset}. This increases risk."
                    ),
                    suggested_action="Consider rebalancing",
                )
            )

        if patterns.frequency > ACTIVITY_HIGH:
            insights.append(
                Insight(
                    kind=InsightKind.INFO,
                    title="High Trading Activity",
                    message=(
                        f"You average {_format_number(patterns.frequency)} transactions "
                        "per day. Monitor transaction costs."
                    ),
                    suggested_action="Review trading strategy",
                )
            )
        elif patterns.frequency < ACTIVITY_QUIET:
            insights.append(
                Insight(
                    kind=InsightKind.INFO,
                    title="Low Activity Portfolio",
                    message=(
                        "Your portfolio shows minimal activity. "
                        "This could be a long-term holding strategy."
                    ),
                    suggested_action="Consider periodic rebalancing",
                )
            )

        return insights

    def calculate_balance_timeline(self) -> BalanceTimeline:
        return reconstruct_balance_timeline(self._balance, self._transactions)

    def summary(self) -> AnalyticsSummary:
        return AnalyticsSummary(
            identity=self._snapshot.identity if self._snapshot else "",
            diversity=self.calculate_diversity_score(),
            concentration=self.calculate_concentration_risk(),
            patterns=self.analyze_transaction_patterns(),
            stats=self.calculate_transaction_stats(),
            performance=self.calculate_asset_performance(),
            network=self.analyze_network_activity(),
            insights=self.generate_insights(),
            timeline=self.calculate_balance_timeline(),
        )


def get_analytics(snapshot: PortfolioSnapshot) -> AnalyticsSummary:
    """Synchronous, I/O-free analytics summary for one snapshot."""
    return PortfolioAnalytics(snapshot).summary()
