from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ConcentrationLevel(str, Enum):
    UNKNOWN = "Unknown"
    VERY_LOW = "Very Low"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ActivityPattern(str, Enum):
    INSUFFICIENT_DATA = "Insufficient data"
    LOW = "Low Activity"
    MODERATE = "Moderate Activity"
    HIGH = "High Activity"


class AssetTrend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class NetworkUtilization(str, Enum):
    UNKNOWN = "Unknown"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class InsightKind(str, Enum):
    WARNING = "warning"
    SUCCESS = "success"
    INFO = "info"


class ConcentrationRisk(BaseModel):
    level: ConcentrationLevel = ConcentrationLevel.UNKNOWN
    percentage: int = 0
    top_asset: str = "None"


class Counterparty(BaseModel):
    address: str  # truncated for display
    transactions: int


class TransactionPatterns(BaseModel):
    average_amount: int = 0
    frequency: float = 0.0  # transactions per day
    pattern: ActivityPattern = ActivityPattern.INSUFFICIENT_DATA
    top_counterparties: list[Counterparty] = []


class TransactionStats(BaseModel):
    total_received: int = 0
    total_sent: int = 0
    incoming_count: int = 0
    outgoing_count: int = 0
    net_flow: int = 0  # received minus sent


class AssetPerformance(BaseModel):
    name: str
    amount: int
    incoming_count: int = 0
    outgoing_count: int = 0
    net_flow: int = 0
    activity: int = 0
    trend: AssetTrend = AssetTrend.STABLE


class TickRange(BaseModel):
    min: int = 0
    max: int = 0


class NetworkActivity(BaseModel):
    tick_range: TickRange = TickRange()
    tick_span: int = 0
    average_ticks_per_tx: int = 0
    network_utilization: NetworkUtilization = NetworkUtilization.UNKNOWN


class Insight(BaseModel):
    kind: InsightKind
    title: str
    message: str
    suggested_action: str


class BalancePoint(BaseModel):
    tick: int
    balance: int  # clamped at zero for display


class BalanceTimeline(BaseModel):
    """Balance history rebuilt backwards from the current balance.

    ``points`` are ordered oldest first and capped for display.
    ``opening_balance`` is the unclamped balance before the earliest
    transaction in the window: replaying every transaction forward from it
    gives back ``current_balance``.
    """

    points: list[BalancePoint] = []
    current_balance: int = 0
    opening_balance: int = 0
    opening_tick: Optional[int] = None

    @property
    def ticks(self) -> list[int]:
        return [p.tick for p in self.points]

    @property
    def balances(self) -> list[int]:
        return [p.balance for p in self.points]


class AnalyticsSummary(BaseModel):
    identity: str
    diversity: int = 0
    concentration: ConcentrationRisk = ConcentrationRisk()
    patterns: TransactionPatterns = TransactionPatterns()
    stats: TransactionStats = TransactionStats()
    performance: list[AssetPerformance] = []
    network: NetworkActivity = NetworkActivity()
    insights: list[Insight] = []
    timeline: BalanceTimeline = BalanceTimeline()
