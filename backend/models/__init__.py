from .portfolio import (
    AssetHolding,
    NetworkStatus,
    PortfolioSnapshot,
    Transaction,
    TransactionDirection,
)
from .analytics import (
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
    TransactionPatterns,
    TransactionStats,
)

__all__ = [
    "AssetHolding",
    "NetworkStatus",
    "PortfolioSnapshot",
    "Transaction",
    "TransactionDirection",
    "ActivityPattern",
    "AnalyticsSummary",
    "AssetPerformance",
    "AssetTrend",
    "BalancePoint",
    "BalanceTimeline",
    "ConcentrationLevel",
    "ConcentrationRisk",
    "Counterparty",
    "Insight",
    "InsightKind",
    "NetworkActivity",
    "NetworkUtilization",
    "TransactionPatterns",
    "TransactionStats",
]
