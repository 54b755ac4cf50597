from importlib import import_module

__all__ = [
    "CacheStore",
    "ResilientFetcher",
    "QubicRpcClient",
    "PortfolioReader",
    "PortfolioAnalytics",
    "get_analytics",
    "SnapshotCacheService",
    "PortfolioTracker",
]

_LAZY_EXPORTS = {
    "CacheStore": ("services.cache_store", "CacheStore"),
    "ResilientFetcher": ("services.resilient_fetcher", "ResilientFetcher"),
    "QubicRpcClient": ("services.qubic_client", "QubicRpcClient"),
    "PortfolioReader": ("services.portfolio_reader", "PortfolioReader"),
    "PortfolioAnalytics": ("services.portfolio_analytics", "PortfolioAnalytics"),
    "get_analytics": ("services.portfolio_analytics", "get_analytics"),
    "SnapshotCacheService": ("services.snapshot_cache", "SnapshotCacheService"),
    "PortfolioTracker": ("services.portfolio_tracker", "PortfolioTracker"),
}


def __getattr__(name):
    if name not in _LAZY_EXPORTS:
        raise AttributeError(f"module 'services' has no attribute {name!r}")

    module_name, attr_name = _LAZY_EXPORTS[name]
    module = import_module(module_name)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value
