from .logger import setup_logging, get_logger, api_logger, fetcher_logger
from .retry import FetchFailure, RetryConfig, run_with_retry
from .validation import (
    InvalidIdentity,
    validate_identity,
    validate_limit,
    truncate_identity,
)

__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "api_logger",
    "fetcher_logger",

    # Retry
    "FetchFailure",
    "RetryConfig",
    "run_with_retry",

    # Validation
    "InvalidIdentity",
    "validate_identity",
    "validate_limit",
    "truncate_identity",
]
