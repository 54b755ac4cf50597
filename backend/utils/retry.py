import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

from utils.logger import get_logger

logger = get_logger("retry")

T = TypeVar("T")


class FetchFailure(Exception):
    """Raised when every attempt of a remote read has failed.

    ``last_error`` is the exception raised by the final attempt; it is also
    chained as ``__cause__``.
    """

    def __init__(self, request_key: str, attempts: int, last_error: BaseException):
        self.request_key = request_key
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Fetch failed after {attempts} attempt(s) for {request_key}: "
            f"{type(last_error).__name__}: {last_error}"
        )


class RetryConfig:
    """Configuration for retry behavior.

    Backoff is linear: the delay before attempt ``n`` (1-based, n >= 2) is
    ``base_delay * (n - 1)``. With the defaults that is 1s then 2s, so three
    attempts add at most 3s of waiting.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        retryable_exceptions: tuple[type[BaseException], ...] = (Exception,),
    ):
        self.max_attempts = max(1, int(max_attempts))
        self.base_delay = max(0.0, float(base_delay))
        self.retryable_exceptions = retryable_exceptions

    @classmethod
    def from_settings(cls, settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.FETCH_MAX_ATTEMPTS,
            base_delay=settings.FETCH_BASE_DELAY_SECONDS,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay to wait before ``attempt`` (1-based). Zero for the first attempt."""
    if attempt <= 1:
        return 0.0
    return config.base_delay * (attempt - 1)


def is_retryable_error(error: BaseException, config: RetryConfig) -> bool:
    return isinstance(error, config.retryable_exceptions)


async def run_with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig,
    *,
    request_key: str = "",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` until it succeeds or attempts run out.

    Raises :class:`FetchFailure` wrapping the last error once every attempt
    has failed. Errors outside ``config.retryable_exceptions`` propagate
    unchanged on the first occurrence.
    """
    last_error: Optional[BaseException] = None

    for attempt in range(1, config.max_attempts + 1):
        delay = calculate_delay(attempt, config)
        if delay > 0:
            await sleep(delay)
        try:
            return await operation()
        except Exception as e:
            if not is_retryable_error(e, config):
                logger.error(
                    "Non-retryable error",
                    request_key=request_key,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise
            last_error = e

            if attempt < config.max_attempts:
                logger.warning(
                    "Retrying after error",
                    request_key=request_key,
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    next_delay=calculate_delay(attempt + 1, config),
                    error=str(e),
                )
            else:
                logger.error(
                    "All retry attempts exhausted",
                    request_key=request_key,
                    attempts=config.max_attempts,
                    error=str(e),
                    error_type=type(e).__name__,
                )

    raise FetchFailure(request_key, config.max_attempts, last_error) from last_error
