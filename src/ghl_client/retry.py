import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .types import RetryConfig

T = TypeVar("T")

DEFAULT_RETRY_CONFIG = RetryConfig()

_logger = logging.getLogger("ghl_client")


def calculate_delay(
    attempt: int, initial_delay: float, exponential_base: float, max_delay: float
) -> float:
    """Exponential backoff for ``attempt`` (1-based), capped at ``max_delay``. No jitter."""
    return min(initial_delay * (exponential_base ** (attempt - 1)), max_delay)


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry errors the transport flagged as retryable, and any 5xx. Never 401/403."""
    status = getattr(error, "status_code", None)
    if status in (401, 403):
        return False
    if getattr(error, "should_retry", False) is True:
        return True
    return isinstance(status, int) and status >= 500  # noqa: PLR2004


async def with_retry(
    operation: Callable[[], Awaitable[T]], config: RetryConfig | None = None
) -> T:
    """Run ``operation`` and retry it with exponential backoff.

    The operation runs at most ``max_retries + 1`` times. After a failed attempt
    ``n`` the predicate decides whether to continue; if it says no, or no attempts
    remain, the error from attempt ``n`` is re-raised unchanged. ``on_retry`` is
    called with (error, n, delay_ms) right before each wait.
    """
    cfg = config or DEFAULT_RETRY_CONFIG
    should_retry = cfg.should_retry or default_should_retry
    total_attempts = max(0, int(cfg.max_retries)) + 1

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as error:
            if attempt >= total_attempts or not should_retry(error, attempt):
                raise
            delay = calculate_delay(
                attempt, cfg.initial_delay, cfg.exponential_base, cfg.max_delay
            )
            if cfg.on_retry is not None:
                cfg.on_retry(error, attempt, delay)
            _logger.warning(f"attempt {attempt} failed ({error!r}); retrying in {delay:.0f}ms")
            await asyncio.sleep(delay / 1000)
            attempt += 1


def create_retry_wrapper(config: RetryConfig | None = None):
    """Bind a RetryConfig once and reuse it: ``await retrying(lambda: call())``."""

    async def _retrying(operation: Callable[[], Awaitable[T]]) -> T:
        return await with_retry(operation, config)

    return _retrying
