"""
Retry utilities using tenacity.

Only transport-level failures (RPC connectivity) are retried. Oracle
validation failures are never retried: they propagate to the caller.
"""
import logging
from typing import Any, Callable, Optional, Tuple, TypeVar

import requests
from tenacity import (
    before_sleep_log,
    retry as tenacity_retry,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
    wait_fixed,
)
from tenacity.stop import stop_any

F = TypeVar("F", bound=Callable[..., Any])

# web3 HTTPProvider surfaces transport failures as requests exceptions
TRANSPORT_ERRORS: Tuple[type, ...] = (
    ConnectionError,
    TimeoutError,
    requests.exceptions.RequestException,
)

# tenacity's before_sleep_log expects a stdlib logger
_stdlib_logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        max_delay_seconds: Optional[float] = None,
        wait_strategy: str = "exponential",  # "exponential" or "fixed"
        wait_min: float = 0.5,
        wait_max: float = 10.0,
        wait_fixed_seconds: float = 1.0,
        retry_exceptions: Tuple[type, ...] = TRANSPORT_ERRORS,
        log_before_sleep: bool = True,
    ):
        self.max_attempts = max_attempts
        self.max_delay_seconds = max_delay_seconds
        self.wait_strategy = wait_strategy
        self.wait_min = wait_min
        self.wait_max = wait_max
        self.wait_fixed_seconds = wait_fixed_seconds
        self.retry_exceptions = retry_exceptions
        self.log_before_sleep = log_before_sleep


def _get_stop_condition(config: RetryConfig):
    """Build stop condition from config."""
    stops = [stop_after_attempt(config.max_attempts)]
    if config.max_delay_seconds:
        stops.append(stop_after_delay(config.max_delay_seconds))
    return stop_any(*stops)


def _get_wait_strategy(config: RetryConfig):
    """Build wait strategy from config."""
    if config.wait_strategy == "fixed":
        return wait_fixed(config.wait_fixed_seconds)
    return wait_exponential(multiplier=1, min=config.wait_min, max=config.wait_max)


def retry_with_config(config: RetryConfig) -> Callable[[F], F]:
    """Retry decorator using a RetryConfig object."""
    def decorator(func: F) -> F:
        retry_decorator = tenacity_retry(
            stop=_get_stop_condition(config),
            wait=_get_wait_strategy(config),
            retry=retry_if_exception_type(config.retry_exceptions),
            before_sleep=(
                before_sleep_log(_stdlib_logger, logging.WARNING)
                if config.log_before_sleep else None
            ),
            reraise=True,
        )
        return retry_decorator(func)

    return decorator


RPC_RETRY = RetryConfig(
    max_attempts=5,
    wait_strategy="exponential",
    wait_min=0.5,
    wait_max=10.0,
)


def retry_rpc(func: F) -> F:
    """Retry configuration for RPC reads."""
    return retry_with_config(RPC_RETRY)(func)
