"""Retry configuration and logic for remote store operations."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, TypeVar

from .errors import (
    AuthenticationError,
    NotFoundError,
    RemoteStoreError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings that mark a failure as a credential/permission problem.
# Matched case-insensitively against the exception text.
AUTHENTICATION_MARKERS = (
    "login failed",
    "logon failure",
    "authentication",
    "status_logon_failure",
    "status_account_locked_out",
    "status_account_disabled",
    "status_password_expired",
    "status_wrong_password",
    "status_access_denied",
    "bad username or password",
    "invalid credentials",
    "access denied",
    "access is denied",
)

TRANSIENT_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "connection",
    "temporarily",
    "unavailable",
    "busy",
    "cannot connect",
)


class ErrorClass(str, Enum):
    """How a failure should be treated by the retry loop."""

    AUTHENTICATION = "authentication"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first one.
        base_delay: Delay in seconds before the first retry.
        max_delay: Upper bound for any single delay.
        exponential_base: Base for exponential backoff calculation.
        sleep: Function used to wait between attempts.
    """

    max_attempts: int = 2
    base_delay: float = 2.0
    max_delay: float = 10.0
    exponential_base: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False, compare=False)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * (self.exponential_base ** (attempt - 1)), self.max_delay)


def _classify_single(error: BaseException) -> Optional[ErrorClass]:
    if isinstance(error, AuthenticationError):
        return ErrorClass.AUTHENTICATION
    if isinstance(error, TransientNetworkError):
        return ErrorClass.TRANSIENT
    if isinstance(error, NotFoundError):
        return ErrorClass.PERMANENT

    message = str(error).lower()
    if any(marker in message for marker in AUTHENTICATION_MARKERS):
        return ErrorClass.AUTHENTICATION
    if any(marker in message for marker in TRANSIENT_MARKERS):
        return ErrorClass.TRANSIENT
    if isinstance(error, (TimeoutError, ConnectionError)):
        return ErrorClass.TRANSIENT
    return None


def classify_error(error: BaseException) -> ErrorClass:
    """
    Classify an error for retry purposes.

    Authentication failures win over everything else. When the top-level
    error carries no recognizable signal, the chained cause is inspected.

    Args:
        error: The exception raised by the operation

    Returns:
        The ErrorClass for the error chain
    """
    seen: set[int] = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        classification = _classify_single(current)
        if classification is not None:
            return classification
        current = current.__cause__ or current.__context__
    return ErrorClass.PERMANENT


def is_authentication_failure(error: BaseException) -> bool:
    """Return True if the error chain describes a credential problem."""
    return classify_error(error) is ErrorClass.AUTHENTICATION


def execute_with_retry(
    operation: Callable[[], T],
    label: str,
    config: Optional[RetryConfig] = None,
) -> T:
    """
    Execute an operation with bounded, lockout-aware retry.

    Args:
        operation: Callable to execute
        label: Short description used in log messages
        config: Retry configuration, defaults to RetryConfig()

    Returns:
        Result of the operation

    Raises:
        The operation's own exception once it is not retryable or the
        attempts are exhausted
    """
    config = config or RetryConfig()
    attempts = max(1, config.max_attempts)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except Exception as e:
            classification = classify_error(e)

            if classification is ErrorClass.AUTHENTICATION:
                logger.error(f"{label}: authentication failure, not retrying: {e}")
                raise
            if classification is ErrorClass.PERMANENT:
                logger.debug(f"{label}: non-retryable error: {e}")
                raise
            if attempt == attempts:
                logger.error(f"{label}: all {attempts} attempts failed. Last error: {e}")
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"{label}: attempt {attempt} failed: {e}. Retrying in {delay:.1f}s..."
            )
            config.sleep(delay)

    raise RemoteStoreError(f"{label}: unexpected retry loop exit")
