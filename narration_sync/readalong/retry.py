"""
Retry policy and cancellation for provider calls.
"""

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from narration_sync.readalong.errors import NarrationCancelled, TransientProviderError
from narration_sync.utils import logger

T = TypeVar("T")


class CancellationToken:
    """Caller-owned flag that aborts an in-flight narration request."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise NarrationCancelled("Narration request was cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: wait base_delay * 2**attempt between attempts."""

    max_attempts: int = 3
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    token: Optional[CancellationToken] = None,
    label: str = "provider call",
) -> T:
    """
    Run ``func`` retrying transient failures.

    Only TransientProviderError is retried; any other exception
    propagates immediately.

    Args:
        func: Zero-argument callable performing one attempt
        policy: Attempt count and backoff
        token: Optional cancellation token checked between attempts
        label: Name used in log messages

    Returns:
        The callable's result

    Raises:
        TransientProviderError: The last error once attempts are exhausted
        NarrationCancelled: If the token is cancelled
    """
    last_error: Optional[TransientProviderError] = None

    for attempt in range(policy.max_attempts):
        if token is not None:
            token.raise_if_cancelled()
        try:
            return func()
        except TransientProviderError as e:
            last_error = e
            if attempt < policy.max_attempts - 1:
                wait_time = policy.delay_for(attempt)
                logger.warning(
                    f"{label}: attempt {attempt + 1} failed, retrying in {wait_time:g}s: {e}"
                )
                if token is not None:
                    if token.wait(wait_time):
                        token.raise_if_cancelled()
                elif wait_time > 0:
                    time.sleep(wait_time)
            else:
                logger.error(f"{label}: all {policy.max_attempts} attempts failed")

    raise last_error
