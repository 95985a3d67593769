# core/retry.py
import random
import time
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel

from fhir_loader.core.logger import logger

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff and jitter."""
    max_attempts: int = 3
    initial_delay: float = 0.5
    max_delay: float = 20.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        base = min(self.initial_delay * (self.backoff_multiplier ** (attempt - 1)), self.max_delay)
        jitter = random.uniform(0, base * self.jitter_ratio)
        return base + jitter


def execute_with_retries(
    fn: Callable[[], T],
    policy: RetryPolicy,
    should_retry: Callable[[Exception], bool],
    log=logger,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``fn`` until it succeeds, the error is not retryable, or the
    policy runs out of attempts. The last error is re-raised unchanged.
    """
    last_error: Optional[Exception] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return fn()
        except Exception as e:
            last_error = e
            if not should_retry(e):
                raise
            if attempt >= policy.max_attempts:
                log.warning(f"Giving up after {attempt} attempts: {e}")
                raise
            delay = policy.delay_for(attempt)
            log.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed, retrying in {delay:.2f}s: {e}"
            )
            sleep(delay)

    # Only reachable with max_attempts < 1
    raise ValueError(f"Invalid retry policy, max_attempts={policy.max_attempts}") from last_error
