# services/retry_controller.py
from enum import Enum

from fhir_loader.core.exceptions import TooManyErrorsError


class RetryState(str, Enum):
    """States of the application level retry loop for one job."""
    ATTEMPTING = "attempting"
    EVALUATING = "evaluating"
    DONE = "done"
    EXHAUSTED = "exhausted"


class RetryController:
    """
    Bounds full-batch resubmissions while the server reports failing entries.

    ATTEMPTING -> EVALUATING -> DONE | ATTEMPTING | EXHAUSTED

    Network errors are not handled here; the batch client retries those
    before a response ever reaches this controller.
    """

    def __init__(self, max_retries: int = 10):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.max_retries = max_retries
        self.state = RetryState.ATTEMPTING
        self.attempt_count = 0
        self.error_tally = 0

    @property
    def should_attempt(self) -> bool:
        return self.state is RetryState.ATTEMPTING

    def begin_attempt(self) -> int:
        """Mark one batch submission. Returns the attempt number (1-based)."""
        if self.state is not RetryState.ATTEMPTING:
            raise RuntimeError(f"Can't start an attempt in state {self.state.value}")
        self.attempt_count += 1
        self.state = RetryState.EVALUATING
        return self.attempt_count

    def evaluate(self, error_count: int) -> RetryState:
        """Transition on the number of failing entries of the last submission."""
        if self.state is not RetryState.EVALUATING:
            raise RuntimeError(f"Can't evaluate in state {self.state.value}")
        self.error_tally += error_count
        if error_count <= 0:
            self.state = RetryState.DONE
        elif self.attempt_count < self.max_retries:
            self.state = RetryState.ATTEMPTING
        else:
            self.state = RetryState.EXHAUSTED
        return self.state

    def raise_if_exhausted(self) -> None:
        if self.state is RetryState.EXHAUSTED:
            raise TooManyErrorsError(count=self.attempt_count, max_retries=self.max_retries)
