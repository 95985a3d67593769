# services/metrics.py
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, Optional, Protocol, Union

from pydantic import BaseModel, Field

from fhir_loader.core.logger import logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DurationMetric(BaseModel):
    """Elapsed milliseconds for a stage."""
    duration: int
    timestamp: datetime = Field(default_factory=_utcnow)


class CountMetric(BaseModel):
    count: int
    timestamp: datetime = Field(default_factory=_utcnow)


Metric = Union[DurationMetric, CountMetric]
Metrics = Dict[str, Metric]


class MetricsSink(Protocol):
    """Interface for publishing a job's metrics."""

    def report_metrics(self, metrics: Metrics) -> None:
        ...


class MetricsAggregator:
    """
    Accumulates the metrics of one job: download and upsert durations,
    the number of batch submissions and, when known, the job's age.
    Flushed once at the end of the job.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.metrics: Metrics = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Record the duration of the wrapped block, only if it completes."""
        start = self._now_ms()
        yield
        self.record_duration(name, self._now_ms() - start)

    def record_duration(self, name: str, duration_ms: int) -> None:
        self.metrics[name] = DurationMetric(duration=duration_ms)

    def record_count(self, name: str, count: int) -> None:
        self.metrics[name] = CountMetric(count=count)

    def record_job_age(self, started_at: Optional[datetime]) -> None:
        """Time since the originating job started, if the message carried it."""
        if started_at is None:
            return
        age_ms = self._now_ms() - int(started_at.timestamp() * 1000)
        self.record_duration("job", age_ms)

    def flush(self, sink: MetricsSink, log=logger) -> None:
        """Hand the metrics to the sink. Best-effort: sink failures are only logged."""
        try:
            sink.report_metrics(dict(self.metrics))
        except Exception as e:
            log.warning(f"Failed to report metrics: {e}")
