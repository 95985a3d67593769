# core/logger.py
import logging
from typing import Optional

logger = logging.getLogger("sqs-to-fhir")
logger.setLevel(logging.INFO)
logger.propagate = False

# Always add a console handler with a simple, structured-ish format.
# Lambda ships stdout/stderr to CloudWatch Logs.
_console = logging.StreamHandler()
_console.setLevel(logging.DEBUG)
_console.setFormatter(logging.Formatter(
    fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
))
logger.addHandler(_console)


def configure_logging(debug: bool) -> None:
    """Apply the configured verbosity; called once at cold start."""
    logger.setLevel(logging.DEBUG if debug else logging.INFO)


class JobLogger(logging.LoggerAdapter):
    """
    Logger carrying the context of one queued job.

    Messages are prefixed so a single job can be followed through
    CloudWatch Logs, and the same fields are attached as ``extra``.
    """

    def process(self, msg, kwargs):
        extra = dict(self.extra)
        kwargs["extra"] = {**extra, **kwargs.get("extra", {})}
        return f"[{extra['prefix']}] {msg}", kwargs


def get_job_logger(
    index: int,
    patient_id: str,
    job_id: Optional[str] = None,
    cx_id: Optional[str] = None,
) -> JobLogger:
    prefix = f"{index}, patient {patient_id}, job {job_id}"
    return JobLogger(
        logger,
        {"prefix": prefix, "cx_id": cx_id, "patient_id": patient_id, "job_id": job_id},
    )
