# services/notifications.py
from typing import Any, Dict, Optional, Protocol

from fhir_loader.core.exceptions import FhirLoaderError
from fhir_loader.schemas.sqs_models import ErrorContext, JobReference


class ErrorReporter(Protocol):
    """Interface for the error-capture service. Calls are fire-and-forget."""

    def capture_error(
        self,
        message: str,
        error: BaseException,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        ...

    def capture_message(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        level: str = "info",
    ) -> None:
        ...


def stage_of(error: BaseException) -> str:
    return error.stage if isinstance(error, FhirLoaderError) else "unknown"


def build_error_context(
    message: str,
    error: BaseException,
    context: str,
    job: Optional[JobReference] = None,
) -> ErrorContext:
    return ErrorContext(
        message=message,
        error=str(error),
        error_type=type(error).__name__,
        stage=stage_of(error),
        context=context,
        job=job.log_fields() if job else {},
    )
