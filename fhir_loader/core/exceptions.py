# core/exceptions.py
"""
Loader exceptions.

Each error knows the pipeline stage it belongs to and whether the local
retry policy of that stage may try again. Fatal errors travel up to the
handler, which reports them once and re-raises so SQS can redeliver.

    FhirLoaderError
    ├── MessageParseError      bad SQS body or attributes
    ├── StorageError           S3 read failed
    ├── MalformedBundleError   bundle is not valid FHIR JSON
    ├── NetworkError           batch request failed at transport level
    │   └── FhirResponseError  4xx that is not a Bundle
    ├── TooManyErrorsError     attempt ceiling reached with failing entries
    └── InvocationError        raised to the Lambda runtime
        └── JobProcessingError already reported, scoped to one job
"""
from typing import Any, Dict, Optional


class FhirLoaderError(Exception):
    """Base exception for all loader errors."""

    stage = "unknown"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{context_str}]"
        return self.message


class MessageParseError(FhirLoaderError):
    """Raised when an SQS record is missing its body or required attributes."""

    stage = "parse"


class StorageError(FhirLoaderError):
    """Raised when the bundle can't be read from S3."""

    stage = "download"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.retryable = retryable
        super().__init__(message, context)


class MalformedBundleError(FhirLoaderError):
    """Raised when raw contents are not a valid FHIR Bundle. Never retried."""

    stage = "normalize"


class NetworkError(FhirLoaderError):
    """Raised when the batch transaction request fails at transport level."""

    stage = "upsert"

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        status_code: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.retryable = retryable
        self.status_code = status_code
        super().__init__(message, context)


class FhirResponseError(NetworkError):
    """Raised on a 4xx response whose body is not a Bundle."""

    def __init__(self, status_code: int, body: str):
        self.body = body
        super().__init__(
            f"FHIR server rejected the batch with status {status_code}",
            retryable=False,
            status_code=status_code,
            context={"body": body[:500]},
        )


class TooManyErrorsError(FhirLoaderError):
    """Raised when entries keep failing after the last allowed submission."""

    stage = "upsert"

    def __init__(self, count: int, max_retries: int):
        self.count = count
        self.max_retries = max_retries
        super().__init__(
            "Too many errors from FHIR",
            context={"count": str(count), "maxRetries": str(max_retries)},
        )


class InvocationError(FhirLoaderError):
    """Raised to the Lambda runtime; the original error is the __cause__."""


class JobProcessingError(InvocationError):
    """A job failed and was already reported to the error-capture service."""
