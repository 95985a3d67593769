# schemas/sqs_models.py
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from fhir_loader.core.exceptions import MessageParseError
from fhir_loader.core.logger import logger

_DATETIME = TypeAdapter(datetime)


class EventBody(BaseModel):
    """JSON body of a queued job: where the converted bundle lives in S3."""
    model_config = ConfigDict(strict=True, extra="ignore")

    s3BucketName: str = Field(..., min_length=1)
    s3FileName: str = Field(..., min_length=1)


class JobReference(BaseModel):
    """One unit of work, built from one SQS record. Immutable."""
    model_config = ConfigDict(frozen=True)

    cx_id: str
    patient_id: str
    bucket: str
    key: str
    job_id: Optional[str] = None
    started_at: Optional[datetime] = None

    @field_validator("started_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def log_fields(self) -> Dict[str, Any]:
        return {
            "cxId": self.cx_id,
            "patientId": self.patient_id,
            "jobId": self.job_id,
            "s3BucketName": self.bucket,
            "s3FileName": self.key,
        }


class ErrorContext(BaseModel):
    """Context sent to the error-capture service for a failed job."""
    message: str
    error: str
    error_type: str
    stage: str
    context: str
    job: Dict[str, Any] = Field(default_factory=dict)

    def to_extra(self) -> Dict[str, Any]:
        return {
            "context": self.context,
            "stage": self.stage,
            "error": self.error,
            "errorType": self.error_type,
            **self.job,
        }


def parse_body(body: Any) -> EventBody:
    """Validate the record body: a JSON object with both S3 locator fields as strings."""
    if not isinstance(body, str) or not body:
        raise MessageParseError("Invalid body")
    try:
        return EventBody.model_validate_json(body)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "body" for err in e.errors())
        raise MessageParseError(f"Invalid body, check {fields}") from e


def _string_attribute(attributes: Dict[str, Any], name: str) -> Optional[str]:
    attribute = attributes.get(name) or {}
    if not isinstance(attribute, dict):
        raise MessageParseError(f"Invalid message attribute {name}")
    # Lambda uses camelCase, the SQS API uses PascalCase
    value = attribute.get("stringValue") or attribute.get("StringValue")
    return value or None


def _started_at(value: Optional[str], log=logger) -> Optional[datetime]:
    """Parse the optional job start time; a bad value only costs the job age metric."""
    if value is None:
        return None
    try:
        return _DATETIME.validate_python(value)
    except ValidationError:
        log.warning(f"Invalid startedAt {value!r}, not reporting job age")
        return None


def parse_job_reference(record: Dict[str, Any], log=logger) -> JobReference:
    """Build the job reference from one SQS record of a Lambda event."""
    attributes = record.get("messageAttributes")
    if not attributes:
        raise MessageParseError("Missing message attributes")
    if not isinstance(attributes, dict):
        raise MessageParseError("Invalid message attributes")
    body = record.get("body")
    if not body:
        raise MessageParseError("Missing message body")

    cx_id = _string_attribute(attributes, "cxId")
    if not cx_id:
        raise MessageParseError("Missing cxId")
    patient_id = _string_attribute(attributes, "patientId")
    if not patient_id:
        raise MessageParseError("Missing patientId")

    event_body = parse_body(body)
    return JobReference(
        cx_id=cx_id,
        patient_id=patient_id,
        bucket=event_body.s3BucketName,
        key=event_body.s3FileName,
        job_id=_string_attribute(attributes, "jobId"),
        started_at=_started_at(_string_attribute(attributes, "startedAt"), log),
    )
