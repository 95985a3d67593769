# handler.py
"""
SQS to FHIR Lambda entry point.

Each SQS record points at a bundle produced by the FHIR converter. The
queue is configured with a batch size of 1, but every received record is
processed, in order, if more show up.

Errors are reported to Sentry with the job's context and re-raised so the
SQS redrive policy decides about redelivery.
"""
from typing import Any, Dict, List, Optional

from fhir_loader.core.aws_client import get_cloudwatch_client, get_s3_client
from fhir_loader.core.config import Settings, get_settings
from fhir_loader.core.exceptions import InvocationError, JobProcessingError
from fhir_loader.core.logger import configure_logging, get_job_logger, logger
from fhir_loader.core.retry import RetryPolicy
from fhir_loader.integrations.cloudwatch_client import CloudWatchMetricsSink
from fhir_loader.integrations.fhir_client import FhirBatchClient
from fhir_loader.integrations.s3_client import S3ContentFetcher
from fhir_loader.integrations.sentry_client import SentryErrorReporter, init_sentry
from fhir_loader.schemas.sqs_models import JobReference, parse_job_reference
from fhir_loader.services.ingestion_service import FhirIngestionService
from fhir_loader.services.notifications import ErrorReporter, build_error_context


class SqsToFhirHandler:
    """Runs the ingestion service for each SQS record and escalates failures."""

    def __init__(
        self,
        service: FhirIngestionService,
        reporter: ErrorReporter,
        lambda_name: str,
    ):
        self.service = service
        self.reporter = reporter
        self.lambda_name = lambda_name

    def handle(self, event: Dict[str, Any]) -> None:
        try:
            records: List[Dict[str, Any]] = event.get("Records") or []
            if not records:
                logger.info(f"No records, discarding this event: {event}")
                return
            if len(records) > 1:
                self.reporter.capture_message(
                    "Got more than one message from SQS",
                    extra={
                        "event": event,
                        "context": self.lambda_name,
                        "additional": (
                            "This lambda is supposed to run w/ only 1 message per batch, "
                            f"got {len(records)} (still processing them all)"
                        ),
                    },
                    level="warning",
                )

            logger.info(f"Processing {len(records)} records...")
            for index, record in enumerate(records):
                logger.info(f"Record {index}, messageId: {record.get('messageId')}")
                job = parse_job_reference(record)
                self.process_record(index, job)
            logger.info("Done")
        except JobProcessingError:
            # Already reported with the job's context
            raise
        except Exception as e:
            msg = f"Error processing event on {self.lambda_name}"
            logger.error(f"{msg}: {e}")
            context = build_error_context(msg, e, self.lambda_name)
            self.reporter.capture_error(msg, e, extra={**context.to_extra(), "event": event})
            raise InvocationError(msg, context={"stage": context.stage}) from e

    def process_record(self, index: int, job: JobReference) -> None:
        log = get_job_logger(index, job.patient_id, job.job_id, job.cx_id)
        try:
            self.service.process_job(job, log=log)
        except Exception as e:
            msg = f"Error processing job on {self.lambda_name}"
            context = build_error_context(msg, e, self.lambda_name, job)
            log.error(f"{msg} at stage {context.stage}: {e}")
            self.reporter.capture_error(msg, e, extra=context.to_extra())
            raise JobProcessingError(
                msg, context={"stage": context.stage, "patientId": job.patient_id}
            ) from e


def build_handler(settings: Settings) -> SqsToFhirHandler:
    """Wire every component from the settings. Called once per cold start."""
    configure_logging(settings.DEBUG)
    init_sentry(settings)

    fetcher = S3ContentFetcher(
        get_s3_client(settings),
        policy=RetryPolicy(
            max_attempts=settings.S3_MAX_ATTEMPTS,
            initial_delay=settings.S3_INITIAL_DELAY_SECS,
        ),
    )
    fhir_client = FhirBatchClient(
        settings.FHIR_SERVER_URL,
        timeout=settings.FHIR_REQUEST_TIMEOUT_SECS,
        policy=RetryPolicy(
            max_attempts=settings.NETWORK_MAX_ATTEMPTS,
            initial_delay=settings.NETWORK_INITIAL_DELAY_SECS,
            max_delay=settings.NETWORK_MAX_DELAY_SECS,
        ),
    )
    metrics_sink = CloudWatchMetricsSink(
        get_cloudwatch_client(settings),
        namespace=settings.METRICS_NAMESPACE,
        service_name=settings.AWS_LAMBDA_FUNCTION_NAME,
    )
    service = FhirIngestionService(
        fetcher,
        fhir_client,
        metrics_sink,
        max_retries=settings.MAX_FHIR_RETRIES,
    )
    return SqsToFhirHandler(service, SentryErrorReporter(), settings.AWS_LAMBDA_FUNCTION_NAME)


_handler: Optional[SqsToFhirHandler] = None


def handler(event: Dict[str, Any], context: Any = None) -> None:
    """AWS Lambda entry point."""
    global _handler
    if _handler is None:
        _handler = build_handler(get_settings())
    _handler.handle(event)
