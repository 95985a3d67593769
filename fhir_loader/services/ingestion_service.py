# services/ingestion_service.py
"""
FHIR Ingestion Service

Processes one queued job end to end: download the converted bundle from
S3, normalize it for the patient, submit it to the FHIR server as a batch
and resubmit while entries keep failing, then report the job's metrics.
"""
from typing import Optional, Protocol

from fhir_loader.core.logger import logger
from fhir_loader.schemas.fhir_models import Bundle
from fhir_loader.schemas.sqs_models import JobReference
from fhir_loader.services.bundle_normalizer import parse_raw_bundle_for_fhir_server
from fhir_loader.services.metrics import MetricsAggregator, MetricsSink
from fhir_loader.services.response_evaluator import (
    describe_errors,
    get_errors_from_response,
    process_fhir_response,
)
from fhir_loader.services.retry_controller import RetryController, RetryState


# ============================================================================
# INTERFACES (PROTOCOLS)
# ============================================================================

class ContentFetcher(Protocol):
    """Interface for reading the converted bundle."""

    def get_file_contents(self, bucket: str, key: str, log=logger) -> str:
        ...


class BatchClient(Protocol):
    """Interface for submitting a batch transaction."""

    def execute_batch(self, cx_id: str, bundle: Bundle, log=logger) -> Bundle:
        ...


# ============================================================================
# MAIN SERVICE
# ============================================================================

class FhirIngestionService:
    """
    Orchestrates the per-job pipeline.

    Errors are not caught here; the handler reports them with the job's
    context and re-raises them to the Lambda runtime.
    """

    def __init__(
        self,
        fetcher: ContentFetcher,
        fhir_client: BatchClient,
        metrics_sink: MetricsSink,
        max_retries: int = 10,
    ):
        self.fetcher = fetcher
        self.fhir_client = fhir_client
        self.metrics_sink = metrics_sink
        self.max_retries = max_retries

    def process_job(
        self,
        job: JobReference,
        log=logger,
        metrics: Optional[MetricsAggregator] = None,
    ) -> Bundle:
        """Run the pipeline for one job. Returns the last batch-response."""
        metrics = metrics or MetricsAggregator()

        log.info(f"Getting contents from bucket {job.bucket}, key {job.key}")
        with metrics.stage("download"):
            payload_raw = self.fetcher.get_file_contents(job.bucket, job.key, log=log)

        log.info(f"Converting payload to JSON, length {len(payload_raw)}")
        bundle = parse_raw_bundle_for_fhir_server(payload_raw, job.patient_id)

        log.info(f"Sending payload to FHIRServer, {len(bundle.entry)} entries...")
        controller = RetryController(self.max_retries)
        with metrics.stage("upsert"):
            response = self.upsert_with_retries(job.cx_id, bundle, controller, log)
        metrics.record_count("errorCount", controller.attempt_count)
        metrics.record_job_age(job.started_at)

        process_fhir_response(response, log)

        metrics.flush(self.metrics_sink, log)
        return response

    def upsert_with_retries(
        self,
        cx_id: str,
        bundle: Bundle,
        controller: Optional[RetryController] = None,
        log=logger,
    ) -> Bundle:
        """
        Submit the bundle, resubmitting the whole batch while the response
        has failing entries. The same bundle object is sent every time.

        Raises:
            TooManyErrorsError: entries still failing after the last allowed attempt.
        """
        controller = controller or RetryController(self.max_retries)
        response: Optional[Bundle] = None
        while controller.should_attempt:
            attempt = controller.begin_attempt()
            log.debug(f"Batch submission {attempt}/{controller.max_retries}")
            response = self.fhir_client.execute_batch(cx_id, bundle, log=log)
            errors = get_errors_from_response(response)
            # Submitted entries the response has no outcome for count as failed
            missing = max(len(bundle.entry) - len(response.entry), 0)
            if missing:
                log.warning(
                    f"FHIR response has {len(response.entry)} entries, "
                    f"{len(bundle.entry)} were submitted"
                )
            error_count = len(errors) + missing
            state = controller.evaluate(error_count)
            if state is RetryState.DONE:
                break
            retrying = state is RetryState.ATTEMPTING
            log.warning(
                f"Got {error_count} errors from FHIR, {'' if retrying else 'NOT '}"
                f"trying again... errors: {describe_errors(errors)}"
            )
            controller.raise_if_exhausted()
        return response
