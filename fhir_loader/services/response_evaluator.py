# services/response_evaluator.py
import json
from typing import List, Optional

from fhir_loader.core.logger import logger
from fhir_loader.schemas.fhir_models import Bundle, BundleEntry


def get_errors_from_response(response: Optional[Bundle]) -> List[BundleEntry]:
    """
    Entries of a batch-response that did not succeed, in response order.

    Anything without a 2xx status is a failure, including entries with no
    response at all.
    """
    entries = response.entry if response else []
    return [entry for entry in entries if not entry.is_success()]


def describe_errors(errors: List[BundleEntry]) -> str:
    return json.dumps([e.model_dump(mode="json", exclude_none=True) for e in errors])


def process_fhir_response(response: Optional[Bundle], log=logger) -> int:
    """Log the outcome of the final submission. Returns the number of failing entries."""
    entries = response.entry if response else []
    errors = get_errors_from_response(response)
    count_error = len(errors)
    count_success = len(entries) - count_error
    log.info(f"Got {count_error} errors and {count_success} successes from FHIR Server")
    for error in errors:
        log.warning(f"Error from FHIR Server: {describe_errors([error])}")
    return count_error
