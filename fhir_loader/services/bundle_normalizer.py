# services/bundle_normalizer.py
"""
Bundle Normalizer

Turns the converter's output (raw JSON text) into a batch Bundle ready to
be sent to the FHIR server for one patient:

1. The converter writes a fixed placeholder wherever the patient id goes;
   it is replaced with the job's patient id.
2. The bundle type is forced to ``batch``.
3. Entries without a ``request`` get one, an upsert (``PUT``) when the
   resource has an id, a create (``POST``) otherwise.

Malformed content is never retried: the same bytes would fail again.
"""
import json
from typing import Any, Dict

from pydantic import ValidationError

from fhir_loader.core.exceptions import MalformedBundleError
from fhir_loader.schemas.fhir_models import Bundle, BundleEntry, BundleEntryRequest

PATIENT_ID_PLACEHOLDER = "66666666-6666-6666-6666-666666666666"


def replace_patient_placeholder(raw: str, patient_id: str) -> str:
    return raw.replace(PATIENT_ID_PLACEHOLDER, patient_id)


def _request_for(resource: Dict[str, Any]) -> BundleEntryRequest:
    resource_type = resource["resourceType"]
    resource_id = resource.get("id")
    if resource_id:
        return BundleEntryRequest(method="PUT", url=f"{resource_type}/{resource_id}")
    return BundleEntryRequest(method="POST", url=resource_type)


def _validate_entry(index: int, entry: BundleEntry) -> None:
    resource = entry.resource
    if not resource:
        raise MalformedBundleError("Bundle entry has no resource", context={"entry": index})
    resource_type = resource.get("resourceType")
    if not isinstance(resource_type, str) or not resource_type:
        raise MalformedBundleError(
            "Bundle entry resource has no resourceType", context={"entry": index}
        )


def parse_raw_bundle_for_fhir_server(raw: str, patient_id: str) -> Bundle:
    """
    Parse the converter's output into a batch Bundle scoped to the patient.

    Raises:
        MalformedBundleError: not JSON, not a Bundle, or entries without a
            typed resource.
    """
    if not patient_id:
        raise MalformedBundleError("Missing patient id to scope the bundle")

    try:
        payload = json.loads(replace_patient_placeholder(raw, patient_id))
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedBundleError(f"Bundle is not valid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedBundleError("Bundle must be a JSON object")
    if payload.get("resourceType") != "Bundle":
        raise MalformedBundleError(
            "Payload is not a FHIR Bundle",
            context={"resourceType": payload.get("resourceType")},
        )

    try:
        bundle = Bundle.model_validate(payload)
    except ValidationError as e:
        raise MalformedBundleError(f"Invalid Bundle: {e.error_count()} validation errors") from e

    for index, entry in enumerate(bundle.entry):
        _validate_entry(index, entry)
        if entry.request is None:
            entry.request = _request_for(entry.resource)
        # Leftovers from a previous submission must not be sent back
        entry.response = None

    bundle.type = "batch"
    return bundle
