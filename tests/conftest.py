"""
Shared fixtures: sample bundles, SQS records and in-memory collaborators.
"""
import json
from typing import Any, Dict, List, Optional

import pytest

from fhir_loader.core.config import Settings
from fhir_loader.schemas.fhir_models import Bundle
from fhir_loader.services.bundle_normalizer import PATIENT_ID_PLACEHOLDER


def make_bundle_json(entry_count: int = 3) -> str:
    entries = [
        {
            "fullUrl": f"urn:uuid:cond-{i}",
            "resource": {
                "resourceType": "Condition",
                "id": f"cond-{i}",
                "subject": {"reference": f"Patient/{PATIENT_ID_PLACEHOLDER}"},
            },
        }
        for i in range(entry_count)
    ]
    return json.dumps({"resourceType": "Bundle", "type": "batch", "entry": entries})


def make_response(statuses: List[Optional[str]]) -> Bundle:
    """Batch-response bundle; ``None`` means the entry has no response."""
    entries = []
    for status in statuses:
        entries.append({} if status is None else {"response": {"status": status}})
    return Bundle.model_validate(
        {"resourceType": "Bundle", "type": "batch-response", "entry": entries}
    )


def make_record(
    body: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None,
    message_id: str = "msg-1",
) -> Dict[str, Any]:
    if body is None:
        body = json.dumps({"s3BucketName": "bucket1", "s3FileName": "patientA.json"})
    if attributes is None:
        attributes = {"cxId": "cx1", "patientId": "pat1"}
    return {
        "messageId": message_id,
        "body": body,
        "messageAttributes": {
            name: {"stringValue": value, "dataType": "String"}
            for name, value in attributes.items()
        },
    }


class FakeFetcher:
    def __init__(self, contents: str = None, error: Exception = None):
        self.contents = contents if contents is not None else make_bundle_json()
        self.error = error
        self.calls = []

    def get_file_contents(self, bucket, key, log=None):
        self.calls.append((bucket, key))
        if self.error:
            raise self.error
        return self.contents


class FakeBatchClient:
    """Returns the queued responses in order, repeating the last one."""

    def __init__(self, responses: List[Bundle]):
        self.responses = responses
        self.calls = []

    def execute_batch(self, cx_id, bundle, log=None):
        self.calls.append((cx_id, bundle))
        index = min(len(self.calls), len(self.responses)) - 1
        return self.responses[index]


class FakeMetricsSink:
    def __init__(self, error: Exception = None):
        self.reports = []
        self.error = error

    def report_metrics(self, metrics):
        self.reports.append(metrics)
        if self.error:
            raise self.error


class FakeReporter:
    def __init__(self):
        self.errors = []
        self.messages = []

    def capture_error(self, message, error, extra=None):
        self.errors.append((message, error, extra or {}))

    def capture_message(self, message, extra=None, level="info"):
        self.messages.append((message, extra or {}, level))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        METRICS_NAMESPACE="Test/FHIR",
        FHIR_SERVER_URL="http://fhir-server:8080",
        AWS_LAMBDA_FUNCTION_NAME="sqs-to-fhir-test",
    )


@pytest.fixture
def no_sleep():
    delays = []
    return delays.append
