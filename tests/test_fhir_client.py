"""
test_fhir_client.py
-------------------
Batch transaction client: request shape and network level retry.

Run:
    pytest tests/test_fhir_client.py -v --tb=short
"""
import json
from unittest.mock import MagicMock

import pytest
import requests

from fhir_loader.core.exceptions import FhirResponseError, NetworkError
from fhir_loader.core.retry import RetryPolicy
from fhir_loader.integrations.fhir_client import FhirBatchClient
from fhir_loader.services.bundle_normalizer import parse_raw_bundle_for_fhir_server
from tests.conftest import make_bundle_json

BATCH_RESPONSE = {
    "resourceType": "Bundle",
    "type": "batch-response",
    "entry": [{"response": {"status": "201 Created"}}, {"response": {"status": "200 OK"}}],
}


def _response(status_code: int, payload=None, text: str = None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    if payload is not None:
        resp.json.return_value = payload
        resp.text = json.dumps(payload)
    else:
        resp.json.side_effect = ValueError("no json")
        resp.text = text or ""
    return resp


def _client(session, delays=None):
    return FhirBatchClient(
        "http://fhir-server:8080/",
        timeout=10,
        policy=RetryPolicy(max_attempts=5, initial_delay=1.0),
        session=session,
        sleep=(delays if delays is not None else []).append,
    )


@pytest.fixture
def bundle():
    return parse_raw_bundle_for_fhir_server(make_bundle_json(2), "pat1")


# ── Request ───────────────────────────────────────────────────────────────────

def test_posts_bundle_to_customer_scoped_path(bundle):
    session = MagicMock()
    session.post.return_value = _response(200, BATCH_RESPONSE)
    response = _client(session).execute_batch("cx1", bundle)

    args, kwargs = session.post.call_args
    assert args[0] == "http://fhir-server:8080/fhir/cx1"
    assert kwargs["headers"]["Content-Type"] == "application/fhir+json"
    assert kwargs["timeout"] == 10
    sent = json.loads(kwargs["data"])
    assert sent["type"] == "batch"
    assert len(sent["entry"]) == 2
    assert [e.status for e in response.entry] == ["201 Created", "200 OK"]


def test_requires_base_url():
    with pytest.raises(ValueError):
        FhirBatchClient("")


# ── Network retry ─────────────────────────────────────────────────────────────

def test_retries_connection_errors_and_5xx(bundle):
    delays = []
    session = MagicMock()
    session.post.side_effect = [
        requests.ConnectionError("reset"),
        requests.Timeout("slow"),
        _response(503, text="unavailable"),
        _response(200, BATCH_RESPONSE),
    ]
    response = _client(session, delays).execute_batch("cx1", bundle)
    assert session.post.call_count == 4
    assert len(delays) == 3
    assert len(response.entry) == 2


def test_connection_dropped_mid_body_is_retried(bundle):
    session = MagicMock()
    session.post.side_effect = [
        requests.exceptions.ChunkedEncodingError("connection broken"),
        _response(200, BATCH_RESPONSE),
    ]
    response = _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 2
    assert len(response.entry) == 2


@pytest.mark.parametrize(
    "error",
    [
        requests.exceptions.TooManyRedirects("redirect loop"),
        requests.exceptions.ContentDecodingError("bad gzip"),
    ],
)
def test_other_request_failures_raise_network_error_without_retry(bundle, error):
    session = MagicMock()
    session.post.side_effect = error
    with pytest.raises(NetworkError) as exc_info:
        _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 1
    assert exc_info.value.retryable is False
    assert exc_info.value.stage == "upsert"
    assert exc_info.value.__cause__ is error


def test_exhausted_network_retries_raise_network_error(bundle):
    session = MagicMock()
    session.post.return_value = _response(502, text="bad gateway")
    with pytest.raises(NetworkError) as exc_info:
        _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 5
    assert exc_info.value.status_code == 502
    assert exc_info.value.stage == "upsert"


def test_4xx_bundle_is_returned_for_evaluation(bundle):
    session = MagicMock()
    payload = {
        "resourceType": "Bundle",
        "type": "batch-response",
        "entry": [{"response": {"status": "400 Bad Request"}}],
    }
    session.post.return_value = _response(400, payload)
    response = _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 1
    assert response.entry[0].status == "400 Bad Request"


def test_4xx_without_bundle_is_not_retried(bundle):
    session = MagicMock()
    session.post.return_value = _response(
        422, {"resourceType": "OperationOutcome", "issue": [{"severity": "error"}]}
    )
    with pytest.raises(FhirResponseError) as exc_info:
        _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 1
    assert exc_info.value.status_code == 422
    assert exc_info.value.retryable is False


def test_2xx_without_bundle_is_a_fatal_error(bundle):
    session = MagicMock()
    session.post.return_value = _response(200, text="<html></html>")
    with pytest.raises(NetworkError) as exc_info:
        _client(session).execute_batch("cx1", bundle)
    assert session.post.call_count == 1
    assert exc_info.value.retryable is False
