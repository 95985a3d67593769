# integrations/api_client.py
from typing import Any, Dict, Optional

import requests

from fhir_loader.core.logger import logger
from fhir_loader.services.notifications import ErrorReporter


def start_document_query(
    api_url: str,
    cx_id: str,
    patient_id: str,
    reporter: ErrorReporter,
    session: Optional[requests.Session] = None,
    timeout: float = 30.0,
) -> Dict[str, Any]:
    """
    Ask the internal API to start a document query for the patient.

    Single POST, no retry. Any failure is reported and re-raised.
    """
    http = session or requests.Session()
    path = "/internal/docs/query"
    params = {"cxId": cx_id, "patientId": patient_id}
    url = f"{api_url.rstrip('/')}{path}"
    try:
        resp = http.post(url, params=params, json={}, timeout=timeout)
        resp.raise_for_status()
        data = resp.json() if resp.content else None
        if not data:
            raise ValueError(f"No body returned from {path}")
        logger.debug(f"{path} resp: {data}")
        return data
    except Exception as e:
        msg = "Failure while starting document query"
        logger.error(f"{msg}, cxId {cx_id} patientId {patient_id}. Cause: {e}")
        reporter.capture_error(
            msg,
            e,
            extra={
                "url": path,
                "cxId": cx_id,
                "patientId": patient_id,
                "context": "start-document-query",
            },
        )
        raise
