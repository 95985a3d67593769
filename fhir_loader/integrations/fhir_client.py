# integrations/fhir_client.py
import json
import time
from typing import Callable, Optional

import requests
from pydantic import ValidationError

from fhir_loader.core.exceptions import FhirResponseError, NetworkError
from fhir_loader.core.logger import logger
from fhir_loader.core.retry import RetryPolicy, execute_with_retries
from fhir_loader.schemas.fhir_models import Bundle

# Connection dropped or too slow, including mid-body
_TRANSIENT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, NetworkError) and error.retryable


class FhirBatchClient:
    """
    Thin wrapper around the FHIR server's batch endpoint.

    Network level failures (connection errors, timeouts, 5xx) are retried
    here. Per-entry failures inside a successful response are not; those
    are for the caller to evaluate.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if not base_url:
            raise ValueError("FHIR server URL is not configured")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.policy = policy or RetryPolicy(max_attempts=5, initial_delay=1.0, max_delay=30.0)
        self.session = session or requests.Session()
        self._sleep = sleep or time.sleep
        self._headers = {
            "Content-Type": "application/fhir+json",
            "Accept": "application/fhir+json",
        }

    def batch_url(self, cx_id: str) -> str:
        return f"{self.base_url}/fhir/{cx_id}"

    def execute_batch(self, cx_id: str, bundle: Bundle, log=logger) -> Bundle:
        """
        Submit the bundle as one batch transaction for the customer.

        Returns:
            The batch-response Bundle, one entry per submitted entry.

        Raises:
            NetworkError: transport failures or 5xx responses outlasted the
                retry policy.
            FhirResponseError: the server answered 4xx without a Bundle.
        """
        url = self.batch_url(cx_id)
        body = json.dumps(bundle.to_fhir())
        return execute_with_retries(
            lambda: self._post(url, body),
            self.policy,
            should_retry=_is_retryable,
            log=log,
            sleep=self._sleep,
        )

    def _post(self, url: str, body: str) -> Bundle:
        try:
            resp = self.session.post(
                url,
                headers=self._headers,
                data=body,
                timeout=self.timeout,
            )
        except _TRANSIENT_ERRORS as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Request to {url} failed: {e}", retryable=False) from e

        if resp.status_code >= 500:
            raise NetworkError(
                f"FHIR server error {resp.status_code}",
                status_code=resp.status_code,
                context={"body": resp.text[:500]},
            )

        bundle = self._parse_bundle(resp)
        if bundle is None:
            if resp.status_code >= 400:
                raise FhirResponseError(resp.status_code, resp.text)
            raise NetworkError(
                "FHIR server did not return a Bundle",
                retryable=False,
                status_code=resp.status_code,
                context={"body": resp.text[:500]},
            )
        return bundle

    def _parse_bundle(self, resp: requests.Response) -> Optional[Bundle]:
        try:
            payload = resp.json()
        except ValueError:
            return None
        if not isinstance(payload, dict) or payload.get("resourceType") != "Bundle":
            return None
        try:
            return Bundle.model_validate(payload)
        except ValidationError:
            return None
