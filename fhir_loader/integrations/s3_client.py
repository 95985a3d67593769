# integrations/s3_client.py
import time
from typing import Callable, Optional

from botocore.exceptions import BotoCoreError, ClientError

from fhir_loader.core.exceptions import StorageError
from fhir_loader.core.logger import logger
from fhir_loader.core.retry import RetryPolicy, execute_with_retries

# The object or bucket isn't there; retrying won't change that
_TERMINAL_ERROR_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}


def _is_retryable(error: Exception) -> bool:
    return isinstance(error, StorageError) and error.retryable


class S3ContentFetcher:
    """Reads converted bundles from S3 with bounded retry on transient failures."""

    def __init__(
        self,
        s3_client,
        policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.s3_client = s3_client
        self.policy = policy or RetryPolicy(max_attempts=3, initial_delay=0.5)
        self._sleep = sleep or time.sleep

    def get_file_contents(self, bucket: str, key: str, log=logger) -> str:
        """
        Return the object's contents as text.

        Raises:
            StorageError: the object is missing (not retried) or reads kept
                failing until the retry policy ran out.
        """
        return execute_with_retries(
            lambda: self._read(bucket, key),
            self.policy,
            should_retry=_is_retryable,
            log=log,
            sleep=self._sleep,
        )

    def _read(self, bucket: str, key: str) -> str:
        context = {"bucket": bucket, "key": key}
        try:
            response = self.s3_client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read().decode("utf-8")
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            raise StorageError(
                f"Failed to get {key} from {bucket}: {code or e}",
                retryable=code not in _TERMINAL_ERROR_CODES,
                context=context,
            ) from e
        except BotoCoreError as e:
            raise StorageError(
                f"Failed to get {key} from {bucket}: {e}",
                context=context,
            ) from e
        except UnicodeDecodeError as e:
            raise StorageError(
                f"Contents of {key} are not valid UTF-8",
                retryable=False,
                context=context,
            ) from e
