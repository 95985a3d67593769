# core/config.py
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized loader configuration.
    Built once per cold start and handed to each component explicitly.
    """

    # ------------------------------------------------------------
    # Project / Runtime
    # ------------------------------------------------------------
    PROJECT_NAME: str = "SQS to FHIR Loader"
    DEBUG: bool = False

    # Set automatically by the Lambda runtime
    AWS_LAMBDA_FUNCTION_NAME: str = "sqs-to-fhir"

    # ------------------------------------------------------------
    # AWS Core
    # ------------------------------------------------------------
    AWS_REGION: str = "us-east-1"
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_SESSION_TOKEN: Optional[str] = None

    # ------------------------------------------------------------
    # Metrics (CloudWatch)
    # ------------------------------------------------------------
    METRICS_NAMESPACE: str = Field(
        ...,
        description="CloudWatch namespace the per-job metrics are published under",
    )

    # ------------------------------------------------------------
    # FHIR Server
    # ------------------------------------------------------------
    FHIR_SERVER_URL: str = Field(
        ...,
        description="Base URL of the FHIR server, e.g. 'http://fhir-server:8080'",
    )
    FHIR_REQUEST_TIMEOUT_SECS: float = Field(
        default=120.0,
        description="Timeout for a single batch transaction request",
    )

    """
    Application level retries: full batch resubmissions while the
    server reports failing entries
    """
    MAX_FHIR_RETRIES: int = 10

    """
    Network level retries for the batch transaction request
    (connection errors, timeouts, 5xx)
    """
    NETWORK_MAX_ATTEMPTS: int = 5
    NETWORK_INITIAL_DELAY_SECS: float = 1.0
    NETWORK_MAX_DELAY_SECS: float = 30.0

    # ------------------------------------------------------------
    # S3 Storage
    # ------------------------------------------------------------
    S3_MAX_ATTEMPTS: int = 3
    S3_INITIAL_DELAY_SECS: float = 0.5

    # ------------------------------------------------------------
    # Error capture (Sentry)
    # ------------------------------------------------------------
    SENTRY_DSN: Optional[str] = None
    SENTRY_ENVIRONMENT: str = "production"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process (Lambda cold start)."""
    return Settings()
