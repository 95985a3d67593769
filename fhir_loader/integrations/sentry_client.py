# integrations/sentry_client.py
from typing import Any, Dict, Optional

import sentry_sdk

from fhir_loader.core.config import Settings
from fhir_loader.core.logger import logger


def init_sentry(settings: Settings) -> bool:
    """Initialise the Sentry SDK once per cold start. Returns False when no DSN is set."""
    if not settings.SENTRY_DSN:
        logger.warning("SENTRY_DSN not set, error capture is disabled")
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.SENTRY_ENVIRONMENT,
        server_name=settings.AWS_LAMBDA_FUNCTION_NAME,
        traces_sample_rate=0.0,
        # We report errors ourselves, with job context
        default_integrations=False,
    )
    logger.info("Sentry initialized")
    return True


class SentryErrorReporter:
    """
    Sends errors and notifications to Sentry.

    Reporting is best-effort: a failure to report is logged and never
    replaces the error being reported.
    """

    def __init__(self, flush_timeout: float = 2.0) -> None:
        # Lambda may freeze right after the handler returns
        self.flush_timeout = flush_timeout

    def capture_error(
        self,
        message: str,
        error: BaseException,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        try:
            with sentry_sdk.new_scope() as scope:
                scope.set_extra("message", message)
                for key, value in (extra or {}).items():
                    scope.set_extra(key, value)
                scope.set_level("error")
                sentry_sdk.capture_exception(error)
            sentry_sdk.flush(timeout=self.flush_timeout)
        except Exception as e:
            logger.error(f"Failed to report error to Sentry: {e}")

    def capture_message(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        level: str = "info",
    ) -> None:
        try:
            with sentry_sdk.new_scope() as scope:
                for key, value in (extra or {}).items():
                    scope.set_extra(key, value)
                sentry_sdk.capture_message(message, level=level)
            sentry_sdk.flush(timeout=self.flush_timeout)
        except Exception as e:
            logger.error(f"Failed to report message to Sentry: {e}")
