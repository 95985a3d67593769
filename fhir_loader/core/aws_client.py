# core/aws_client.py
"""
Centralized AWS client factory to ensure proper credential handling.
Clients are created with explicit credentials when the settings carry
them, otherwise boto3 falls back to the Lambda execution role.
"""
import boto3
from botocore.config import Config

from fhir_loader.core.config import Settings
from fhir_loader.core.logger import logger


def _credential_kwargs(settings: Settings) -> dict:
    return {
        "aws_access_key_id": settings.AWS_ACCESS_KEY_ID,
        "aws_secret_access_key": settings.AWS_SECRET_ACCESS_KEY,
        "aws_session_token": settings.AWS_SESSION_TOKEN,  # Optional for temporary credentials
    }


def get_s3_client(settings: Settings):
    """Get S3 client with proper credentials."""
    try:
        # Retries are handled by the content fetcher, not by botocore
        config = Config(retries={"max_attempts": 0})

        client = boto3.client(
            "s3",
            region_name=settings.AWS_REGION,
            config=config,
            **_credential_kwargs(settings),
        )
        logger.info("S3 client initialized with credentials")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize S3 client: {str(e)}")
        raise


def get_cloudwatch_client(settings: Settings):
    """Get CloudWatch client with proper credentials."""
    try:
        client = boto3.client(
            "cloudwatch",
            region_name=settings.AWS_REGION,
            **_credential_kwargs(settings),
        )
        logger.info("CloudWatch client initialized with credentials")
        return client
    except Exception as e:
        logger.error(f"Failed to initialize CloudWatch client: {str(e)}")
        raise
