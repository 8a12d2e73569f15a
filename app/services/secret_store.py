"""
Secret Store - Where the CDN signing key comes from.

Either the key is injected through the environment, or it is fetched from
AWS Secrets Manager on demand. Nothing is written back or persisted.
"""

import asyncio
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from structlog import get_logger

from app.config import Settings
from app.exceptions import SigningUnavailableError

logger = get_logger(__name__)


class SecretStore(Protocol):
    """Returns secret material for an opaque identifier."""

    async def get_secret(self, secret_id: str) -> str:
        """
        Fetch a secret value.

        Raises:
            SigningUnavailableError: If the secret cannot be retrieved
        """
        ...


class StaticSecretStore:
    """Secret store holding a single value supplied by configuration."""

    def __init__(self, value: str) -> None:
        self._value = value

    async def get_secret(self, secret_id: str) -> str:
        if not self._value:
            raise SigningUnavailableError("No signing key configured")
        return self._value


class AwsSecretsManagerStore:
    """Secret store backed by AWS Secrets Manager."""

    def __init__(self, region_name: str, client: Any | None = None) -> None:
        self.region_name = region_name
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily created Secrets Manager client."""
        if self._client is None:
            self._client = boto3.client("secretsmanager", region_name=self.region_name)
        return self._client

    async def get_secret(self, secret_id: str) -> str:
        try:
            # boto3 is synchronous - keep the event loop free
            response = await asyncio.to_thread(self.client.get_secret_value, SecretId=secret_id)
        except (ClientError, BotoCoreError) as exc:
            logger.error(
                "secret_retrieval_failed",
                secret_id=secret_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise SigningUnavailableError(f"Could not read secret {secret_id}: {exc}") from exc

        secret = response.get("SecretString")
        if not secret:
            raise SigningUnavailableError(f"Secret {secret_id} has no string value")

        logger.info("secret_retrieved", secret_id=secret_id)
        return str(secret)


def build_secret_store(settings: Settings) -> SecretStore:
    """Pick the secret source from configuration (Secrets Manager wins)."""
    if settings.cdn_private_key_secret_id:
        return AwsSecretsManagerStore(region_name=settings.aws_region)
    return StaticSecretStore(settings.cdn_private_key)
