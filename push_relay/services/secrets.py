import logging
from typing import Protocol

from google.cloud import secretmanager
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from push_relay.config import RelaySettings

logger = logging.getLogger(__name__)


class KeyProvider(Protocol):
    async def get_key(self) -> str: ...


class StaticKeyProvider:
    """Serves a PEM key straight from configuration (local dev and tests)."""

    def __init__(self, pem: str) -> None:
        # Env vars often carry the .p8 contents with escaped newlines
        self._pem = pem.replace("\\n", "\n")

    async def get_key(self) -> str:
        return self._pem


class SecretManagerKeyProvider:
    def __init__(self, settings: RelaySettings) -> None:
        self._client = secretmanager.SecretManagerServiceAsyncClient()
        self._name = settings.apns_private_key_secret_path

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        retry=retry_if_exception_type(Exception),
        reraise=True,
        before_sleep=lambda rs: logger.warning(
            "Retrying APNs key retrieval (attempt %d): %s",
            rs.attempt_number,
            rs.outcome.exception(),
        ),
    )
    async def get_key(self) -> str:
        response = await self._client.access_secret_version(name=self._name)
        return response.payload.data.decode("utf-8")


def build_key_provider(settings: RelaySettings) -> KeyProvider:
    if settings.apns_private_key:
        logger.info("Using inline APNs signing key")
        return StaticKeyProvider(settings.apns_private_key)
    logger.info("Using Secret Manager APNs signing key (%s)", settings.apns_private_key_secret)
    return SecretManagerKeyProvider(settings)
