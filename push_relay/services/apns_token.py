"""ES256 provider tokens for APNs token-based authentication."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt

from push_relay.config import RelaySettings
from push_relay.errors import KeyRetrievalFailed, SigningFailed
from push_relay.notifications.state import SignedToken
from push_relay.services.secrets import KeyProvider

logger = logging.getLogger(__name__)

TOKEN_VALIDITY = timedelta(seconds=3600)
TOKEN_AUDIENCE = "apns"

# Process-wide signing key. Populated once by the first successful retrieval
# and never overwritten; failures leave it unset.
_key_material: str | None = None


async def load_signing_key(provider: KeyProvider) -> str:
    global _key_material  # noqa: PLW0603
    if _key_material is not None:
        return _key_material

    try:
        key = await provider.get_key()
    except Exception as exc:
        logger.error("APNs signing key retrieval failed: %s", exc)
        raise KeyRetrievalFailed(f"Failed to retrieve APNs signing key: {exc}") from exc

    if not key or not key.strip():
        raise KeyRetrievalFailed("APNs signing key is empty")

    _key_material = key
    logger.info("APNs signing key loaded")
    return key


def reset_key_cache() -> None:
    global _key_material  # noqa: PLW0603
    _key_material = None


class TokenSigner:
    def __init__(self, settings: RelaySettings, key_provider: KeyProvider) -> None:
        self._team_id = settings.apns_team_id
        self._key_id = settings.apns_key_id
        self._key_provider = key_provider

    async def sign(self, now: datetime | None = None) -> SignedToken:
        """Sign a fresh provider token. Tokens are not reused between calls."""
        key = await load_signing_key(self._key_provider)

        issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
        expires_at = issued_at + TOKEN_VALIDITY
        claims = {
            "iss": self._team_id,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "aud": TOKEN_AUDIENCE,
        }

        try:
            value = jwt.encode(
                claims,
                key,
                algorithm="ES256",
                headers={"kid": self._key_id, "typ": "JWT"},
            )
        except Exception as exc:
            raise SigningFailed(f"Failed to sign APNs token: {exc}") from exc

        return SignedToken(value=value, issued_at=issued_at, expires_at=expires_at)
