from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from push_relay.config import RelaySettings
from push_relay.errors import DeliveryFailed, RelayError
from push_relay.notifications.state import (
    Delivered,
    DeviceEndpoint,
    DispatchOutcome,
    Failed,
    NormalizedNotification,
    PushEnvironment,
)
from push_relay.services.apns_token import TokenSigner

logger = logging.getLogger(__name__)

APNS_PRODUCTION_HOST = "api.push.apple.com"
APNS_SANDBOX_HOST = "api.sandbox.push.apple.com"

APNS_HOSTS: dict[str, str] = {
    "production": APNS_PRODUCTION_HOST,
    "sandbox": APNS_SANDBOX_HOST,
}


def build_payload(notification: NormalizedNotification) -> dict[str, Any]:
    return {
        "aps": {
            "alert": {
                "title": notification.alert_title,
                "body": notification.alert_body,
            },
            "badge": notification.badge_count,
            "sound": notification.sound_name,
            "category": notification.category,
        },
        "gmail": dict(notification.payload_extras),
    }


def _short(device_token: str) -> str:
    return f"...{device_token[-8:]}"


class PushDispatcher:
    def __init__(
        self,
        settings: RelaySettings,
        signer: TokenSigner,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._signer = signer
        self._topic = settings.apns_bundle_id
        self._client = client or httpx.AsyncClient(
            http2=True,
            timeout=httpx.Timeout(settings.apns_timeout_seconds, connect=5.0),
        )

    async def dispatch_one(
        self,
        endpoint: DeviceEndpoint,
        notification: NormalizedNotification,
        environment: PushEnvironment,
    ) -> DispatchOutcome:
        """Deliver one notification to one device. Never raises: every failure
        is returned as a Failed outcome so sibling deliveries are unaffected."""
        try:
            ack_id = await self._deliver(endpoint, notification, environment)
        except DeliveryFailed as exc:
            logger.warning(
                "APNs delivery to %s for %s failed: %s",
                _short(endpoint.device_token),
                endpoint.subscriber_identity,
                exc.message,
            )
            return Failed(endpoint=endpoint, reason=exc.message, status_code=exc.gateway_status)
        except RelayError as exc:
            logger.warning(
                "APNs delivery to %s for %s aborted: %s",
                _short(endpoint.device_token),
                endpoint.subscriber_identity,
                exc.message,
            )
            return Failed(endpoint=endpoint, reason=exc.message)
        except Exception as exc:
            logger.exception("Unexpected error delivering to %s", _short(endpoint.device_token))
            return Failed(endpoint=endpoint, reason=f"Unexpected error: {exc!r}")

        return Delivered(endpoint=endpoint, ack_id=ack_id)

    async def _deliver(
        self,
        endpoint: DeviceEndpoint,
        notification: NormalizedNotification,
        environment: PushEnvironment,
    ) -> str:
        token = await self._signer.sign()
        apns_id = str(uuid.uuid4())
        url = f"https://{APNS_HOSTS[environment]}/3/device/{endpoint.device_token}"
        headers = {
            "authorization": f"bearer {token.value}",
            "apns-id": apns_id,
            "apns-push-type": "alert",
            "apns-priority": "10",
            "apns-topic": self._topic,
        }

        try:
            response = await self._client.post(url, json=build_payload(notification), headers=headers)
        except httpx.HTTPError as exc:
            raise DeliveryFailed(f"APNs transport error: {type(exc).__name__}: {exc}") from exc

        if response.status_code != 200:
            raise DeliveryFailed(
                f"APNs request failed: {response.status_code} {response.text}",
                gateway_status=response.status_code,
            )
        return response.headers.get("apns-id", apns_id)

    async def close(self) -> None:
        await self._client.aclose()
