import logging
from datetime import datetime, timezone
from typing import Any

from google.api_core.exceptions import AlreadyExists, GoogleAPIError
from google.cloud.firestore_v1 import AsyncClient

from push_relay.config import RelaySettings
from push_relay.errors import RegistryUnavailable
from push_relay.notifications.state import DeviceEndpoint

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Device registrations keyed by mailbox address and device token.

    Layout: ``<collection>/<email>/tokens/<device_token>``.
    """

    def __init__(self, settings: RelaySettings) -> None:
        self._client = AsyncClient(project=settings.gcp_project_id)
        self._collection = settings.devices_collection

    def _tokens(self, email: str) -> Any:
        return self._client.collection(self._collection).document(email).collection("tokens")

    async def list_devices(self, email: str) -> list[DeviceEndpoint]:
        devices: list[DeviceEndpoint] = []
        try:
            async for doc in self._tokens(email).stream():
                data = doc.to_dict() or {}
                devices.append(
                    DeviceEndpoint(
                        subscriber_identity=email,
                        device_token=data.get("deviceToken", doc.id),
                        registered_at=data.get("registeredAt", ""),
                        last_active=data.get("lastActive", ""),
                    )
                )
        except GoogleAPIError as exc:
            raise RegistryUnavailable(f"Failed to list devices for {email}: {exc}") from exc
        return devices

    async def register_device(self, email: str, device_token: str) -> str:
        now = datetime.now(timezone.utc).isoformat()
        doc_ref = self._tokens(email).document(device_token)
        try:
            await doc_ref.create(
                {
                    "email": email,
                    "deviceToken": device_token,
                    "registeredAt": now,
                    "lastActive": now,
                }
            )
        except AlreadyExists:
            return "Device already registered"
        except GoogleAPIError as exc:
            raise RegistryUnavailable(f"Failed to register device: {exc}") from exc
        return "Device registered successfully"

    async def unregister_device(self, email: str, device_token: str) -> str:
        try:
            await self._tokens(email).document(device_token).delete()
        except GoogleAPIError as exc:
            raise RegistryUnavailable(f"Failed to unregister device: {exc}") from exc
        return "Device unregistered successfully"

    async def health_check(self) -> bool:
        """Verify Firestore connectivity with a lightweight read."""
        try:
            query = self._client.collection(self._collection).limit(1)
            async for _ in query.stream():
                pass
            return True
        except Exception:
            return False

    async def close(self) -> None:
        self._client.close()
