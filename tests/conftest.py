from unittest.mock import AsyncMock

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from push_relay.config import RelaySettings
from push_relay.notifications.dispatcher import PushDispatcher
from push_relay.notifications.state import DeviceEndpoint
from push_relay.services import apns_token
from push_relay.services.apns_token import TokenSigner
from push_relay.services.firestore import DeviceRegistry
from push_relay.services.secrets import StaticKeyProvider


@pytest.fixture(autouse=True)
def reset_signing_key():
    apns_token.reset_key_cache()
    yield
    apns_token.reset_key_cache()


@pytest.fixture(scope="session")
def ec_private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture(scope="session")
def private_key_pem(ec_private_key) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture
def settings():
    return RelaySettings(
        gcp_project_id="test-project",
        env="test",
        apns_team_id="TEAM123456",
        apns_key_id="KEY7654321",
        apns_bundle_id="com.example.mailpush",
        max_concurrent_deliveries=10,
    )


@pytest.fixture
def key_provider(private_key_pem):
    return StaticKeyProvider(private_key_pem)


@pytest.fixture
def signer(settings, key_provider):
    return TokenSigner(settings, key_provider)


@pytest.fixture
def make_dispatcher(settings, signer):
    """Build a PushDispatcher whose gateway is served by ``handler``."""

    def _make(handler, token_signer=None) -> PushDispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PushDispatcher(settings, token_signer or signer, client=client)

    return _make


@pytest.fixture
def sample_event():
    return {"emailAddress": "a@x.com", "historyId": "9"}


@pytest.fixture
def devices():
    return [
        DeviceEndpoint(
            subscriber_identity="a@x.com",
            device_token="a1b2c3d4e5f6071829304a5b6c7d8e9f00112233445566778899aabbccddeeff",
            registered_at="2025-01-15T10:30:00+00:00",
            last_active="2025-01-15T10:30:00+00:00",
        ),
        DeviceEndpoint(
            subscriber_identity="a@x.com",
            device_token="ffeeddccbbaa99887766554433221100f9e8d7c6b5a4938271605f4e3d2c1b0a",
            registered_at="2025-01-16T08:00:00+00:00",
            last_active="2025-01-20T19:45:00+00:00",
        ),
    ]


@pytest.fixture
def mock_registry():
    registry = AsyncMock(spec=DeviceRegistry)
    registry.list_devices.return_value = []
    registry.register_device.return_value = "Device registered successfully"
    registry.unregister_device.return_value = "Device unregistered successfully"
    registry.health_check.return_value = True
    registry.close.return_value = None
    return registry
