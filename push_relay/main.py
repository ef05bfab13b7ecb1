"""Gmail push relay: fans Gmail Pub/Sub change events out to APNs devices."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from push_relay.config import get_settings
from push_relay.errors import InvalidEnvelopeShape, RegistryUnavailable, RelayError
from push_relay.logging_config import configure_logging
from push_relay.middleware.error_handler import generic_exception_handler, relay_error_handler
from push_relay.middleware.rate_limit import (
    DEVICE_RATE_LIMIT,
    HEALTH_RATE_LIMIT,
    PUSH_RATE_LIMIT,
    limiter,
)
from push_relay.models import (
    DeviceRegistrationRequest,
    DeviceRegistrationResponse,
    HealthResponse,
    NotificationResponse,
)
from push_relay.notifications.coordinator import FanOutCoordinator
from push_relay.notifications.decoder import decode
from push_relay.notifications.dispatcher import PushDispatcher
from push_relay.services.apns_token import TokenSigner
from push_relay.services.firestore import DeviceRegistry
from push_relay.services.secrets import build_key_provider

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize services at startup, clean up at shutdown."""
    settings = get_settings()
    configure_logging("gmail-push-relay", settings.env, settings.log_level)

    registry = DeviceRegistry(settings)
    signer = TokenSigner(settings, build_key_provider(settings))
    dispatcher = PushDispatcher(settings, signer)
    app.state.registry = registry
    app.state.dispatcher = dispatcher
    app.state.coordinator = FanOutCoordinator(
        registry,
        dispatcher,
        environment=settings.push_environment,
        max_concurrency=settings.max_concurrent_deliveries,
        prune_unregistered=settings.prune_unregistered_devices,
    )

    logger.info(
        "Gmail push relay started (env=%s, apns=%s)", settings.env, settings.push_environment
    )
    yield

    await dispatcher.close()
    await registry.close()
    logger.info("Gmail push relay shut down")


app = FastAPI(
    title="Gmail Push Relay",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Error handling
app.add_exception_handler(RelayError, relay_error_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# CORS
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
    expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
)


@app.get("/health", response_model=HealthResponse)
@limiter.limit(HEALTH_RATE_LIMIT)
async def health(request: Request):
    settings = get_settings()
    checks: dict[str, str] = {}
    status = "healthy"

    registry: DeviceRegistry = request.app.state.registry
    try:
        ok = await registry.health_check()
        checks["firestore"] = "ok" if ok else "fail"
    except Exception:
        logger.warning("Firestore health check failed", exc_info=True)
        checks["firestore"] = "fail"

    if checks.get("firestore") == "fail":
        status = "unhealthy"

    return HealthResponse(
        status=status,
        environment=settings.env,
        checks=checks,
    )


@app.post(
    "/push/gmail-notification",
    response_model=NotificationResponse,
    response_model_exclude_none=True,
)
@limiter.limit(PUSH_RATE_LIMIT)
async def handle_gmail_notification(request: Request):
    """Pub/Sub push handler. Notifies every device registered for the mailbox."""
    try:
        body = await request.json()
    except ValueError as exc:
        raise InvalidEnvelopeShape(f"Request body is not valid JSON: {exc}") from exc

    notification = decode(body)

    coordinator: FanOutCoordinator = request.app.state.coordinator
    try:
        summary = await coordinator.notify_all(notification.subscriber_identity, notification)
    except RegistryUnavailable as exc:
        raise RegistryUnavailable(exc.message, error="Failed to process Gmail notification") from exc

    if summary.attempted == 0:
        return NotificationResponse(success=True, message="No devices to notify")
    return NotificationResponse(
        success=True,
        message=f"Notifications sent to {summary.succeeded} devices",
        failed=summary.failed,
    )


@app.post("/device", response_model=DeviceRegistrationResponse)
@limiter.limit(DEVICE_RATE_LIMIT)
async def register_device(request: Request, body: DeviceRegistrationRequest):
    registry: DeviceRegistry = request.app.state.registry
    message = await registry.register_device(body.email, body.device_token)
    logger.info("Device registration for %s: %s", body.email, message)
    return DeviceRegistrationResponse(success=True, message=message)


@app.delete("/device", response_model=DeviceRegistrationResponse)
@limiter.limit(DEVICE_RATE_LIMIT)
async def unregister_device(request: Request, body: DeviceRegistrationRequest):
    registry: DeviceRegistry = request.app.state.registry
    message = await registry.unregister_device(body.email, body.device_token)
    logger.info("Device unregistration for %s: %s", body.email, message)
    return DeviceRegistrationResponse(success=True, message=message)
