from __future__ import annotations

import asyncio
import logging

from push_relay.errors import MalformedPayload
from push_relay.notifications.dispatcher import PushDispatcher
from push_relay.notifications.state import (
    DeviceEndpoint,
    DispatchOutcome,
    DispatchSummary,
    Failed,
    NormalizedNotification,
    PushEnvironment,
)
from push_relay.services.firestore import DeviceRegistry

logger = logging.getLogger(__name__)

# APNs "Unregistered": the token is no longer valid for the topic
UNREGISTERED_STATUS = 410


class FanOutCoordinator:
    def __init__(
        self,
        registry: DeviceRegistry,
        dispatcher: PushDispatcher,
        environment: PushEnvironment = "sandbox",
        max_concurrency: int = 50,
        prune_unregistered: bool = False,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._environment = environment
        self._max_concurrency = max_concurrency
        self._prune_unregistered = prune_unregistered

    async def notify_all(
        self, identity: str, notification: NormalizedNotification
    ) -> DispatchSummary:
        """Deliver ``notification`` to every device registered for ``identity``.

        Waits for all deliveries; one device failing or stalling never affects
        the others. Registry outages propagate as RegistryUnavailable.
        """
        if not identity:
            raise MalformedPayload("Cannot resolve devices without a subscriber identity")

        devices = await self._registry.list_devices(identity)
        if not devices:
            logger.info("No devices found for email: %s", identity)
            return DispatchSummary()

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def dispatch(endpoint: DeviceEndpoint) -> DispatchOutcome:
            async with semaphore:
                return await self._dispatcher.dispatch_one(
                    endpoint, notification, self._environment
                )

        results = await asyncio.gather(
            *(dispatch(device) for device in devices),
            return_exceptions=True,
        )

        outcomes: list[DispatchOutcome] = []
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                logger.error(
                    "Dispatch for %s raised instead of returning an outcome",
                    identity,
                    exc_info=result,
                )
                result = Failed(endpoint=device, reason=f"Unexpected error: {result!r}")
            outcomes.append(result)

        summary = DispatchSummary.from_outcomes(outcomes)
        logger.info(
            "Notifications sent: %d successful, %d failed for email: %s",
            summary.succeeded,
            summary.failed,
            identity,
        )

        if self._prune_unregistered:
            await self._prune(outcomes)
        return summary

    async def _prune(self, outcomes: list[DispatchOutcome]) -> None:
        for outcome in outcomes:
            if isinstance(outcome, Failed) and outcome.status_code == UNREGISTERED_STATUS:
                endpoint = outcome.endpoint
                try:
                    await self._registry.unregister_device(
                        endpoint.subscriber_identity, endpoint.device_token
                    )
                    logger.info(
                        "Pruned unregistered device for %s", endpoint.subscriber_identity
                    )
                except Exception:
                    logger.warning(
                        "Failed to prune unregistered device for %s",
                        endpoint.subscriber_identity,
                        exc_info=True,
                    )
