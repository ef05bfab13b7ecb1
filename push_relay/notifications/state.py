from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

PushEnvironment = Literal["sandbox", "production"]


@dataclass(frozen=True)
class NormalizedNotification:
    subscriber_identity: str
    alert_title: str
    alert_body: str
    badge_count: int
    sound_name: str
    category: str
    payload_extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeviceEndpoint:
    subscriber_identity: str
    device_token: str
    registered_at: str = ""
    last_active: str = ""


@dataclass(frozen=True)
class SignedToken:
    value: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class Delivered:
    endpoint: DeviceEndpoint
    ack_id: str


@dataclass(frozen=True)
class Failed:
    endpoint: DeviceEndpoint
    reason: str
    status_code: int | None = None


DispatchOutcome = Union[Delivered, Failed]


@dataclass(frozen=True)
class DispatchSummary:
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    outcomes: tuple[DispatchOutcome, ...] = ()

    @classmethod
    def from_outcomes(cls, outcomes: list[DispatchOutcome]) -> DispatchSummary:
        succeeded = sum(1 for o in outcomes if isinstance(o, Delivered))
        return cls(
            attempted=len(outcomes),
            succeeded=succeeded,
            failed=len(outcomes) - succeeded,
            outcomes=tuple(outcomes),
        )
