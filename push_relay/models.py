from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class DeviceRegistrationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(..., min_length=1)
    device_token: str = Field(..., min_length=1, alias="deviceToken")


class DeviceRegistrationResponse(BaseModel):
    success: bool
    message: str


class NotificationResponse(BaseModel):
    success: bool
    message: str
    failed: int | None = None


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str = "0.1.0"
    environment: str
    checks: dict[str, str] = Field(default_factory=dict)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
