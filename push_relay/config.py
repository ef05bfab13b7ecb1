import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings


class RelaySettings(BaseSettings):
    gcp_project_id: str = "gmail-push-relay-dev"
    env: str = "dev"
    log_level: str = "INFO"

    # Firestore
    devices_collection: str = "device_registrations"

    # APNs identity
    apns_team_id: str = ""
    apns_key_id: str = ""
    apns_bundle_id: str = ""

    # Signing key: inline PEM for local dev, otherwise a Secret Manager name
    apns_private_key: str = ""
    apns_private_key_secret: str = "apns-auth-key"

    # "sandbox" or "production"; empty derives from env
    apns_environment: str = ""
    apns_timeout_seconds: float = 10.0

    # Fan-out
    max_concurrent_deliveries: int = 50
    prune_unregistered_devices: bool = False

    # CORS
    cors_allowed_origins: str = "http://localhost:3000"

    model_config = {"env_prefix": "", "case_sensitive": False}

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def push_environment(self) -> str:
        if self.apns_environment:
            return self.apns_environment
        return "production" if self.env == "prod" else "sandbox"

    @property
    def apns_private_key_secret_path(self) -> str:
        return (
            f"projects/{self.gcp_project_id}/secrets/"
            f"{self.apns_private_key_secret}/versions/latest"
        )

    @model_validator(mode="after")
    def _validate_apns(self) -> "RelaySettings":
        if self.apns_environment not in ("", "sandbox", "production"):
            raise ValueError(
                f"APNS_ENVIRONMENT must be 'sandbox' or 'production', got {self.apns_environment!r}"
            )
        if self.log_level.upper() not in logging.getLevelNamesMapping():
            raise ValueError(f"LOG_LEVEL must be a logging level name, got {self.log_level!r}")
        if self.max_concurrent_deliveries < 1:
            raise ValueError("MAX_CONCURRENT_DELIVERIES must be at least 1")
        if self.env in ("staging", "prod"):
            for name in ("apns_team_id", "apns_key_id", "apns_bundle_id"):
                if not getattr(self, name):
                    raise ValueError(
                        f"{name.upper()} is required in {self.env} environment"
                    )
        return self


@lru_cache
def get_settings() -> RelaySettings:
    return RelaySettings()
