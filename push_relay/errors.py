"""Exception hierarchy for the relay.

Each error carries the HTTP status class it maps to when it reaches the
request layer, plus a short ``error`` label for the JSON response.
"""


class RelayError(Exception):
    status_code: int = 500
    error: str = "Internal server error"

    def __init__(self, message: str, error: str | None = None) -> None:
        self.message = message
        if error is not None:
            self.error = error
        super().__init__(message)


class InvalidEnvelopeShape(RelayError):
    status_code = 400
    error = "Invalid Pub/Sub message format"


class MalformedPayload(RelayError):
    status_code = 400
    error = "Invalid message payload"


class KeyRetrievalFailed(RelayError):
    error = "Failed to retrieve APNs signing key"


class SigningFailed(RelayError):
    error = "Failed to sign APNs token"


class DeliveryFailed(RelayError):
    error = "APNs delivery failed"

    def __init__(self, message: str, gateway_status: int | None = None) -> None:
        super().__init__(message)
        self.gateway_status = gateway_status


class RegistryUnavailable(RelayError):
    error = "Internal server error"
