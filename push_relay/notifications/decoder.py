"""Decode Gmail watch events delivered through a Pub/Sub push subscription."""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any

from push_relay.errors import InvalidEnvelopeShape, MalformedPayload
from push_relay.notifications.state import NormalizedNotification

ALERT_TITLE = "New Gmail Message"
ALERT_BODY = "You have a new email in your inbox"
BADGE_COUNT = 1
SOUND_NAME = "default"
CATEGORY = "GMAIL_NOTIFICATION"


def unwrap_envelope(raw: Any) -> dict[str, Any]:
    """Return the Pub/Sub message from either the push wrapper
    (``{"message": {...}}``) or a bare message carrying ``data``."""
    if not isinstance(raw, dict):
        raise InvalidEnvelopeShape("Pub/Sub envelope must be a JSON object")

    if raw.get("message"):
        message = raw["message"]
        if not isinstance(message, dict):
            raise InvalidEnvelopeShape("Pub/Sub 'message' field must be an object")
        return message
    if "data" in raw:
        return raw
    raise InvalidEnvelopeShape("Invalid Pub/Sub message format")


def decode_data(message: dict[str, Any]) -> dict[str, Any]:
    data = message.get("data")
    if not isinstance(data, str):
        raise MalformedPayload("Pub/Sub message has no 'data' string")

    try:
        text = base64.b64decode(data, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        # Not base64: publishers outside Pub/Sub push send the JSON as-is
        text = data

    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedPayload(f"Failed to parse Gmail message: {exc}") from exc

    if not isinstance(doc, dict):
        raise MalformedPayload("Gmail message payload must be a JSON object")
    return doc


def decode(raw: Any, now: datetime | None = None) -> NormalizedNotification:
    """Turn a raw push envelope into the notification sent to every device.

    Raises InvalidEnvelopeShape for an unrecognized envelope and
    MalformedPayload for undecodable data or a missing mailbox address.
    """
    doc = decode_data(unwrap_envelope(raw))

    email = doc.get("emailAddress") or doc.get("email")
    if isinstance(email, str):
        email = email.strip()
    if not email or not isinstance(email, str):
        raise MalformedPayload("Missing emailAddress in Gmail message")

    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return NormalizedNotification(
        subscriber_identity=email,
        alert_title=ALERT_TITLE,
        alert_body=ALERT_BODY,
        badge_count=BADGE_COUNT,
        sound_name=SOUND_NAME,
        category=CATEGORY,
        payload_extras={
            "email": email,
            "historyId": doc.get("historyId"),
            "timestamp": timestamp,
        },
    )
