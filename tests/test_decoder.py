"""Tests for Pub/Sub envelope decoding."""

import base64
import json
from datetime import datetime, timezone

import pytest

from push_relay.errors import InvalidEnvelopeShape, MalformedPayload
from push_relay.notifications.decoder import decode

NOW = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def _encode_message(data: dict) -> str:
    return base64.b64encode(json.dumps(data).encode()).decode()


class TestEnvelopeShapes:
    def test_push_wrapper_shape(self, sample_event):
        envelope = {
            "message": {
                "data": _encode_message(sample_event),
                "message_id": "msg-001",
                "publish_time": "2025-01-15T10:30:00Z",
            },
            "subscription": "projects/test-project/subscriptions/gmail-push-sub",
        }

        notification = decode(envelope, now=NOW)

        assert notification.subscriber_identity == "a@x.com"
        assert notification.alert_title == "New Gmail Message"
        assert notification.alert_body == "You have a new email in your inbox"
        assert notification.badge_count == 1
        assert notification.sound_name == "default"
        assert notification.category == "GMAIL_NOTIFICATION"
        assert notification.payload_extras == {
            "email": "a@x.com",
            "historyId": "9",
            "timestamp": "2025-01-15T10:30:00+00:00",
        }

    @pytest.mark.parametrize(
        "event",
        [
            {"emailAddress": "a@x.com", "historyId": "9"},
            {"emailAddress": "someone@example.org", "historyId": 1234567},
            {"email": "legacy@example.org", "historyId": "42"},
        ],
    )
    def test_both_shapes_decode_identically(self, event):
        data = _encode_message(event)
        wrapped = decode({"message": {"data": data}}, now=NOW)
        bare = decode({"data": data, "messageId": "msg-002"}, now=NOW)
        assert wrapped == bare

    def test_email_key_fallback(self):
        notification = decode({"data": _encode_message({"email": "b@x.com", "historyId": "1"})}, now=NOW)
        assert notification.subscriber_identity == "b@x.com"
        assert notification.payload_extras["email"] == "b@x.com"

    def test_email_address_preferred_over_email(self):
        event = {"emailAddress": "primary@x.com", "email": "other@x.com"}
        notification = decode({"data": _encode_message(event)}, now=NOW)
        assert notification.subscriber_identity == "primary@x.com"

    def test_change_marker_forwarded_untouched(self):
        notification = decode({"data": _encode_message({"emailAddress": "a@x.com", "historyId": 9876})}, now=NOW)
        assert notification.payload_extras["historyId"] == 9876

    def test_missing_change_marker_forwarded_as_none(self):
        notification = decode({"data": _encode_message({"emailAddress": "a@x.com"})}, now=NOW)
        assert notification.payload_extras["historyId"] is None

    def test_timestamp_defaults_to_now(self, sample_event):
        notification = decode({"data": _encode_message(sample_event)})
        stamped = datetime.fromisoformat(notification.payload_extras["timestamp"])
        assert stamped.tzinfo is not None
        assert abs((datetime.now(timezone.utc) - stamped).total_seconds()) < 60

    @pytest.mark.parametrize(
        "raw",
        [
            [],
            "not-an-object",
            None,
            {},
            {"subscription": "projects/p/subscriptions/s"},
            {"message": "abc"},
            {"message": ["data"]},
            {"message": None},
        ],
    )
    def test_rejects_unknown_shapes(self, raw):
        with pytest.raises(InvalidEnvelopeShape):
            decode(raw)


class TestMalformedPayload:
    @pytest.mark.parametrize(
        "data",
        [
            "not-base64!!!",
            base64.b64encode(b"this is not json").decode(),
            base64.b64encode(b"\xff\xfe\xfa").decode(),
            base64.b64encode(b'["a@x.com", "9"]').decode(),
            "",
        ],
    )
    def test_rejects_undecodable_data(self, data):
        with pytest.raises(MalformedPayload):
            decode({"message": {"data": data}})

    def test_rejects_message_without_data(self):
        with pytest.raises(MalformedPayload):
            decode({"message": {"message_id": "msg-003"}})

    def test_rejects_non_string_data(self):
        with pytest.raises(MalformedPayload):
            decode({"data": {"emailAddress": "a@x.com"}})

    def test_parse_error_carries_underlying_text(self):
        with pytest.raises(MalformedPayload) as exc_info:
            decode({"data": base64.b64encode(b"{broken").decode()})
        assert "Failed to parse Gmail message" in exc_info.value.message

    @pytest.mark.parametrize(
        "event",
        [
            {"historyId": "9"},
            {"emailAddress": "", "historyId": "9"},
            {"emailAddress": None, "email": "", "historyId": "9"},
            {"emailAddress": 42, "historyId": "9"},
        ],
    )
    def test_rejects_missing_identity(self, event):
        with pytest.raises(MalformedPayload) as exc_info:
            decode({"message": {"data": _encode_message(event)}})
        assert "emailAddress" in exc_info.value.message

    @pytest.mark.parametrize("identity", ["   ", "\t\n"])
    def test_rejects_blank_identity(self, identity):
        with pytest.raises(MalformedPayload):
            decode({"data": _encode_message({"emailAddress": identity, "historyId": "9"})})

    def test_identity_is_trimmed(self):
        notification = decode({"data": _encode_message({"emailAddress": " a@x.com ", "historyId": "9"})}, now=NOW)
        assert notification.subscriber_identity == "a@x.com"
        assert notification.payload_extras["email"] == "a@x.com"


class TestPlainJsonData:
    def test_unencoded_json_data_accepted(self, sample_event):
        notification = decode({"message": {"data": json.dumps(sample_event)}}, now=NOW)
        assert notification.subscriber_identity == "a@x.com"
        assert notification.payload_extras["historyId"] == "9"

    def test_plain_and_base64_decode_identically(self, sample_event):
        plain = decode({"data": json.dumps(sample_event)}, now=NOW)
        encoded = decode({"message": {"data": _encode_message(sample_event)}}, now=NOW)
        assert plain == encoded

    @pytest.mark.parametrize("data", ["{broken", '["a@x.com"]', "plain text"])
    def test_plain_data_must_be_json_object(self, data):
        with pytest.raises(MalformedPayload):
            decode({"message": {"data": data}})
