"""Tests for inbound payload normalization."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from shared.chat.errors import MalformedPayload
from shared.chat.events import normalize_payload, parse_instant


class TestParseInstant:
    def test_iso_with_z_suffix(self):
        parsed = parse_instant("2024-03-15T10:00:00.000Z")
        assert parsed == datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)

    def test_iso_with_offset_keeps_instant(self):
        parsed = parse_instant("2024-03-15T12:00:00+02:00")
        assert parsed == datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)

    def test_naive_iso_is_utc(self):
        parsed = parse_instant("2024-03-15T10:00:00")
        assert parsed.tzinfo is timezone.utc

    def test_epoch_milliseconds(self):
        parsed = parse_instant(1710496800000)
        assert parsed == datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)

    def test_datetime_passthrough(self):
        value = datetime(2024, 3, 15, 10, 0, tzinfo=timezone(timedelta(hours=1)))
        assert parse_instant(value) is value

    @pytest.mark.parametrize("value", ["not a date", "", None, True, [], "2024-13-45T99:00:00Z"])
    def test_rejects_unparsable(self, value):
        with pytest.raises(MalformedPayload):
            parse_instant(value)


class TestNormalizePayload:
    def test_wire_shape(self, make_payload):
        entry = normalize_payload(make_payload(7, "2024-03-15T10:00:00Z", text="hi"))

        assert entry.message_id == 7
        assert entry.message.text == "hi"
        assert entry.message.author_id == "u1"
        assert entry.created_at == datetime(2024, 3, 15, 10, 0, tzinfo=timezone.utc)
        assert entry.author.name == "Ada Lovelace"
        assert entry.author.avatar_url == "https://example.com/ada.png"

    def test_json_text_and_bytes(self, make_payload):
        raw = json.dumps(make_payload(3))
        assert normalize_payload(raw).message_id == 3
        assert normalize_payload(raw.encode("utf-8")).message_id == 3

    def test_snake_case_aliases(self):
        entry = normalize_payload(
            {
                "message": {
                    "id": "m-1",
                    "text": "hey",
                    "user_id": "u9",
                    "created_at": "2024-03-15T10:00:00Z",
                },
                "user": {"id": "u9", "display_name": "Grace", "avatar_url": "g.png"},
            }
        )
        assert entry.message_id == "m-1"
        assert entry.author.author_id == "u9"
        assert entry.author.name == "Grace"
        assert entry.author.avatar_url == "g.png"

    def test_missing_user_block_uses_message_author(self, make_payload):
        payload = make_payload(1)
        del payload["user"]
        entry = normalize_payload(payload)
        assert entry.author.author_id == "u1"
        assert entry.author.name is None

    def test_unparsable_timestamp_keeps_payload(self, make_payload):
        payload = make_payload(1, "yesterday-ish")
        with pytest.raises(MalformedPayload) as excinfo:
            normalize_payload(payload)
        assert excinfo.value.payload is payload

    @pytest.mark.parametrize(
        "payload",
        [
            "not json",
            b"\xff\xfe",
            [1, 2, 3],
            {"user": {"id": "u1"}},
            {"message": "text", "user": {}},
            {"message": {"id": 1, "text": "", "userId": "u1", "createdAt": "2024-03-15T10:00:00Z"}},
            {"message": {"id": True, "text": "x", "userId": "u1", "createdAt": "2024-03-15T10:00:00Z"}},
            {"message": {"text": "x", "userId": "u1", "createdAt": "2024-03-15T10:00:00Z"}},
            {"message": {"id": 1, "text": "x", "createdAt": "2024-03-15T10:00:00Z"}},
            {"message": {"id": 1, "text": "x", "userId": "u1"}},
            {"message": {"id": 1, "text": "x", "userId": "u1", "createdAt": "2024-03-15T10:00:00Z"}, "user": "u1"},
        ],
    )
    def test_rejects_bad_shapes(self, payload):
        with pytest.raises(MalformedPayload):
            normalize_payload(payload)

    def test_entries_are_immutable(self, make_payload):
        entry = normalize_payload(make_payload(1))
        with pytest.raises(AttributeError):
            entry.message.text = "edited"

    def test_to_dict_matches_wire_shape(self, make_payload):
        payload = make_payload(5, "2024-03-15T10:00:00Z")
        entry = normalize_payload(payload)
        assert entry.to_dict()["message"]["createdAt"] == "2024-03-15T10:00:00Z"
        assert normalize_payload(entry.to_dict()) == entry
