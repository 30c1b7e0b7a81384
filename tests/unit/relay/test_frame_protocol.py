"""Unit tests for browser frame parsing and the status document."""

import json

import pytest

from src.relay.errors import MalformedClientFrame
from src.relay.protocol import ClientEvent, StatusResponse, parse_client_frame


class TestParseClientFrame:
    """Test decoding of browser frames."""

    def test_parse_text_frame(self) -> None:
        """Test a text frame decodes into an event."""
        event = parse_client_frame('{"type":"input_text","text":"Hello!"}')

        assert isinstance(event, ClientEvent)
        assert event.type == "input_text"
        assert event.payload == {"type": "input_text", "text": "Hello!"}

    def test_parse_utf8_bytes(self) -> None:
        """Test a binary frame holding UTF-8 JSON decodes."""
        event = parse_client_frame('{"type":"input_text","text":"Grüße"}'.encode())

        assert event.payload["text"] == "Grüße"

    def test_nested_fields_pass_through(self) -> None:
        """Test extra and nested fields survive parsing unchanged."""
        raw = {
            "type": "conversation.item.create",
            "event_id": "evt_client_1",
            "item": {"type": "message", "role": "user", "content": [{"type": "input_text"}]},
        }

        event = parse_client_frame(json.dumps(raw))

        assert event.payload == raw

    @pytest.mark.parametrize(
        ("frame", "reason"),
        [
            ("not json", "invalid JSON"),
            ("", "invalid JSON"),
            (b"\xff\xfe", "invalid JSON"),
            ('["type", "x"]', "JSON object"),
            ('"input_text"', "JSON object"),
            ('{"text": "no type"}', "invalid event"),
            ('{"type": 42}', "invalid event"),
            ('{"type": ""}', "invalid event"),
        ],
    )
    def test_malformed_frames_rejected(self, frame: str | bytes, reason: str) -> None:
        """Test non-JSON, non-object and untyped frames are rejected."""
        with pytest.raises(MalformedClientFrame, match=reason) as exc_info:
            parse_client_frame(frame)

        assert exc_info.value.raw == frame


class TestStatusResponse:
    """Test status document serialization."""

    def test_status_uses_camel_case(self) -> None:
        """Test the status body serializes connectedClients."""
        body = StatusResponse(connected_clients=3, port=3000)

        assert body.model_dump(by_alias=True) == {
            "status": "available",
            "connectedClients": 3,
            "port": 3000,
        }

    def test_status_rejects_negative_count(self) -> None:
        """Test a negative client count is invalid."""
        with pytest.raises(ValueError):
            StatusResponse(connected_clients=-1, port=3000)
