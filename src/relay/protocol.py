"""WebSocket frame protocol definitions.

Defines Pydantic models for browser events and the status document.
Browser frames are JSON objects carrying at least a ``type`` field; every
other field is passed through to the upstream service untouched.
"""

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.relay.errors import MalformedClientFrame


class ClientEvent(BaseModel):
    """Browser → upstream event."""

    model_config = ConfigDict(extra="allow")

    type: str = Field(..., min_length=1, description="Event type, e.g. 'input_text'")

    @property
    def payload(self) -> dict[str, Any]:
        """All event fields, ``type`` included."""
        return self.model_dump()


class StatusResponse(BaseModel):
    """Body of the JSON status endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["available"] = "available"
    connected_clients: int = Field(..., ge=0, alias="connectedClients")
    port: int = Field(..., ge=0)


def parse_client_frame(frame: str | bytes) -> ClientEvent:
    """Decode one browser frame into an event.

    Args:
        frame: Raw WebSocket message (text, or UTF-8 bytes)

    Returns:
        Parsed event

    Raises:
        MalformedClientFrame: If the frame is not a JSON object with a string ``type``
    """
    try:
        text = frame.decode("utf-8") if isinstance(frame, bytes) else frame
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedClientFrame(frame, f"invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedClientFrame(frame, "event must be a JSON object")

    try:
        return ClientEvent.model_validate(data)
    except ValidationError as e:
        raise MalformedClientFrame(frame, f"invalid event: {e.errors()[0]['msg']}") from e
