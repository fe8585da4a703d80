"""Phoenix channel protocol frames.

Supabase Realtime speaks the Phoenix v1 JSON protocol: every websocket text
frame is one object with ``topic``, ``event``, ``payload`` and ``ref``.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from livetrafik._constants import EVENT_HEARTBEAT, EVENT_JOIN, HEARTBEAT_TOPIC
from livetrafik.channels import realtime_topic
from livetrafik.exceptions import RelayProtocolError


class PhoenixEnvelope(BaseModel):
    """Decoded inbound frame."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    event: str = ""
    topic: str = ""
    payload: Any = None
    ref: str | None = None

    @field_validator("event", "topic", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("ref", mode="before")
    @classmethod
    def _coerce_ref(cls, value: Any) -> str | None:
        if value is None:
            return None
        return str(value)

    @property
    def broadcast_event(self) -> str | None:
        """Inner event name of a ``broadcast`` frame."""
        if not isinstance(self.payload, dict):
            return None
        value = self.payload.get("event")
        return value if isinstance(value, str) else None

    @property
    def broadcast_payload(self) -> Any:
        """Inner payload of a ``broadcast`` frame, as received."""
        if not isinstance(self.payload, dict):
            return None
        return self.payload.get("payload")

    @property
    def reply_status(self) -> str | None:
        if not isinstance(self.payload, dict):
            return None
        status = self.payload.get("status")
        return None if status is None else str(status)


def parse_frame(raw: str | bytes) -> PhoenixEnvelope:
    """Decode one text frame into a :class:`PhoenixEnvelope`.

    Raises :class:`RelayProtocolError` when the frame is not a JSON object.
    """
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RelayProtocolError(f"Frame is not JSON: {exc.msg}", frame=text) from exc
    if not isinstance(decoded, dict):
        raise RelayProtocolError("Frame is not a JSON object", frame=text)
    try:
        return PhoenixEnvelope.model_validate(decoded)
    except ValidationError as exc:
        raise RelayProtocolError(f"Frame envelope is invalid: {exc.error_count()} error(s)", frame=text) from exc


def _encode(frame: dict[str, Any]) -> str:
    return json.dumps(frame, separators=(",", ":"))


def build_join_frame(channel: str, ref: int) -> str:
    """Join request for ``realtime:<channel>`` without self-broadcast."""
    return _encode(
        {
            "topic": realtime_topic(channel),
            "event": EVENT_JOIN,
            "payload": {"config": {"broadcast": {"self": False}}},
            "ref": str(ref),
        }
    )


def build_heartbeat_frame(ref: int) -> str:
    return _encode(
        {
            "topic": HEARTBEAT_TOPIC,
            "event": EVENT_HEARTBEAT,
            "payload": {},
            "ref": str(ref),
        }
    )
