"""Pydantic schemas for webhook payloads and API responses."""
from meeting_bridge.schemas.events import (
    ControlState,
    WebhookAck,
    WebhookEvent,
)

__all__ = [
    "ControlState",
    "WebhookAck",
    "WebhookEvent",
]
