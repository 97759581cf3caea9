"""
Schemas for recording-platform webhooks (bot status + real-time transcript events).

Payloads are validated leniently: unknown fields are kept, missing ones default, so a
partially malformed event degrades to "skip" instead of a 422.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

BOT_STATUS_EVENTS = frozenset(
    {
        "bot.joining_call",
        "bot.in_waiting_room",
        "bot.in_call_not_recording",
        "bot.in_call_recording",
        "bot.call_ended",
        "bot.done",
        "bot.fatal",
    }
)
TERMINAL_BOT_EVENTS = frozenset({"bot.call_ended", "bot.done", "bot.fatal"})
TRANSCRIPT_FINAL_EVENT = "transcript.data"
TRANSCRIPT_PARTIAL_EVENT = "transcript.partial_data"
TRANSCRIPT_EVENTS = frozenset({TRANSCRIPT_FINAL_EVENT, TRANSCRIPT_PARTIAL_EVENT})


class WebhookEvent(BaseModel):
    """Envelope for POST /webhook: {"event": "...", "data": {...}}."""

    model_config = ConfigDict(extra="allow")

    event: str = Field("unknown", description="e.g. bot.done, transcript.data")
    data: dict[str, Any] = Field(default_factory=dict)

    def _inner(self) -> dict[str, Any]:
        inner = self.data.get("data")
        return inner if isinstance(inner, dict) else {}

    @property
    def bot_id(self) -> str | None:
        bot = self.data.get("bot")
        if isinstance(bot, dict) and bot.get("id"):
            return str(bot["id"])
        return None

    @property
    def updated_at(self) -> Any:
        return self._inner().get("updated_at")

    @property
    def sub_code(self) -> str:
        return self._inner().get("sub_code") or "unknown"

    @property
    def speaker(self) -> str:
        participant = self._inner().get("participant")
        name = participant.get("name") if isinstance(participant, dict) else None
        return str(name) if name else "Unknown"

    @property
    def words(self) -> list[dict[str, Any]]:
        """Raw word dicts; start_timestamp shapes are decoded by the latency estimator."""
        raw = self._inner().get("words")
        return [w for w in raw if isinstance(w, dict)] if isinstance(raw, list) else []

    @property
    def text(self) -> str:
        return " ".join(str(w["text"]) for w in self.words if w.get("text"))


class WebhookAck(BaseModel):
    received: bool = True


class ControlState(BaseModel):
    """Response for mute / verbose toggles."""

    muted: bool
    meetverbose: bool
    message: str | None = None
