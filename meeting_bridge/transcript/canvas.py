"""
Meeting canvas: live per-session meeting notes fed with final transcript lines.

The canvas is a best-effort sink. append_line() and reset() never raise and never
block the transcript path; failures are logged and the line is dropped.
Partial transcripts are never written: only committed (final) text lands here.
"""
from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from meeting_bridge.session_store import DEFAULT_SESSION_ID, normalize_session_id

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def clip_line(raw: str, max_chars: int) -> str:
    """Collapse whitespace and clip to max_chars with an ellipsis."""
    text = re.sub(r"\s+", " ", raw or "").strip()
    if not text or len(text) <= max_chars:
        return text
    return text[: max_chars - 1] + "…"


@dataclass
class CanvasSection:
    type: str  # "heading" | "bullet" | "action" | "decision" | "note"
    content: str
    created_at: str
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class CanvasState:
    session_id: str
    title: str = "Meeting Notes"
    last_updated: str = field(default_factory=_now_iso)
    sections: list[CanvasSection] = field(default_factory=list)

    def to_public(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "title": self.title,
            "lastUpdated": self.last_updated,
            "sections": [
                {"type": s.type, "content": s.content, "createdAt": s.created_at, "meta": s.meta}
                for s in self.sections
            ],
        }


class MeetingCanvasBase(ABC):
    """Sink for transcript lines. Implementations must not raise."""

    @abstractmethod
    def append_line(self, session_id: str | None, speaker: str, text: str, bot_id: str | None = None) -> None:
        ...

    @abstractmethod
    def reset(self, session_id: str | None) -> None:
        ...

    def state(self, session_id: str | None) -> dict[str, Any] | None:
        return None


class NoOpMeetingCanvas(MeetingCanvasBase):
    """When MEETING_TRANSCRIPT_TO_CANVAS is false."""

    def append_line(self, session_id: str | None, speaker: str, text: str, bot_id: str | None = None) -> None:
        pass

    def reset(self, session_id: str | None) -> None:
        pass


class MeetingCanvas(MeetingCanvasBase):
    """
    In-memory canvases keyed by session id.

    Consecutive duplicate lines per session are dropped; sections are capped (oldest
    dropped). With mirror_to_default, every write is repeated on the "default" canvas so
    a single page can follow whichever meeting is live.
    """

    def __init__(self, max_chars: int = 360, max_sections: int = 500, mirror_to_default: bool = True) -> None:
        self._max_chars = max(2, max_chars)
        self._max_sections = max(1, max_sections)
        self._mirror_to_default = mirror_to_default
        self._sessions: dict[str, CanvasState] = {}
        self._last_line: dict[str, str] = {}

    def _get(self, session_id: str) -> CanvasState:
        state = self._sessions.get(session_id)
        if state is None:
            state = CanvasState(session_id=session_id)
            self._sessions[session_id] = state
        return state

    def _add_section(self, session_id: str, section_type: str, content: str, meta: dict[str, Any]) -> None:
        state = self._get(session_id)
        state.sections.append(CanvasSection(section_type, content, _now_iso(), dict(meta)))
        if len(state.sections) > self._max_sections:
            del state.sections[: len(state.sections) - self._max_sections]
        state.last_updated = _now_iso()

    def _targets(self, session_id: str) -> list[str]:
        if self._mirror_to_default and session_id != DEFAULT_SESSION_ID:
            return [session_id, DEFAULT_SESSION_ID]
        return [session_id]

    def append_line(self, session_id: str | None, speaker: str, text: str, bot_id: str | None = None) -> None:
        try:
            normalized = normalize_session_id(session_id)
            line = clip_line(f"{speaker}: {text}", self._max_chars)
            if not line:
                return
            if self._last_line.get(normalized) == line:
                return
            self._last_line[normalized] = line
            meta = {"source": "transcript", "speaker": speaker, "bot_id": bot_id}
            for target in self._targets(normalized):
                self._add_section(target, "bullet", line, meta)
        except Exception:
            logger.exception("Canvas append failed for session %s", session_id)

    def reset(self, session_id: str | None) -> None:
        try:
            normalized = normalize_session_id(session_id)
            title = f"Live Meeting - {normalized}"
            for target in self._targets(normalized):
                self._sessions[target] = CanvasState(session_id=target, title=title)
                self._last_line.pop(target, None)
            logger.info("Canvas reset: %s", normalized)
        except Exception:
            logger.exception("Canvas reset failed for session %s", session_id)

    def state(self, session_id: str | None) -> dict[str, Any]:
        return self._get(normalize_session_id(session_id)).to_public()


def create_meeting_canvas(settings: Any) -> MeetingCanvasBase:
    """In-memory canvas when MEETING_TRANSCRIPT_TO_CANVAS is true; else no-op."""
    if not getattr(settings, "MEETING_TRANSCRIPT_TO_CANVAS", True):
        return NoOpMeetingCanvas()
    return MeetingCanvas(
        max_chars=settings.MEETING_TRANSCRIPT_MAX_CHARS,
        max_sections=settings.MEETING_MAX_SECTIONS,
        mirror_to_default=settings.MEETING_MIRROR_TO_DEFAULT,
    )
