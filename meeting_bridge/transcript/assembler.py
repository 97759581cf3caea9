"""
TranscriptAssembler: per-bot rolling buffer of partial (live) and final (committed) segments.

- PARTIAL: the in-progress text of the current speaker turn; replaced in place as it changes.
- FINAL: committed text; converts the same speaker's trailing partial in place, else appends.

The buffer is arrival-ordered (not timestamp-ordered) and bounded; the oldest segments
are dropped silently on overflow. Segments never merge across a speaker change.
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from enum import Enum


@dataclass
class TranscriptSegment:
    """One buffered speaker turn. Partial segments are revised in place until final."""

    speaker: str
    text: str
    timestamp_ms: int  # arrival time, unix_ms
    is_partial: bool


class AssemblerAction(str, Enum):
    APPENDED = "appended"
    REPLACED = "replaced"  # partial text revised in place
    FINALIZED = "finalized"  # trailing partial converted to final in place
    UNCHANGED = "unchanged"


def _unix_ms() -> int:
    return int(time.time() * 1000)


class TranscriptAssembler:
    """Holds one bounded deque of TranscriptSegment per bot id."""

    def __init__(self, max_segments: int = 200) -> None:
        self._max_segments = max(1, max_segments)
        self._buffers: dict[str, deque[TranscriptSegment]] = {}

    def _buffer(self, bot_id: str) -> deque[TranscriptSegment]:
        buf = self._buffers.get(bot_id)
        if buf is None:
            buf = deque(maxlen=self._max_segments)
            self._buffers[bot_id] = buf
        return buf

    def ingest(
        self,
        bot_id: str,
        speaker: str,
        text: str,
        is_partial: bool,
        now_ms: int | None = None,
    ) -> AssemblerAction:
        """Merge one segment into the bot's buffer; see module docstring for the policy."""
        now_ms = _unix_ms() if now_ms is None else now_ms
        buf = self._buffer(bot_id)
        last = buf[-1] if buf else None
        same_turn = last is not None and last.speaker == speaker

        if is_partial:
            if same_turn and last.is_partial:
                if last.text == text:
                    return AssemblerAction.UNCHANGED
                last.text = text
                last.timestamp_ms = now_ms
                return AssemblerAction.REPLACED
            buf.append(TranscriptSegment(speaker, text, now_ms, is_partial=True))
            return AssemblerAction.APPENDED

        if same_turn and last.is_partial:
            last.text = text
            last.is_partial = False
            last.timestamp_ms = now_ms
            return AssemblerAction.FINALIZED
        if same_turn and last.text == text:
            return AssemblerAction.UNCHANGED
        buf.append(TranscriptSegment(speaker, text, now_ms, is_partial=False))
        return AssemblerAction.APPENDED

    def window(self, bot_id: str, size: int) -> list[TranscriptSegment]:
        """Most recent `size` segments for the bot, oldest first."""
        buf = self._buffers.get(bot_id)
        if not buf or size <= 0:
            return []
        return list(buf)[-size:]

    def segments(self, bot_id: str) -> list[TranscriptSegment]:
        return list(self._buffers.get(bot_id, ()))

    def reset(self, bot_id: str) -> None:
        """Clear the bot's buffer (new recording)."""
        buf = self._buffers.get(bot_id)
        if buf is not None:
            buf.clear()

    def drop(self, bot_id: str) -> None:
        self._buffers.pop(bot_id, None)

    def segment_count(self) -> int:
        return sum(len(buf) for buf in self._buffers.values())
