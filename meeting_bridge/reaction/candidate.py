"""Reaction candidates: a context snapshot of recent transcript, built fresh per evaluation."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Sequence

from meeting_bridge.transcript.assembler import TranscriptSegment


@dataclass(frozen=True)
class ReactionMeta:
    """Where a candidate came from; used for latency logging only."""

    bot_id: str | None = None
    webhook_received_at_ms: int | None = None
    speech_to_webhook_ms: int | None = None


@dataclass(frozen=True)
class ReactionCandidate:
    is_partial: bool
    context_text: str
    context_key: str  # "{partial|final}:{context_text}", dedupe only
    created_at_ms: int
    meta: ReactionMeta = field(default_factory=ReactionMeta)
    force: bool = False

    @property
    def kind(self) -> str:
        return "partial" if self.is_partial else "final"

    @property
    def word_count(self) -> int:
        return len(self.context_text.split())


@dataclass(frozen=True)
class CandidateThresholds:
    partial_context_window: int
    final_context_window: int
    partial_min_new_words: int
    min_new_words: int

    def window_size(self, is_partial: bool) -> int:
        return self.partial_context_window if is_partial else self.final_context_window

    def min_words(self, is_partial: bool) -> int:
        return self.partial_min_new_words if is_partial else self.min_new_words


def build_candidate(
    window: Sequence[TranscriptSegment],
    is_partial: bool,
    thresholds: CandidateThresholds,
    force: bool = False,
    meta: ReactionMeta | None = None,
    now_ms: int | None = None,
) -> ReactionCandidate | None:
    """
    Candidate for the most recent window of segments, or None.

    The window is trimmed to the kind's size. Below the kind's minimum word count the
    result is None unless force is set; an empty window is always None.
    """
    recent = list(window)[-thresholds.window_size(is_partial):]
    recent_text = " ".join(s.text for s in recent).strip()
    word_count = len(recent_text.split()) if recent_text else 0
    if not force and word_count < thresholds.min_words(is_partial):
        return None

    context = "\n".join(f"{s.speaker}: {s.text}" for s in recent if s.text)
    if not context or not recent_text:
        return None

    return ReactionCandidate(
        is_partial=is_partial,
        context_text=context,
        context_key=f"{'partial' if is_partial else 'final'}:{context}",
        created_at_ms=int(time.time() * 1000) if now_ms is None else now_ms,
        meta=meta or ReactionMeta(),
        force=force,
    )
