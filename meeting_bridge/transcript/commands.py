"""Spoken control commands (mute / unmute / verbose) recognised in final transcript lines."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)

_MAX_COMMAND_WORDS = 4


class CommandType(str, Enum):
    MUTE = "mute"
    UNMUTE = "unmute"
    VERBOSE_ON = "meetverbose_on"
    VERBOSE_OFF = "meetverbose_off"


@dataclass(frozen=True)
class ControlCommand:
    type: CommandType
    ack: str


_PHRASES: dict[CommandType, frozenset[str]] = {
    CommandType.MUTE: frozenset(
        {"/mute", "mute", "stop transcribing", "stop transcription", "stop transcript"}
    ),
    CommandType.UNMUTE: frozenset(
        {"/unmute", "unmute", "resume transcribing", "resume transcription", "start transcribing"}
    ),
    CommandType.VERBOSE_ON: frozenset(
        {"/meetverbose on", "meetverbose on", "verbose on", "transcript debug on"}
    ),
    CommandType.VERBOSE_OFF: frozenset(
        {"/meetverbose off", "meetverbose off", "verbose off", "transcript debug off"}
    ),
}

_ACKS: dict[CommandType, str] = {
    CommandType.MUTE: "Muted meeting copilot. I will not process transcripts until unmuted.",
    CommandType.UNMUTE: "Unmuted meeting copilot. I am processing transcripts again.",
    CommandType.VERBOSE_ON: (
        "Transcript debug is ON. Final transcript lines will be mirrored to the active chat channel."
    ),
    CommandType.VERBOSE_OFF: "Transcript debug is OFF. I will send only copilot guidance.",
}

_HIGH_VALUE_CUE_RE = re.compile(
    r"\b(what should i|should i|i dont know|i don't know|stuck|low energy|problem|issue"
    r"|objection|decision|next step|what do i do|help me)\b"
)


def normalize_control_text(value: str | None) -> str:
    """Lowercase; punctuation other than '/' becomes a space; whitespace collapsed."""
    text = (value or "").lower()
    text = re.sub(r"[^\w/\s]", " ", text)
    return re.sub(r"\s+", " ", text).strip()


def has_high_value_cue(text: str | None) -> bool:
    """Decision points, objections, explicit help requests: these force a reaction."""
    normalized = normalize_control_text(text)
    if not normalized:
        return False
    return bool(_HIGH_VALUE_CUE_RE.search(normalized))


class CommandInterpreter:
    """Matches short final lines against fixed phrase sets; optionally only for some speakers."""

    def __init__(self, speaker_pattern: str = "") -> None:
        self._speaker_pattern = speaker_pattern or ""
        self._speaker_re: re.Pattern[str] | None = None
        if self._speaker_pattern:
            try:
                self._speaker_re = re.compile(self._speaker_pattern, re.IGNORECASE)
            except re.error as e:
                logger.warning("Invalid CONTROL_SPEAKER_REGEX %r: %s", self._speaker_pattern, e)

    def interpret(self, speaker: str | None, text: str | None) -> ControlCommand | None:
        if self._speaker_pattern:
            if self._speaker_re is None:
                # Misconfigured pattern: no speaker may issue commands.
                return None
            if not self._speaker_re.search(speaker or ""):
                return None

        normalized = normalize_control_text(text)
        if not normalized:
            return None
        if len(normalized.split(" ")) > _MAX_COMMAND_WORDS:
            return None

        for command_type, phrases in _PHRASES.items():
            if normalized in phrases:
                return ControlCommand(type=command_type, ack=_ACKS[command_type])
        return None
