"""
Word timestamp decoding and speech-to-webhook latency estimation.

Upstream word timestamps come in three shapes:
- flat epoch number or string (seconds or ms; ISO-8601 strings also accepted)
- object with an absolute field: {"absolute": ...} / {"epoch": ...} / {"unix": ...} / {"ts": ...}
- object with a session-relative offset in seconds: {"relative": 12.3}

Each shape decodes to one variant of WordTimestamp. Relative offsets need a base:
the bot's recording-start epoch, else a base learned from the first relative word seen.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from meeting_bridge.session_store import BotSession, SessionRegistry

logger = logging.getLogger(__name__)

# Numbers above this are already epoch ms; below, epoch seconds.
_EPOCH_MS_THRESHOLD = 1e12
_ABSOLUTE_KEYS = ("absolute", "epoch", "unix", "ts")


@dataclass(frozen=True)
class EpochTimestamp:
    epoch_ms: float


@dataclass(frozen=True)
class RelativeTimestamp:
    offset_seconds: float


@dataclass(frozen=True)
class UnknownTimestamp:
    pass


WordTimestamp = Union[EpochTimestamp, RelativeTimestamp, UnknownTimestamp]


def _finite_float(value: Any) -> float | None:
    """Float value of a JSON number, or None for bools, NaN/inf and ints too large for a float."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _finite_ms(value: float) -> float | None:
    return value if math.isfinite(value) else None


def to_epoch_ms(value: Any) -> float | None:
    """Flat epoch value (number, numeric string or ISO string) -> epoch ms, else None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = _finite_float(value)
        if number is None:
            return None
        return _finite_ms(number if number > _EPOCH_MS_THRESHOLD else number * 1000.0)
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            return to_epoch_ms(float(raw))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            return parsed.timestamp() * 1000.0
        except (ValueError, OverflowError, OSError):
            return None
    return None


def _decode_flat(raw: Any) -> WordTimestamp | None:
    epoch_ms = to_epoch_ms(raw)
    return EpochTimestamp(epoch_ms) if epoch_ms is not None else None


def _decode_absolute(raw: dict[str, Any]) -> WordTimestamp | None:
    for key in _ABSOLUTE_KEYS:
        epoch_ms = to_epoch_ms(raw.get(key))
        if epoch_ms is not None:
            return EpochTimestamp(epoch_ms)
    return None


def _decode_relative(raw: dict[str, Any]) -> WordTimestamp | None:
    offset = _finite_float(raw.get("relative"))
    if offset is None or _finite_ms(offset * 1000.0) is None:
        return None
    return RelativeTimestamp(offset)


def decode_timestamp(raw: Any) -> WordTimestamp:
    """Decode a word's start_timestamp into a tagged variant. Never raises."""
    if raw is None:
        return UnknownTimestamp()
    if isinstance(raw, dict):
        return _decode_absolute(raw) or _decode_relative(raw) or UnknownTimestamp()
    return _decode_flat(raw) or UnknownTimestamp()


def parse_status_time(value: Any) -> float | None:
    """Status event updated_at (ISO string) -> epoch ms, else None."""
    if not isinstance(value, str):
        return None
    return to_epoch_ms(value)


def latency_between(now_ms: float, speech_ms: float | None) -> int | None:
    if speech_ms is None:
        return None
    delta = now_ms - speech_ms
    if not math.isfinite(delta):
        return None
    return max(0, round(delta))


class LatencyEstimator:
    """
    Resolves word timestamps to epoch ms using per-bot timing state.

    Recording-start epochs and learned relative bases are stored on the bot's
    BotSession in the registry, so they are torn down with the bot.
    """

    def __init__(self, registry: SessionRegistry) -> None:
        self._registry = registry
        # Timing state for events that carry no bot id.
        self._anonymous = BotSession(bot_id="__unknown__")

    def _timing(self, bot_id: str | None) -> BotSession:
        return self._registry.ensure(bot_id) if bot_id else self._anonymous

    def mark_recording_started(self, bot_id: str, started_at_ms: float) -> None:
        timing = self._timing(bot_id)
        timing.meeting_start_epoch_ms = started_at_ms
        timing.relative_epoch_base_ms = None

    def estimate(self, word: Any, bot_id: str | None, now_ms: float) -> float | None:
        """Epoch ms for the word's start_timestamp, or None if unknown or just calibrated."""
        if not isinstance(word, dict):
            return None
        decoded = decode_timestamp(word.get("start_timestamp"))
        if isinstance(decoded, EpochTimestamp):
            return decoded.epoch_ms
        if isinstance(decoded, RelativeTimestamp):
            return self._resolve_relative(decoded, bot_id, now_ms)
        if isinstance(decoded, UnknownTimestamp):
            return None
        raise TypeError(f"unhandled timestamp variant: {decoded!r}")

    def _resolve_relative(self, ts: RelativeTimestamp, bot_id: str | None, now_ms: float) -> float | None:
        timing = self._timing(bot_id)
        offset_ms = ts.offset_seconds * 1000.0
        if timing.meeting_start_epoch_ms:
            return _finite_ms(timing.meeting_start_epoch_ms + offset_ms)
        if timing.relative_epoch_base_ms:
            return _finite_ms(timing.relative_epoch_base_ms + offset_ms)
        if _finite_float(now_ms) is not None:
            # First relative word for this bot: learn a base, report latency from the next one.
            timing.relative_epoch_base_ms = now_ms - offset_ms
            logger.debug("Calibrated relative timestamp base bot=%s base=%s", bot_id or "unknown", timing.relative_epoch_base_ms)
        return None
