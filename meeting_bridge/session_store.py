"""
In-memory session registry: bot_id -> meeting session id.

A session id names the meeting canvas a bot writes into. It is resolved from the
existing mapping, from the meeting URL in event metadata, or from one shared
lookup against the bot-status API. Nothing here survives a restart; mappings are
rebuilt from live webhook events.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DEFAULT_SESSION_ID = "default"

_MEET_RE = re.compile(r"meet\.google\.com/([a-z]{3}-[a-z]{4}-[a-z]{3})", re.IGNORECASE)
_ZOOM_RE = re.compile(r"(?:[a-z0-9-]+\.)?zoom\.us/j/([0-9]+)", re.IGNORECASE)
_UNSAFE_RE = re.compile(r"[^a-zA-Z0-9_.:-]")


class BotForgotten(LookupError):
    """The bot reached a terminal status while its session was still being resolved."""


class BotStatusLookup(Protocol):
    async def get_bot(self, bot_id: str) -> dict[str, Any] | None: ...


@dataclass
class BotSession:
    """Per-bot identity plus the timing bases used by the latency estimator."""

    bot_id: str
    session_id: str | None = None  # None until resolved; stable once set
    meeting_start_epoch_ms: float | None = None
    relative_epoch_base_ms: float | None = None


@dataclass
class _PendingResolution:
    waiters: int = 0
    forgotten: bool = False


def extract_meeting_target(meeting_url: Any) -> tuple[str, str] | None:
    """Return (platform, meeting_id) for Google Meet / Zoom URLs, else None."""
    if not isinstance(meeting_url, str) or not meeting_url:
        return None
    trimmed = meeting_url.strip()
    meet = _MEET_RE.search(trimmed)
    if meet:
        return ("google_meet", meet.group(1).lower())
    zoom = _ZOOM_RE.search(trimmed)
    if zoom:
        return ("zoom", zoom.group(1))
    return None


def normalize_session_id(value: Any) -> str:
    """Safe token: [A-Za-z0-9_.:-], max 120 chars; empty -> default."""
    if not value:
        return DEFAULT_SESSION_ID
    raw = str(value).strip()
    if not raw:
        return DEFAULT_SESSION_ID
    return _UNSAFE_RE.sub("_", raw)[:120] or DEFAULT_SESSION_ID


def session_from_meeting_value(value: Any) -> str | None:
    """Meeting URL string, or {meeting_id} / {url} object -> session id."""
    if not value:
        return None
    if isinstance(value, str):
        target = extract_meeting_target(value)
        return normalize_session_id(target[1]) if target else None
    if isinstance(value, dict):
        meeting_id = value.get("meeting_id")
        if isinstance(meeting_id, str) and meeting_id.strip():
            return normalize_session_id(meeting_id)
        url = value.get("url")
        if isinstance(url, str) and url.strip():
            target = extract_meeting_target(url)
            return normalize_session_id(target[1]) if target else None
    return None


def _dig(obj: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def session_from_event(event: dict[str, Any] | None) -> str | None:
    """Meeting-URL-derived session id from the usual webhook metadata locations."""
    if not event:
        return None
    candidates = (
        _dig(event, "data", "bot", "meeting_url"),
        _dig(event, "data", "meeting_url"),
        _dig(event, "data", "data", "meeting_url"),
        event.get("meeting_url"),
    )
    for candidate in candidates:
        session_id = session_from_meeting_value(candidate)
        if session_id:
            return session_id
    return None


class SessionRegistry:
    """
    bot_id -> BotSession, plus the "most recently registered" session pointer.

    Dict order is registration order (re-registering moves a bot to the end), so the
    active pointer can be re-derived from the last remaining mapping.
    """

    def __init__(
        self,
        status_lookup: BotStatusLookup | None = None,
        require_explicit: bool = False,
    ) -> None:
        self._status_lookup = status_lookup
        self._require_explicit = require_explicit
        self._sessions: dict[str, BotSession] = {}
        self._lookups: dict[str, asyncio.Task[str | None]] = {}
        self._resolving: dict[str, _PendingResolution] = {}
        self._active_session_id = DEFAULT_SESSION_ID

    @property
    def active_session_id(self) -> str:
        return self._active_session_id

    def get(self, bot_id: str | None) -> BotSession | None:
        if not bot_id:
            return None
        return self._sessions.get(bot_id)

    def ensure(self, bot_id: str) -> BotSession:
        """BotSession for bot_id, created unresolved (session_id None) if unseen."""
        session = self._sessions.get(bot_id)
        if session is None:
            session = BotSession(bot_id=bot_id)
            self._sessions[bot_id] = session
        return session

    def _resolved_session_id(self, bot_id: str | None) -> str | None:
        session = self._sessions.get(bot_id) if bot_id else None
        return session.session_id if session else None

    def _rederive_active(self) -> None:
        for session in reversed(self._sessions.values()):
            if session.session_id:
                self._active_session_id = session.session_id
                return
        self._active_session_id = DEFAULT_SESSION_ID

    def remember(self, bot_id: str | None, session_id: str | None) -> None:
        if not bot_id or not session_id:
            return
        normalized = normalize_session_id(session_id)
        existing = self._sessions.pop(bot_id, None)
        if existing is None:
            existing = BotSession(bot_id=bot_id, session_id=normalized)
        elif existing.session_id != normalized:
            if existing.session_id:
                logger.info("Bot %s session changed %s -> %s", bot_id, existing.session_id, normalized)
            existing.session_id = normalized
        self._sessions[bot_id] = existing
        self._active_session_id = normalized

    def forget(self, bot_id: str | None) -> bool:
        """Drop a bot's mapping and timing state. Return True if it existed."""
        if not bot_id:
            return False
        lookup = self._lookups.pop(bot_id, None)
        if lookup is not None and not lookup.done():
            lookup.cancel()
        pending = self._resolving.pop(bot_id, None)
        if pending is not None:
            pending.forgotten = True
        removed = self._sessions.pop(bot_id, None)
        if removed is None:
            return False
        self._rederive_active()
        return True

    def known(self, bot_id: str | None, event: dict[str, Any] | None = None) -> str | None:
        """Synchronous part of resolution: existing mapping, then event metadata."""
        return self._resolved_session_id(bot_id) or session_from_event(event)

    async def resolve(self, bot_id: str | None, event: dict[str, Any] | None = None) -> str | None:
        """
        Resolve and remember the session for bot_id.

        Order: mapping -> event meeting URL -> bot-status API (one shared lookup per
        bot) -> active session. Returns None only when REQUIRE_EXPLICIT_SESSION is on
        and nothing resolved. Raises BotForgotten if the bot was forgotten while the
        lookup was awaited; nothing is remembered in that case.
        """
        session_id = self.known(bot_id, event)
        if not session_id and bot_id:
            session_id = await self._hydrate_tracked(bot_id)
        if not session_id:
            if self._require_explicit:
                logger.warning("No session for bot=%s and explicit sessions required", bot_id or "unknown")
                return None
            session_id = self._active_session_id
        if bot_id:
            self.remember(bot_id, session_id)
        return session_id

    async def _hydrate_tracked(self, bot_id: str) -> str | None:
        pending = self._resolving.get(bot_id)
        if pending is None:
            pending = self._resolving[bot_id] = _PendingResolution()
        pending.waiters += 1
        try:
            session_id = await self.hydrate(bot_id)
        finally:
            pending.waiters -= 1
            if pending.waiters == 0 and self._resolving.get(bot_id) is pending:
                del self._resolving[bot_id]
        # forget() may have run while the lookup was pending.
        if pending.forgotten:
            raise BotForgotten(bot_id)
        return session_id

    async def hydrate(self, bot_id: str) -> str | None:
        """Look up the bot's meeting URL once; concurrent callers share the pending task."""
        resolved = self._resolved_session_id(bot_id)
        if resolved:
            return resolved
        if self._status_lookup is None:
            return None
        pending = self._lookups.get(bot_id)
        if pending is None:
            pending = asyncio.create_task(self._lookup(bot_id))
            self._lookups[bot_id] = pending
        try:
            return await asyncio.shield(pending)
        except asyncio.CancelledError:
            if pending.cancelled():
                return None
            raise

    async def _lookup(self, bot_id: str) -> str | None:
        try:
            payload = await self._status_lookup.get_bot(bot_id)
            session_id = session_from_meeting_value((payload or {}).get("meeting_url"))
            if session_id:
                self.remember(bot_id, session_id)
            return session_id
        except Exception as e:
            logger.warning("Session lookup failed for bot %s: %s", bot_id, e)
            return None
        finally:
            if self._lookups.get(bot_id) is asyncio.current_task():
                del self._lookups[bot_id]

    def __len__(self) -> int:
        return len(self._sessions)
