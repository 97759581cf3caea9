"""
Bridge: orchestrates webhook events into transcript state and assistant reactions.

One Bridge owns every piece of mutable state (session registry, per-bot transcript
buffers, timing bases, scheduler, canvas), so independent instances never share state.

Transcript flow: resolve session -> control command (final only, may short-circuit)
-> mute check -> assemble -> latency log -> canvas / verbose mirror (final only)
-> build candidate -> scheduler.

Entry points never raise: any unexpected error is logged and the update is skipped.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Optional, Protocol

from meeting_bridge.config import Settings, get_settings
from meeting_bridge.reaction.candidate import CandidateThresholds, ReactionMeta, build_candidate
from meeting_bridge.reaction.scheduler import ReactionScheduler
from meeting_bridge.schemas.events import TERMINAL_BOT_EVENTS, WebhookEvent
from meeting_bridge.services.gateway import GatewayClient
from meeting_bridge.services.recall import RecallClient
from meeting_bridge.session_store import BotForgotten, BotStatusLookup, SessionRegistry
from meeting_bridge.transcript.assembler import AssemblerAction, TranscriptAssembler
from meeting_bridge.transcript.canvas import MeetingCanvasBase, create_meeting_canvas
from meeting_bridge.transcript.commands import CommandInterpreter, CommandType, ControlCommand, has_high_value_cue
from meeting_bridge.transcript.timestamps import LatencyEstimator, latency_between, parse_status_time

logger = logging.getLogger(__name__)

# Buffer key for transcript events that carry no bot id.
_UNKNOWN_BOT = "__unknown__"


class Gateway(Protocol):
    async def deliver(self, message: str) -> Optional[int]: ...

    async def mirror(self, line: str) -> bool: ...

    def describe(self) -> dict[str, Any]: ...


def _unix_ms() -> int:
    return int(time.time() * 1000)


class Bridge:
    def __init__(
        self,
        settings: Settings | None = None,
        gateway: Gateway | None = None,
        status_lookup: BotStatusLookup | None = None,
        canvas: MeetingCanvasBase | None = None,
        clock: Any = None,
    ) -> None:
        self._settings = settings or get_settings()
        s = self._settings
        self._gateway: Gateway = gateway or GatewayClient.from_settings(s)
        if status_lookup is None:
            recall = RecallClient.from_settings(s)
            status_lookup = recall if recall.configured else None

        self.registry = SessionRegistry(status_lookup, require_explicit=s.REQUIRE_EXPLICIT_SESSION)
        self.assembler = TranscriptAssembler(max_segments=s.TRANSCRIPT_BUFFER_MAX_SEGMENTS)
        self.interpreter = CommandInterpreter(s.CONTROL_SPEAKER_REGEX)
        self.estimator = LatencyEstimator(self.registry)
        self.canvas = canvas or create_meeting_canvas(s)
        self.thresholds = CandidateThresholds(
            partial_context_window=s.threshold("PARTIAL_CONTEXT_WINDOW"),
            final_context_window=s.threshold("FINAL_CONTEXT_WINDOW"),
            partial_min_new_words=s.threshold("PARTIAL_MIN_NEW_WORDS"),
            min_new_words=s.threshold("MIN_NEW_WORDS"),
        )
        self._cooldown_ms = s.threshold("REACTION_COOLDOWN_MS")
        self._debounce_ms = s.threshold("PARTIAL_REACTION_DEBOUNCE_MS")
        self.scheduler = ReactionScheduler(
            self._gateway.deliver,
            cooldown_ms=self._cooldown_ms,
            debounce_ms=self._debounce_ms,
            clock=clock,
        )
        self._verbose = s.DEBUG_MODE
        self._react_on_partial = s.REACT_ON_PARTIAL
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def gateway(self) -> Gateway:
        return self._gateway

    # --- control state ---

    @property
    def muted(self) -> bool:
        return self.scheduler.muted

    @property
    def verbose(self) -> bool:
        return self._verbose

    def set_muted(self, muted: bool, reason: str = "manual") -> dict[str, bool]:
        if muted:
            self.scheduler.mute()
            self._verbose = False
        else:
            self.scheduler.unmute()
        logger.info(
            "[%s] Transcript processing %s reason=%s",
            "MUTED" if muted else "UNMUTED",
            "paused" if muted else "resumed",
            reason,
        )
        return {"muted": self.muted, "meetverbose": self._verbose}

    def set_verbose(self, enabled: bool, reason: str = "manual") -> dict[str, bool]:
        self._verbose = bool(enabled)
        logger.info(
            "[MEETVERBOSE %s] Raw transcripts %s reason=%s",
            "ON" if self._verbose else "OFF",
            "enabled" if self._verbose else "disabled",
            reason,
        )
        return {"muted": self.muted, "meetverbose": self._verbose}

    def _apply_command(self, command: ControlCommand, speaker: str) -> None:
        reason = f"voice:{speaker}"
        if command.type is CommandType.MUTE:
            self.set_muted(True, reason)
        elif command.type is CommandType.UNMUTE:
            self.set_muted(False, reason)
        elif command.type is CommandType.VERBOSE_ON:
            self.set_verbose(True, reason)
        elif command.type is CommandType.VERBOSE_OFF:
            self.set_verbose(False, reason)

    # --- read model ---

    def status(self) -> dict[str, Any]:
        snapshot = self.scheduler.snapshot()
        return {
            "muted": self.muted,
            "meetverbose": self._verbose,
            "reaction_in_flight": snapshot["reaction_in_flight"],
            "queued_reaction": snapshot["queued_reaction"],
            "transcript_segments_buffered": self.assembler.segment_count(),
            "active_session_id": self.registry.active_session_id,
            "thresholds": {
                "proactivity": self._settings.PROACTIVITY_LEVEL,
                "react_on_partial": self._react_on_partial,
                "reaction_cooldown_ms": self._cooldown_ms,
                "partial_reaction_debounce_ms": self._debounce_ms,
                "min_new_words": self.thresholds.min_new_words,
                "partial_min_new_words": self.thresholds.partial_min_new_words,
                "final_context_window": self.thresholds.final_context_window,
                "partial_context_window": self.thresholds.partial_context_window,
            },
        }

    # --- entry points ---

    async def on_bot_status(self, event: WebhookEvent) -> None:
        try:
            await self._handle_bot_status(event)
        except Exception:
            logger.exception("Bot status handling failed event=%s", event.event)

    async def on_transcript(self, event: WebhookEvent, is_partial: bool) -> None:
        try:
            await self._handle_transcript(event, is_partial)
        except Exception:
            logger.exception("Transcript handling failed event=%s", event.event)

    async def _handle_bot_status(self, event: WebhookEvent) -> None:
        bot_id = event.bot_id
        session_id = self.registry.known(bot_id, event.model_dump())
        if bot_id and session_id:
            self.registry.remember(bot_id, session_id)
        logger.info("Bot %s event: %s", bot_id or "unknown", event.event)

        if event.event == "bot.in_call_recording":
            if bot_id:
                started_at = parse_status_time(event.updated_at) or float(_unix_ms())
                self.estimator.mark_recording_started(bot_id, started_at)
                self.assembler.reset(bot_id)
            self.canvas.reset(session_id or self.registry.active_session_id)
            logger.info("[BotReady] %s recording started", bot_id or "unknown")
        elif event.event in TERMINAL_BOT_EVENTS:
            if bot_id:
                self.assembler.drop(bot_id)
                self.registry.forget(bot_id)
            if event.event == "bot.fatal":
                logger.info("[BotStatus] %s fatal (%s)", bot_id or "unknown", event.sub_code)
            else:
                logger.info("[BotStatus] %s ended", bot_id or "unknown")
        else:
            logger.info("[BotStatus] %s %s", bot_id or "unknown", event.event.removeprefix("bot."))

    async def _handle_transcript(self, event: WebhookEvent, is_partial: bool) -> None:
        bot_id = event.bot_id
        speaker = event.speaker
        text = event.text
        try:
            session_id = await self.registry.resolve(bot_id, event.model_dump())
        except BotForgotten:
            logger.info("[BotStatus] %s ended during session lookup; transcript dropped", bot_id)
            return
        if not text:
            return
        # Resolution may have awaited a lookup; take arrival time after it.
        now_ms = _unix_ms()

        if not is_partial:
            command = self.interpreter.interpret(speaker, text)
            if command is not None:
                self._apply_command(command, speaker)
                await self.scheduler.acknowledge(f"[MEETING CONTROL] {command.ack}")
                return

        if self.muted:
            if not is_partial:
                logger.info("[MUTED_DROP] %s: %s", speaker, text)
            return

        buffer_key = bot_id or _UNKNOWN_BOT
        action = self.assembler.ingest(buffer_key, speaker, text, is_partial, now_ms)
        if action is AssemblerAction.UNCHANGED:
            return
        logger.info("[%s] %s: %s", "Partial" if is_partial else "Final", speaker, text)

        words = event.words
        first_word = words[0] if words else None
        last_word = words[-1] if words else None
        speech_start_ms = self.estimator.estimate(first_word, bot_id, now_ms)
        speech_end_ms = self.estimator.estimate(last_word, bot_id, now_ms) or speech_start_ms
        speech_to_webhook_ms = latency_between(now_ms, speech_end_ms)
        logger.info(
            "[LATENCY] bot=%s event=%s speech_end_to_webhook_ms=%s speech_start_to_webhook_ms=%s",
            bot_id or "unknown",
            "partial" if is_partial else "final",
            speech_to_webhook_ms if speech_to_webhook_ms is not None else "unknown",
            latency_between(now_ms, speech_start_ms) if speech_start_ms is not None else "unknown",
        )

        if not is_partial:
            if self._verbose:
                self._spawn(self._gateway.mirror(f"[RAW FINAL] {speaker}: {text}"))
            if session_id:
                self.canvas.append_line(session_id, speaker, text, bot_id)

        if is_partial and not self._react_on_partial:
            return

        force = not is_partial and has_high_value_cue(text)
        window = self.assembler.window(buffer_key, self.thresholds.window_size(is_partial))
        candidate = build_candidate(
            window,
            is_partial,
            self.thresholds,
            force=force,
            meta=ReactionMeta(
                bot_id=bot_id,
                webhook_received_at_ms=now_ms,
                speech_to_webhook_ms=speech_to_webhook_ms,
            ),
            now_ms=now_ms,
        )
        await self.scheduler.submit(candidate)

    # --- background work ---

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background task failed: %s", exc)

    async def close(self) -> None:
        await self.scheduler.close()
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
