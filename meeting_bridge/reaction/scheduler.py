"""
ReactionScheduler: turns a stream of reaction candidates into at most one outstanding
gateway delivery at a time.

States: idle -> evaluating -> (dispatching | queued) -> idle.

- One delivery in flight at any instant. Candidates arriving meanwhile go into a
  single slot; a newer candidate replaces the queued one (the fresher candidate wins,
  and only its force flag counts).
- Timing gates: finals wait out the cooldown since the last final dispatch, partials
  the debounce since the last partial dispatch. force skips both gates, never the
  in-flight exclusivity.
- A gate-blocked candidate sits in the slot with one single-shot timer armed for the
  remaining time. When the timer fires the gates are re-checked (re-arming if needed).
- After every delivery, successful or not, the slot is flushed through the same gates.

All state changes happen between awaits on the event loop, so no locks are needed; the
dedupe key and gates are re-checked after each await instead.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from meeting_bridge.reaction.candidate import ReactionCandidate

logger = logging.getLogger(__name__)

DeliverFn = Callable[[str], Awaitable[Optional[int]]]

# Floor for re-check timers so a tiny remainder does not spin.
_MIN_TIMER_MS = 10

REACTION_PROMPT = (
    "[MEETING TRANSCRIPT - Active copilot for meeting host]\n\n"
    "{context}\n\n"
    "---\n"
    "You are a live meeting copilot coaching the host.\n"
    "Return plain text only (no numbering, bullets, labels, or quotes).\n"
    "Write one short interruption-worthy suggestion the host can say next.\n"
    "Optional: add one short follow-up question in the same message.\n"
    "Keep total under 32 words, concrete, and conversational.\n"
    "Do not mention setup, configuration, API keys, environment files, credentials, quotas, or tooling."
)


def render_reaction_prompt(candidate: ReactionCandidate) -> str:
    return REACTION_PROMPT.format(context=candidate.context_text)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class ReactionScheduler:
    def __init__(
        self,
        deliver: DeliverFn,
        cooldown_ms: int,
        debounce_ms: int,
        clock: Callable[[], float] | None = None,
        render: Callable[[ReactionCandidate], str] = render_reaction_prompt,
    ) -> None:
        self._deliver = deliver
        self._render = render
        self._cooldown_ms = cooldown_ms
        self._debounce_ms = debounce_ms
        self._clock = clock or _monotonic_ms

        self._muted = False
        self._in_flight = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._queued: ReactionCandidate | None = None
        self._timer: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._last_final_at: float | None = None
        self._last_partial_at: float | None = None
        self._last_context_key = ""
        self._seq = 0

    # --- read model ---

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def queued(self) -> ReactionCandidate | None:
        return self._queued

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def last_context_key(self) -> str:
        return self._last_context_key

    def snapshot(self) -> dict[str, bool]:
        return {
            "muted": self._muted,
            "reaction_in_flight": self._in_flight,
            "queued_reaction": self._queued is not None,
            "timer_pending": self.timer_pending,
        }

    # --- mute ---

    def mute(self) -> None:
        """Stop reacting; drop the queued candidate and its timer immediately."""
        self._muted = True
        self._queued = None
        self._cancel_timer()

    def unmute(self) -> None:
        """Resume reacting. Candidates dropped while muted are not replayed."""
        self._muted = False

    # --- scheduling ---

    async def submit(self, candidate: ReactionCandidate | None) -> None:
        """Dispatch, queue, or drop a candidate. Returns once any direct delivery finished."""
        if self._muted or candidate is None:
            return
        if candidate.context_key == self._last_context_key:
            return

        if self._in_flight:
            if self._queued is not None and self._queued.context_key == candidate.context_key:
                return
            self._queued = candidate
            logger.info(
                "[QUEUE] Coalesced latest reaction kind=%s words=%d force=%s",
                candidate.kind,
                candidate.word_count,
                candidate.force,
            )
            return

        wait_ms = self._gate_wait_ms(candidate)
        if wait_ms > 0:
            self._queued = candidate
            self._arm_timer(wait_ms)
            logger.debug("[QUEUE] Gate-blocked kind=%s wait_ms=%.0f", candidate.kind, wait_ms)
            return

        # Anything still waiting on a gate is older than this candidate.
        self._queued = None
        self._cancel_timer()
        await self._dispatch(candidate, "direct")

    async def acknowledge(self, text: str) -> int | None:
        """
        Deliver a fixed control acknowledgment. Ignores mute and timing gates but still
        waits for the in-flight slot, so deliveries never overlap.
        """
        while self._in_flight:
            await self._idle.wait()
        self._mark_in_flight()
        try:
            return await self._deliver(text)
        except Exception:
            logger.exception("Acknowledgment delivery failed")
            return None
        finally:
            self._release()
            await self._flush("queued")

    def _gate_wait_ms(self, candidate: ReactionCandidate) -> float:
        if candidate.force:
            return 0.0
        if candidate.is_partial:
            last, gap = self._last_partial_at, self._debounce_ms
        else:
            last, gap = self._last_final_at, self._cooldown_ms
        if last is None:
            return 0.0
        return max(0.0, gap - (self._clock() - last))

    async def _flush(self, source: str) -> None:
        if self._muted or self._in_flight or self._queued is None:
            return
        candidate = self._queued
        if candidate.context_key == self._last_context_key:
            self._queued = None
            return
        wait_ms = self._gate_wait_ms(candidate)
        if wait_ms > 0:
            self._arm_timer(wait_ms)
            return
        self._queued = None
        await self._dispatch(candidate, source)

    async def _dispatch(self, candidate: ReactionCandidate, source: str) -> None:
        now = self._clock()
        self._seq += 1
        reaction_id = self._seq
        self._mark_in_flight()
        self._last_context_key = candidate.context_key
        if candidate.is_partial:
            self._last_partial_at = now
        else:
            self._last_final_at = now

        logger.info(
            "[PROFILE] Starting reaction id=%d source=%s kind=%s force=%s",
            reaction_id,
            source,
            candidate.kind,
            candidate.force,
        )
        try:
            inject_ms = await self._deliver(self._render(candidate))
            received_at = candidate.meta.webhook_received_at_ms
            webhook_to_inject_ms = max(0, int(time.time() * 1000) - received_at) if received_at else None
            logger.info(
                "[LATENCY] bot=%s event=%s speech_to_webhook_ms=%s webhook_to_inject_ms=%s inject_call_ms=%s",
                candidate.meta.bot_id or "unknown",
                candidate.kind,
                _fmt(candidate.meta.speech_to_webhook_ms),
                _fmt(webhook_to_inject_ms),
                _fmt(inject_ms),
            )
        except Exception:
            logger.exception("Reaction id=%d delivery failed", reaction_id)
        finally:
            self._release()
        await self._flush("queued")

    def _mark_in_flight(self) -> None:
        self._in_flight = True
        self._idle.clear()

    def _release(self) -> None:
        self._in_flight = False
        self._idle.set()

    # --- timer ---

    def _arm_timer(self, wait_ms: float) -> None:
        self._cancel_timer()
        task = asyncio.create_task(self._timer_fired(max(_MIN_TIMER_MS, wait_ms)))
        self._timer = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _timer_fired(self, wait_ms: float) -> None:
        await asyncio.sleep(wait_ms / 1000.0)
        if self._timer is asyncio.current_task():
            self._timer = None
        try:
            await self._flush("queued")
        except Exception:
            logger.exception("Queued reaction flush failed")

    async def close(self) -> None:
        """Shutdown: drop the queued candidate and cancel timer tasks, including a timer-driven delivery."""
        self._queued = None
        self._cancel_timer()
        pending = [t for t in self._tasks if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


def _fmt(value: int | None) -> str:
    return "unknown" if value is None else str(value)
