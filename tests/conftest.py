"""
Shared fixtures for bridge testing.

Provides:
- FakeGateway: records deliveries, can hold them open (gate) or fail them
- SlowLookup: bot-status lookup held open until released
- FakeClock: manual millisecond clock for scheduler gate tests
- Settings with small, explicit thresholds
- Webhook event builders
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from meeting_bridge.config import Settings
from meeting_bridge.schemas.events import WebhookEvent


class FakeGateway:
    """Gateway double. Tracks concurrent deliveries so tests can assert single-flight."""

    def __init__(self) -> None:
        self.delivered: List[str] = []
        self.mirrored: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.fail_next = 0
        self.in_flight = 0
        self.max_in_flight = 0
        self.delay = 0.0

    async def deliver(self, message: str) -> Optional[int]:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            self.delivered.append(message)
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fail_next:
                self.fail_next -= 1
                raise RuntimeError("gateway unavailable")
            return 5
        finally:
            self.in_flight -= 1

    async def mirror(self, line: str) -> bool:
        self.mirrored.append(line)
        return True

    def describe(self) -> Dict[str, Any]:
        return {"url": "http://gateway.test/hooks/wake", "agent_url": "http://gateway.test/hooks/agent", "token_set": True, "route": "wake"}


class SlowLookup:
    """Bot-status lookup that blocks until `gate` is set."""

    def __init__(self, meeting_url: str = "https://meet.google.com/abc-defg-hij") -> None:
        self.gate = asyncio.Event()
        self.calls: List[str] = []
        self.meeting_url = meeting_url

    async def get_bot(self, bot_id: str) -> Optional[Dict[str, Any]]:
        self.calls.append(bot_id)
        await self.gate.wait()
        return {"id": bot_id, "meeting_url": self.meeting_url}


async def wait_for(predicate, ticks: int = 200) -> None:
    for _ in range(ticks):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class FakeClock:
    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now = start_ms

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        PROACTIVITY_LEVEL="high",
        REACTION_COOLDOWN_MS=1000,
        PARTIAL_REACTION_DEBOUNCE_MS=500,
        MIN_NEW_WORDS=8,
        PARTIAL_MIN_NEW_WORDS=6,
        PARTIAL_CONTEXT_WINDOW=3,
        FINAL_CONTEXT_WINDOW=5,
        TRANSCRIPT_BUFFER_MAX_SEGMENTS=50,
        WEBHOOK_SECRET="s3cret",
        GATEWAY_HOOK_TOKEN="hook-token",
        RECALL_API_KEY="",
        CONTROL_SPEAKER_REGEX="",
        DEBUG_MODE=False,
        REACT_ON_PARTIAL=False,
    )


def words_for(text: str, start: Any = None) -> List[Dict[str, Any]]:
    return [{"text": w, "start_timestamp": start} for w in text.split()]


def transcript_event(
    text: str,
    speaker: str = "Alice",
    bot_id: Optional[str] = "bot-1",
    partial: bool = False,
    meeting_url: Any = None,
    start_timestamps: Optional[List[Any]] = None,
) -> WebhookEvent:
    words = words_for(text)
    if start_timestamps is not None:
        for word, ts in zip(words, start_timestamps):
            word["start_timestamp"] = ts
    data: Dict[str, Any] = {"data": {"participant": {"id": 1, "name": speaker}, "words": words}}
    if bot_id:
        data["bot"] = {"id": bot_id}
        if meeting_url is not None:
            data["bot"]["meeting_url"] = meeting_url
    return WebhookEvent(event="transcript.partial_data" if partial else "transcript.data", data=data)


def status_event(
    code: str,
    bot_id: Optional[str] = "bot-1",
    meeting_url: Any = None,
    updated_at: Optional[str] = None,
    sub_code: Optional[str] = None,
) -> WebhookEvent:
    bot: Dict[str, Any] = {"id": bot_id} if bot_id else {}
    if meeting_url is not None:
        bot["meeting_url"] = meeting_url
    inner: Dict[str, Any] = {"code": code}
    if updated_at:
        inner["updated_at"] = updated_at
    if sub_code:
        inner["sub_code"] = sub_code
    return WebhookEvent(event=f"bot.{code}", data={"bot": bot, "data": inner})
