"""
Assistant gateway client: injects reaction prompts and verbose mirror lines into the
chat assistant through its hook endpoints.

- wake hook (GATEWAY_HOOK_URL): {"text": ..., "mode": "now"}
- agent hook (derived: .../wake -> .../agent): {"message", "name", "wakeMode", "deliver", "channel", "to"}
  used when a route target (GATEWAY_CHANNEL + GATEWAY_TO) is configured, and for verbose mirroring.

Every call is authenticated with a bearer token. Failures are logged and reported as
None; nothing is retried here (the scheduler's next candidate supersedes a failed one).
"""
from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urlsplit, urlunsplit

import httpx

from meeting_bridge.config import Settings

logger = logging.getLogger(__name__)

TRANSCRIPT_PREFIX = "[MEETING TRANSCRIPT]"


def derive_agent_hook_url(wake_url: str) -> str:
    """.../hooks/wake -> .../hooks/agent; any other path gets /agent appended."""
    try:
        parts = urlsplit(wake_url)
    except ValueError:
        parts = None
    if parts is None or not parts.scheme:
        return wake_url.rstrip("/").removesuffix("/wake") + "/agent"
    path = parts.path.rstrip("/")
    if path.endswith("/wake"):
        path = path[: -len("/wake")] + "/agent"
    elif not path.endswith("/agent"):
        path = f"{path}/agent"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, parts.fragment))


class GatewayClient:
    def __init__(
        self,
        hook_url: str,
        token: str,
        channel: str = "",
        to: str = "",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._hook_url = hook_url
        self._agent_url = derive_agent_hook_url(hook_url)
        self._token = token
        self._channel = (channel or "").strip().lower()
        self._to = (to or "").strip()
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "GatewayClient":
        return cls(
            hook_url=settings.GATEWAY_HOOK_URL,
            token=settings.GATEWAY_HOOK_TOKEN,
            channel=settings.GATEWAY_CHANNEL,
            to=settings.GATEWAY_TO,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._token)

    @property
    def route_text(self) -> str:
        if self._channel and self._to:
            return f"{self._channel}:{self._to}"
        return "wake"

    def describe(self) -> dict[str, Any]:
        return {
            "url": self._hook_url,
            "agent_url": self._agent_url,
            "token_set": self.configured,
            "route": self.route_text,
        }

    async def _post(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {self._token}", "Content-Type": "application/json"},
            )

    async def deliver(self, message: str) -> int | None:
        """Inject one message. Returns elapsed ms when the gateway was reached, else None."""
        started = time.monotonic()
        if not self._token:
            logger.error("[FastInject] GATEWAY_HOOK_TOKEN is required.")
            return None
        text = f"{TRANSCRIPT_PREFIX}\n{message}"
        if self._channel and self._to:
            url = self._agent_url
            payload: dict[str, Any] = {
                "message": text,
                "name": "Meeting Copilot",
                "wakeMode": "now",
                "deliver": True,
                "channel": self._channel,
                "to": self._to,
            }
        else:
            url = self._hook_url
            payload = {"text": text, "mode": "now"}
        try:
            response = await self._post(url, payload)
        except httpx.HTTPError as e:
            logger.error("[FastInject] Error route=%s: %s", self.route_text, e)
            return None
        elapsed = int((time.monotonic() - started) * 1000)
        status = "success" if response.is_success else f"failed status={response.status_code}"
        logger.info("[FastInject] %dms - %s route=%s", elapsed, status, self.route_text)
        return elapsed

    async def mirror(self, line: str) -> bool:
        """Verbose mode: ask the agent to echo a raw transcript line into the chat."""
        if not self._token:
            logger.error("[VerboseMirror] GATEWAY_HOOK_TOKEN is required.")
            return False
        payload: dict[str, Any] = {
            "message": f"[MEETVERBOSE MIRROR]\nReply with exactly this line and nothing else:\n{line}",
            "name": "Meeting Copilot Verbose",
            "wakeMode": "now",
            "deliver": True,
        }
        if self._channel:
            payload["channel"] = self._channel
        if self._to:
            payload["to"] = self._to
        started = time.monotonic()
        try:
            response = await self._post(self._agent_url, payload)
        except httpx.HTTPError as e:
            logger.error("[VerboseMirror] Error: %s", e)
            return False
        elapsed = int((time.monotonic() - started) * 1000)
        logger.info(
            "[VerboseMirror] %dms - %s route=%s",
            elapsed,
            "accepted" if response.is_success else f"failed status={response.status_code}",
            self.route_text,
        )
        return response.is_success
