"""Recording-platform bot-status API. Used only to hydrate a bot's meeting session."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from meeting_bridge.config import Settings

logger = logging.getLogger(__name__)


class RecallClient:
    def __init__(
        self,
        api_key: str,
        api_base: str = "https://eu-central-1.recall.ai",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._bots_endpoint = f"{api_base.rstrip('/')}/api/v1/bot"
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "RecallClient":
        return cls(
            api_key=settings.RECALL_API_KEY,
            api_base=settings.RECALL_API_BASE,
            timeout=settings.RECALL_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def get_bot(self, bot_id: str) -> dict[str, Any] | None:
        """Bot record, or None when unconfigured, unreachable, or not OK."""
        if not self._api_key or not bot_id:
            return None
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(
                    f"{self._bots_endpoint}/{bot_id}",
                    headers={"Authorization": f"Token {self._api_key}"},
                )
            if not resp.is_success:
                logger.info("Bot lookup %s returned %s", bot_id, resp.status_code)
                return None
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Bot lookup %s failed: %s", bot_id, e)
            return None
        return data if isinstance(data, dict) else None
