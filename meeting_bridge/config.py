"""Application configuration. Loads from env vars."""
from pydantic_settings import BaseSettings
from typing import Literal

# Proactivity presets: how eagerly the copilot nudges the assistant gateway.
PROACTIVITY_PRESETS: dict[str, dict[str, int]] = {
    "low": {
        "REACTION_COOLDOWN_MS": 4200,
        "PARTIAL_REACTION_DEBOUNCE_MS": 5200,
        "MIN_NEW_WORDS": 20,
        "PARTIAL_MIN_NEW_WORDS": 18,
        "PARTIAL_CONTEXT_WINDOW": 8,
        "FINAL_CONTEXT_WINDOW": 10,
    },
    "normal": {
        "REACTION_COOLDOWN_MS": 2400,
        "PARTIAL_REACTION_DEBOUNCE_MS": 3200,
        "MIN_NEW_WORDS": 14,
        "PARTIAL_MIN_NEW_WORDS": 12,
        "PARTIAL_CONTEXT_WINDOW": 10,
        "FINAL_CONTEXT_WINDOW": 12,
    },
    "high": {
        "REACTION_COOLDOWN_MS": 1100,
        "PARTIAL_REACTION_DEBOUNCE_MS": 1800,
        "MIN_NEW_WORDS": 8,
        "PARTIAL_MIN_NEW_WORDS": 6,
        "PARTIAL_CONTEXT_WINDOW": 12,
        "FINAL_CONTEXT_WINDOW": 14,
    },
}


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    HOST: str = "0.0.0.0"
    PORT: int = 3001

    # Reaction tuning. None = take the value from the PROACTIVITY_LEVEL preset.
    PROACTIVITY_LEVEL: Literal["low", "normal", "high"] = "high"
    REACT_ON_PARTIAL: bool = False
    REACTION_COOLDOWN_MS: int | None = None  # finals
    PARTIAL_REACTION_DEBOUNCE_MS: int | None = None  # partials
    MIN_NEW_WORDS: int | None = None
    PARTIAL_MIN_NEW_WORDS: int | None = None
    PARTIAL_CONTEXT_WINDOW: int | None = None  # segments
    FINAL_CONTEXT_WINDOW: int | None = None

    # Per-bot rolling transcript buffer (segments); oldest dropped on overflow.
    TRANSCRIPT_BUFFER_MAX_SEGMENTS: int = 200

    # Spoken control commands (mute/unmute/verbose). Empty = any speaker may issue them.
    CONTROL_SPEAKER_REGEX: str = ""
    # Initial verbose state: mirror raw final lines to the gateway.
    DEBUG_MODE: bool = False

    # Webhook token (query param token / webhook_token / secret).
    WEBHOOK_SECRET: str = ""

    # Assistant gateway hook. Agent URL is derived from the wake URL (/wake -> /agent).
    GATEWAY_HOOK_URL: str = "http://127.0.0.1:18789/hooks/wake"
    GATEWAY_HOOK_TOKEN: str = ""
    GATEWAY_CHANNEL: str = ""  # optional route target, e.g. "discord"
    GATEWAY_TO: str = ""
    GATEWAY_TIMEOUT_SECONDS: float = 15.0

    # Recording platform bot-status API (session hydration only).
    RECALL_API_KEY: str = ""
    RECALL_API_BASE: str = "https://eu-central-1.recall.ai"
    RECALL_TIMEOUT_SECONDS: float = 10.0

    # When true, bots with no resolvable session do not fall back to the active session.
    REQUIRE_EXPLICIT_SESSION: bool = False

    # Meeting canvas (live notes per session).
    MEETING_TRANSCRIPT_TO_CANVAS: bool = True
    MEETING_MIRROR_TO_DEFAULT: bool = True
    MEETING_TRANSCRIPT_MAX_CHARS: int = 360
    MEETING_MAX_SECTIONS: int = 500

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path = also log to a rotating file.
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"

    def threshold(self, name: str) -> int:
        """Explicit env override if set, else the PROACTIVITY_LEVEL preset value."""
        value = getattr(self, name)
        if value is not None:
            return value
        return PROACTIVITY_PRESETS[self.PROACTIVITY_LEVEL][name]


def get_settings() -> Settings:
    return Settings()
