"""
FastAPI app: webhook receiver for meeting bots, plus copilot control/status endpoints.

POST /webhook receives bot status events (bot.*) and real-time transcript events
(transcript.data = final, transcript.partial_data = partial). Transcript events must carry
the webhook token (?token= / ?webhook_token= / ?secret=); status events without it are
accepted and logged.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request

from meeting_bridge.bridge import Bridge
from meeting_bridge.config import Settings, get_settings
from meeting_bridge.logging_setup import configure_logging
from meeting_bridge.schemas.events import (
    BOT_STATUS_EVENTS,
    TRANSCRIPT_EVENTS,
    TRANSCRIPT_PARTIAL_EVENT,
    ControlState,
    WebhookAck,
    WebhookEvent,
)

logger = logging.getLogger(__name__)


def _token_from_request(request: Request) -> str:
    q = request.query_params
    return q.get("token") or q.get("webhook_token") or q.get("secret") or ""


def _token_preview(token: str) -> str:
    return f"{token[:8]}..." if token else "missing"


def get_bridge(request: Request) -> Bridge:
    bridge = getattr(request.app.state, "bridge", None)
    if bridge is None:
        raise RuntimeError("App not initialized (lifespan not run?)")
    return bridge


def create_app(settings: Settings | None = None, bridge: Bridge | None = None) -> FastAPI:
    """Build the app. Tests pass a pre-wired bridge; production builds one from settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings)
        app.state.settings = settings
        app.state.bridge = bridge or Bridge(settings)
        logger.info(
            "Meeting bridge ready: proactivity=%s gateway_token_set=%s",
            settings.PROACTIVITY_LEVEL,
            bool(settings.GATEWAY_HOOK_TOKEN),
        )
        yield
        await app.state.bridge.close()
        app.state.bridge = None

    app = FastAPI(
        title="Meeting Copilot Bridge",
        description="Meeting-bot transcript webhooks -> assistant gateway reactions",
        lifespan=lifespan,
    )

    @app.post("/webhook", response_model=WebhookAck)
    async def webhook(event: WebhookEvent, request: Request) -> WebhookAck:
        token = _token_from_request(request)
        is_transcript = event.event in TRANSCRIPT_EVENTS
        token_ok = bool(token) and token == settings.WEBHOOK_SECRET
        if is_transcript and not token_ok:
            logger.warning("Webhook REJECTED - invalid token (%s) event=%s", _token_preview(token), event.event)
            raise HTTPException(status_code=401, detail="Unauthorized")
        if not is_transcript and not token_ok:
            logger.info("Webhook accepted without token (status event) event=%s", event.event)
        logger.debug("Webhook received: %s token=%s", event.event, _token_preview(token))

        bridge = get_bridge(request)
        if event.event in BOT_STATUS_EVENTS:
            await bridge.on_bot_status(event)
        elif is_transcript:
            await bridge.on_transcript(event, is_partial=event.event == TRANSCRIPT_PARTIAL_EVENT)
        else:
            logger.info("Unhandled event type: %s", event.event)
        return WebhookAck()

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        bridge = get_bridge(request)
        return {
            "status": "ok",
            "muted": bridge.muted,
            "meetverbose": bridge.verbose,
            "proactivity": settings.PROACTIVITY_LEVEL,
            "hook": bridge.gateway.describe(),
        }

    @app.get("/copilot/status")
    async def copilot_status(request: Request) -> dict[str, Any]:
        return get_bridge(request).status()

    @app.post("/mute", response_model=ControlState)
    async def mute(request: Request) -> ControlState:
        state = get_bridge(request).set_muted(True, "http:/mute")
        return ControlState(**state, message="Transcript processing paused")

    @app.post("/unmute", response_model=ControlState)
    async def unmute(request: Request) -> ControlState:
        state = get_bridge(request).set_muted(False, "http:/unmute")
        return ControlState(**state, message="Transcript processing resumed")

    @app.get("/mute-status")
    async def mute_status(request: Request) -> dict[str, bool]:
        return {"muted": get_bridge(request).muted}

    @app.post("/meetverbose/on", response_model=ControlState)
    async def meetverbose_on(request: Request) -> ControlState:
        state = get_bridge(request).set_verbose(True, "http:/meetverbose/on")
        return ControlState(**state, message="Raw transcript mirror ON (active chat channel)")

    @app.post("/meetverbose/off", response_model=ControlState)
    async def meetverbose_off(request: Request) -> ControlState:
        state = get_bridge(request).set_verbose(False, "http:/meetverbose/off")
        return ControlState(**state, message="Raw transcript mirror OFF - smart feedback only")

    @app.get("/meetverbose", response_model=ControlState)
    async def meetverbose(request: Request) -> ControlState:
        bridge = get_bridge(request)
        return ControlState(muted=bridge.muted, meetverbose=bridge.verbose)

    @app.get("/meeting/state")
    async def meeting_state(request: Request, session: str | None = None) -> dict[str, Any]:
        bridge = get_bridge(request)
        state = bridge.canvas.state(session or bridge.registry.active_session_id)
        if state is None:
            raise HTTPException(status_code=404, detail="Meeting canvas disabled")
        return state

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run("meeting_bridge.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
