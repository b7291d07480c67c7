"""
FastAPI application factory.

Manages the lifecycle of:
- Conversation store (JSON snapshot on disk)
- Model endpoint, tool registry and agent loop
- Telegram channel (polling or webhook) and the turn dispatcher
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Header, HTTPException, Request

from .. import __version__
from ..agent import AgentLoop, TurnDispatcher
from ..config import Settings, get_settings
from ..llm import create_llm
from ..memory import ConversationStore, JsonFileStorage
from ..telegram import TelegramChannel
from ..tools import create_tool_registry

logger = structlog.get_logger()


@dataclass
class Runtime:
    """Everything the running service holds on to."""

    settings: Settings
    store: ConversationStore
    agent: AgentLoop
    channel: TelegramChannel
    dispatcher: TurnDispatcher


def build_runtime(settings: Settings) -> Runtime:
    """Wire store, model, tools, agent, channel and dispatcher together."""
    store = ConversationStore(
        storage=JsonFileStorage(settings.memory_file),
        max_messages=settings.max_messages,
        keep_recent=settings.keep_recent,
        compact_threshold=settings.compact_threshold,
        summary_chars_per_message=settings.summary_chars_per_message,
    )
    agent = AgentLoop(
        llm=create_llm(settings),
        tool_registry=create_tool_registry(settings),
        system_prompt=settings.system_prompt,
        max_tool_iterations=settings.max_tool_iterations,
    )
    channel = TelegramChannel(settings=settings)
    dispatcher = TurnDispatcher(
        store=store,
        agent=agent,
        channel=channel,
        overload_cooldown_seconds=settings.overload_cooldown_seconds,
    )
    channel.attach(dispatcher, store)
    return Runtime(settings=settings, store=store, agent=agent, channel=channel, dispatcher=dispatcher)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    runtime = build_runtime(settings)
    app.state.runtime = runtime

    await runtime.channel.connect()
    logger.info(
        "Service started",
        conversations=len(runtime.store.identities()),
        webhook=bool(settings.telegram_webhook_url),
    )

    yield

    await runtime.channel.disconnect()
    app.state.runtime = None
    logger.info("Application shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="relay-agent",
        description="Chat-driven research assistant that can act on its host",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.runtime = None

    def _runtime(request: Request) -> Runtime:
        runtime = request.app.state.runtime
        if runtime is None:
            raise HTTPException(status_code=503, detail="Service not ready")
        return runtime

    @app.get("/api/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        runtime = request.app.state.runtime
        return {
            "status": "healthy",
            "version": __version__,
            "bot_running": runtime is not None and runtime.channel.is_connected,
            "telegram_configured": bool(settings.telegram_bot_token),
            "llm_configured": bool(settings.anthropic_api_key),
        }

    @app.get("/api/stats")
    async def get_stats(request: Request):
        """Conversation statistics."""
        store = _runtime(request).store
        return {
            "conversations": len(store.identities()),
            "messages": store.message_count(),
        }

    @app.post("/webhook/telegram")
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(None),
    ):
        """Handle Telegram webhook updates."""
        if settings.telegram_webhook_secret:
            if x_telegram_bot_api_secret_token != settings.telegram_webhook_secret:
                raise HTTPException(status_code=401, detail="Invalid secret token")

        runtime = _runtime(request)
        update_data = await request.json()

        try:
            await runtime.channel.process_update(update_data)
        except Exception as e:
            logger.error("Webhook processing error", error=str(e))

        return {"ok": True}

    return app
