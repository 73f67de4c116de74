"""FastAPI entry point for the Telegram webhook.

Run with ``uvicorn --factory app.telegram_webhook:create_app``.
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.config import load_config
from app.logging_setup import configure_logging
from tgbot.webhook_handler import TelegramWebhookHandler

DEFAULT_CONFIG_PATH = "config.yaml"


def create_app(
    config: dict[str, Any] | None = None,
    handler: TelegramWebhookHandler | None = None,
) -> FastAPI:
    if config is None:
        config = load_config(os.getenv("FUNDRAISER_BOT_CONFIG_PATH", DEFAULT_CONFIG_PATH))
    configure_logging(config)
    webhook_handler = handler or TelegramWebhookHandler(config)
    webhook_path = str(config.get("telegram", {}).get("webhook_path", "/webhook/telegram"))

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        webhook_handler.sweeper.start()
        try:
            yield
        finally:
            webhook_handler.sweeper.stop()

    app = FastAPI(title="Fundraiser Bot Telegram Webhook", version="0.1.0", lifespan=lifespan)
    app.state.handler = webhook_handler

    @app.get("/healthz")
    async def healthz() -> dict[str, Any]:
        return {"ok": True}

    @app.post(webhook_path)
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str | None = Header(default=None),
    ) -> JSONResponse:
        body = await request.body()
        status_code, payload = await run_in_threadpool(
            webhook_handler.handle,
            body,
            x_telegram_bot_api_secret_token,
        )
        return JSONResponse(status_code=status_code, content=payload)

    return app
