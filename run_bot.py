#!/usr/bin/env python3
"""
run_bot.py — MockupGen Telegram Bot entry point.

Usage:
    python run_bot.py

Required env vars (in .env):
    TELEGRAM_BOT_TOKEN=...
    GEMINI_API_KEY=...          # without it the bot starts but refuses to generate

Optional: see mockupgen/config.py
"""

from __future__ import annotations

import logging
import sys

from mockupgen.config import Settings

logging.basicConfig(
    format="%(asctime)s — %(levelname)s — %(name)s — %(message)s",
    level=logging.INFO,
)
logger = logging.getLogger(__name__)


def main() -> None:
    try:
        settings = Settings.from_env()
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    if not settings.telegram_token:
        logger.error("TELEGRAM_BOT_TOKEN not set in environment / .env")
        sys.exit(1)

    if not settings.is_configured:
        logger.warning("GEMINI_API_KEY not set — generation will be refused until it is")

    logger.info("Starting MockupGen Bot (model %s, API key %s)...", settings.model, settings.api_key_status)
    logger.info("Polling for updates — press Ctrl+C to stop")

    from bot.telegram_bot import build_app
    app = build_app(settings)
    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
