#!/usr/bin/env python3
"""
Guru — Runner
Loads config, connects the Telegram chat (if configured) and keeps one
subject's nudge session alive until interrupted.
"""
import asyncio
import logging
import sys

from telegram import Bot

from guru.config import LOGS_DIR, ensure_dirs, get_timezone, load_config, make_clock
from guru.profiles import ProfileStore
from guru.services import AdvisoryService, ChartService
from guru.session import NudgeSession
from guru.sinks import LogSink, TelegramSink

logger = logging.getLogger("guru")


def setup_logging():
    ensure_dirs()
    handlers = [logging.FileHandler(LOGS_DIR / "guru.log")]
    if sys.stdout is not None:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def build_sink(config: dict):
    """Telegram chat if we have a token and a chat, otherwise the log."""
    token = config.get("telegram_token", "")
    chat_id = config.get("telegram_user_id", "")
    if token and chat_id:
        return TelegramSink(Bot(token), chat_id)
    logger.info("No Telegram chat configured — nudges go to the log")
    return LogSink()


def build_session(config: dict, profiles: ProfileStore = None, sink=None) -> NudgeSession:
    tz = get_timezone(config)
    api_base = config.get("api_base", "")
    timeout = config.get("api_timeout", 30)
    return NudgeSession(
        config["subject_id"],
        profiles=profiles or ProfileStore(),
        chart_service=ChartService(api_base, timeout, tz=tz),
        advisory=AdvisoryService(api_base, timeout),
        sink=sink or build_sink(config),
        clock=make_clock(config),
        evaluate_interval=config.get("evaluate_interval", 300),
        poll_interval=config.get("poll_interval", 3600),
        lookahead_days=config.get("lookahead_days", 35),
        scanner_policy=config.get("scanner_policy", "first_listed"),
    )


async def run(config: dict, stop: asyncio.Event = None):
    """Serve nudges until ``stop`` is set (or the task is cancelled)."""
    sink = build_sink(config)
    session = build_session(config, sink=sink)
    await sink.start()
    try:
        session.start()
        await (stop or asyncio.Event()).wait()
    finally:
        await session.stop()
        await sink.aclose()


def main():
    setup_logging()
    config = load_config()
    if not config.get("subject_id"):
        logger.error("No subject_id configured! Add it to ~/.guru/config.json first.")
        sys.exit(1)
    logger.info("🌸 Guru is starting up...")
    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Guru stopped")


if __name__ == "__main__":
    main()
