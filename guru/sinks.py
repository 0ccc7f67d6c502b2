"""
Guru — Nudge Sinks
Where finished nudges go. Display is fire-and-forget: a sink never
raises back into the rule that produced the nudge.
"""
import asyncio
import logging

from telegram import Bot

logger = logging.getLogger("guru.sinks")

KIND_ICONS = {
    "guru": "🕉",
    "info": "ℹ️",
    "success": "✅",
    "warning": "⚠️",
    "error": "❗",
}


def format_nudge(nudge) -> str:
    """Render a nudge as a Markdown chat message."""
    icon = KIND_ICONS.get(nudge.kind, "🌸")
    return f"{icon} *{nudge.title}*\n{nudge.message}"


class NudgeSink:
    """Base sink. Subclasses override display()."""

    def display(self, nudge) -> None:
        raise NotImplementedError

    async def start(self) -> None:
        pass

    async def aclose(self) -> None:
        pass


class LogSink(NudgeSink):
    """Writes nudges to the log. Used when no chat is connected."""

    def display(self, nudge) -> None:
        logger.info("Nudge [%s] %s — %s (ttl %dms)",
                    nudge.kind, nudge.title, nudge.message, nudge.ttl_ms)


class TelegramSink(NudgeSink):
    """Sends each nudge as a Telegram message to one chat."""

    def __init__(self, bot: Bot, chat_id: str):
        self.bot = bot
        self.chat_id = chat_id
        self._pending: set[asyncio.Task] = set()

    async def start(self) -> None:
        await self.bot.initialize()

    async def aclose(self) -> None:
        """Let in-flight sends finish, then close the bot's HTTP client."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        await self.bot.shutdown()

    def display(self, nudge) -> None:
        text = format_nudge(nudge)
        try:
            task = asyncio.get_running_loop().create_task(self._send(text, nudge.title))
        except RuntimeError:
            logger.error("Can't send nudge %r — no running event loop", nudge.title)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _send(self, text: str, title: str) -> None:
        try:
            await self.bot.send_message(
                chat_id=self.chat_id,
                text=text,
                parse_mode="Markdown",
            )
            logger.info("Nudge sent: %s", title)
        except Exception as e:
            logger.error("Failed to send nudge %r: %s", title, e)


def deliver(sink: NudgeSink, nudge) -> bool:
    """Hand a nudge to the sink; a sink failure is logged, never raised."""
    try:
        sink.display(nudge)
        return True
    except Exception as e:
        logger.error("Sink %s failed to display %r: %s", type(sink).__name__, nudge.title, e)
        return False
