"""
Tests for the runner: sink selection and the bot's start/stop lifecycle.
"""
import asyncio

import pytest

from guru import bot as runner
from guru.sinks import LogSink, TelegramSink

from conftest import FakeAdvisory, FakeProfiles

CONFIG = {
    "subject_id": "subject-1",
    "timezone": "Asia/Kolkata",
    "api_base": "http://localhost:8888",
    "telegram_token": "123:abc",
    "telegram_user_id": "42",
    "evaluate_interval": 300,
    "poll_interval": 3600,
}


class FakeBot:
    """Stands in for telegram.Bot; every send takes a moment to land."""

    instances = []

    def __init__(self, token):
        self.token = token
        self.events = []
        FakeBot.instances.append(self)

    async def initialize(self):
        self.events.append("initialize")

    async def shutdown(self):
        self.events.append("shutdown")

    async def send_message(self, chat_id, text, parse_mode=None):
        self.events.append("sending")
        await asyncio.sleep(0.05)
        self.events.append("sent")


@pytest.fixture
def fake_bot(monkeypatch):
    FakeBot.instances = []
    monkeypatch.setattr(runner, "Bot", FakeBot)
    return FakeBot


async def eventually(condition, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not condition():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestBuildSink:

    def test_telegram_when_configured(self, fake_bot):
        sink = runner.build_sink(CONFIG)
        assert isinstance(sink, TelegramSink)
        assert sink.chat_id == "42"
        assert sink.bot.token == "123:abc"

    def test_log_without_token(self):
        assert isinstance(runner.build_sink(dict(CONFIG, telegram_token="")), LogSink)


class TestRun:

    @pytest.mark.asyncio
    async def test_bot_initialized_and_shut_down_after_pending_send(self, fake_bot, monkeypatch):
        # Transit alert has no hour window, so the first tick always sends
        advisory = FakeAdvisory(reply={"title": "Saturn Stirs", "message": "Move slowly today."})
        monkeypatch.setattr(runner, "ProfileStore", lambda: FakeProfiles())
        monkeypatch.setattr(runner, "AdvisoryService", lambda *a, **k: advisory)

        stop = asyncio.Event()
        task = asyncio.create_task(runner.run(CONFIG, stop=stop))
        await eventually(lambda: fake_bot.instances and "sending" in fake_bot.instances[0].events)

        stop.set()
        await task

        events = fake_bot.instances[0].events
        assert events[0] == "initialize"
        assert events[-1] == "shutdown"
        assert events.index("sent") < events.index("shutdown")

    @pytest.mark.asyncio
    async def test_shutdown_on_cancel(self, fake_bot, monkeypatch):
        monkeypatch.setattr(runner, "ProfileStore", lambda: FakeProfiles())
        monkeypatch.setattr(runner, "AdvisoryService", lambda *a, **k: FakeAdvisory())

        task = asyncio.create_task(runner.run(CONFIG))
        await eventually(lambda: fake_bot.instances and fake_bot.instances[0].events)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert fake_bot.instances[0].events[-1] == "shutdown"
