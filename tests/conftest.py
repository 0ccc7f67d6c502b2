"""Shared fakes for the nudge engine tests."""
from datetime import datetime, timedelta

import pytest
import pytz

from guru.nudges import Nudge
from guru.services import ServiceError
from guru.sinks import NudgeSink
from guru.state import build_ambient_state

IST = pytz.timezone("Asia/Kolkata")


def at(year, month, day, hour=0, minute=0, second=0, tz=IST) -> datetime:
    return tz.localize(datetime(year, month, day, hour, minute, second))


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime):
        self.now = now


class RecordingSink(NudgeSink):
    def __init__(self):
        self.shown: list[Nudge] = []

    def display(self, nudge):
        self.shown.append(nudge)

    @property
    def titles(self):
        return [n.title for n in self.shown]


class ExplodingSink(NudgeSink):
    def display(self, nudge):
        raise RuntimeError("toast container gone")


class FakeChartService:
    def __init__(self, periods=None, error: Exception = None):
        self.periods = periods or []
        self.error = error
        self.calls: list[dict] = []

    async def get_periods(self, birth_data):
        self.calls.append(birth_data)
        if self.error is not None:
            raise self.error
        return self.periods


class FakeAdvisory:
    def __init__(self, reply=None, error: Exception = None):
        self.reply = reply
        self.error = error
        self.calls: list[str] = []

    async def request_nudge(self, state, trigger_type):
        self.calls.append(trigger_type)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeProfiles:
    def __init__(self, profile=None, atman=None):
        self.profile = profile
        self.atman = atman or {}

    def get_profile(self, subject_id):
        return self.profile

    def get_atman(self, subject_id):
        return dict(self.atman)


def make_state(now, **atman):
    return build_ambient_state(now, "subject-1", atman, {"dob": "1990-01-01", "tob": "06:30"})


@pytest.fixture
def clock():
    return FakeClock(at(2025, 3, 10, 10, 30))


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def failing_advisory():
    return FakeAdvisory(error=ServiceError("advisory down", status=500))


BIRTH_PROFILE = {
    "dob": "1990-01-01",
    "tob": "06:30",
    "pob": "Varanasi",
    "coordinates": {"lat": 25.3, "lng": 83.0},
}
