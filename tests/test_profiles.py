"""
Unit tests for the profile store, config and ambient state projection.
"""
import json
import os

import pytest
import pytz

from guru import config as guru_config
from guru.periods import Period
from guru.profiles import ProfileStore, birth_data_from
from guru.state import build_ambient_state

from conftest import at


@pytest.fixture
def store(tmp_path):
    return ProfileStore(tmp_path / "profiles.json")


class TestProfileStore:

    def test_missing_subject(self, store):
        assert store.get_profile("nobody") is None
        assert store.get_atman("nobody") == {}

    def test_profile_and_atman_kept_apart(self, store):
        store.update_profile("u1", {"dob": "1990-01-01", "tob": "06:30", "pob": "Pune"})
        store.update_atman("u1", {"emotionalState": "anxious"})

        profile = store.get_profile("u1")
        assert profile["dob"] == "1990-01-01"
        assert "atman" not in profile
        assert store.get_atman("u1") == {"emotionalState": "anxious"}

    def test_persists_to_disk(self, store, tmp_path):
        store.update_atman("u1", {"dailyIntention": "Stillness"})
        data = json.loads((tmp_path / "profiles.json").read_text(encoding="utf-8"))
        assert data["subjects"]["u1"]["atman"]["dailyIntention"] == "Stillness"

        fresh = ProfileStore(tmp_path / "profiles.json")
        assert fresh.get_atman("u1") == {"dailyIntention": "Stillness"}
        assert fresh.list_subjects() == ["u1"]

    def test_sees_writes_from_another_store(self, store, tmp_path):
        assert store.get_atman("u1") == {}
        other = ProfileStore(tmp_path / "profiles.json")
        other.update_atman("u1", {"emotionalState": "chaotic"})
        assert store.get_atman("u1") == {"emotionalState": "chaotic"}

        other.update_atman("u1", {"emotionalState": "stable"})
        later = store.path.stat().st_mtime_ns + 1_000_000_000
        os.utime(store.path, ns=(later, later))
        assert store.get_atman("u1") == {"emotionalState": "stable"}

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "profiles.json"
        path.write_text("{not json", encoding="utf-8")
        assert ProfileStore(path).get_profile("u1") is None


class TestBirthData:

    def test_incomplete_profile(self):
        assert birth_data_from(None) is None
        assert birth_data_from({"dob": "1990-01-01"}) is None

    def test_defaults(self):
        assert birth_data_from({"dob": "1990-01-01", "tob": "06:30"}) == {
            "dob": "1990-01-01", "tob": "06:30", "pob": "Unknown", "lat": None, "lng": None,
        }


class TestConfig:

    def test_defaults_merged(self, tmp_path, monkeypatch):
        monkeypatch.setattr(guru_config, "CONFIG_DIR", tmp_path)
        monkeypatch.setattr(guru_config, "CONFIG_FILE", tmp_path / "config.json")
        monkeypatch.setattr(guru_config, "LOGS_DIR", tmp_path / "logs")

        assert guru_config.load_config()["evaluate_interval"] == 300

        guru_config.save_config({"timezone": "Asia/Kolkata", "subject_id": "u1"})
        cfg = guru_config.load_config()
        assert cfg["subject_id"] == "u1"
        assert cfg["poll_interval"] == 3600
        assert (tmp_path / "logs").is_dir()

    def test_timezone_resolution(self):
        assert guru_config.get_timezone({"timezone": "Asia/Kolkata"}).zone == "Asia/Kolkata"
        assert guru_config.get_timezone({"timezone": "Mars/Olympus"}) is pytz.utc
        assert guru_config.local_now({"timezone": "Asia/Kolkata"}).tzinfo is not None

    def test_clock_follows_configured_timezone(self):
        clock = guru_config.make_clock({"timezone": "Asia/Kolkata"})
        assert clock().tzinfo.zone == "Asia/Kolkata"
        assert clock() <= clock()


class TestAmbientState:

    def test_projection(self):
        now = at(2025, 3, 10, 9, 15)
        state = build_ambient_state(now, "u1", {
            "emotionalState": "chaotic",
            "lastEmotionalUpdate": {"seconds": 1741580000, "nanoseconds": 0},
            "routines": [{"id": "r1", "title": "Japa", "type": "morning", "status": "active"}],
            "keyRelationships": [{"id": "k1", "name": "Asha", "relation": "parent", "dynamic": "distant"}],
            "activeEvents": [{"id": "e1", "title": "Moved cities", "status": "completed", "date": "2025-03-03"}],
        })
        assert state.today == "2025-03-10"
        assert state.hour == 9
        assert state.last_emotional_update == "1741580000"
        assert state.routines[0].title == "Japa"
        assert state.key_relationships[0].name == "Asha"
        assert state.active_events[0].date.date().isoformat() == "2025-03-03"

    def test_empty_atman(self):
        state = build_ambient_state(at(2025, 3, 10), "u1", None)
        assert state.emotional_state == "stable"
        assert state.routines == ()
        assert state.periods == ()
        assert state.daily_intention == ""

    def test_carries_timeline(self):
        timeline = [Period(label="Venus", start=None, end=at(2025, 4, 1))]
        state = build_ambient_state(at(2025, 3, 10), "u1", {}, periods=timeline)
        assert state.periods == tuple(timeline)
