"""
Guru — Ambient State
The read-only snapshot every trigger rule evaluates against:
the clock, the subject, and their consciousness ("atman") summary.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from guru.periods import parse_timestamp


@dataclass(frozen=True)
class Routine:
    id: str
    title: str
    type: str
    status: str
    last_completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class KeyRelationship:
    id: str
    name: str
    relation: str = ""
    dynamic: str = ""


@dataclass(frozen=True)
class LifeEvent:
    id: str
    title: str
    status: str
    date: Optional[datetime] = None
    category: str = ""


@dataclass(frozen=True)
class AmbientState:
    now: datetime
    subject_id: str
    emotional_state: str = "stable"
    last_emotional_update: Optional[str] = None
    daily_intention: str = ""
    daily_gratitude_date: str = ""
    routines: tuple = field(default_factory=tuple)
    key_relationships: tuple = field(default_factory=tuple)
    active_events: tuple = field(default_factory=tuple)
    periods: tuple = field(default_factory=tuple)   # last fetched Dasha timeline
    profile: dict = field(default_factory=dict)
    atman: dict = field(default_factory=dict)

    @property
    def today(self) -> str:
        """Local calendar day, YYYY-MM-DD."""
        return self.now.date().isoformat()

    @property
    def hour(self) -> int:
        return self.now.hour

    def local_date(self, moment: Optional[datetime]) -> Optional[date]:
        """Calendar day of ``moment`` in the subject's timezone."""
        if moment is None:
            return None
        if self.now.tzinfo is not None and moment.tzinfo is not None:
            moment = moment.astimezone(self.now.tzinfo)
        return moment.date()


# ════════════════════════════════════════════════════════════
#  BUILDING: profile store dicts → AmbientState
# ════════════════════════════════════════════════════════════

def _stamp_key(value) -> Optional[str]:
    """Stable string form of lastEmotionalUpdate for dedup keys."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        return str(seconds) if seconds is not None else None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _routines(raw, tz) -> tuple:
    out = []
    for r in raw or []:
        if not isinstance(r, dict):
            continue
        out.append(Routine(
            id=str(r.get("id", "")),
            title=r.get("title", "practice"),
            type=r.get("type", ""),
            status=r.get("status", ""),
            last_completed_at=parse_timestamp(r.get("lastCompletedAt"), tz),
        ))
    return tuple(out)


def _relationships(raw) -> tuple:
    return tuple(
        KeyRelationship(
            id=str(r.get("id", "")),
            name=r.get("name", ""),
            relation=r.get("relation", ""),
            dynamic=r.get("dynamic", ""),
        )
        for r in raw or []
        if isinstance(r, dict)
    )


def _events(raw, tz) -> tuple:
    return tuple(
        LifeEvent(
            id=str(e.get("id", "")),
            title=e.get("title", ""),
            status=e.get("status", ""),
            date=parse_timestamp(e.get("date"), tz),
            category=e.get("category", ""),
        )
        for e in raw or []
        if isinstance(e, dict)
    )


def build_ambient_state(now: datetime, subject_id: str, atman: Optional[dict],
                        profile: Optional[dict] = None, periods=None) -> AmbientState:
    """Project the externally-owned atman + profile dicts into a snapshot.

    ``periods`` is the Dasha timeline from the last successful chart fetch,
    if any; rules never trigger a fetch of their own.
    """
    atman = dict(atman or {})
    tz = now.tzinfo
    return AmbientState(
        now=now,
        subject_id=subject_id,
        emotional_state=atman.get("emotionalState") or "stable",
        last_emotional_update=_stamp_key(atman.get("lastEmotionalUpdate")),
        daily_intention=atman.get("dailyIntention") or "",
        daily_gratitude_date=atman.get("dailyGratitudeDate") or "",
        routines=_routines(atman.get("routines"), tz),
        key_relationships=_relationships(atman.get("keyRelationships")),
        active_events=_events(atman.get("activeEvents"), tz),
        periods=tuple(periods or ()),
        profile=dict(profile or {}),
        atman=atman,
    )
