"""
Guru — Period Timeline Scanner
Finds the next Mahadasha / Antardasha boundary inside a look-ahead window.

The default policy is "first_listed": every top-level period is checked
before any sub-period, and inside a pass the first period in timeline
order wins, even when a later-listed one ends sooner. The "earliest"
policy keeps primary-over-secondary but picks the nearest boundary
within each pass.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional, Sequence

import pytz

logger = logging.getLogger("guru.periods")

PRIMARY = "primary"
SECONDARY = "secondary"

# How the depths read in nudge copy
DEPTH_NAMES = {
    PRIMARY: "Mahadasha",
    SECONDARY: "Antardasha",
}

POLICY_FIRST_LISTED = "first_listed"
POLICY_EARLIEST = "earliest"


@dataclass(frozen=True)
class Period:
    label: str
    start: Optional[datetime]
    end: datetime
    sub_periods: tuple = field(default_factory=tuple)


@dataclass(frozen=True)
class Transition:
    label: str
    boundary_time: datetime
    depth: str  # "primary" | "secondary"

    @property
    def type_name(self) -> str:
        return DEPTH_NAMES.get(self.depth, self.depth)


# ════════════════════════════════════════════════════════════
#  TIMESTAMPS
# ════════════════════════════════════════════════════════════

def _localize(dt: datetime, tz) -> datetime:
    if hasattr(tz, "localize"):
        return tz.localize(dt)
    return dt.replace(tzinfo=tz)


def parse_timestamp(value, tz=pytz.utc) -> Optional[datetime]:
    """Turn whatever the profile store or chart API gave us into an aware datetime.

    Accepts datetimes, dates, ISO strings (with or without ``Z``),
    epoch milliseconds and Firestore-style ``{"seconds": ...}`` dicts.
    Naive values are read in ``tz``. Returns None when unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return value if value.tzinfo else _localize(value, tz)

    if isinstance(value, date):
        return _localize(datetime(value.year, value.month, value.day), tz)

    if isinstance(value, dict):
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        return datetime.fromtimestamp(float(seconds), tz=pytz.utc)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=pytz.utc)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        return dt if dt.tzinfo else _localize(dt, tz)

    return None


# ════════════════════════════════════════════════════════════
#  PARSING: chart service JSON → Period
# ════════════════════════════════════════════════════════════

def _parse_period(raw: dict, tz) -> Optional[Period]:
    if not isinstance(raw, dict):
        logger.warning("Skipping non-object period entry: %r", raw)
        return None

    label = raw.get("planet") or raw.get("label")
    end = parse_timestamp(raw.get("endDate", raw.get("end")), tz)
    if not label or end is None:
        logger.warning("Skipping malformed period (label=%r, end=%r)",
                       label, raw.get("endDate", raw.get("end")))
        return None

    start = parse_timestamp(raw.get("startDate", raw.get("start")), tz)
    subs = parse_periods(raw.get("subPeriods") or [], tz)
    return Period(label=label, start=start, end=end, sub_periods=tuple(subs))


def parse_periods(raw: Iterable, tz=pytz.utc) -> list[Period]:
    """Parse a list of ``{planet, startDate, endDate, subPeriods}`` entries.

    Malformed entries are logged and skipped; this never raises.
    """
    if not isinstance(raw, (list, tuple)):
        if raw:
            logger.warning("Expected a list of periods, got %s", type(raw).__name__)
        return []
    periods = []
    for entry in raw:
        p = _parse_period(entry, tz)
        if p is not None:
            periods.append(p)
    return periods


# ════════════════════════════════════════════════════════════
#  SCANNER
# ════════════════════════════════════════════════════════════

def _pick(candidates: Iterable[Period], now: datetime, horizon: datetime,
          policy: str) -> Optional[Period]:
    best = None
    for p in candidates:
        if not (now < p.end < horizon):
            continue
        if policy != POLICY_EARLIEST:
            return p
        if best is None or p.end < best.end:
            best = p
    return best


def find_next_boundary(
    timeline: Sequence[Period],
    now: datetime,
    horizon: datetime,
    policy: str = POLICY_FIRST_LISTED,
) -> Optional[Transition]:
    """Find the next period boundary strictly between ``now`` and ``horizon``.

    Top-level periods are always preferred over sub-periods.
    """
    if not timeline:
        return None

    primary = _pick(timeline, now, horizon, policy)
    if primary is not None:
        return Transition(label=primary.label, boundary_time=primary.end, depth=PRIMARY)

    flattened = (sub for p in timeline for sub in p.sub_periods)
    secondary = _pick(flattened, now, horizon, policy)
    if secondary is not None:
        return Transition(label=secondary.label, boundary_time=secondary.end, depth=SECONDARY)

    return None
