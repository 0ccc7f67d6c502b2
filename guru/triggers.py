"""
Guru — Trigger Catalogue
Every nudge type as one Rule / EventRule row. Each rule is
self-sufficient: its predicate and dedup key read only the ambient
state (or the event payload), never another rule's outcome.

Dedup key prefixes are unique per rule; keep them that way when adding rows.
"""
import logging

from guru.events import GROWTH_DETECTED, PERIOD_TRANSITION_APPROACHING
from guru.nudges import EventRule, Nudge, Rule
from guru.periods import DEPTH_NAMES
from guru.services import TRIGGER_RELATIONAL, TRIGGER_TRANSIT_ALERT

logger = logging.getLogger("guru.triggers")

# Display lifetimes (ms)
TTL_SHORT = 8000
TTL_MEDIUM = 10000
TTL_LONG = 12000

ANNIVERSARY_DAYS = (7, 30)
DASHA_COUNTDOWN_DAYS = (30, 7, 0)

SECONDS_PER_DAY = 86400


def in_window(state, start_hour: int, end_hour: int) -> bool:
    """True when local time is in [start_hour:00, end_hour:00)."""
    return start_hour <= state.hour < end_hour


# ════════════════════════════════════════════════════════════
#  1: Morning routine (10:00–11:59)
# ════════════════════════════════════════════════════════════

def _pending_morning_routines(state) -> list:
    return [
        r for r in state.routines
        if r.type == "morning" and r.status == "active"
        and state.local_date(r.last_completed_at) != state.now.date()
    ]


def _morning_routine_due(state, _target) -> bool:
    return in_window(state, 10, 12) and bool(_pending_morning_routines(state))


def _morning_routine_nudge(state, _target) -> Nudge:
    routine = _pending_morning_routines(state)[0]
    who = state.daily_intention or "Friend"
    return Nudge(
        kind="guru",
        title="Morning Sadhana",
        message=f"The Sun has risen, {who}. Have you greeted it with your {routine.title}?",
        ttl_ms=TTL_SHORT,
    )


# ════════════════════════════════════════════════════════════
#  2: Missing daily intention (07:00–10:59)
# ════════════════════════════════════════════════════════════

def _intention_missing_due(state, _target) -> bool:
    return in_window(state, 7, 11) and not state.daily_intention


def _intention_nudge(state, _target) -> Nudge:
    return Nudge(
        kind="guru",
        title="Daily Sankalpa",
        message="What is your intention for this beautiful new day, Ji?",
        ttl_ms=TTL_SHORT,
    )


# ════════════════════════════════════════════════════════════
#  3: Evening gratitude (21:00–22:59)
# ════════════════════════════════════════════════════════════

def _gratitude_due(state, _target) -> bool:
    return in_window(state, 21, 23) and state.daily_gratitude_date != state.today


def _gratitude_nudge(state, _target) -> Nudge:
    return Nudge(
        kind="guru",
        title="Evening Reflection",
        message="Before you rest, what are you grateful for today?",
        ttl_ms=TTL_SHORT,
    )


# ════════════════════════════════════════════════════════════
#  4: Chaotic emotional state (any time, once per update)
# ════════════════════════════════════════════════════════════

def _chaos_due(state, _target) -> bool:
    return state.emotional_state == "chaotic"


def _chaos_key(state, _target) -> str:
    return f"chaos_detected_{state.last_emotional_update or 'unknown'}"


def _chaos_nudge(state, _target) -> Nudge:
    return Nudge(
        kind="guru",
        title="A Moment of Peace",
        message="I sense a storm within. Shall we take a moment for Neti-Neti reflection?",
        ttl_ms=TTL_MEDIUM,
    )


# ════════════════════════════════════════════════════════════
#  5/6: Advisory-backed: transit alert, relational check-in
# ════════════════════════════════════════════════════════════

def _advisory_action(advisory, trigger_type: str):
    """Build an async action that asks the advisory service for copy.

    A failed or empty reply yields None: no nudge, no ledger entry,
    so the rule tries again next tick.
    """
    async def action(state, _target):
        try:
            reply = await advisory.request_nudge(state, trigger_type)
        except Exception as e:
            logger.error("Failed to fetch %s nudge: %s", trigger_type, e)
            return None
        if not reply or not reply.get("title") or not reply.get("message"):
            return None
        return Nudge(kind="guru", title=reply["title"], message=reply["message"], ttl_ms=TTL_LONG)

    return action


def _relational_due(state, _target) -> bool:
    return in_window(state, 15, 18) and len(state.key_relationships) > 0


# ════════════════════════════════════════════════════════════
#  7: Anniversary reflection (7 and 30 days after completion)
# ════════════════════════════════════════════════════════════

def days_since(state, moment) -> int:
    """Whole days elapsed from ``moment`` to now (floored)."""
    return int((state.now - moment).total_seconds() // SECONDS_PER_DAY)


def _completed_events(state) -> list:
    return [e for e in state.active_events if e.status == "completed" and e.date is not None]


def _anniversary_due(state, event) -> bool:
    return days_since(state, event.date) in ANNIVERSARY_DAYS


def _anniversary_key(state, event) -> str:
    return f"anniversary_{event.id}_{days_since(state, event.date)}"


def _anniversary_nudge(state, event) -> Nudge:
    days = days_since(state, event.date)
    return Nudge(
        kind="guru",
        title="Path Reflected",
        message=(
            f'It has been {days} days since "{event.title}". '
            f"How has your consciousness shifted since then?"
        ),
        ttl_ms=TTL_MEDIUM,
    )


# ════════════════════════════════════════════════════════════
#  TABLE
# ════════════════════════════════════════════════════════════

def default_rules(advisory) -> list[Rule]:
    """The clock-driven rule table, in the order it is evaluated."""
    return [
        Rule(
            name="morning_routine",
            predicate=_morning_routine_due,
            dedup_key=lambda s, _: f"routine_morning_{s.today}",
            action=_morning_routine_nudge,
        ),
        Rule(
            name="intention_missing",
            predicate=_intention_missing_due,
            dedup_key=lambda s, _: f"intention_missing_{s.today}",
            action=_intention_nudge,
        ),
        Rule(
            name="gratitude_evening",
            predicate=_gratitude_due,
            dedup_key=lambda s, _: f"gratitude_evening_{s.today}",
            action=_gratitude_nudge,
        ),
        Rule(
            name="chaos_detected",
            predicate=_chaos_due,
            dedup_key=_chaos_key,
            action=_chaos_nudge,
        ),
        Rule(
            name="transit_alert",
            predicate=lambda s, _: True,
            dedup_key=lambda s, _: f"transit_alert_{s.today}",
            action=_advisory_action(advisory, TRIGGER_TRANSIT_ALERT),
        ),
        Rule(
            name="relational_nudge",
            predicate=_relational_due,
            dedup_key=lambda s, _: f"relational_nudge_{s.today}",
            action=_advisory_action(advisory, TRIGGER_RELATIONAL),
        ),
        Rule(
            name="anniversary",
            predicate=_anniversary_due,
            dedup_key=_anniversary_key,
            action=_anniversary_nudge,
            targets=_completed_events,
        ),
    ]


# ════════════════════════════════════════════════════════════
#  EVENT-DRIVEN RULES
# ════════════════════════════════════════════════════════════

def _growth_nudge(payload) -> Nudge:
    return Nudge(
        kind="guru",
        title="🎉 You Have Grown!",
        message=payload.contradictions[0],
        ttl_ms=TTL_LONG,
    )


_DASHA_COPY = {
    30: ("A New Chapter Approaches",
         "In 30 days, your {type} of {planet} begins. Let us begin to prepare your soul for this shift."),
    7: ("The Horizon Changes",
        "Only 7 days remain until your {planet} {type}. How are you finishing this current chapter?"),
    0: ("The Shift is Here",
        "Your {planet} {type} has begun today. Step into this new energy with awareness and grace."),
}


def _dasha_type(payload) -> str:
    return DEPTH_NAMES.get(payload.depth, payload.depth)


def _dasha_key(payload, now) -> str:
    return (
        f"dasha_{_dasha_type(payload)}_{payload.label}_"
        f"{payload.days_remaining}_{now.date().isoformat()}"
    )


def _dasha_nudge(payload) -> Nudge:
    title, template = _DASHA_COPY[payload.days_remaining]
    return Nudge(
        kind="guru",
        title=title,
        message=template.format(type=_dasha_type(payload), planet=payload.label),
        ttl_ms=TTL_LONG,
    )


def default_event_rules() -> list[EventRule]:
    return [
        EventRule(
            name="growth_celebration",
            event=GROWTH_DETECTED,
            predicate=lambda p: bool(p and p.contradictions),
            action=_growth_nudge,
        ),
        EventRule(
            name="period_transition",
            event=PERIOD_TRANSITION_APPROACHING,
            predicate=lambda p: p is not None and p.days_remaining in DASHA_COUNTDOWN_DAYS,
            action=_dasha_nudge,
            dedup_key=_dasha_key,
        ),
    ]
