"""
Guru — Smart Nudges / Trigger Rule Evaluator
Guru reaches out FIRST: morning sadhana, daily sankalpa, evening
gratitude, storm-within check-ins, transit alerts, Sangha check-ins,
anniversaries, growth celebrations and Dasha shifts.

Architecture:
  - Each nudge type is one row in a rule table (see triggers.py)
  - A rule = predicate + dedup key + action, polled on its own cadence
  - A firing ledger makes every dedup key fire at most once per process
  - Event-driven rules hang off the event bus instead of the clock

Ticked every 5 minutes (plus once at startup) by session.py.
"""
import asyncio
import functools
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable, Optional, Union

from guru.sinks import NudgeSink, deliver

logger = logging.getLogger("guru.nudges")

# ── Constants ───────────────────────────────────────────────

DEFAULT_TTL_MS = 5000
DEFAULT_CADENCE = 300          # seconds between evaluations of one rule
CADENCE_SLACK = 5              # timer jitter we still count as "due"


@dataclass(frozen=True)
class Nudge:
    kind: str                  # "guru" | "info" | "success" | "warning" | "error"
    title: str
    message: str
    ttl_ms: int = DEFAULT_TTL_MS


# ════════════════════════════════════════════════════════════
#  FIRING LEDGER: dedup
# ════════════════════════════════════════════════════════════

class FiringLedger:
    """Dedup key → when it fired. Lives as long as the session; never pruned."""

    def __init__(self):
        self._fired: dict[str, datetime] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._fired

    def __len__(self) -> int:
        return len(self._fired)

    def fired_at(self, key: str) -> Optional[datetime]:
        return self._fired.get(key)

    def record(self, key: str, when: datetime) -> None:
        self._fired[key] = when

    def keys(self) -> list[str]:
        return list(self._fired)

    def stats(self, today: Optional[str] = None) -> dict:
        """Nudge statistics for debugging / status display."""
        by_type: dict[str, int] = defaultdict(int)
        for key in self._fired:
            by_type[key.split("_")[0]] += 1
        fired_today = 0
        if today:
            fired_today = sum(1 for ts in self._fired.values() if ts.date().isoformat() == today)
        return {
            "total": len(self._fired),
            "fired_today": fired_today,
            "by_type": dict(by_type),
        }


# ════════════════════════════════════════════════════════════
#  RULES
# ════════════════════════════════════════════════════════════

ActionResult = Union[Optional[Nudge], Awaitable[Optional[Nudge]]]


def single_target(state) -> tuple:
    """Default targets(): the rule has exactly one opportunity per tick."""
    return (None,)


@dataclass(frozen=True)
class Rule:
    """One row of the trigger table.

    ``predicate``, ``dedup_key`` and ``action`` all take ``(state, target)``;
    ``targets(state)`` lists the independent opportunities (one ``None``
    by default, one per life event for anniversaries). ``action`` may be
    a coroutine and may return None for "nothing to say this time".
    """
    name: str
    predicate: Callable[[Any, Any], bool]
    dedup_key: Callable[[Any, Any], str]
    action: Callable[[Any, Any], ActionResult]
    cadence: float = DEFAULT_CADENCE
    targets: Callable[[Any], Iterable[Any]] = single_target


@dataclass(frozen=True)
class EventRule:
    """A rule driven by an event bus message rather than the clock.

    ``dedup_key(payload, now)`` of None means every emission is its own
    occurrence and nothing is written to the ledger.
    """
    name: str
    event: str
    predicate: Callable[[Any], bool]
    action: Callable[[Any], Optional[Nudge]]
    dedup_key: Optional[Callable[[Any, datetime], str]] = None


# ════════════════════════════════════════════════════════════
#  EVALUATOR
# ════════════════════════════════════════════════════════════

class RuleEvaluator:
    """Runs the rule table against a fresh AmbientState each tick.

    Owns the firing ledger. Rules are evaluated concurrently and
    independently; a slow or failing rule never holds up another.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        sink: NudgeSink,
        state_builder: Callable[[datetime], Any],
        clock: Callable[[], datetime],
        event_rules: Iterable[EventRule] = (),
        ledger: Optional[FiringLedger] = None,
    ):
        self.rules = list(rules)
        self.event_rules = list(event_rules)
        self.sink = sink
        self.state_builder = state_builder
        self.clock = clock
        self.ledger = ledger if ledger is not None else FiringLedger()
        self._last_run: dict[str, datetime] = {}
        self._in_flight: set[str] = set()

    # ── Clock-driven rules ──────────────────────────────────

    def _is_due(self, rule: Rule, now: datetime) -> bool:
        last = self._last_run.get(rule.name)
        if last is None:
            return True
        return (now - last).total_seconds() + CADENCE_SLACK >= rule.cadence

    async def _build_state(self, now: datetime):
        state = self.state_builder(now)
        if inspect.isawaitable(state):
            state = await state
        return state

    async def tick(self) -> list[Nudge]:
        """Evaluate every due rule once. Returns the nudges that fired."""
        now = self.clock()
        try:
            state = await self._build_state(now)
        except Exception as e:
            logger.error("Nudge tick skipped — couldn't build ambient state: %s", e)
            return []

        jobs = []
        for rule in self.rules:
            if not self._is_due(rule, now):
                continue
            self._last_run[rule.name] = now
            try:
                targets = list(rule.targets(state))
            except Exception as e:
                logger.error("Rule '%s' couldn't list targets: %s", rule.name, e)
                continue
            for target in targets:
                jobs.append(self._evaluate(rule, state, target))

        if not jobs:
            return []

        results = await asyncio.gather(*jobs)
        fired = [n for n in results if n is not None]
        if fired:
            logger.info("Nudge tick complete — %d fired (%d in ledger)", len(fired), len(self.ledger))
        return fired

    async def _evaluate(self, rule: Rule, state, target) -> Optional[Nudge]:
        try:
            if not rule.predicate(state, target):
                return None
            key = rule.dedup_key(state, target)
        except Exception as e:
            logger.error("Rule '%s' predicate failed: %s", rule.name, e)
            return None

        if key in self.ledger or key in self._in_flight:
            return None

        self._in_flight.add(key)
        try:
            nudge = rule.action(state, target)
            if inspect.isawaitable(nudge):
                nudge = await nudge
            if nudge is not None:
                self._fire(key, nudge, state.now)
            return nudge
        except Exception as e:
            logger.error("Rule '%s' action failed: %s", rule.name, e)
            return None
        finally:
            self._in_flight.discard(key)

    def _fire(self, key: str, nudge: Nudge, now: datetime) -> None:
        deliver(self.sink, nudge)
        self.ledger.record(key, now)
        logger.info("Nudge fired [%s]: %s", key, nudge.title)

    # ── Event-driven rules ──────────────────────────────────

    def attach(self, bus) -> list[Callable[[], None]]:
        """Subscribe every event rule. Returns the unsubscribe functions."""
        return [
            bus.subscribe(rule.event, functools.partial(self.handle_event, rule))
            for rule in self.event_rules
        ]

    def handle_event(self, rule: EventRule, payload) -> Optional[Nudge]:
        now = self.clock()
        try:
            if not rule.predicate(payload):
                return None
            key = rule.dedup_key(payload, now) if rule.dedup_key else None
            if key is not None and key in self.ledger:
                return None
            nudge = rule.action(payload)
        except Exception as e:
            logger.error("Event rule '%s' failed: %s", rule.name, e)
            return None

        if nudge is None:
            return None
        if key is None:
            deliver(self.sink, nudge)
            logger.info("Nudge fired [%s]: %s", rule.name, nudge.title)
        else:
            self._fire(key, nudge, now)
        return nudge

    def stats(self) -> dict:
        return self.ledger.stats(self.clock().date().isoformat())
