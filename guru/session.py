"""
Guru — Nudge Session
Everything one subject's proactive nudging needs, owned in one place:
the firing ledger, the evaluator, the Dasha monitor, their recurring
schedules and their event bus subscriptions.

stop() tears all of it down so nothing fires for a subject who left.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from guru.dasha_monitor import TransitionPoller
from guru.events import EventBus
from guru.nudges import FiringLedger, RuleEvaluator
from guru.periods import POLICY_FIRST_LISTED
from guru.sinks import NudgeSink
from guru.state import build_ambient_state
from guru.triggers import default_event_rules, default_rules

logger = logging.getLogger("guru.session")

EVALUATE_INTERVAL = 300        # 5 minutes
POLL_INTERVAL = 3600           # 1 hour


class NudgeSession:
    """Proactive nudging for one subject."""

    def __init__(
        self,
        subject_id: str,
        *,
        profiles,
        chart_service,
        advisory,
        sink: NudgeSink,
        clock: Callable[[], datetime],
        bus: Optional[EventBus] = None,
        evaluate_interval: float = EVALUATE_INTERVAL,
        poll_interval: float = POLL_INTERVAL,
        lookahead_days: int = 35,
        scanner_policy: str = POLICY_FIRST_LISTED,
    ):
        self.subject_id = subject_id
        self.profiles = profiles
        self.bus = bus if bus is not None else EventBus()
        self.clock = clock
        self.evaluate_interval = evaluate_interval
        self.poll_interval = poll_interval

        self.ledger = FiringLedger()
        self.evaluator = RuleEvaluator(
            rules=default_rules(advisory),
            event_rules=default_event_rules(),
            sink=sink,
            state_builder=self._build_state,
            clock=clock,
            ledger=self.ledger,
        )
        self.poller = TransitionPoller(
            chart_service,
            self.bus,
            clock,
            cooldown=poll_interval,
            lookahead_days=lookahead_days,
            policy=scanner_policy,
        )

        self._unsubscribers: list[Callable[[], None]] = []
        self._loops: list[asyncio.Task] = []
        self._ticks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return bool(self._loops)

    def _build_state(self, now: datetime):
        return build_ambient_state(
            now,
            self.subject_id,
            self.profiles.get_atman(self.subject_id),
            self.profiles.get_profile(self.subject_id),
            periods=self.poller.timeline,
        )

    # ── Single ticks ────────────────────────────────────────

    async def evaluate_once(self):
        return await self.evaluator.tick()

    async def poll_once(self):
        try:
            profile = self.profiles.get_profile(self.subject_id)
        except Exception as e:
            logger.error(f"Couldn't read profile for {self.subject_id}: {e}")
            return None
        return await self.poller.tick(profile)

    # ── Lifecycle ───────────────────────────────────────────

    def start(self) -> None:
        """Subscribe the event rules and start both recurring schedules.

        Call from inside the running event loop.
        """
        if self.running:
            return
        self._unsubscribers = self.evaluator.attach(self.bus)
        self._loops = [
            asyncio.create_task(self._every(self.evaluate_interval, self.evaluate_once, "evaluate")),
            asyncio.create_task(self._every(self.poll_interval, self.poll_once, "poll")),
        ]
        logger.info(
            f"🌸 Nudge session started for {self.subject_id} — rules every "
            f"{self.evaluate_interval}s, Dasha check every {self.poll_interval}s"
        )

    async def stop(self) -> None:
        """Cancel schedules and in-flight ticks, drop bus subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        pending = self._loops + list(self._ticks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._loops = []
        self._ticks.clear()
        stats = self.evaluator.stats()
        logger.info(
            f"Nudge session stopped for {self.subject_id} — "
            f"{stats['fired_today']} fired today, {stats['total']} in ledger"
        )

    async def _every(self, interval: float, tick_fn, label: str):
        """Run ``tick_fn`` now and then every ``interval`` seconds.

        Each tick is its own task, so a hung external call only stalls
        the tick that made it.
        """
        while True:
            task = asyncio.create_task(self._guarded(tick_fn, label))
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(interval)

    @staticmethod
    async def _guarded(tick_fn, label: str):
        try:
            await tick_fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Nudge session {label} tick error: {e}")
