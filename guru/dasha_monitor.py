"""
Guru — Dasha Monitor
Watches the subject's Vimshottari timeline for an upcoming Mahadasha /
Antardasha shift and announces it on the event bus so the period
transition rule can prepare the subject.

Driven from outside (session.py): once at startup, then hourly.
The cooldown below makes extra ticks free.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

from guru.events import PERIOD_TRANSITION_APPROACHING, EventBus, PeriodTransitionApproaching
from guru.periods import POLICY_FIRST_LISTED, Transition, find_next_boundary
from guru.profiles import birth_data_from

logger = logging.getLogger("guru.dasha")

POLL_COOLDOWN = 3600           # seconds, at most one real fetch per hour
LOOKAHEAD_DAYS = 35
SECONDS_PER_DAY = 86400


def days_until(boundary: datetime, now: datetime) -> int:
    """Whole days to the boundary, rounded up."""
    return math.ceil((boundary - now).total_seconds() / SECONDS_PER_DAY)


class TransitionPoller:
    """Rate-limited fetch → scan → publish loop body for one subject."""

    def __init__(
        self,
        chart_service,
        bus: EventBus,
        clock: Callable[[], datetime],
        cooldown: float = POLL_COOLDOWN,
        lookahead_days: int = LOOKAHEAD_DAYS,
        policy: str = POLICY_FIRST_LISTED,
    ):
        self.chart_service = chart_service
        self.bus = bus
        self.clock = clock
        self.cooldown = cooldown
        self.lookahead_days = lookahead_days
        self.policy = policy
        self.last_poll: Optional[datetime] = None
        self.upcoming: Optional[Transition] = None
        self.timeline: list = []

    def _cooling_down(self, now: datetime) -> bool:
        if self.last_poll is None:
            return False
        return (now - self.last_poll).total_seconds() < self.cooldown

    async def tick(self, profile: Optional[dict]) -> Optional[PeriodTransitionApproaching]:
        """One poll. Never raises; returns the published payload, if any."""
        now = self.clock()
        if self._cooling_down(now):
            return None
        # Claim the slot before any I/O so overlapping ticks can't double-fetch
        self.last_poll = now

        birth_data = birth_data_from(profile)
        if birth_data is None:
            logger.debug("Dasha monitor idle — profile has no dob/tob")
            return None

        try:
            timeline = await self.chart_service.get_periods(birth_data)
        except Exception as e:
            logger.error(f"Dasha monitor fetch failed: {e}")
            return None
        self.timeline = list(timeline)

        horizon = now + timedelta(days=self.lookahead_days)
        try:
            transition = find_next_boundary(timeline, now, horizon, self.policy)
        except Exception as e:
            logger.error(f"Dasha monitor couldn't scan timeline: {e}")
            return None

        if transition is None:
            logger.debug(f"No Dasha shift in the next {self.lookahead_days} days")
            return None

        self.upcoming = transition
        payload = PeriodTransitionApproaching(
            label=transition.label,
            boundary_time=transition.boundary_time,
            depth=transition.depth,
            days_remaining=days_until(transition.boundary_time, now),
        )
        logger.info(
            f"Dasha shift approaching: {transition.label} {transition.type_name} "
            f"in {payload.days_remaining} day(s)"
        )
        self.bus.publish(PERIOD_TRANSITION_APPROACHING, payload)
        return payload
