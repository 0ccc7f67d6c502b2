"""
Guru — Event Bus
In-process publish/subscribe between the Dasha monitor, the analysis
pipeline and the nudge rules. Not a queue: no buffering, no replay.
"""
import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

logger = logging.getLogger("guru.bus")

PERIOD_TRANSITION_APPROACHING = "period-transition-approaching"
GROWTH_DETECTED = "growth-detected"


@dataclass(frozen=True)
class PeriodTransitionApproaching:
    label: str
    boundary_time: datetime
    depth: str
    days_remaining: int


@dataclass(frozen=True)
class GrowthDetected:
    contradictions: tuple


Handler = Callable[[Any], Any]

# Async subscriber tasks still running; held so they aren't garbage collected
_background: set = set()


class EventBus:
    """Synchronous fan-out to subscribers, in registration order."""

    def __init__(self):
        self._subscribers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, event_name: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a function that removes it again."""
        self._subscribers[event_name].append(handler)

        def unsubscribe():
            handlers = self._subscribers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, []))

    def publish(self, event_name: str, payload: Any = None) -> int:
        """Call every current subscriber for ``event_name``.

        A failing handler is logged and skipped; the others still run.
        Coroutine handlers are scheduled on the running loop.
        Returns how many handlers ran without raising.
        """
        ok = 0
        # Copy: handlers may unsubscribe while we iterate
        for handler in list(self._subscribers.get(event_name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    _schedule(event_name, result)
                ok += 1
            except Exception:
                logger.exception("Subscriber %r failed on %s", handler, event_name)
        return ok


def _schedule(event_name: str, awaitable) -> None:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop to hand it to
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        logger.error("Async subscriber on %s dropped — no running event loop", event_name)
        return
    task = asyncio.ensure_future(awaitable)
    _background.add(task)

    def _done(t: asyncio.Task):
        _background.discard(t)
        if t.cancelled():
            return
        exc = t.exception()
        if exc is not None:
            logger.error("Async subscriber on %s failed: %s", event_name, exc)

    task.add_done_callback(_done)


def publish_growth(bus: EventBus, contradictions) -> bool:
    """Announce patterns the subject has grown past. No-op for an empty list."""
    items = tuple(c for c in (contradictions or []) if c)
    if not items:
        return False
    bus.publish(GROWTH_DETECTED, GrowthDetected(contradictions=items))
    return True
