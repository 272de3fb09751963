"""
Drink ledger: the session's drink log, its cached BAC estimate, and the timer
that keeps elimination moving when nothing new is logged.
"""

import asyncio
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from safenight import calculations, config
from safenight.calculations import BACEstimate
from safenight.drinks import DEFAULT_DRINK, DrinkEvent, get_preset
from safenight.errors import ParseFailure, UnknownDrinkType
from safenight.parsing import DrinkParser, KeywordDrinkParser, coerce_drink_fields

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TodayView:
    """Drinks logged on the caller's current local calendar day.

    Each iteration takes a fresh snapshot, so the view can be walked again
    after the ledger changes.
    """

    def __init__(self, ledger: "DrinkLedger", now: Optional[datetime] = None):
        self._ledger = ledger
        self._now = now

    def __iter__(self) -> Iterator[DrinkEvent]:
        now = self._now or self._ledger.clock()
        today = now.astimezone().date()
        for event in self._ledger.events:
            if event.logged_at.astimezone().date() == today:
                yield event

    def __len__(self) -> int:
        return sum(1 for _ in self)


class DrinkLedger:
    """Insertion-ordered drink events for one session, keyed by id.

    All mutations and recalculations go through one lock, so the periodic
    recalculation always reads a consistent snapshot.
    """

    def __init__(
        self,
        weight_lb: float,
        ratio: float,
        parser: Optional[DrinkParser] = None,
        clock: Clock = _utcnow,
    ):
        if weight_lb <= 0:
            raise ValueError("weight_lb must be > 0")
        self.weight_lb = weight_lb
        self.ratio = ratio
        self.clock = clock
        self._parser = parser or KeywordDrinkParser()
        self._events: Dict[str, DrinkEvent] = {}
        self._lock = threading.RLock()
        self._current_bac = calculations.estimate_bac([], weight_lb, ratio, clock())

    @property
    def events(self) -> List[DrinkEvent]:
        with self._lock:
            return list(self._events.values())

    @property
    def current_bac(self) -> BACEstimate:
        with self._lock:
            return self._current_bac

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __contains__(self, drink_id: str) -> bool:
        with self._lock:
            return drink_id in self._events

    def set_body(self, weight_lb: float, ratio: float) -> BACEstimate:
        if weight_lb <= 0:
            raise ValueError("weight_lb must be > 0")
        with self._lock:
            self.weight_lb = weight_lb
            self.ratio = ratio
            return self.recalculate()

    def recalculate(self, now: Optional[datetime] = None) -> BACEstimate:
        now = now or self.clock()
        with self._lock:
            self._current_bac = calculations.estimate_bac(
                self._events.values(), self.weight_lb, self.ratio, now
            )
            return self._current_bac

    def log(self, event: DrinkEvent) -> DrinkEvent:
        with self._lock:
            if event.id in self._events:
                raise ValueError(f"duplicate drink id: {event.id}")
            self._events[event.id] = event
            self.recalculate()
        logger.info("Logged %s (%.1f oz, %.0f%%)", event.alcohol_type, event.volume_oz, event.abv * 100)
        return event

    def log_quick(
        self,
        drink_type: str,
        user_id: str,
        plan_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DrinkEvent:
        preset = get_preset(drink_type)
        if preset is None:
            raise UnknownDrinkType(f"no preset for drink type {drink_type!r}")
        event = DrinkEvent(
            user_id=user_id,
            plan_id=plan_id,
            name=preset.label,
            alcohol_type=preset.key,
            volume_oz=preset.volume_oz,
            abv=preset.abv,
            logged_at=now or self.clock(),
        )
        return self.log(event)

    async def parse(self, description: str) -> dict:
        """Structured fields for a description; raises ParseFailure."""
        try:
            raw = await asyncio.wait_for(
                self._parser.parse_drink_text(description), timeout=config.parse_timeout_s()
            )
        except asyncio.TimeoutError:
            raise ParseFailure("drink parser timed out") from None
        except ParseFailure:
            raise
        except Exception as exc:
            raise ParseFailure(f"drink parser failed: {exc}") from exc
        return coerce_drink_fields(raw, description)

    async def log_from_text(
        self,
        description: str,
        user_id: str,
        plan_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DrinkEvent:
        try:
            fields = await self.parse(description)
        except ParseFailure as exc:
            logger.warning("Drink parse failed, logging default drink: %s", exc)
            fields = {
                "name": description.strip() or DEFAULT_DRINK.label,
                "alcohol_type": DEFAULT_DRINK.key,
                "volume_oz": DEFAULT_DRINK.volume_oz,
                "abv": DEFAULT_DRINK.abv,
            }
        event = DrinkEvent(user_id=user_id, plan_id=plan_id, logged_at=now or self.clock(), **fields)
        return self.log(event)

    async def log_by_voice(
        self,
        recorder,
        transcriber,
        user_id: str,
        plan_id: Optional[str] = None,
        duration_s: float = 3.0,
    ) -> DrinkEvent:
        """Record a short clip, transcribe it and log the described drink."""
        handle = await recorder.start()
        try:
            await asyncio.sleep(duration_s)
        except BaseException:
            await recorder.discard(handle)
            raise
        audio = await recorder.stop(handle)
        result = await transcriber.transcribe(audio)
        if not result.text.strip():
            raise ParseFailure("could not transcribe audio")
        return await self.log_from_text(result.text, user_id, plan_id)

    def remove(self, drink_id: str) -> bool:
        with self._lock:
            removed = self._events.pop(drink_id, None) is not None
            if removed:
                self.recalculate()
        return removed

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self.recalculate()

    def today(self, now: Optional[datetime] = None) -> TodayView:
        return TodayView(self, now)

    def curve(self, start: datetime, end: datetime, step_minutes: float = 15.0):
        return calculations.bac_curve(self.events, self.weight_lb, self.ratio, start, end, step_minutes)


class RecalculationTimer:
    """Background task recalculating the ledger's estimate every ``interval_s``."""

    def __init__(self, ledger: DrinkLedger, interval_s: Optional[float] = None):
        self._ledger = ledger
        self.interval_s = interval_s if interval_s is not None else config.recalc_interval_s()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; must be called from inside a running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_s)
            estimate = self._ledger.recalculate()
            logger.debug("Periodic BAC recalculation: %.4f", estimate.bac)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
