"""Discovery scheduler.

Each cycle runs the strict order:
1) Fetch candidates for every game concurrently
2) Normalize and diff against the seen-code store
3) Deliver new codes to the game's registered destinations
4) Record the new codes as seen, whatever the delivery outcome, unless the
   batch never reached a destination (lookup or rendering failed)

Only one cycle runs at a time. Triggers that arrive while a cycle is in
progress are dropped, not queued. Recording happens after delivery, so a crash
between steps 3 and 4 can repeat an announcement but never lose a fresh code.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from core.config import SchedulerConfig
from core.dispatcher import DeliveryDispatcher
from core.errors import PersistenceError, SourceFetchError
from core.games import Game
from core.models import CycleReport, CycleState, FetchResult, GameCycleReport
from core.normalize import dedupe_candidates
from core.ports import DestinationRegistryPort, SeenCodeStorePort, SourcePort

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscoveryScheduler:
    """Drives discovery cycles with single-flight execution."""

    def __init__(
        self,
        games: Iterable[Game],
        source: SourcePort,
        store: SeenCodeStorePort,
        registry: DestinationRegistryPort,
        dispatcher: DeliveryDispatcher,
        config: SchedulerConfig = SchedulerConfig(),
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._games = list(games)
        self._source = source
        self._store = store
        self._registry = registry
        self._dispatcher = dispatcher
        self._config = config
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._state = CycleState.IDLE
        self._tasks: set[asyncio.Task] = set()
        self.last_report: Optional[CycleReport] = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def trigger(self) -> Optional[CycleReport]:
        """Run one cycle now, or return None if a cycle is already running."""

        if self._lock.locked():
            LOGGER.info("Discovery cycle already in progress; trigger dropped")
            return None

        async with self._lock:
            try:
                report = await self._run_cycle()
            finally:
                self._state = CycleState.IDLE
        self.last_report = report
        return report

    async def run_forever(self, max_ticks: Optional[int] = None) -> None:
        """Fire one cycle after the initial delay, then one per interval.

        Ticks are scheduled on the monotonic clock, so a slow cycle does not
        push later ticks back. Each tick starts its cycle as a task; a tick
        that lands on a running cycle is dropped.
        """

        await self._sleep(self._config.initial_delay_seconds)
        LOGGER.info(
            "Discovery scheduler started (every %ss, games=%s)",
            self._config.interval_seconds,
            ",".join(game.value for game in self._games),
        )
        next_tick = self._clock()
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            self._launch()
            ticks += 1
            next_tick += self._config.interval_seconds
            await self._sleep(max(0.0, next_tick - self._clock()))
        await self.wait_idle()

    async def wait_idle(self) -> None:
        """Wait for cycles started by the timer to finish."""

        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _launch(self) -> None:
        if self._lock.locked():
            LOGGER.info("Timer tick skipped; previous cycle still running")
            return
        task = asyncio.create_task(self._guarded_trigger())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded_trigger(self) -> None:
        # The timer must keep ticking whatever happens inside a cycle.
        try:
            await self.trigger()
        except Exception:
            LOGGER.exception("Discovery cycle failed")

    async def _run_cycle(self) -> CycleReport:
        report = CycleReport(started_at=_utcnow())
        LOGGER.info("Checking for new codes...")

        self._state = CycleState.FETCHING
        results = await asyncio.gather(*(self._fetch(game) for game in self._games))

        self._state = CycleState.DIFFING
        for result in results:
            game_report = report.for_game(result.game)
            game_report.fetch = result
            if result.candidates:
                self._diff(game_report, result)

        pending = [game_report for game_report in report.games.values() if game_report.new_codes]

        self._state = CycleState.DELIVERING
        for game_report in pending:
            await self._deliver(game_report)

        self._state = CycleState.PERSISTING
        for game_report in pending:
            self._persist(game_report)

        report.finished_at = _utcnow()
        LOGGER.info("Check complete: %s new code(s)", report.new_code_count)
        return report

    async def _fetch(self, game: Game) -> FetchResult:
        try:
            result = await asyncio.wait_for(
                self._source.fetch(game),
                timeout=self._config.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = SourceFetchError(game.value, "fetch timed out")
            LOGGER.warning("%s", error)
            return FetchResult(game=game, error=error)
        except Exception as exc:
            LOGGER.exception("Source adapter raised for %s", game.value)
            return FetchResult(game=game, error=SourceFetchError(game.value, str(exc)))
        return result

    def _diff(self, game_report: GameCycleReport, result: FetchResult) -> None:
        game = game_report.game
        candidates = dedupe_candidates(result.candidates)
        try:
            unseen = self._store.filter_unseen(game, candidates)
        except PersistenceError as exc:
            LOGGER.error("Skipping %s this cycle; seen-code lookup failed: %s", game.value, exc)
            game_report.persistence_error = exc
            return
        if unseen:
            LOGGER.info("Found %s new %s code(s)", len(unseen), game.value)
        game_report.new_codes = unseen

    async def _deliver(self, game_report: GameCycleReport) -> None:
        game = game_report.game
        try:
            destinations = self._registry.list_destinations(game)
        except PersistenceError as exc:
            LOGGER.error("Holding %s codes until next cycle; destination lookup failed: %s", game.value, exc)
            game_report.persistence_error = exc
            game_report.delivery_skipped = True
            return
        try:
            game_report.outcomes = await self._dispatcher.deliver(game, game_report.new_codes, destinations)
        except Exception:
            LOGGER.exception("Delivery for %s aborted", game.value)
            game_report.delivery_skipped = True
            return
        if game_report.outcomes and not any(outcome.attempted for outcome in game_report.outcomes):
            LOGGER.error("No %s destination was attempted; codes stay unseen", game.value)
            game_report.delivery_skipped = True

    def _persist(self, game_report: GameCycleReport) -> None:
        game = game_report.game
        if game_report.delivery_skipped:
            return
        try:
            game_report.recorded = self._store.record_new(game, game_report.new_codes)
        except PersistenceError as exc:
            # The codes stay unseen and will be announced again next cycle.
            LOGGER.error("Failed to record %s codes: %s", game.value, exc)
            game_report.persistence_error = exc
