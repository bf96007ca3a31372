from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from adapters.notification_formatting import NotificationRenderer
from adapters.sqlite_storage import SQLiteStorage
from core.config import DeliveryConfig, SchedulerConfig
from core.dispatcher import DeliveryDispatcher
from core.errors import DeliveryError, PersistenceError
from core.games import Game
from core.models import (
    CandidateCode,
    CodeStatus,
    CycleState,
    DeliveryStatus,
    FetchResult,
    Notification,
)
from core.scheduler import DiscoveryScheduler


class FakeSource:
    def __init__(self, codes: dict[Game, list[tuple[str, str]]]) -> None:
        self._codes = codes
        self.calls: list[Game] = []

    async def fetch(self, game: Game) -> FetchResult:
        self.calls.append(game)
        candidates = tuple(
            CandidateCode(game=game, raw_code=code, rewards_text=rewards)
            for code, rewards in self._codes.get(game, [])
        )
        return FetchResult(game=game, candidates=candidates)


class BlockingSource(FakeSource):
    def __init__(self, codes: dict[Game, list[tuple[str, str]]]) -> None:
        super().__init__(codes)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch(self, game: Game) -> FetchResult:
        self.started.set()
        await self.release.wait()
        return await super().fetch(game)


class RaisingSource(FakeSource):
    async def fetch(self, game: Game) -> FetchResult:
        if game is Game.GENSHIN:
            raise RuntimeError("boom")
        return await super().fetch(game)


class FakeStore:
    def __init__(self, seen: Optional[dict[tuple[Game, str], CodeStatus]] = None) -> None:
        self.records: dict[tuple[Game, str], CodeStatus] = dict(seen or {})
        self.fail_writes = False

    def filter_unseen(self, game: Game, candidates: Iterable[CandidateCode]) -> list[CandidateCode]:
        return [c for c in candidates if (game, c.code) not in self.records]

    def record_new(self, game: Game, candidates: Iterable[CandidateCode]) -> int:
        if self.fail_writes:
            raise PersistenceError("disk full")
        inserted = 0
        for candidate in candidates:
            if (game, candidate.code) not in self.records:
                self.records[(game, candidate.code)] = CodeStatus.ACTIVE
                inserted += 1
        return inserted

    def mark_expired(self, game: Game, codes: Iterable[str]) -> int:
        changed = 0
        for code in codes:
            if (game, code) in self.records:
                self.records[(game, code)] = CodeStatus.EXPIRED
                changed += 1
        return changed


class FakeRegistry:
    def __init__(self, destinations: dict[Game, list[str]]) -> None:
        self._destinations = destinations

    def list_destinations(self, game: Game) -> list[str]:
        return list(self._destinations.get(game, []))


class FakeNotifier:
    def __init__(self, failing: Iterable[str] = ()) -> None:
        self.failing = set(failing)
        self.attempts: dict[str, int] = {}
        self.sent: list[tuple[str, Notification]] = []

    async def send(self, destination: str, notification: Notification) -> None:
        self.attempts[destination] = self.attempts.get(destination, 0) + 1
        if destination in self.failing:
            raise DeliveryError(destination, "chat not found")
        self.sent.append((destination, notification))


def _scheduler(
    games: list[Game],
    source,
    store,
    registry,
    notifier: FakeNotifier,
    config: SchedulerConfig = SchedulerConfig(),
    **kwargs,
) -> DiscoveryScheduler:
    dispatcher = DeliveryDispatcher(NotificationRenderer("markdown"), notifier, DeliveryConfig(max_attempts=3))
    return DiscoveryScheduler(
        games=games,
        source=source,
        store=store,
        registry=registry,
        dispatcher=dispatcher,
        config=config,
        **kwargs,
    )


def test_only_unseen_codes_are_delivered_and_recorded() -> None:
    store = FakeStore({(Game.GENSHIN, "CODE1"): CodeStatus.ACTIVE})
    source = FakeSource({Game.GENSHIN: [("CODE1", "60 Primogems"), ("code2 ", "100 Primogems")]})
    notifier = FakeNotifier()
    scheduler = _scheduler([Game.GENSHIN], source, store, FakeRegistry({Game.GENSHIN: ["@gi"]}), notifier)

    report = asyncio.run(scheduler.trigger())

    assert report is not None
    assert [c.code for c in report.games[Game.GENSHIN].new_codes] == ["CODE2"]
    assert len(notifier.sent) == 1
    assert notifier.sent[0][1].code_lines == ("CODE2",)
    assert "CODE1" not in notifier.sent[0][1].body
    assert (Game.GENSHIN, "CODE2") in store.records
    assert scheduler.state is CycleState.IDLE


def test_failing_destination_is_isolated_and_code_still_recorded() -> None:
    store = FakeStore()
    source = FakeSource({Game.STAR_RAIL: [("STARRAILGIFT", "50 Stellar Jade")]})
    notifier = FakeNotifier(failing=["@broken"])
    registry = FakeRegistry({Game.STAR_RAIL: ["@broken", "@working"]})
    scheduler = _scheduler([Game.STAR_RAIL], source, store, registry, notifier)

    report = asyncio.run(scheduler.trigger())

    outcomes = {o.destination: o for o in report.games[Game.STAR_RAIL].outcomes}
    assert notifier.attempts["@broken"] == 3
    assert outcomes["@broken"].status is DeliveryStatus.FAILED
    assert outcomes["@working"].status is DeliveryStatus.SENT
    assert notifier.attempts["@working"] == 1
    assert store.records[(Game.STAR_RAIL, "STARRAILGIFT")] is CodeStatus.ACTIVE


def test_codes_are_recorded_even_when_every_destination_fails() -> None:
    store = FakeStore()
    source = FakeSource({Game.ZENLESS: [("ZZZ2024", "60 Polychrome")]})
    notifier = FakeNotifier(failing=["@a", "@b"])
    scheduler = _scheduler([Game.ZENLESS], source, store, FakeRegistry({Game.ZENLESS: ["@a", "@b"]}), notifier)

    report = asyncio.run(scheduler.trigger())

    assert all(o.status is DeliveryStatus.FAILED for o in report.games[Game.ZENLESS].outcomes)
    assert report.games[Game.ZENLESS].recorded == 1
    assert (Game.ZENLESS, "ZZZ2024") in store.records


def test_expired_codes_are_not_announced_again() -> None:
    store = FakeStore({(Game.GENSHIN, "OLDCODE"): CodeStatus.EXPIRED})
    source = FakeSource({Game.GENSHIN: [("oldcode", "60 Primogems")]})
    notifier = FakeNotifier()
    scheduler = _scheduler([Game.GENSHIN], source, store, FakeRegistry({Game.GENSHIN: ["@gi"]}), notifier)

    report = asyncio.run(scheduler.trigger())

    assert report.new_code_count == 0
    assert notifier.sent == []
    assert store.records[(Game.GENSHIN, "OLDCODE")] is CodeStatus.EXPIRED


def test_trigger_while_cycle_running_is_dropped() -> None:
    source = BlockingSource({Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")]})
    notifier = FakeNotifier()
    scheduler = _scheduler([Game.GENSHIN], source, FakeStore(), FakeRegistry({}), notifier)

    async def scenario() -> None:
        first = asyncio.create_task(scheduler.trigger())
        await source.started.wait()

        assert scheduler.busy
        assert scheduler.state is CycleState.FETCHING
        assert await scheduler.trigger() is None
        assert source.calls == []

        source.release.set()
        report = await first
        assert report is not None
        assert source.calls == [Game.GENSHIN]
        assert scheduler.state is CycleState.IDLE

        assert await scheduler.trigger() is not None
        assert source.calls == [Game.GENSHIN, Game.GENSHIN]

    asyncio.run(scenario())


def test_fetch_error_only_affects_its_game() -> None:
    source = RaisingSource(
        {
            Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")],
            Game.STAR_RAIL: [("STARRAILGIFT", "50 Stellar Jade")],
        }
    )
    notifier = FakeNotifier()
    registry = FakeRegistry({Game.GENSHIN: ["@gi"], Game.STAR_RAIL: ["@hsr"]})
    store = FakeStore()
    scheduler = _scheduler([Game.GENSHIN, Game.STAR_RAIL], source, store, registry, notifier)

    report = asyncio.run(scheduler.trigger())

    assert report.games[Game.GENSHIN].fetch.error is not None
    assert report.games[Game.GENSHIN].new_codes == []
    assert [dest for dest, _ in notifier.sent] == ["@hsr"]
    assert (Game.STAR_RAIL, "STARRAILGIFT") in store.records


def test_fetch_timeout_yields_empty_result() -> None:
    source = BlockingSource({Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")]})
    notifier = FakeNotifier()
    scheduler = _scheduler(
        [Game.GENSHIN],
        source,
        FakeStore(),
        FakeRegistry({Game.GENSHIN: ["@gi"]}),
        notifier,
        config=SchedulerConfig(fetch_timeout_seconds=0.01),
    )

    report = asyncio.run(scheduler.trigger())

    result = report.games[Game.GENSHIN].fetch
    assert result.candidates == ()
    assert "timed out" in str(result.error)
    assert notifier.sent == []
    assert scheduler.state is CycleState.IDLE


def test_persistence_failure_does_not_break_the_cycle() -> None:
    store = FakeStore()
    store.fail_writes = True
    source = FakeSource({Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")]})
    notifier = FakeNotifier()
    scheduler = _scheduler([Game.GENSHIN], source, store, FakeRegistry({Game.GENSHIN: ["@gi"]}), notifier)

    report = asyncio.run(scheduler.trigger())

    assert len(notifier.sent) == 1
    assert isinstance(report.games[Game.GENSHIN].persistence_error, PersistenceError)
    assert store.records == {}
    assert scheduler.state is CycleState.IDLE
    assert not scheduler.busy


class LockedRegistry(FakeRegistry):
    def __init__(self, destinations: dict[Game, list[str]]) -> None:
        super().__init__(destinations)
        self.locked = True

    def list_destinations(self, game: Game) -> list[str]:
        if self.locked:
            raise PersistenceError("database is locked")
        return super().list_destinations(game)


class BrokenRenderer:
    def render(self, request) -> Notification:
        raise KeyError("template")


def test_destination_lookup_failure_keeps_codes_unseen() -> None:
    store = FakeStore()
    source = FakeSource({Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")]})
    notifier = FakeNotifier()
    registry = LockedRegistry({Game.GENSHIN: ["@gi"]})
    scheduler = _scheduler([Game.GENSHIN], source, store, registry, notifier)

    report = asyncio.run(scheduler.trigger())

    game_report = report.games[Game.GENSHIN]
    assert isinstance(game_report.persistence_error, PersistenceError)
    assert game_report.delivery_skipped
    assert notifier.sent == []
    assert store.records == {}

    # Once the registry recovers the code is announced on the next cycle.
    registry.locked = False
    report = asyncio.run(scheduler.trigger())

    assert [c.code for c in report.games[Game.GENSHIN].new_codes] == ["GENSHINGIFT"]
    assert [dest for dest, _ in notifier.sent] == ["@gi"]
    assert (Game.GENSHIN, "GENSHINGIFT") in store.records


def test_render_failure_keeps_codes_unseen() -> None:
    store = FakeStore()
    source = FakeSource({Game.GENSHIN: [("GENSHINGIFT", "50 Primogems")]})
    notifier = FakeNotifier()
    scheduler = DiscoveryScheduler(
        games=[Game.GENSHIN],
        source=source,
        store=store,
        registry=FakeRegistry({Game.GENSHIN: ["@gi"]}),
        dispatcher=DeliveryDispatcher(BrokenRenderer(), notifier),
    )

    report = asyncio.run(scheduler.trigger())

    game_report = report.games[Game.GENSHIN]
    assert [o.attempts for o in game_report.outcomes] == [0]
    assert game_report.delivery_skipped
    assert notifier.attempts == {}
    assert store.records == {}
    assert scheduler.state is CycleState.IDLE


def test_duplicate_candidates_in_one_fetch_are_collapsed() -> None:
    source = FakeSource({Game.GENSHIN: [("GENSHINGIFT", "first"), ("genshin gift", "second")]})
    notifier = FakeNotifier()
    store = FakeStore()
    scheduler = _scheduler([Game.GENSHIN], source, store, FakeRegistry({Game.GENSHIN: ["@gi"]}), notifier)

    report = asyncio.run(scheduler.trigger())

    new_codes = report.games[Game.GENSHIN].new_codes
    assert [(c.code, c.rewards_text) for c in new_codes] == [("GENSHINGIFT", "first")]
    assert notifier.sent[0][1].code_lines == ("GENSHINGIFT",)


def test_end_to_end_with_sqlite_storage(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "codecast.db"))
    storage.init_db()
    storage.add_destination(Game.ZENLESS, "@zzz_codes")
    source = FakeSource({Game.ZENLESS: [("POLY100", "100 Polychrome")]})
    notifier = FakeNotifier()
    scheduler = _scheduler([Game.ZENLESS], source, storage, storage, notifier)

    report = asyncio.run(scheduler.trigger())

    outcomes = report.games[Game.ZENLESS].outcomes
    assert [(o.destination, o.status) for o in outcomes] == [("@zzz_codes", DeliveryStatus.SENT)]
    assert notifier.sent[0][1].code_lines == ("POLY100",)
    record = storage.get_record(Game.ZENLESS, "POLY100")
    assert record is not None
    assert record.status is CodeStatus.ACTIVE
    assert record.rewards_text == "100 Polychrome"

    # A second cycle finds nothing new.
    second = asyncio.run(scheduler.trigger())
    assert second.new_code_count == 0
    assert len(notifier.sent) == 1


class FakeTimer:
    def __init__(self, on_sleep=None) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []
        self._on_sleep = on_sleep

    def clock(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        if self._on_sleep is not None:
            self._on_sleep(len(self.sleeps))
        # Give launched cycles a chance to run to completion.
        for _ in range(50):
            await asyncio.sleep(0)


def test_run_forever_fires_initial_cycle_then_every_interval() -> None:
    timer = FakeTimer()
    source = FakeSource({})
    scheduler = _scheduler(
        [Game.GENSHIN],
        source,
        FakeStore(),
        FakeRegistry({}),
        FakeNotifier(),
        config=SchedulerConfig(interval_seconds=60, initial_delay_seconds=10),
        clock=timer.clock,
        sleep=timer.sleep,
    )

    asyncio.run(scheduler.run_forever(max_ticks=3))

    assert timer.sleeps == [10, 60, 60, 60]
    assert source.calls == [Game.GENSHIN] * 3


def test_timer_ticks_during_a_running_cycle_are_dropped() -> None:
    source = BlockingSource({})

    def release_after_last_tick(sleep_count: int) -> None:
        if sleep_count == 4:
            source.release.set()

    timer = FakeTimer(on_sleep=release_after_last_tick)
    scheduler = _scheduler(
        [Game.GENSHIN],
        source,
        FakeStore(),
        FakeRegistry({}),
        FakeNotifier(),
        config=SchedulerConfig(interval_seconds=60, initial_delay_seconds=10),
        clock=timer.clock,
        sleep=timer.sleep,
    )

    asyncio.run(scheduler.run_forever(max_ticks=3))

    assert source.calls == [Game.GENSHIN]
    assert timer.sleeps == [10, 60, 60, 60]
    assert scheduler.state is CycleState.IDLE
