from __future__ import annotations

import asyncio

import pytest

from adapters.notification_formatting import NotificationRenderer
from core.dispatcher import DeliveryDispatcher
from core.errors import USAGE_MESSAGE, MalformedInputError, PersistenceError
from core.games import Game
from core.manual_entry import ManualEntry, ManualEntryHandler, ManualEntryStatus, parse_manual_entry
from core.models import CandidateCode, DeliveryStatus, Notification


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, Notification]] = []

    async def send(self, destination: str, notification: Notification) -> None:
        self.sent.append((destination, notification))


class FakeRegistry:
    def __init__(self, destinations: dict[Game, list[str]]) -> None:
        self._destinations = destinations

    def list_destinations(self, game: Game) -> list[str]:
        return list(self._destinations.get(game, []))


class FakeStore:
    def __init__(self, fail_writes: bool = False) -> None:
        self.recorded: list[tuple[Game, list[str]]] = []
        self.fail_writes = fail_writes

    def record_new(self, game: Game, candidates: list[CandidateCode]) -> int:
        if self.fail_writes:
            raise PersistenceError("disk full")
        self.recorded.append((game, [c.code for c in candidates]))
        return len(candidates)


def _handler(store=None) -> tuple[ManualEntryHandler, RecordingNotifier]:
    notifier = RecordingNotifier()
    dispatcher = DeliveryDispatcher(NotificationRenderer("markdown"), notifier)
    handler = ManualEntryHandler(
        input_chats={"@gi_input": Game.GENSHIN, "chat_id:-100555": Game.STAR_RAIL},
        operator="@Operator",
        dispatcher=dispatcher,
        registry=FakeRegistry({Game.GENSHIN: ["@gi_codes", "chat_id:-100777"]}),
        store=store,
    )
    return handler, notifier


def test_parse_manual_entry() -> None:
    codes = parse_manual_entry("abc123 60 Primogems, DEF456 Hero's Wit x3,GHI789", Game.GENSHIN)

    assert [(c.code, c.rewards_text) for c in codes] == [
        ("ABC123", "60 Primogems"),
        ("DEF456", "Hero's Wit x3"),
        ("GHI789", ""),
    ]


@pytest.mark.parametrize("text", ["", "ABC123 reward,,DEF456 reward", "ABC-123 reward", "   "])
def test_parse_manual_entry_rejects_malformed_input(text: str) -> None:
    with pytest.raises(MalformedInputError) as excinfo:
        parse_manual_entry(text, Game.GENSHIN)
    assert excinfo.value.usage == USAGE_MESSAGE


def test_messages_outside_input_chats_are_ignored() -> None:
    handler, notifier = _handler()

    result = asyncio.run(handler.handle(ManualEntry(("@general",), "operator", "ABC123 x")))

    assert result.status is ManualEntryStatus.IGNORED
    assert notifier.sent == []
    assert not handler.watches(("@general",))


def test_unauthorized_sender_is_refused() -> None:
    handler, notifier = _handler()

    result = asyncio.run(handler.handle(ManualEntry(("@gi_input",), "someone_else", "ABC123 x")))
    anonymous = asyncio.run(handler.handle(ManualEntry(("@gi_input",), None, "ABC123 x")))

    assert result.status is ManualEntryStatus.UNAUTHORIZED
    assert anonymous.status is ManualEntryStatus.UNAUTHORIZED
    assert notifier.sent == []


def test_malformed_entry_is_rejected_with_usage() -> None:
    handler, notifier = _handler()

    result = asyncio.run(handler.handle(ManualEntry(("@gi_input",), "operator", "ABC123 x,,")))

    assert result.status is ManualEntryStatus.REJECTED
    assert result.game is Game.GENSHIN
    assert result.error.usage == USAGE_MESSAGE
    assert notifier.sent == []


def test_valid_entry_is_delivered_and_recorded() -> None:
    store = FakeStore()
    handler, notifier = _handler(store)
    entry = ManualEntry(("@gi_input", "chat_id:-100999"), "OPERATOR", "abc123 60 Primogems,DEF456 Mora")

    result = asyncio.run(handler.handle(entry))

    assert result.status is ManualEntryStatus.DELIVERED
    assert [c.code for c in result.codes] == ["ABC123", "DEF456"]
    assert [o.status for o in result.outcomes] == [DeliveryStatus.SENT, DeliveryStatus.SENT]
    assert [dest for dest, _ in notifier.sent] == ["@gi_codes", "chat_id:-100777"]
    assert notifier.sent[0][1].code_lines == ("ABC123", "DEF456")
    assert store.recorded == [(Game.GENSHIN, ["ABC123", "DEF456"])]


def test_chat_id_key_matches_when_chat_has_username() -> None:
    handler, notifier = _handler()

    result = asyncio.run(handler.handle(ManualEntry(("@hsr_input", "chat_id:-100555"), "operator", "HSR2024 x")))

    # Star Rail has no destinations registered.
    assert result.status is ManualEntryStatus.DELIVERED
    assert result.game is Game.STAR_RAIL
    assert result.outcomes == []


def test_recording_failure_does_not_undo_delivery() -> None:
    handler, notifier = _handler(FakeStore(fail_writes=True))

    result = asyncio.run(handler.handle(ManualEntry(("@gi_input",), "operator", "ABC123 x")))

    assert result.status is ManualEntryStatus.DELIVERED
    assert len(notifier.sent) == 2


class LockedRegistry:
    def list_destinations(self, game: Game) -> list[str]:
        raise PersistenceError("database is locked")


def test_codes_are_not_recorded_when_destination_lookup_fails() -> None:
    store = FakeStore()
    notifier = RecordingNotifier()
    handler = ManualEntryHandler(
        input_chats={"@gi_input": Game.GENSHIN},
        operator="operator",
        dispatcher=DeliveryDispatcher(NotificationRenderer("markdown"), notifier),
        registry=LockedRegistry(),
        store=store,
    )

    result = asyncio.run(handler.handle(ManualEntry(("@gi_input",), "operator", "ABC123 x")))

    assert result.status is ManualEntryStatus.DELIVERED
    assert result.outcomes == []
    assert notifier.sent == []
    assert store.recorded == []


class BrokenRenderer:
    def render(self, request) -> Notification:
        raise KeyError("template")


def test_codes_are_not_recorded_when_rendering_fails() -> None:
    store = FakeStore()
    notifier = RecordingNotifier()
    handler = ManualEntryHandler(
        input_chats={"@gi_input": Game.GENSHIN},
        operator="operator",
        dispatcher=DeliveryDispatcher(BrokenRenderer(), notifier),
        registry=FakeRegistry({Game.GENSHIN: ["@gi_codes"]}),
        store=store,
    )

    result = asyncio.run(handler.handle(ManualEntry(("@gi_input",), "operator", "ABC123 x")))

    assert [o.status for o in result.outcomes] == [DeliveryStatus.FAILED]
    assert notifier.sent == []
    assert store.recorded == []
