"""Manual code entry posted by an operator (core domain).

Operators post `CODE1 reward-text-1,CODE2 reward-text-2` in an input chat that
is mapped to a game. The handler checks the sender against a single allowed
identity, parses the text and hands the codes straight to the dispatcher,
skipping the fetch and diff steps of a discovery cycle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from core.dispatcher import DeliveryDispatcher
from core.errors import MalformedInputError, PersistenceError
from core.games import Game
from core.models import CandidateCode, DeliveryOutcome
from core.normalize import is_valid_code
from core.ports import DestinationRegistryPort, SeenCodeStorePort

LOGGER = logging.getLogger(__name__)


def parse_manual_entry(text: str, game: Game) -> list[CandidateCode]:
    """Parse a comma-separated list of `CODE reward text` entries.

    Raises MalformedInputError if any entry lacks a usable code token.
    """

    entries = text.split(",")
    candidates: list[CandidateCode] = []
    for index, entry in enumerate(entries, start=1):
        parts = entry.strip().split(None, 1)
        if not parts:
            raise MalformedInputError(f"Entry {index} is empty")
        token = parts[0].upper()
        if not is_valid_code(token):
            raise MalformedInputError(f"Entry {index} has no valid code: {parts[0]!r}")
        rewards = parts[1].strip() if len(parts) > 1 else ""
        candidates.append(CandidateCode(game=game, raw_code=token, rewards_text=rewards))
    return candidates


def _normalize_identity(value: str) -> str:
    return value.strip().lstrip("@").lower()


class ManualEntryStatus(str, Enum):
    IGNORED = "ignored"
    UNAUTHORIZED = "unauthorized"
    REJECTED = "rejected"
    DELIVERED = "delivered"


@dataclass(frozen=True)
class ManualEntry:
    """Integration-agnostic view of an operator message."""

    chat_keys: tuple[str, ...]
    sender: Optional[str]
    text: str


@dataclass
class ManualEntryResult:
    status: ManualEntryStatus
    game: Optional[Game] = None
    codes: list[CandidateCode] = field(default_factory=list)
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    error: Optional[MalformedInputError] = None


class ManualEntryHandler:
    """Routes operator messages from input chats to the dispatcher."""

    def __init__(
        self,
        input_chats: dict[str, Game],
        operator: str,
        dispatcher: DeliveryDispatcher,
        registry: DestinationRegistryPort,
        store: Optional[SeenCodeStorePort] = None,
    ) -> None:
        self._input_chats = dict(input_chats)
        self._operator = _normalize_identity(operator)
        self._dispatcher = dispatcher
        self._registry = registry
        # Recording is optional; without a store manual codes are never marked seen.
        self._store = store

    def watches(self, chat_keys: tuple[str, ...]) -> bool:
        return self._game_for(chat_keys) is not None

    def _game_for(self, chat_keys: tuple[str, ...]) -> Optional[Game]:
        for key in chat_keys:
            if key in self._input_chats:
                return self._input_chats[key]
        return None

    async def handle(self, entry: ManualEntry) -> ManualEntryResult:
        game = self._game_for(entry.chat_keys)
        if game is None:
            return ManualEntryResult(status=ManualEntryStatus.IGNORED)

        if not entry.sender or _normalize_identity(entry.sender) != self._operator:
            LOGGER.warning("Unauthorized manual entry in %s from %s", entry.chat_keys[0], entry.sender)
            return ManualEntryResult(status=ManualEntryStatus.UNAUTHORIZED, game=game)

        try:
            codes = parse_manual_entry(entry.text, game)
        except MalformedInputError as exc:
            LOGGER.info("Rejected manual entry in %s: %s", entry.chat_keys[0], exc)
            return ManualEntryResult(status=ManualEntryStatus.REJECTED, game=game, error=exc)

        reached = True
        try:
            destinations = self._registry.list_destinations(game)
        except PersistenceError as exc:
            LOGGER.error("Destination lookup failed for %s: %s", game.value, exc)
            destinations = []
            reached = False
        outcomes = await self._dispatcher.deliver(game, codes, destinations)
        if outcomes and not any(outcome.attempted for outcome in outcomes):
            reached = False

        # Codes that never reached a destination stay unseen for the scheduler.
        if self._store is not None and reached:
            try:
                self._store.record_new(game, codes)
            except PersistenceError as exc:
                LOGGER.error("Failed to record manual %s codes: %s", game.value, exc)

        return ManualEntryResult(
            status=ManualEntryStatus.DELIVERED,
            game=game,
            codes=codes,
            outcomes=outcomes,
        )
