"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for sources, storage, rendering and
notification adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from core.games import Game
from core.models import (
    CandidateCode,
    CodeStatus,
    FetchResult,
    Notification,
    NotificationRequest,
    SeenCodeRecord,
)


class SourcePort(Protocol):
    """Fetches candidate codes for one game. Must never raise."""

    async def fetch(self, game: Game) -> FetchResult:
        ...


class SeenCodeStorePort(Protocol):
    """Persisted history of announced codes."""

    def filter_unseen(self, game: Game, candidates: Iterable[CandidateCode]) -> list[CandidateCode]:
        ...

    def record_new(self, game: Game, candidates: Iterable[CandidateCode]) -> int:
        ...

    def mark_expired(self, game: Game, codes: Iterable[str]) -> int:
        ...

    def get_record(self, game: Game, code: str) -> Optional[SeenCodeRecord]:
        ...

    def list_records(self, game: Game, status: Optional[CodeStatus] = None) -> list[SeenCodeRecord]:
        ...


class DestinationRegistryPort(Protocol):
    """Read access to the destinations registered for each game."""

    def list_destinations(self, game: Game) -> list[str]:
        ...


class RendererPort(Protocol):
    """Turns a batch of new codes into a deliverable notification."""

    def render(self, request: NotificationRequest) -> Notification:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the dispatcher. Raises on failure."""

    async def send(self, destination: str, notification: Notification) -> None:
        ...
