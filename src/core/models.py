"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from core.errors import PersistenceError, SourceFetchError
from core.games import Game
from core.normalize import normalize_code


class CodeStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class DeliveryStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class CycleState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    DELIVERING = "delivering"
    PERSISTING = "persisting"


@dataclass(frozen=True)
class CandidateCode:
    """A code/reward pair freshly fetched from a source."""

    game: Game
    raw_code: str
    rewards_text: str = ""

    @property
    def code(self) -> str:
        return normalize_code(self.raw_code)


@dataclass(frozen=True)
class SeenCodeRecord:
    """Persisted representation of a code that has already been announced."""

    game: Game
    code: str
    rewards_text: str
    status: CodeStatus
    discovered_at: datetime


@dataclass(frozen=True)
class FetchResult:
    """Outcome of one source fetch. Failures carry an error and no candidates."""

    game: Game
    candidates: tuple[CandidateCode, ...] = ()
    error: Optional[SourceFetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CodeEntry:
    """One line of a rendered notification."""

    code: str
    rewards_text: str
    redeem_url: Optional[str]


@dataclass(frozen=True)
class NotificationRequest:
    """Everything a renderer needs to announce a batch of codes for one game."""

    game: Game
    codes: tuple[CodeEntry, ...]

    @classmethod
    def from_candidates(cls, game: Game, candidates: list[CandidateCode]) -> "NotificationRequest":
        info = game.info
        return cls(
            game=game,
            codes=tuple(
                CodeEntry(
                    code=candidate.code,
                    rewards_text=candidate.rewards_text,
                    redeem_url=info.redeem_url(candidate.code),
                )
                for candidate in candidates
            ),
        )


@dataclass(frozen=True)
class Notification:
    """Rendered message body plus plain code strings sent as separate messages."""

    body: str
    code_lines: tuple[str, ...] = ()


@dataclass(frozen=True)
class DeliveryOutcome:
    """Per-destination delivery result."""

    destination: str
    status: DeliveryStatus
    attempts: int
    error: Optional[str] = None

    @property
    def attempted(self) -> bool:
        return self.attempts > 0


@dataclass
class GameCycleReport:
    """What happened to one game during a cycle."""

    game: Game
    fetch: Optional[FetchResult] = None
    new_codes: list[CandidateCode] = field(default_factory=list)
    outcomes: list[DeliveryOutcome] = field(default_factory=list)
    recorded: int = 0
    persistence_error: Optional[PersistenceError] = None
    # Set when the batch never reached any destination; the codes stay unseen.
    delivery_skipped: bool = False


@dataclass
class CycleReport:
    """Summary of one discovery cycle, used for logging and assertions."""

    started_at: datetime
    games: dict[Game, GameCycleReport] = field(default_factory=dict)
    finished_at: Optional[datetime] = None

    def for_game(self, game: Game) -> GameCycleReport:
        if game not in self.games:
            self.games[game] = GameCycleReport(game=game)
        return self.games[game]

    @property
    def new_code_count(self) -> int:
        return sum(len(report.new_codes) for report in self.games.values())
