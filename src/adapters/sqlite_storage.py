"""SQLite storage adapter.

Implements the core SeenCodeStorePort and DestinationRegistryPort using a
simple SQLite database.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from core.destination_keys import normalize_destination_key
from core.errors import PersistenceError
from core.games import Game
from core.models import CandidateCode, CodeStatus, SeenCodeRecord
from core.normalize import dedupe_candidates, normalize_code


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the store and registry contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(f"SQLite error: {exc}") from exc

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - seen_codes: every code ever announced, keyed by (game, code)
        - destinations: chats registered to receive a game's codes
        """

        with self._transaction() as conn:
            # seen_codes rows are created once and only their status changes.
            # Fields:
            # - game: game identifier ("gi", "hsr", ...)
            # - code: normalized code (uppercase, no whitespace)
            # - rewards: reward text as seen on first discovery
            # - status: "active" or "expired"
            # - discovered_at: timestamp of first discovery
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS seen_codes (
                    game TEXT NOT NULL,
                    code TEXT NOT NULL,
                    rewards TEXT NOT NULL DEFAULT '',
                    status TEXT NOT NULL DEFAULT 'active',
                    discovered_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (game, code)
                )
                """
            )
            # destinations maps a game to the chats that get its notifications.
            # Fields:
            # - game: game identifier
            # - destination_key: normalized "@username" or "chat_id:<id>"
            # - added_at: registration timestamp
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS destinations (
                    game TEXT NOT NULL,
                    destination_key TEXT NOT NULL,
                    added_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (game, destination_key)
                )
                """
            )

    def filter_unseen(self, game: Game, candidates: Iterable[CandidateCode]) -> list[CandidateCode]:
        """Return candidates with no record for the game, active or expired."""

        pending = list(candidates)
        if not pending:
            return []
        keys = sorted({candidate.code for candidate in pending})
        placeholders = ", ".join("?" for _ in keys)
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT code FROM seen_codes WHERE game = ? AND code IN ({placeholders})",
                (game.value, *keys),
            ).fetchall()
        existing = {row["code"] for row in rows}
        return [candidate for candidate in pending if candidate.code not in existing]

    def record_new(self, game: Game, candidates: Iterable[CandidateCode]) -> int:
        """Insert active records for new codes; existing keys are left alone."""

        unique = dedupe_candidates(candidates)
        if not unique:
            return 0
        now = datetime.now(timezone.utc).isoformat()
        inserted = 0
        with self._transaction() as conn:
            for candidate in unique:
                cur = conn.execute(
                    """
                    INSERT OR IGNORE INTO seen_codes (game, code, rewards, status, discovered_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (game.value, candidate.code, candidate.rewards_text, CodeStatus.ACTIVE.value, now),
                )
                inserted += cur.rowcount
        return inserted

    def mark_expired(self, game: Game, codes: Iterable[str]) -> int:
        """Flip matching records to expired and return how many changed."""

        keys = sorted({normalize_code(code) for code in codes if normalize_code(code)})
        if not keys:
            return 0
        placeholders = ", ".join("?" for _ in keys)
        with self._transaction() as conn:
            cur = conn.execute(
                f"""
                UPDATE seen_codes SET status = ?
                WHERE game = ? AND status = ? AND code IN ({placeholders})
                """,
                (CodeStatus.EXPIRED.value, game.value, CodeStatus.ACTIVE.value, *keys),
            )
            return cur.rowcount

    def get_record(self, game: Game, code: str) -> Optional[SeenCodeRecord]:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM seen_codes WHERE game = ? AND code = ?",
                (game.value, normalize_code(code)),
            ).fetchone()
        return _record_from_row(row) if row else None

    def list_records(self, game: Game, status: Optional[CodeStatus] = None) -> list[SeenCodeRecord]:
        query = "SELECT * FROM seen_codes WHERE game = ?"
        params: list[str] = [game.value]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY discovered_at, code"
        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_record_from_row(row) for row in rows]

    def list_destinations(self, game: Game) -> list[str]:
        """Return destination keys registered for a game, oldest first."""

        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT destination_key FROM destinations WHERE game = ? ORDER BY added_at, destination_key",
                (game.value,),
            ).fetchall()
        return [row["destination_key"] for row in rows]

    def add_destination(self, game: Game, destination_key: str) -> bool:
        """Register a destination; returns False if it was already registered."""

        key = normalize_destination_key(destination_key)
        now = datetime.now(timezone.utc).isoformat()
        with self._transaction() as conn:
            cur = conn.execute(
                "INSERT OR IGNORE INTO destinations (game, destination_key, added_at) VALUES (?, ?, ?)",
                (game.value, key, now),
            )
            return cur.rowcount > 0

    def remove_destination(self, game: Game, destination_key: str) -> bool:
        key = normalize_destination_key(destination_key)
        with self._transaction() as conn:
            cur = conn.execute(
                "DELETE FROM destinations WHERE game = ? AND destination_key = ?",
                (game.value, key),
            )
            return cur.rowcount > 0


def _record_from_row(row: sqlite3.Row) -> SeenCodeRecord:
    return SeenCodeRecord(
        game=Game(row["game"]),
        code=row["code"],
        rewards_text=row["rewards"],
        status=CodeStatus(row["status"]),
        discovered_at=datetime.fromisoformat(row["discovered_at"]),
    )
