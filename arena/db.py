"""
arena/db.py - SQLite storage for the tournament server.

All queries go through TournamentDB. One instance per server lifetime,
backed by a single SQLite file (or :memory: for tests). Token amounts are
stored as TEXT: entry fees in base units overflow SQLite's 64-bit INTEGER.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from shark.events import Event, event_from_dict
from shark.models import Distribution, PlayerStats, Tournament


class TournamentDB:
    """Thin wrapper around SQLite for tournament + event storage."""

    def __init__(self, path: str = "shark.db"):
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def _create_tables(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS tournaments (
                id INTEGER PRIMARY KEY,
                entry_fee TEXT NOT NULL,
                start_time INTEGER,
                end_time INTEGER,
                prize_pool TEXT NOT NULL DEFAULT '0',
                withdrawn INTEGER NOT NULL DEFAULT 0,
                distribution TEXT,
                created_at TEXT,
                updated_at TEXT
            );

            CREATE TABLE IF NOT EXISTS players (
                tournament_id INTEGER NOT NULL,
                player TEXT NOT NULL,
                position INTEGER NOT NULL,
                score INTEGER NOT NULL DEFAULT 0,
                kills INTEGER NOT NULL DEFAULT 0,
                join_timestamp INTEGER,
                PRIMARY KEY (tournament_id, player)
            );

            CREATE TABLE IF NOT EXISTS events (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                tournament_id INTEGER NOT NULL,
                name TEXT NOT NULL,
                payload TEXT NOT NULL,
                created_at TEXT
            );
            """
        )

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Tournaments
    # ------------------------------------------------------------------

    def save_tournament(self, tournament: Tournament) -> None:
        """Upsert a tournament and replace its player rows.

        Runs as one transaction: on any error nothing is written.
        """
        now = _now()
        distribution = (
            json.dumps(tournament.distribution.to_dict()) if tournament.distribution else None
        )
        with self._conn:
            self._conn.execute(
                "INSERT INTO tournaments (id, entry_fee, start_time, end_time, prize_pool, withdrawn, "
                "distribution, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET start_time = excluded.start_time, "
                "end_time = excluded.end_time, prize_pool = excluded.prize_pool, "
                "withdrawn = excluded.withdrawn, distribution = excluded.distribution, "
                "updated_at = excluded.updated_at",
                (
                    tournament.id,
                    str(tournament.entry_fee),
                    tournament.start_time,
                    tournament.end_time,
                    str(tournament.prize_pool),
                    int(tournament.withdrawn),
                    distribution,
                    now,
                    now,
                ),
            )

            self._conn.execute("DELETE FROM players WHERE tournament_id = ?", (tournament.id,))
            for position, player in enumerate(tournament.players):
                stats = tournament.stats[player]
                self._conn.execute(
                    "INSERT INTO players (tournament_id, player, position, score, kills, join_timestamp) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (tournament.id, player, position, stats.score, stats.kills, stats.join_timestamp),
                )

    def get_tournament(self, tournament_id: int) -> Tournament | None:
        row = self._conn.execute(
            "SELECT * FROM tournaments WHERE id = ?", (tournament_id,)
        ).fetchone()
        return self._row_to_tournament(row) if row else None

    def load_tournaments(self) -> list[Tournament]:
        rows = self._conn.execute("SELECT * FROM tournaments ORDER BY id ASC").fetchall()
        return [self._row_to_tournament(row) for row in rows]

    def _row_to_tournament(self, row: sqlite3.Row) -> Tournament:
        t = Tournament(
            id=row["id"],
            entry_fee=int(row["entry_fee"]),
            start_time=row["start_time"],
            end_time=row["end_time"],
            prize_pool=int(row["prize_pool"]),
            withdrawn=bool(row["withdrawn"]),
        )
        if row["distribution"]:
            t.distribution = Distribution.from_dict(json.loads(row["distribution"]))

        players = self._conn.execute(
            "SELECT * FROM players WHERE tournament_id = ? ORDER BY position ASC", (t.id,)
        ).fetchall()
        for p in players:
            t.players.append(p["player"])
            t.stats[p["player"]] = PlayerStats(
                score=p["score"], kills=p["kills"], join_timestamp=p["join_timestamp"]
            )
        return t

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def append_event(self, event: Event) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT INTO events (tournament_id, name, payload, created_at) VALUES (?, ?, ?, ?)",
                (event.id, event.name, json.dumps(event.to_dict()), _now()),
            )

    def list_events(self, tournament_id: int | None = None) -> list[dict[str, Any]]:
        """Stored events in emission order, as dicts."""
        if tournament_id is None:
            rows = self._conn.execute("SELECT * FROM events ORDER BY seq ASC").fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM events WHERE tournament_id = ? ORDER BY seq ASC", (tournament_id,)
            ).fetchall()
        return [{"seq": row["seq"], **json.loads(row["payload"])} for row in rows]

    def load_events(self, tournament_id: int | None = None) -> list[Event]:
        return [
            event_from_dict({k: v for k, v in e.items() if k != "seq"})
            for e in self.list_events(tournament_id)
        ]

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def tournament_count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM tournaments").fetchone()[0]

    def open_tournaments(self) -> int:
        """Number of tournaments started and not yet ended."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM tournaments WHERE start_time IS NOT NULL AND end_time IS NULL"
        ).fetchone()[0]


def _now() -> str:
    """ISO timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()
