"""Tests for arena.db — SQLite persistence of tournaments and events."""

import pytest

from arena.db import TournamentDB
from shark.auth import OwnerAuthorizer
from shark.events import PlayerJoined, TournamentCreated, TournamentStarted
from shark.models import PlayerStats, Tournament
from shark.registry import TournamentRegistry
from shark.token import InMemoryToken

BIG_FEE = 5 * 10**18


@pytest.fixture
def db():
    """Fresh in-memory DB for each test."""
    d = TournamentDB(":memory:")
    yield d
    d.close()


def _tournament() -> Tournament:
    t = Tournament(id=7, entry_fee=BIG_FEE, start_time=100, prize_pool=2 * BIG_FEE)
    for i, player in enumerate(["zed", "amy"]):
        t.players.append(player)
        t.stats[player] = PlayerStats(score=10 - i, kills=i, join_timestamp=100 + i)
    return t


class TestTournaments:
    def test_round_trip(self, db):
        db.save_tournament(_tournament())
        t = db.get_tournament(7)

        assert t.entry_fee == BIG_FEE
        assert t.prize_pool == 2 * BIG_FEE
        assert t.start_time == 100
        assert t.end_time is None
        assert t.withdrawn is False
        # Join order survives, not alphabetical
        assert t.players == ["zed", "amy"]
        assert t.stats["amy"] == PlayerStats(score=9, kills=1, join_timestamp=101)

    def test_failed_save_writes_nothing(self, db):
        db.save_tournament(_tournament())

        bad = _tournament()
        bad.stats["amy"].score = 2**64  # too large for INTEGER
        with pytest.raises(OverflowError):
            db.save_tournament(bad)

        # An unrelated commit afterwards must not flush a half-done save
        db.save_tournament(Tournament(id=8, entry_fee=1))

        loaded = db.get_tournament(7)
        assert loaded.players == ["zed", "amy"]
        assert loaded.stats["amy"].score == 9
        assert loaded.prize_pool == 2 * BIG_FEE

    def test_missing(self, db):
        assert db.get_tournament(99) is None

    def test_upsert_replaces_players(self, db):
        t = _tournament()
        db.save_tournament(t)
        t.players.append("bob")
        t.stats["bob"] = PlayerStats(join_timestamp=150)
        t.end_time = 200
        db.save_tournament(t)

        loaded = db.get_tournament(7)
        assert loaded.players == ["zed", "amy", "bob"]
        assert loaded.end_time == 200
        assert db.tournament_count() == 1

    def test_load_ordered_by_id(self, db):
        for tid in (3, 0, 1):
            db.save_tournament(Tournament(id=tid, entry_fee=1))
        assert [t.id for t in db.load_tournaments()] == [0, 1, 3]

    def test_open_tournaments(self, db):
        db.save_tournament(Tournament(id=1, entry_fee=1))
        db.save_tournament(Tournament(id=2, entry_fee=1, start_time=10))
        db.save_tournament(Tournament(id=3, entry_fee=1, start_time=10, end_time=20))
        assert db.open_tournaments() == 1

    def test_distribution_round_trip(self, db):
        token = InMemoryToken()
        registry = TournamentRegistry(token, OwnerAuthorizer("owner"), entry_fee=25, store=db)
        registry.create_tournament("owner", 1)
        registry.start_tournament("owner", 1)
        for player in ("a", "b", "c", "d"):
            token.mint(player, 25)
            token.approve(player, 25)
            registry.join_tournament(player, 1)
        registry.end_tournament("owner", 1)
        registry.withdraw_prize_pool("owner", 1)

        loaded = db.get_tournament(1)
        assert loaded.withdrawn is True
        assert loaded.distribution.to_dict() == registry.get_tournament(1).distribution.to_dict()
        assert all(p.status == "sent" for p in loaded.distribution.payouts)


class TestEvents:
    def test_events_in_order(self, db):
        db.append_event(TournamentCreated(1))
        db.append_event(TournamentCreated(2))
        db.append_event(TournamentStarted(1))

        assert db.load_events() == [TournamentCreated(1), TournamentCreated(2), TournamentStarted(1)]
        assert db.load_events(1) == [TournamentCreated(1), TournamentStarted(1)]

    def test_list_events_carries_seq(self, db):
        db.append_event(PlayerJoined(1, "alice", BIG_FEE))
        rows = db.list_events()
        assert rows == [
            {"seq": 1, "event": "PlayerJoined", "id": 1, "player": "alice", "amount": BIG_FEE}
        ]


class TestRegistryReload:
    def test_registry_resumes_from_store(self, db):
        token = InMemoryToken()
        first = TournamentRegistry(token, OwnerAuthorizer("owner"), entry_fee=25, store=db)
        first.create_tournament("owner", 0)
        first.start_tournament("owner", 0)
        token.mint("alice", 25)
        token.approve("alice", 25)
        first.join_tournament("alice", 0)
        first.update_player_stats("owner", 0, "alice", 12, 3)

        second = TournamentRegistry(token, OwnerAuthorizer("owner"), entry_fee=25, store=db)
        assert second.exists(0)
        assert second.get_players(0) == ["alice"]
        assert second.get_player_stats(0, "alice").score == 12
        assert second.get_tournament(0).prize_pool == 25

        assert [e.name for e in db.load_events(0)] == [
            "TournamentCreated",
            "TournamentStarted",
            "PlayerJoined",
        ]

    def test_rejected_stats_keep_store_in_sync(self, db):
        token = InMemoryToken()
        first = TournamentRegistry(token, OwnerAuthorizer("owner"), entry_fee=100, store=db)
        first.create_tournament("owner", 1)
        first.start_tournament("owner", 1)
        token.mint("alice", 100)
        token.approve("alice", 100)
        first.join_tournament("alice", 1)

        with pytest.raises(ValueError):
            first.update_player_stats("owner", 1, "alice", 2**64, 1)
        first.create_tournament("owner", 2)

        second = TournamentRegistry(token, OwnerAuthorizer("owner"), entry_fee=100, store=db)
        reloaded = second.get_tournament(1)
        assert reloaded.players == ["alice"]
        assert reloaded.prize_pool == 100
        assert reloaded.stats["alice"].score == 0
