"""Tests for shark.payout — ranking and prize-pool arithmetic, no registry."""

import pytest

from shark.errors import AlreadyWithdrawn, NothingToWithdraw, PayoutFailed, TournamentNotEnded
from shark.models import PlayerStats, Tournament
from shark.payout import (
    PayoutPolicy,
    execute_distribution,
    plan_distribution,
    rank_players,
    withdraw,
)
from shark.token import InMemoryToken, TransferResult

OWNER = "owner"


def _tournament(pool: int, rows: list[tuple[str, int, int, int]], ended: bool = True) -> Tournament:
    """Build a tournament directly. rows: (player, score, kills, join_timestamp)."""
    t = Tournament(id=1, entry_fee=0, prize_pool=pool, start_time=100)
    if ended:
        t.end_time = 200
    for player, score, kills, joined in rows:
        t.players.append(player)
        t.stats[player] = PlayerStats(score=score, kills=kills, join_timestamp=joined)
    return t


def _players(n: int) -> list[tuple[str, int, int, int]]:
    """n players ranked in join order (descending score)."""
    return [(f"p{i + 1}", 100 - i, 0, i) for i in range(n)]


def _amounts(dist) -> list[tuple[str, int, str]]:
    return [(p.recipient, p.amount, p.kind) for p in dist.payouts]


# ============================================================================
# Ranking
# ============================================================================


class TestRanking:
    def test_kills_break_score_ties(self):
        t = _tournament(0, [("A", 10, 2, 1), ("B", 10, 3, 2), ("C", 5, 1, 3)])
        assert rank_players(t) == ["B", "A", "C"]

    def test_higher_score_first(self):
        t = _tournament(0, [("A", 1, 50, 1), ("B", 2, 0, 2)])
        assert rank_players(t) == ["B", "A"]

    def test_earlier_join_breaks_score_and_kill_ties(self):
        t = _tournament(0, [("late", 5, 5, 20), ("early", 5, 5, 10)])
        assert rank_players(t) == ["early", "late"]

    def test_full_ties_keep_insertion_order(self):
        t = _tournament(0, [("X", 5, 5, 10), ("Y", 5, 5, 10), ("Z", 5, 5, 10)])
        assert rank_players(t) == ["X", "Y", "Z"]

        t = _tournament(0, [("Z", 5, 5, 10), ("X", 5, 5, 10), ("Y", 5, 5, 10)])
        assert rank_players(t) == ["Z", "X", "Y"]

    def test_negative_scores_rank_below_zero(self):
        t = _tournament(0, [("neg", -3, 0, 1), ("zero", 0, 0, 2)])
        assert rank_players(t) == ["zero", "neg"]

    def test_empty(self):
        assert rank_players(_tournament(0, [])) == []

    def test_does_not_reorder_players(self):
        t = _tournament(0, [("A", 1, 0, 1), ("B", 2, 0, 2)])
        rank_players(t)
        assert t.players == ["A", "B"]


# ============================================================================
# plan_distribution
# ============================================================================


class TestPlan:
    def test_four_players_pool_100(self):
        dist = plan_distribution(_tournament(100, _players(4)), OWNER)
        assert dist.owner_cut == 10
        assert dist.remaining_pool == 90
        assert _amounts(dist) == [
            (OWNER, 10, "owner_cut"),
            ("p1", 27, "rank"),
            ("p2", 18, "rank"),
            ("p3", 9, "rank"),
            ("p4", 36, "others"),
        ]
        assert dist.unclaimed == 0

    def test_dust_goes_to_first_place(self):
        # pool 115: cut 11, remaining 104 -> 31 / 20 / 10, others 43 -> 21 each + 1 dust
        dist = plan_distribution(_tournament(115, _players(5)), OWNER)
        assert dist.owner_cut == 11
        assert dist.remaining_pool == 104
        assert _amounts(dist) == [
            (OWNER, 11, "owner_cut"),
            ("p1", 31, "rank"),
            ("p2", 20, "rank"),
            ("p3", 10, "rank"),
            ("p4", 21, "others"),
            ("p5", 21, "others"),
            ("p1", 1, "dust"),
        ]
        assert dist.total_for("p1") == 32

    def test_even_split_has_no_dust(self):
        dist = plan_distribution(_tournament(100, _players(5)), OWNER)
        kinds = [p.kind for p in dist.payouts]
        assert "dust" not in kinds
        assert dist.total_for("p4") == dist.total_for("p5") == 18

    def test_dust_always_smaller_than_bucket(self):
        for n in range(4, 16):
            for pool in range(0, 400, 7):
                dist = plan_distribution(_tournament(pool, _players(n)), OWNER)
                dust = sum(p.amount for p in dist.payouts if p.kind == "dust")
                assert dust < n - 3

    def test_every_unit_is_accounted_for(self):
        for n in range(0, 16):
            for pool in (1, 9, 10, 99, 100, 101, 1234, 10**18 * 15 + 7):
                dist = plan_distribution(_tournament(pool, _players(n)), OWNER)
                assert sum(p.amount for p in dist.payouts) == pool

    def test_two_players_unclaimed_returns_to_owner(self):
        dist = plan_distribution(_tournament(100, _players(2)), OWNER)
        assert dist.unclaimed == 45  # 10% rank 3 + 40% rank-4+ bucket
        assert _amounts(dist) == [
            (OWNER, 10, "owner_cut"),
            ("p1", 27, "rank"),
            ("p2", 18, "rank"),
            (OWNER, 45, "unclaimed"),
        ]

    def test_unclaimed_left_in_custody(self):
        policy = PayoutPolicy(return_unclaimed=False)
        dist = plan_distribution(_tournament(100, _players(3)), OWNER, policy)
        assert dist.unclaimed == 36
        assert [p.kind for p in dist.payouts] == ["owner_cut", "rank", "rank", "rank"]
        assert sum(p.amount for p in dist.payouts) == 64

    def test_no_players(self):
        dist = plan_distribution(_tournament(50, []), OWNER)
        assert dist.owner_cut == 5
        assert dist.remaining_pool == 0
        assert dist.unclaimed == 45
        assert dist.ranking == []
        assert _amounts(dist) == [(OWNER, 5, "owner_cut"), (OWNER, 45, "unclaimed")]

    def test_zero_amounts_are_skipped(self):
        # pool 3: cut 0, rank 1 gets floor(0.9) = 0
        dist = plan_distribution(_tournament(3, _players(1)), OWNER)
        assert _amounts(dist) == [(OWNER, 3, "unclaimed")]

    def test_ranks_recorded(self):
        dist = plan_distribution(_tournament(100, _players(5)), OWNER)
        assert [p.rank for p in dist.payouts] == [None, 1, 2, 3, 4, 5]

    def test_ranking_drives_payout(self):
        t = _tournament(100, [("A", 10, 2, 1), ("B", 10, 3, 2), ("C", 5, 1, 3), ("D", 0, 0, 4)])
        dist = plan_distribution(t, OWNER)
        assert dist.ranking == ["B", "A", "C", "D"]
        assert dist.total_for("B") == 27


class TestPolicy:
    def test_rejects_bad_owner_cut(self):
        with pytest.raises(ValueError):
            PayoutPolicy(owner_cut_percent=101)

    def test_rejects_podium_over_100(self):
        with pytest.raises(ValueError):
            PayoutPolicy(podium_percents=(60, 30, 20))

    def test_custom_split(self):
        policy = PayoutPolicy(owner_cut_percent=0, podium_percents=(50,))
        dist = plan_distribution(_tournament(100, _players(3)), OWNER, policy)
        assert _amounts(dist) == [
            ("p1", 50, "rank"),
            ("p2", 25, "others"),
            ("p3", 25, "others"),
        ]


# ============================================================================
# execute_distribution
# ============================================================================


@pytest.fixture
def token():
    t = InMemoryToken()
    t.mint(t.custody, 1000)
    return t


class TestExecute:
    def test_sends_everything(self, token):
        dist = plan_distribution(_tournament(100, _players(4)), OWNER)
        execute_distribution(token, dist)
        assert all(p.status == "sent" for p in dist.payouts)
        assert token.balance_of("p4") == 36
        assert token.balance_of(token.custody) == 900

    def test_strict_stops_at_first_failure(self, token):
        token.fail_recipients.add("p2")
        dist = plan_distribution(_tournament(100, _players(4)), OWNER)

        with pytest.raises(PayoutFailed) as exc:
            execute_distribution(token, dist, best_effort=False, tournament_id=1)

        assert exc.value.distribution is dist
        assert exc.value.tournament_id == 1
        assert [p.status for p in dist.payouts] == ["sent", "sent", "failed", "pending", "pending"]
        assert token.balance_of("p3") == 0

    def test_best_effort_continues(self, token):
        token.fail_recipients.add("p2")
        dist = plan_distribution(_tournament(100, _players(4)), OWNER)

        execute_distribution(token, dist, best_effort=True)

        assert [p.status for p in dist.payouts] == ["sent", "sent", "failed", "sent", "sent"]
        assert dist.failed[0].recipient == "p2"
        assert dist.failed[0].error
        assert token.balance_of("p4") == 36

    def test_records_tx_hash(self):
        class HashingToken:
            def transfer_out(self, recipient, amount):
                return TransferResult(success=True, tx_hash=f"0x{recipient}")

        dist = plan_distribution(_tournament(100, _players(1)), OWNER)
        execute_distribution(HashingToken(), dist)
        assert dist.payouts[1].tx_hash == "0xp1"


# ============================================================================
# withdraw
# ============================================================================


class TestWithdraw:
    def test_marks_withdrawn_before_first_transfer(self):
        t = _tournament(100, _players(4))
        seen = []

        class WatchingToken:
            def transfer_out(self, recipient, amount):
                seen.append(t.withdrawn)
                return TransferResult(success=True)

        withdraw(t, WatchingToken(), OWNER)
        assert seen and all(seen)

    def test_returns_distribution_event(self, token):
        t = _tournament(100, _players(4))
        event = withdraw(t, token, OWNER, now=300)
        assert (event.id, event.owner_cut, event.remaining_pool) == (1, 10, 90)
        assert t.distribution.executed_at == 300

    def test_no_players_event_reports_zero_remaining(self, token):
        t = _tournament(50, [])
        event = withdraw(t, token, OWNER)
        assert (event.owner_cut, event.remaining_pool) == (5, 0)
        assert token.balance_of(OWNER) == 50

    def test_no_players_keep_unclaimed_in_custody(self, token):
        t = _tournament(50, [])
        withdraw(t, token, OWNER, PayoutPolicy(return_unclaimed=False))
        assert token.balance_of(OWNER) == 5
        assert token.balance_of(token.custody) == 995

    def test_precondition_order(self, token):
        with pytest.raises(TournamentNotEnded):
            withdraw(_tournament(100, _players(1), ended=False), token, OWNER)

        t = _tournament(100, _players(1))
        t.withdrawn = True
        with pytest.raises(AlreadyWithdrawn):
            withdraw(t, token, OWNER)

        with pytest.raises(NothingToWithdraw):
            withdraw(_tournament(0, []), token, OWNER)

    def test_failure_paths_leave_state_alone(self, token):
        t = _tournament(0, _players(2))
        with pytest.raises(NothingToWithdraw):
            withdraw(t, token, OWNER)
        assert not t.withdrawn
        assert t.distribution is None
