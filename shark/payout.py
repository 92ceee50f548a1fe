"""
shark/payout.py - Ranking and prize-pool distribution.

Runs once per tournament, at withdrawal. Ranking and planning are pure
functions over a Tournament; execution talks to the token capability.

Split, from a pool P:
    owner cut       = floor(P * 10%)
    remaining pool  = P - owner cut
    rank 1 / 2 / 3  = floor(30% / 20% / 10% of remaining), if the rank exists
    rank 4+         = what ranks 1-3 didn't take, split evenly (floor)
    dust            = leftover of that even split, paid to rank 1
"""

import logging
from dataclasses import dataclass

from .errors import (
    AlreadyWithdrawn,
    NothingToWithdraw,
    PayoutFailed,
    TournamentNotEnded,
)
from .events import PrizePoolDistributed
from .models import (
    KIND_DUST,
    KIND_OTHERS,
    KIND_OWNER_CUT,
    KIND_RANK,
    KIND_UNCLAIMED,
    Distribution,
    Payout,
    Tournament,
)
from .token import TokenTransfer

logger = logging.getLogger(__name__)

OWNER_CUT_PERCENT = 10
PODIUM_PERCENTS = (30, 20, 10)


@dataclass(frozen=True)
class PayoutPolicy:
    """How a withdrawal splits and moves funds.

    best_effort: keep paying after a failed transfer instead of stopping.
    return_unclaimed: send shares with no recipient (absent podium ranks,
        the rank-4+ bucket with 3 or fewer players, the whole remaining pool
        with no players) to the beneficiary instead of leaving them in
        custody.
    beneficiary: who receives the owner cut. None means the caller of the
        withdrawal.
    """

    owner_cut_percent: int = OWNER_CUT_PERCENT
    podium_percents: tuple[int, ...] = PODIUM_PERCENTS
    best_effort: bool = False
    return_unclaimed: bool = True
    beneficiary: str | None = None

    def __post_init__(self):
        if not 0 <= self.owner_cut_percent <= 100:
            raise ValueError("owner_cut_percent must be between 0 and 100")
        if any(p < 0 for p in self.podium_percents) or sum(self.podium_percents) > 100:
            raise ValueError("podium_percents must be non-negative and sum to at most 100")


# ============================================================================
# Ranking
# ============================================================================


def _rank_key(tournament: Tournament, player: str) -> tuple[int, int, int]:
    stats = tournament.stats[player]
    joined = stats.join_timestamp if stats.join_timestamp is not None else 0
    return (-stats.score, -stats.kills, joined)


def rank_players(tournament: Tournament) -> list[str]:
    """Joined players, best first.

    Higher score wins, then more kills, then the earlier join. sorted() is
    stable, so players identical on all three keep their join order.
    """
    return sorted(tournament.players, key=lambda p: _rank_key(tournament, p))


# ============================================================================
# Planning
# ============================================================================


def plan_distribution(
    tournament: Tournament,
    beneficiary: str,
    policy: PayoutPolicy = PayoutPolicy(),
) -> Distribution:
    """Compute every transfer for a withdrawal, in execution order.

    Zero-amount transfers are left out.
    """
    pool = tournament.prize_pool
    owner_cut = pool * policy.owner_cut_percent // 100
    remaining = pool - owner_cut
    ranking = rank_players(tournament)

    payouts = [Payout(beneficiary, owner_cut, KIND_OWNER_CUT)]

    if not ranking:
        unclaimed = remaining
        dist = Distribution(owner_cut=owner_cut, remaining_pool=0, unclaimed=unclaimed)
    else:
        podium_paid = 0
        for i, percent in enumerate(policy.podium_percents):
            if i >= len(ranking):
                break
            amount = remaining * percent // 100
            payouts.append(Payout(ranking[i], amount, KIND_RANK, rank=i + 1))
            podium_paid += amount

        others = ranking[len(policy.podium_percents):]
        unclaimed = 0
        if others:
            others_total = remaining - podium_paid
            share, dust = divmod(others_total, len(others))
            for offset, player in enumerate(others):
                rank = len(policy.podium_percents) + offset + 1
                payouts.append(Payout(player, share, KIND_OTHERS, rank=rank))
            # dust < len(others), always
            if dust:
                payouts.append(Payout(ranking[0], dust, KIND_DUST, rank=1))
        else:
            unclaimed = remaining - podium_paid

        dist = Distribution(owner_cut=owner_cut, remaining_pool=remaining, unclaimed=unclaimed)

    if unclaimed and policy.return_unclaimed:
        payouts.append(Payout(beneficiary, unclaimed, KIND_UNCLAIMED))

    dist.ranking = ranking
    dist.payouts = [p for p in payouts if p.amount > 0]
    return dist


# ============================================================================
# Execution
# ============================================================================


def execute_distribution(
    token: TokenTransfer,
    distribution: Distribution,
    best_effort: bool = False,
    tournament_id: int | None = None,
) -> Distribution:
    """Send each planned payout in order, recording the outcome on it.

    Strict mode raises PayoutFailed at the first failure and leaves the rest
    pending. Best-effort mode logs the failure and keeps going.
    """
    for payout in distribution.payouts:
        result = token.transfer_out(payout.recipient, payout.amount)
        payout.tx_hash = result.tx_hash
        if result.success:
            payout.status = "sent"
            continue

        payout.status = "failed"
        payout.error = result.error
        logger.warning(
            f"Tournament {tournament_id}: {payout.kind} payout of {payout.amount} "
            f"to {payout.recipient} failed: {result.error}"
        )
        if not best_effort:
            raise PayoutFailed(
                f"Payout to {payout.recipient} failed: {result.error}",
                tournament_id=tournament_id,
                distribution=distribution,
            )

    return distribution


def check_withdrawable(tournament: Tournament) -> None:
    """Raise unless the tournament can be settled now."""
    tid = tournament.id
    if not tournament.ended:
        raise TournamentNotEnded(f"Tournament {tid} has not ended", tid)
    if tournament.withdrawn:
        raise AlreadyWithdrawn(f"Tournament {tid} prize pool already withdrawn", tid)
    if tournament.prize_pool == 0:
        raise NothingToWithdraw(f"Tournament {tid} has an empty prize pool", tid)


def withdraw(
    tournament: Tournament,
    token: TokenTransfer,
    beneficiary: str,
    policy: PayoutPolicy = PayoutPolicy(),
    now: int | None = None,
) -> PrizePoolDistributed:
    """Settle a closed tournament. Single-shot.

    ``withdrawn`` is set before the first transfer, so a failed or partial
    payout can never be replayed. The receipt is stored on the tournament
    before execution for the same reason.
    """
    tid = tournament.id
    check_withdrawable(tournament)

    tournament.withdrawn = True

    distribution = plan_distribution(tournament, beneficiary, policy)
    distribution.executed_at = now
    tournament.distribution = distribution

    if distribution.unclaimed and not policy.return_unclaimed:
        logger.warning(
            f"Tournament {tid}: {distribution.unclaimed} unclaimed, left in custody"
        )

    execute_distribution(token, distribution, policy.best_effort, tid)

    logger.info(
        f"Tournament {tid} settled: owner cut {distribution.owner_cut}, "
        f"remaining {distribution.remaining_pool} across {len(distribution.ranking)} players"
    )
    return PrizePoolDistributed(
        id=tid,
        owner_cut=distribution.owner_cut,
        remaining_pool=distribution.remaining_pool,
    )
