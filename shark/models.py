"""
shark/models.py - Tournament records and settlement receipts.

Plain dataclasses, no I/O. The registry changes a deep copy and swaps it in,
so a Tournament it has handed out is never mutated afterwards.
Amounts are integers in the token's base unit (like wei).
"""

from dataclasses import dataclass, field
from typing import Any

# Scores and kills are stored as SQLite INTEGER
MAX_STAT = 2**63 - 1


def _player_key(player: str) -> str:
    """Wallet addresses compare case-insensitively; other identities exactly."""
    return player.lower() if player.startswith("0x") else player


# ============================================================================
# Player stats
# ============================================================================


@dataclass
class PlayerStats:
    """Per-player performance as pushed by the administrative authority.

    ``join_timestamp`` is None until the player joins.
    """

    score: int = 0
    kills: int = 0
    join_timestamp: int | None = None

    @property
    def joined(self) -> bool:
        return self.join_timestamp is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "kills": self.kills,
            "join_timestamp": self.join_timestamp,
        }


# ============================================================================
# Settlement
# ============================================================================

# Payout kinds, in the order the engine executes them
KIND_OWNER_CUT = "owner_cut"
KIND_RANK = "rank"
KIND_OTHERS = "others"
KIND_DUST = "dust"
KIND_UNCLAIMED = "unclaimed"


@dataclass
class Payout:
    """One outbound transfer in a distribution."""

    recipient: str
    amount: int
    kind: str
    rank: int | None = None  # 1-based ranking position, None for owner payouts
    status: str = "pending"  # pending | sent | failed | skipped
    tx_hash: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recipient": self.recipient,
            "amount": self.amount,
            "kind": self.kind,
            "rank": self.rank,
            "status": self.status,
            "tx_hash": self.tx_hash,
            "error": self.error,
        }


@dataclass
class Distribution:
    """Settlement receipt for one withdrawal."""

    owner_cut: int
    remaining_pool: int
    unclaimed: int = 0
    ranking: list[str] = field(default_factory=list)
    payouts: list[Payout] = field(default_factory=list)
    executed_at: int | None = None

    def total_for(self, recipient: str) -> int:
        """Sum of all planned payouts to one recipient."""
        return sum(p.amount for p in self.payouts if p.recipient == recipient)

    @property
    def failed(self) -> list[Payout]:
        return [p for p in self.payouts if p.status == "failed"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_cut": self.owner_cut,
            "remaining_pool": self.remaining_pool,
            "unclaimed": self.unclaimed,
            "ranking": list(self.ranking),
            "payouts": [p.to_dict() for p in self.payouts],
            "executed_at": self.executed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Distribution":
        return cls(
            owner_cut=data["owner_cut"],
            remaining_pool=data["remaining_pool"],
            unclaimed=data.get("unclaimed", 0),
            ranking=list(data.get("ranking", [])),
            payouts=[Payout(**p) for p in data.get("payouts", [])],
            executed_at=data.get("executed_at"),
        )


# ============================================================================
# Tournament
# ============================================================================


@dataclass
class Tournament:
    """One tournament record. Never deleted once created."""

    id: int
    entry_fee: int
    start_time: int | None = None
    end_time: int | None = None
    prize_pool: int = 0
    withdrawn: bool = False
    players: list[str] = field(default_factory=list)
    stats: dict[str, PlayerStats] = field(default_factory=dict)
    distribution: Distribution | None = None

    @property
    def started(self) -> bool:
        return self.start_time is not None

    @property
    def ended(self) -> bool:
        return self.end_time is not None

    @property
    def is_open(self) -> bool:
        """Accepting joins and stats updates."""
        return self.started and not self.ended

    def find_player(self, player: str) -> str | None:
        """The roster spelling of ``player``, or None if they never joined."""
        stats = self.stats.get(player)
        if stats is not None and stats.joined:
            return player
        key = _player_key(player)
        for p in self.players:
            if _player_key(p) == key:
                return p
        return None

    def has_joined(self, player: str) -> bool:
        return self.find_player(player) is not None

    @property
    def status(self) -> str:
        if self.withdrawn:
            return "withdrawn"
        if self.ended:
            return "ended"
        if self.started:
            return "started"
        return "created"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "entry_fee": self.entry_fee,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "prize_pool": self.prize_pool,
            "withdrawn": self.withdrawn,
            "players": list(self.players),
            "stats": {p: s.to_dict() for p, s in self.stats.items()},
            "distribution": self.distribution.to_dict() if self.distribution else None,
        }
