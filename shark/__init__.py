"""
Shark - entry-fee tournaments with ranked prize payouts

Players pay a fixed fee to join, an administrator pushes their scores, and
when the tournament closes the pool is split: operator cut first, then the
podium, then everyone else.
"""

__version__ = "0.1.0"

from .auth import (
    Authorizer,
    NotAuthorized,
    OwnerAuthorizer,
)

from .errors import (
    TournamentError,
    TournamentAlreadyExists,
    TournamentDoesNotExist,
    TournamentAlreadyStarted,
    TournamentAlreadyEnded,
    TournamentNotStarted,
    TournamentNotEnded,
    PlayerNotJoined,
    PlayerAlreadyJoined,
    MaxPlayersReached,
    NotEnoughFunds,
    AlreadyWithdrawn,
    NothingToWithdraw,
    NoBeneficiary,
    PayoutFailed,
)

from .events import (
    EventBus,
    TournamentCreated,
    TournamentStarted,
    TournamentEnded,
    PlayerJoined,
    PrizePoolDistributed,
)

from .models import (
    PlayerStats,
    Payout,
    Distribution,
    Tournament,
)

from .payout import (
    PayoutPolicy,
    rank_players,
    plan_distribution,
    execute_distribution,
)

from .registry import (
    MAX_PLAYERS,
    TournamentRegistry,
)

from .token import (
    TokenTransfer,
    TransferResult,
    InMemoryToken,
    ERC20Token,
)

__all__ = [
    # Version
    "__version__",
    # Authorization
    "Authorizer",
    "NotAuthorized",
    "OwnerAuthorizer",
    # Errors
    "TournamentError",
    "TournamentAlreadyExists",
    "TournamentDoesNotExist",
    "TournamentAlreadyStarted",
    "TournamentAlreadyEnded",
    "TournamentNotStarted",
    "TournamentNotEnded",
    "PlayerNotJoined",
    "PlayerAlreadyJoined",
    "MaxPlayersReached",
    "NotEnoughFunds",
    "AlreadyWithdrawn",
    "NothingToWithdraw",
    "NoBeneficiary",
    "PayoutFailed",
    # Events
    "EventBus",
    "TournamentCreated",
    "TournamentStarted",
    "TournamentEnded",
    "PlayerJoined",
    "PrizePoolDistributed",
    # Models
    "PlayerStats",
    "Payout",
    "Distribution",
    "Tournament",
    # Payout engine
    "PayoutPolicy",
    "rank_players",
    "plan_distribution",
    "execute_distribution",
    # Registry
    "MAX_PLAYERS",
    "TournamentRegistry",
    # Token
    "TokenTransfer",
    "TransferResult",
    "InMemoryToken",
    "ERC20Token",
]
