"""
shark/errors.py - Tournament failure taxonomy.

Every precondition violation raises one of these before any state is
touched. The class name doubles as the wire-level error code the arena
returns, so clients can match on it the same way they would match a
contract revert reason.
"""


class TournamentError(Exception):
    """Base class for all tournament failures."""

    status_code = 409

    def __init__(self, message: str = "", tournament_id: int | None = None):
        self.tournament_id = tournament_id
        super().__init__(message or self.__class__.__name__)

    @property
    def code(self) -> str:
        return self.__class__.__name__


# ============================================================================
# Existence
# ============================================================================


class TournamentAlreadyExists(TournamentError):
    pass


class TournamentDoesNotExist(TournamentError):
    status_code = 404


# ============================================================================
# Lifecycle ordering
# ============================================================================


class TournamentAlreadyStarted(TournamentError):
    pass


class TournamentAlreadyEnded(TournamentError):
    pass


class TournamentNotStarted(TournamentError):
    pass


class TournamentNotEnded(TournamentError):
    pass


class PlayerNotJoined(TournamentNotStarted):
    """Stats pushed for an identity that never joined.

    Subclasses TournamentNotStarted so callers catching the broader
    "not started" signal still see it.
    """


# ============================================================================
# Membership
# ============================================================================


class PlayerAlreadyJoined(TournamentError):
    pass


class MaxPlayersReached(TournamentError):
    pass


# ============================================================================
# Funds
# ============================================================================


class NotEnoughFunds(TournamentError):
    status_code = 402


class AlreadyWithdrawn(TournamentError):
    pass


class NothingToWithdraw(TournamentError):
    pass


class NoBeneficiary(TournamentError):
    """No configured beneficiary and no caller to receive the owner cut."""


class PayoutFailed(TournamentError):
    """An outbound transfer failed under the strict payout policy.

    The tournament stays withdrawn; ``distribution`` shows which payouts
    went through and which did not, for manual reconciliation.
    """

    status_code = 502

    def __init__(self, message: str, tournament_id: int | None = None, distribution=None):
        super().__init__(message, tournament_id)
        self.distribution = distribution
