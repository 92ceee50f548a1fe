"""
shark/registry.py - Tournament lifecycle and membership.

Owns every Tournament record, keyed by id. Lifecycle per record:

    created --start--> started --end--> ended --withdraw--> withdrawn
       \\________________end_______________/

Operations are serialized under one lock and check all preconditions
before touching state, so a failed call leaves nothing behind.

Records are copy-on-write: a mutation edits a deep copy, saves it to the
store, and only then replaces the published record. Anything returned to
a caller is a snapshot that no later operation will change.
"""

import copy
import logging
import threading
import time
from typing import Callable, Protocol

from .auth import Authorizer
from .errors import (
    MaxPlayersReached,
    NoBeneficiary,
    NotEnoughFunds,
    PlayerAlreadyJoined,
    PlayerNotJoined,
    TournamentAlreadyEnded,
    TournamentAlreadyExists,
    TournamentAlreadyStarted,
    TournamentDoesNotExist,
    TournamentNotStarted,
)
from .events import (
    Event,
    EventBus,
    PlayerJoined,
    TournamentCreated,
    TournamentEnded,
    TournamentStarted,
)
from .models import MAX_STAT, PlayerStats, Tournament
from .payout import PayoutPolicy, check_withdrawable, rank_players, withdraw
from .token import TokenTransfer

logger = logging.getLogger(__name__)

MAX_PLAYERS = 15


class TournamentStore(Protocol):
    """Durable backing for the registry (see arena.db.TournamentDB)."""

    def load_tournaments(self) -> list[Tournament]: ...

    def save_tournament(self, tournament: Tournament) -> None: ...

    def append_event(self, event: Event) -> None: ...


def _unix_now() -> int:
    return int(time.time())


def _check_stat(name: str, value: int) -> None:
    if not 0 <= value <= MAX_STAT:
        raise ValueError(f"{name} must be between 0 and {MAX_STAT}")


class TournamentRegistry:
    """Keyed collection of tournaments plus the rules that govern them."""

    def __init__(
        self,
        token: TokenTransfer,
        authorizer: Authorizer | None = None,
        *,
        entry_fee: int,
        max_players: int = MAX_PLAYERS,
        policy: PayoutPolicy | None = None,
        clock: Callable[[], int] | None = None,
        store: TournamentStore | None = None,
        events: EventBus | None = None,
    ):
        if entry_fee < 0:
            raise ValueError("entry_fee must be non-negative")
        if max_players < 1:
            raise ValueError("max_players must be at least 1")

        self.token = token
        self.authorizer = authorizer
        self.entry_fee = entry_fee
        self.max_players = max_players
        self.policy = policy or PayoutPolicy()
        self.clock = clock or _unix_now
        self.store = store
        self.events = events or EventBus()

        self._lock = threading.RLock()
        self._tournaments: dict[int, Tournament] = {}

        if store is not None:
            for t in store.load_tournaments():
                self._tournaments[t.id] = t
            logger.info(f"Loaded {len(self._tournaments)} tournaments from store")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _authorize(self, caller: str | None) -> None:
        if self.authorizer is not None:
            self.authorizer.require(caller)

    def _get(self, tournament_id: int) -> Tournament:
        t = self._tournaments.get(tournament_id)
        if t is None:
            raise TournamentDoesNotExist(f"Tournament {tournament_id} does not exist", tournament_id)
        return t

    def _commit(self, draft: Tournament, event: Event | None = None) -> None:
        """Persist the edited copy, publish it, then announce its event.

        If the store raises, the published record is left as it was.
        """
        if self.store is not None:
            self.store.save_tournament(draft)
            if event is not None:
                self.store.append_event(event)
        self._tournaments[draft.id] = draft
        if event is not None:
            self.events.emit(event)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_tournament(self, caller: str | None, tournament_id: int) -> Tournament:
        """Register a new tournament with the configured entry fee."""
        with self._lock:
            self._authorize(caller)
            if tournament_id < 0:
                raise ValueError("tournament id must be non-negative")
            if tournament_id in self._tournaments:
                raise TournamentAlreadyExists(f"Tournament {tournament_id} already exists", tournament_id)

            t = Tournament(id=tournament_id, entry_fee=self.entry_fee)
            self._commit(t, TournamentCreated(id=tournament_id))
            logger.info(f"Tournament {tournament_id} created (entry fee {self.entry_fee})")
            return t

    def start_tournament(self, caller: str | None, tournament_id: int) -> Tournament:
        """Open a tournament for joining."""
        with self._lock:
            self._authorize(caller)
            t = self._get(tournament_id)
            if t.started:
                raise TournamentAlreadyStarted(f"Tournament {tournament_id} already started", tournament_id)

            draft = copy.deepcopy(t)
            draft.start_time = self.clock()
            self._commit(draft, TournamentStarted(id=tournament_id))
            logger.info(f"Tournament {tournament_id} started at {draft.start_time}")
            return draft

    def end_tournament(self, caller: str | None, tournament_id: int) -> Tournament:
        """Close a tournament. Freezes membership and stats.

        Allowed on a tournament that never started.
        """
        with self._lock:
            self._authorize(caller)
            t = self._get(tournament_id)
            if t.ended:
                raise TournamentAlreadyEnded(f"Tournament {tournament_id} already ended", tournament_id)

            draft = copy.deepcopy(t)
            draft.end_time = self.clock()
            self._commit(draft, TournamentEnded(id=tournament_id))
            logger.info(
                f"Tournament {tournament_id} ended at {draft.end_time} "
                f"({len(draft.players)} players, pool {draft.prize_pool})"
            )
            return draft

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def join_tournament(self, player: str, tournament_id: int) -> Tournament:
        """Collect the entry fee from ``player`` and add them to the roster."""
        with self._lock:
            t = self._get(tournament_id)
            if not t.started:
                raise TournamentNotStarted(f"Tournament {tournament_id} has not started", tournament_id)
            if t.ended:
                raise TournamentAlreadyEnded(f"Tournament {tournament_id} already ended", tournament_id)
            if len(t.players) >= self.max_players:
                raise MaxPlayersReached(
                    f"Tournament {tournament_id} is full ({self.max_players} players)", tournament_id
                )
            if t.has_joined(player):
                raise PlayerAlreadyJoined(f"{player} already joined tournament {tournament_id}", tournament_id)

            # Nothing local changes until the fee is in custody
            if not self.token.transfer_in(player, t.entry_fee):
                raise NotEnoughFunds(
                    f"Could not collect entry fee {t.entry_fee} from {player}", tournament_id
                )

            draft = copy.deepcopy(t)
            draft.prize_pool += draft.entry_fee
            draft.players.append(player)
            draft.stats[player] = PlayerStats(join_timestamp=self.clock())
            try:
                self._commit(draft, PlayerJoined(id=tournament_id, player=player, amount=draft.entry_fee))
            except Exception as e:
                logger.error(
                    f"Entry fee {draft.entry_fee} from {player} is in custody but tournament "
                    f"{tournament_id} could not be saved: {e}"
                )
                raise
            logger.info(f"{player} joined tournament {tournament_id} (pool {draft.prize_pool})")
            return draft

    def update_player_stats(
        self,
        caller: str | None,
        tournament_id: int,
        player: str,
        score: int,
        kills: int,
    ) -> PlayerStats:
        """Overwrite a joined player's score and kills. Latest write wins."""
        with self._lock:
            self._authorize(caller)
            t = self._get(tournament_id)
            name = t.find_player(player)
            if name is None:
                raise PlayerNotJoined(f"{player} has not joined tournament {tournament_id}", tournament_id)
            if t.ended:
                raise TournamentAlreadyEnded(f"Tournament {tournament_id} already ended", tournament_id)
            _check_stat("score", score)
            _check_stat("kills", kills)

            draft = copy.deepcopy(t)
            stats = draft.stats[name]
            stats.score = score
            stats.kills = kills
            self._commit(draft)
            logger.debug(f"Tournament {tournament_id}: {name} -> score {score}, kills {kills}")
            return stats

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def withdraw_prize_pool(self, caller: str | None, tournament_id: int) -> Tournament:
        """Distribute the prize pool of an ended tournament. Runs once."""
        with self._lock:
            self._authorize(caller)
            t = self._get(tournament_id)
            check_withdrawable(t)
            beneficiary = self.policy.beneficiary or caller
            if beneficiary is None:
                raise NoBeneficiary(
                    f"Tournament {tournament_id}: no beneficiary configured and no caller given",
                    tournament_id,
                )

            draft = copy.deepcopy(t)
            event = None
            try:
                event = withdraw(draft, self.token, beneficiary, self.policy, now=self.clock())
            finally:
                if draft.withdrawn:
                    # Transfers have run, so memory follows the funds even if the save fails
                    self._tournaments[tournament_id] = draft
                    self._commit(draft, event)
            return draft

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, tournament_id: int) -> bool:
        with self._lock:
            return tournament_id in self._tournaments

    def get_tournament(self, tournament_id: int) -> Tournament:
        with self._lock:
            return self._get(tournament_id)

    def list_tournaments(self) -> list[Tournament]:
        with self._lock:
            return [self._tournaments[k] for k in sorted(self._tournaments)]

    def get_players(self, tournament_id: int) -> list[str]:
        with self._lock:
            return list(self._get(tournament_id).players)

    def get_player_stats(self, tournament_id: int, player: str) -> PlayerStats:
        """Stats for one player. Unjoined players get an empty record."""
        with self._lock:
            t = self._get(tournament_id)
            name = t.find_player(player)
            return t.stats[name] if name is not None else PlayerStats()

    def leaderboard(self, tournament_id: int) -> list[dict]:
        """Current standings, in payout order."""
        with self._lock:
            t = self._get(tournament_id)
            return [
                {"rank": i + 1, "player": player, **t.stats[player].to_dict()}
                for i, player in enumerate(rank_players(t))
            ]
