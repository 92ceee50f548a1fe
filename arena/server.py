"""
arena/server.py - FastAPI tournament server for Shark.

Endpoints:
    POST   /tournaments                    Create a tournament (admin)
    GET    /tournaments                    List tournaments
    GET    /tournaments/{id}               Tournament details
    POST   /tournaments/{id}/start         Open joining (admin)
    POST   /tournaments/{id}/end           Close the tournament (admin)
    POST   /tournaments/{id}/join          Pay the entry fee and join
    POST   /tournaments/{id}/stats         Push a player's score/kills (admin)
    POST   /tournaments/{id}/withdraw      Distribute the prize pool (admin)
    GET    /tournaments/{id}/leaderboard   Current standings
    GET    /tournaments/{id}/events        Notifications for one tournament
    GET    /events                         All notifications
    GET    /health                         Server health check

Local ledger only (no [chain] token configured):
    POST   /token/mint                     Credit an account
    POST   /token/approve                  Approve the custody account
    GET    /token/balance/{account}        Balance and allowance

Administrative calls identify themselves with the X-Caller header.
"""

import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import Any

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel, Field

from shark.auth import NotAuthorized, OwnerAuthorizer
from shark.config import SharkConfig, load_config
from shark.errors import TournamentError
from shark.models import MAX_STAT
from shark.payout import PayoutPolicy
from shark.registry import TournamentRegistry
from shark.token import ERC20Token, InMemoryToken, load_custody_account

from .db import TournamentDB

logger = logging.getLogger(__name__)

# =============================================================================
# Custody Wallet
# =============================================================================
# SECURITY: the custody key is loaded from env var, NOT the config file.
# This wallet holds every prize pool between join and withdrawal.


def build_token(config: SharkConfig):
    """Pick the transfer binding: ERC-20 if a token is configured, else in-memory."""
    chain = config.chain
    if chain is None or not chain.token:
        logger.warning("No [chain] token configured — using the in-memory ledger")
        return InMemoryToken()

    account = load_custody_account(os.environ.get("SHARK_CUSTODY_KEY"))
    if account is None:
        raise RuntimeError(
            f"Token {chain.token} configured but SHARK_CUSTODY_KEY is not set"
        )
    return ERC20Token(
        account,
        rpc_url=chain.rpc_url,
        token_address=chain.token,
        receipt_timeout=chain.receipt_timeout,
    )


def build_registry(config: SharkConfig, token, db: TournamentDB | None = None) -> TournamentRegistry:
    """Wire a registry from config: fee, capacity, payout policy, admin check."""
    authorizer = OwnerAuthorizer(config.admin.owner) if config.admin.owner else None
    payee = config.admin.payee
    if payee and isinstance(token, ERC20Token):
        # Raises on a malformed address
        payee = token.checksum(payee)
    policy = PayoutPolicy(
        best_effort=config.tournament.best_effort_payout,
        return_unclaimed=config.tournament.return_unclaimed,
        beneficiary=payee,
    )
    return TournamentRegistry(
        token,
        authorizer,
        entry_fee=config.tournament.entry_fee,
        max_players=config.tournament.max_players,
        policy=policy,
        store=db,
    )


# Global state, set during lifespan
_db: TournamentDB | None = None
_token = None
_registry: TournamentRegistry | None = None


def get_db() -> TournamentDB:
    assert _db is not None, "DB not initialized"
    return _db


def get_registry() -> TournamentRegistry:
    assert _registry is not None, "Registry not initialized"
    return _registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _db, _token, _registry
    config = getattr(app.state, "config", None) or load_config()
    db_path = getattr(app.state, "db_path", None) or config.arena.db

    _db = TournamentDB(db_path)
    logger.info(f"Tournament DB initialized: {db_path}")
    _token = build_token(config)
    _registry = build_registry(config, _token, _db)

    _log_startup_config(config)

    yield
    _db.close()
    _db = None
    _token = None
    _registry = None


def _log_startup_config(config: SharkConfig):
    """Log server configuration on startup so operators can verify it."""
    logger.info("=" * 50)
    logger.info("Shark arena startup config:")
    logger.info(
        f"  Entry fee: {config.tournament.entry_fee} | "
        f"Max players: {config.tournament.max_players}"
    )
    if config.admin.owner:
        logger.info(f"  Owner: {config.admin.owner}")
        logger.info(f"  Beneficiary: {config.admin.payee}")
    else:
        logger.warning("  Owner: NOT configured — admin checks DISABLED")
    if isinstance(_token, ERC20Token):
        logger.info(f"  Token: {config.chain.token} (chain {config.chain.chain_id})")
        logger.info(f"  Custody wallet: {_token.custody}")
    else:
        logger.info("  Token: in-memory ledger (local play only)")
    policy = "best-effort" if config.tournament.best_effort_payout else "strict"
    logger.info(f"  Payout policy: {policy}, return unclaimed: {config.tournament.return_unclaimed}")
    logger.info("=" * 50)


app = FastAPI(title="Shark Tournament Arena", lifespan=lifespan)

# Allow the website (and other frontends) to call arena endpoints
from starlette.middleware.cors import CORSMiddleware

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@contextmanager
def _domain_errors():
    """Turn domain failures into HTTP errors carrying the error name."""
    try:
        yield
    except (TournamentError, NotAuthorized) as e:
        raise HTTPException(
            status_code=e.status_code,
            detail={"error": e.code, "message": str(e)},
        ) from e


# ======================================================================
# Request/Response Models
# ======================================================================


class CreateRequest(BaseModel):
    id: int = Field(ge=0)


class JoinRequest(BaseModel):
    player: str


class StatsRequest(BaseModel):
    player: str
    score: int = Field(ge=0, le=MAX_STAT)
    kills: int = Field(ge=0, le=MAX_STAT)


class TournamentResponse(BaseModel):
    id: int
    status: str
    entry_fee: int
    start_time: int | None = None
    end_time: int | None = None
    prize_pool: int
    withdrawn: bool
    players: list[str]
    stats: dict[str, dict[str, Any]]
    distribution: dict[str, Any] | None = None


class StatsResponse(BaseModel):
    tournament_id: int
    player: str
    score: int
    kills: int
    join_timestamp: int | None = None


class MintRequest(BaseModel):
    account: str
    amount: int = Field(ge=0)


class ApproveRequest(BaseModel):
    owner: str
    amount: int = Field(ge=0)


class BalanceResponse(BaseModel):
    account: str
    balance: int
    allowance: int


class HealthResponse(BaseModel):
    status: str
    tournaments: int
    open_tournaments: int
    token: str


# ======================================================================
# Tournament Endpoints
# ======================================================================


@app.post("/tournaments", response_model=TournamentResponse)
def create_tournament(req: CreateRequest, x_caller: str | None = Header(default=None)) -> dict[str, Any]:
    """Create a tournament with the configured entry fee."""
    with _domain_errors():
        t = get_registry().create_tournament(x_caller, req.id)
    return t.to_dict()


@app.get("/tournaments")
def list_tournaments() -> dict[str, Any]:
    tournaments = [t.to_dict() for t in get_registry().list_tournaments()]
    return {"tournaments": tournaments, "count": len(tournaments)}


@app.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int) -> dict[str, Any]:
    with _domain_errors():
        t = get_registry().get_tournament(tournament_id)
    return t.to_dict()


@app.post("/tournaments/{tournament_id}/start", response_model=TournamentResponse)
def start_tournament(tournament_id: int, x_caller: str | None = Header(default=None)) -> dict[str, Any]:
    """Open a tournament for joining."""
    with _domain_errors():
        t = get_registry().start_tournament(x_caller, tournament_id)
    return t.to_dict()


@app.post("/tournaments/{tournament_id}/end", response_model=TournamentResponse)
def end_tournament(tournament_id: int, x_caller: str | None = Header(default=None)) -> dict[str, Any]:
    """Close a tournament. Membership and stats freeze."""
    with _domain_errors():
        t = get_registry().end_tournament(x_caller, tournament_id)
    return t.to_dict()


@app.post("/tournaments/{tournament_id}/join", response_model=TournamentResponse)
def join_tournament(tournament_id: int, req: JoinRequest) -> dict[str, Any]:
    """Pay the entry fee and join. The player must have approved custody first."""
    with _domain_errors():
        t = get_registry().join_tournament(req.player, tournament_id)
    return t.to_dict()


@app.post("/tournaments/{tournament_id}/stats", response_model=StatsResponse)
def update_stats(
    tournament_id: int,
    req: StatsRequest,
    x_caller: str | None = Header(default=None),
) -> dict[str, Any]:
    """Overwrite a player's score and kills."""
    with _domain_errors():
        stats = get_registry().update_player_stats(
            x_caller, tournament_id, req.player, req.score, req.kills
        )
    return {"tournament_id": tournament_id, "player": req.player, **stats.to_dict()}


@app.post("/tournaments/{tournament_id}/withdraw", response_model=TournamentResponse)
def withdraw_prize_pool(tournament_id: int, x_caller: str | None = Header(default=None)) -> dict[str, Any]:
    """Distribute the prize pool. Works once per tournament."""
    with _domain_errors():
        t = get_registry().withdraw_prize_pool(x_caller, tournament_id)
    return t.to_dict()


@app.get("/tournaments/{tournament_id}/leaderboard")
def leaderboard(tournament_id: int) -> dict[str, Any]:
    with _domain_errors():
        rows = get_registry().leaderboard(tournament_id)
    return {"tournament_id": tournament_id, "standings": rows}


@app.get("/tournaments/{tournament_id}/events")
def tournament_events(tournament_id: int) -> dict[str, Any]:
    with _domain_errors():
        get_registry().get_tournament(tournament_id)
    events = get_db().list_events(tournament_id)
    return {"tournament_id": tournament_id, "events": events, "count": len(events)}


@app.get("/events")
def all_events() -> dict[str, Any]:
    events = get_db().list_events()
    return {"events": events, "count": len(events)}


@app.get("/health", response_model=HealthResponse)
def health() -> dict[str, Any]:
    db = get_db()
    return {
        "status": "ok",
        "tournaments": db.tournament_count(),
        "open_tournaments": db.open_tournaments(),
        "token": "erc20" if isinstance(_token, ERC20Token) else "memory",
    }


# ======================================================================
# Local Ledger Endpoints
# ======================================================================


def _memory_token() -> InMemoryToken:
    if not isinstance(_token, InMemoryToken):
        raise HTTPException(status_code=404, detail="Local ledger not enabled")
    return _token


@app.post("/token/mint", response_model=BalanceResponse)
def mint(req: MintRequest) -> dict[str, Any]:
    token = _memory_token()
    token.mint(req.account, req.amount)
    logger.info(f"Minted {req.amount} to {req.account}")
    return {
        "account": req.account,
        "balance": token.balance_of(req.account),
        "allowance": token.allowance(req.account),
    }


@app.post("/token/approve", response_model=BalanceResponse)
def approve(req: ApproveRequest) -> dict[str, Any]:
    token = _memory_token()
    token.approve(req.owner, req.amount)
    return {
        "account": req.owner,
        "balance": token.balance_of(req.owner),
        "allowance": token.allowance(req.owner),
    }


@app.get("/token/balance/{account}", response_model=BalanceResponse)
def balance(account: str) -> dict[str, Any]:
    token = _memory_token()
    return {
        "account": account,
        "balance": token.balance_of(account),
        "allowance": token.allowance(account),
    }
