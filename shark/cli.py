#!/usr/bin/env python3
"""
shark/cli.py - Command line interface for Shark

Usage:
    shark serve [--port 8000] [--db shark.db]
    shark create <id>            shark start <id>         shark end <id>
    shark join <id> [--player ADDRESS]
    shark stats <id> <player> <score> <kills>
    shark withdraw <id>
    shark show <id>              shark leaderboard <id>
    shark fund <account> <amount>          (local ledger only)
    shark preview --pool 100 --players 5   (offline payout split)
"""

import argparse
import json
import logging
import sys
import urllib.error
import urllib.request
from pathlib import Path

from shark.config import load_config
from shark.models import MAX_STAT

# Set up logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


# ============================================================================
# HTTP helpers
# ============================================================================


class ArenaError(Exception):
    """Arena answered with an error status."""

    def __init__(self, status: int, code: str, message: str):
        self.status = status
        self.code = code
        super().__init__(f"{code}: {message}")


def _request(server: str, method: str, path: str, body: dict | None = None, caller: str | None = None) -> dict:
    headers = {"Content-Type": "application/json"}
    if caller:
        headers["X-Caller"] = caller
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(
        f"{server.rstrip('/')}{path}", data=data, headers=headers, method=method
    )
    try:
        with urllib.request.urlopen(req, timeout=30) as resp:
            return json.loads(resp.read())
    except urllib.error.HTTPError as e:
        try:
            detail = json.loads(e.read()).get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, dict):
            raise ArenaError(e.code, detail.get("error", "Error"), detail.get("message", ""))
        raise ArenaError(e.code, "HTTPError", str(detail or e.reason))


def _print_tournament(t: dict) -> None:
    print(f"\n🦈 Tournament {t['id']} [{t['status']}]")
    print(f"   Entry fee: {t['entry_fee']}")
    print(f"   Prize pool: {t['prize_pool']}")
    print(f"   Players ({len(t['players'])}): {', '.join(t['players']) or '-'}")
    dist = t.get("distribution")
    if dist:
        print(f"   Owner cut: {dist['owner_cut']} | Remaining: {dist['remaining_pool']} | Unclaimed: {dist['unclaimed']}")
        for p in dist["payouts"]:
            rank = f"#{p['rank']}" if p["rank"] else "  "
            print(f"     {rank:>4} {p['kind']:<10} {p['amount']:>24} -> {p['recipient']} [{p['status']}]")
    print()


# ============================================================================
# Commands
# ============================================================================


def _call(args, method: str, path: str, body: dict | None = None, admin: bool = False) -> dict | None:
    """Run one request, logging arena errors. Returns None on failure."""
    try:
        return _request(args.server, method, path, body, caller=args.caller if admin else None)
    except ArenaError as e:
        logger.error(str(e))
        return None
    except urllib.error.URLError as e:
        logger.error(f"Cannot reach arena server at {args.server}: {e}")
        return None


def cmd_serve(args):
    """Start the tournament server."""
    try:
        import uvicorn
    except ImportError:
        logger.error("Serving requires extra dependencies: pip install shark-tournament[arena]")
        return 1

    from arena.server import app

    # Set config + DB path on app state so lifespan picks them up
    app.state.config = args.config_obj
    app.state.db_path = args.db
    logger.info(f"Starting arena server on port {args.port} (db: {args.db or args.config_obj.arena.db})")
    uvicorn.run(app, host="0.0.0.0", port=args.port, log_level="info")
    return 0


def cmd_create(args):
    t = _call(args, "POST", "/tournaments", {"id": args.id}, admin=True)
    if t is None:
        return 1
    logger.info(f"Created tournament {t['id']} (entry fee {t['entry_fee']})")
    return 0


def cmd_start(args):
    t = _call(args, "POST", f"/tournaments/{args.id}/start", admin=True)
    if t is None:
        return 1
    logger.info(f"Tournament {t['id']} started")
    return 0


def cmd_end(args):
    t = _call(args, "POST", f"/tournaments/{args.id}/end", admin=True)
    if t is None:
        return 1
    logger.info(f"Tournament {t['id']} ended with {len(t['players'])} players, pool {t['prize_pool']}")
    return 0


def cmd_join(args):
    player = args.player or args.caller
    if not player:
        logger.error("No player address: pass --player or set [wallet] address in config")
        return 1
    t = _call(args, "POST", f"/tournaments/{args.id}/join", {"player": player})
    if t is None:
        return 1
    logger.info(f"{player} joined tournament {t['id']} (pool {t['prize_pool']})")
    return 0


def cmd_stats(args):
    body = {"player": args.player, "score": args.score, "kills": args.kills}
    s = _call(args, "POST", f"/tournaments/{args.id}/stats", body, admin=True)
    if s is None:
        return 1
    logger.info(f"{s['player']}: score {s['score']}, kills {s['kills']}")
    return 0


def cmd_withdraw(args):
    t = _call(args, "POST", f"/tournaments/{args.id}/withdraw", admin=True)
    if t is None:
        return 1
    _print_tournament(t)
    return 0


def cmd_show(args):
    t = _call(args, "GET", f"/tournaments/{args.id}")
    if t is None:
        return 1
    _print_tournament(t)
    return 0


def cmd_leaderboard(args):
    data = _call(args, "GET", f"/tournaments/{args.id}/leaderboard")
    if data is None:
        return 1
    print(f"\n🏆 Tournament {args.id} standings\n")
    for row in data["standings"]:
        print(f"   {row['rank']:>2}. {row['player']:<44} score {row['score']:>6}  kills {row['kills']:>4}")
    print()
    return 0


def cmd_fund(args):
    """Mint and approve on the arena's local ledger."""
    if _call(args, "POST", "/token/mint", {"account": args.account, "amount": args.amount}) is None:
        return 1
    bal = _call(args, "POST", "/token/approve", {"owner": args.account, "amount": args.amount})
    if bal is None:
        return 1
    logger.info(f"{args.account}: balance {bal['balance']}, allowance {bal['allowance']}")
    return 0


def cmd_preview(args):
    """Show how a pool would split across N players, ranked in join order."""
    from shark.models import PlayerStats, Tournament
    from shark.payout import PayoutPolicy, plan_distribution

    if args.players < 0 or args.pool < 0:
        logger.error("--pool and --players must be non-negative")
        return 1

    players = [f"player{i + 1}" for i in range(args.players)]
    t = Tournament(id=0, entry_fee=0, prize_pool=args.pool, players=players)
    for i, p in enumerate(players):
        t.stats[p] = PlayerStats(join_timestamp=i)

    policy = PayoutPolicy(return_unclaimed=not args.keep_unclaimed)
    dist = plan_distribution(t, "owner", policy)

    print(f"\n💰 Pool {args.pool} across {args.players} players\n")
    print(f"   Owner cut: {dist.owner_cut}")
    print(f"   Remaining: {dist.remaining_pool}")
    for p in dist.payouts:
        rank = f"#{p.rank}" if p.rank else "  "
        print(f"     {rank:>4} {p.kind:<10} {p.amount:>12} -> {p.recipient}")
    if dist.unclaimed:
        where = "left in custody" if args.keep_unclaimed else "returned to owner"
        print(f"   Unclaimed: {dist.unclaimed} ({where})")
    print()
    return 0


def _stat_value(text: str) -> int:
    """argparse type for score/kills: a non-negative 64-bit integer."""
    value = int(text)
    if not 0 <= value <= MAX_STAT:
        raise argparse.ArgumentTypeError(f"must be between 0 and {MAX_STAT}")
    return value


def main():
    parser = argparse.ArgumentParser(
        prog="shark",
        description="Entry-fee tournaments with ranked prize payouts",
    )
    parser.add_argument("--config", type=Path, default=None, help="Config file (default: ~/.shark/config.toml)")
    parser.add_argument("--server", default=None, help="Arena server URL (default: from config)")
    parser.add_argument("--caller", default=None, help="Identity sent as X-Caller (default: [wallet] address)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Start the tournament server")
    serve_parser.add_argument("--port", "-p", type=int, default=8000, help="Server port (default: 8000)")
    serve_parser.add_argument("--db", default=None, help="SQLite database path (default: from config)")
    serve_parser.set_defaults(func=cmd_serve)

    # lifecycle commands
    for name, func, help_text in [
        ("create", cmd_create, "Create a tournament"),
        ("start", cmd_start, "Open a tournament for joining"),
        ("end", cmd_end, "Close a tournament"),
        ("withdraw", cmd_withdraw, "Distribute a closed tournament's prize pool"),
        ("show", cmd_show, "Show a tournament"),
        ("leaderboard", cmd_leaderboard, "Show current standings"),
    ]:
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("id", type=int, help="Tournament id")
        p.set_defaults(func=func)

    # join command
    join_parser = subparsers.add_parser("join", help="Pay the entry fee and join")
    join_parser.add_argument("id", type=int, help="Tournament id")
    join_parser.add_argument("--player", default=None, help="Player address (default: --caller)")
    join_parser.set_defaults(func=cmd_join)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Push a player's score and kills")
    stats_parser.add_argument("id", type=int, help="Tournament id")
    stats_parser.add_argument("player", help="Player address")
    stats_parser.add_argument("score", type=_stat_value, help="Score")
    stats_parser.add_argument("kills", type=_stat_value, help="Kills")
    stats_parser.set_defaults(func=cmd_stats)

    # fund command
    fund_parser = subparsers.add_parser("fund", help="Mint and approve tokens on the local ledger")
    fund_parser.add_argument("account", help="Account to fund")
    fund_parser.add_argument("amount", type=int, help="Amount in base units")
    fund_parser.set_defaults(func=cmd_fund)

    # preview command
    preview_parser = subparsers.add_parser("preview", help="Preview a payout split offline")
    preview_parser.add_argument("--pool", type=int, required=True, help="Prize pool in base units")
    preview_parser.add_argument("--players", type=int, required=True, help="Number of players")
    preview_parser.add_argument("--keep-unclaimed", action="store_true", help="Leave unclaimed shares in custody")
    preview_parser.set_defaults(func=cmd_preview)

    args = parser.parse_args()

    config = load_config(args.config)
    args.config_obj = config
    args.server = args.server or config.arena.server
    if args.caller is None:
        args.caller = (config.wallet.address if config.wallet else None) or config.admin.owner

    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
