"""
shark/config.py - Local configuration management

Reads config from a platform-appropriate config directory:
  - macOS/Linux: ~/.shark/config.toml
  - Windows: %APPDATA%\\shark\\config.toml

Example:
    [tournament]
    entry_fee = 1000000000000000000   # base units (1 token at 18 decimals)
    max_players = 15
    best_effort_payout = false
    return_unclaimed = true

    [admin]
    owner = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    beneficiary = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"  # Defaults to owner

    [arena]
    server = "http://localhost:8000"
    db = "shark.db"

    [chain]
    chain_id = 10143
    rpc_url = "https://testnet-rpc.monad.xyz"
    token = "0x..."   # Omit to run the arena on the in-memory ledger

The custody wallet key is never read from this file by the arena; it comes
from the SHARK_CUSTODY_KEY environment variable. [wallet] is for the CLI.
"""

import logging
import os
import sys
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================


def _get_config_dir() -> Path:
    """Get platform-appropriate config directory."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "shark"
    return Path.home() / ".shark"


CONFIG_DIR = _get_config_dir()
CONFIG_PATH = CONFIG_DIR / "config.toml"

DEFAULT_ARENA_URL = "http://localhost:8000"
DEFAULT_DB_PATH = "shark.db"
DEFAULT_ENTRY_FEE = 10**18  # 1 token at 18 decimals


# ============================================================================
# Data Types
# ============================================================================


@dataclass
class TournamentConfig:
    """Rules applied to every tournament the registry creates."""

    entry_fee: int = DEFAULT_ENTRY_FEE
    max_players: int = 15
    best_effort_payout: bool = False  # True: keep paying after a failed transfer
    return_unclaimed: bool = True  # False: unclaimed shares stay in custody


@dataclass
class AdminConfig:
    """Administrative identity and payout beneficiary."""

    owner: str | None = None
    beneficiary: str | None = None  # Falls back to owner

    @property
    def payee(self) -> str | None:
        return self.beneficiary or self.owner


@dataclass
class ArenaConfig:
    server: str = DEFAULT_ARENA_URL
    db: str = DEFAULT_DB_PATH


@dataclass
class ChainConfig:
    """Blockchain network configuration."""

    chain_id: int = 10143  # Monad testnet
    rpc_url: str = "https://testnet-rpc.monad.xyz"
    token: str | None = None  # ERC-20 used for entry fees and payouts
    receipt_timeout: int = 30


@dataclass
class WalletConfig:
    """Identity the CLI acts as (admin caller, joining player)."""

    address: str | None = None


@dataclass
class SharkConfig:
    """Top-level configuration."""

    tournament: TournamentConfig = field(default_factory=TournamentConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    arena: ArenaConfig = field(default_factory=ArenaConfig)
    chain: ChainConfig | None = None
    wallet: WalletConfig | None = None


# ============================================================================
# Parsing
# ============================================================================


def _section(raw: dict, name: str) -> dict | None:
    data = raw.get(name)
    return data if isinstance(data, dict) else None


def _parse_tournament(data: dict) -> TournamentConfig:
    defaults = TournamentConfig()
    return TournamentConfig(
        entry_fee=int(data.get("entry_fee", defaults.entry_fee)),
        max_players=int(data.get("max_players", defaults.max_players)),
        best_effort_payout=bool(data.get("best_effort_payout", defaults.best_effort_payout)),
        return_unclaimed=bool(data.get("return_unclaimed", defaults.return_unclaimed)),
    )


def load_config(path: Path | None = None) -> SharkConfig:
    """
    Read config from TOML file.

    Args:
        path: Override config file path (default: ~/.shark/config.toml)

    Returns:
        SharkConfig. Missing file or bad TOML returns defaults.
    """
    config_path = path or CONFIG_PATH

    if not config_path.exists():
        return SharkConfig()

    try:
        with open(config_path, "rb") as f:
            raw = tomllib.load(f)
    except Exception as e:
        logger.warning(f"Failed to parse {config_path}: {e}")
        return SharkConfig()

    config = SharkConfig()

    # Parse [tournament] section
    tournament_data = _section(raw, "tournament")
    if tournament_data is not None:
        try:
            config.tournament = _parse_tournament(tournament_data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Bad [tournament] section in {config_path}: {e}")

    # Parse [admin] section
    admin_data = _section(raw, "admin")
    if admin_data is not None:
        config.admin = AdminConfig(
            owner=admin_data.get("owner"),
            beneficiary=admin_data.get("beneficiary"),
        )

    # Parse [arena] section
    arena_data = _section(raw, "arena")
    if arena_data is not None:
        config.arena = ArenaConfig(
            server=arena_data.get("server", DEFAULT_ARENA_URL),
            db=arena_data.get("db", DEFAULT_DB_PATH),
        )

    # Parse [chain] section
    chain_data = _section(raw, "chain")
    if chain_data is not None:
        _defaults = ChainConfig()
        config.chain = ChainConfig(
            chain_id=chain_data.get("chain_id", _defaults.chain_id),
            rpc_url=chain_data.get("rpc_url", _defaults.rpc_url),
            token=chain_data.get("token"),
            receipt_timeout=chain_data.get("receipt_timeout", _defaults.receipt_timeout),
        )

    # Parse [wallet] section
    wallet_data = _section(raw, "wallet")
    if wallet_data is not None:
        config.wallet = WalletConfig(
            address=wallet_data.get("address"),
        )

    return config
