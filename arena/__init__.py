"""
arena - Tournament server for Shark

Exposes the registry and payout engine over HTTP and keeps every
tournament and notification in SQLite. The arena never decides scores;
an administrative client pushes them in.
"""

from .server import app
from .db import TournamentDB

__all__ = ["app", "TournamentDB"]
