"""
shark/auth.py - Capability check for administrative operations.

The registry never decides who is an admin. It asks an Authorizer, injected
at construction, and lets NotAuthorized propagate to the caller.
"""

from typing import Protocol


class NotAuthorized(PermissionError):
    """Raised when a caller fails the administrative check."""

    status_code = 403

    def __init__(self, caller: str | None):
        self.caller = caller
        super().__init__(f"Caller {caller!r} is not authorized")

    @property
    def code(self) -> str:
        return "NotAuthorized"


class Authorizer(Protocol):
    def is_authorized(self, caller: str | None) -> bool: ...

    def require(self, caller: str | None) -> None: ...


class OwnerAuthorizer:
    """Single-owner check. Addresses compare case-insensitively."""

    def __init__(self, owner: str):
        self.owner = owner

    def is_authorized(self, caller: str | None) -> bool:
        return caller is not None and caller.lower() == self.owner.lower()

    def require(self, caller: str | None) -> None:
        if not self.is_authorized(caller):
            raise NotAuthorized(caller)
