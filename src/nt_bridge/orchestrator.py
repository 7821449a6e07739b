"""Capability token for operations reserved to the orchestrating thread."""

from __future__ import annotations

import threading
from typing import Optional

from nt_bridge.errors import ThreadAffinityError


class OrchestratorToken:
    """Proof that the caller is the orchestrator.

    The orchestrator creates one token at startup and passes it explicitly to
    the operations that require it. Revoking the token at shutdown makes any
    late call fail instead of touching torn-down state.
    """

    def __init__(self, owner: str = "main") -> None:
        self.owner = owner
        self._revoked = threading.Event()

    @property
    def revoked(self) -> bool:
        return self._revoked.is_set()

    def revoke(self) -> None:
        self._revoked.set()

    def validate(self) -> None:
        if self._revoked.is_set():
            raise ThreadAffinityError(f"orchestrator token for {self.owner!r} has been revoked")

    def require(self, presented: Optional[OrchestratorToken]) -> None:
        """Check that ``presented`` is this token and still valid."""
        if presented is not self:
            who = presented.owner if presented is not None else "no token"
            raise ThreadAffinityError(f"operation requires the {self.owner!r} orchestrator, got {who!r}")
        self.validate()

    def __repr__(self) -> str:
        state = "revoked" if self.revoked else "active"
        return f"OrchestratorToken({self.owner!r}, {state})"


__all__ = ["OrchestratorToken"]
