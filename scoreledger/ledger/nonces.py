"""Nonce ledger: single-use submission nonces.

Nonces are caller-chosen strings (UUIDs in practice). Once consumed a
nonce is never released; the set only grows for the ledger's lifetime.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from scoreledger.errors import NonceAlreadyUsed

if TYPE_CHECKING:
    from scoreledger.store.interface import ScoreStore


class NonceLedger:
    """Nonce set for one message variant, backed by a ScoreStore."""

    def __init__(self, store: ScoreStore, scope: str):
        self.store = store
        self.scope = scope

    def is_used(self, nonce: str) -> bool:
        return self.store.is_nonce_used(self.scope, nonce)

    def check(self, nonce: str) -> None:
        """Raise NonceAlreadyUsed without consuming anything."""
        if self.is_used(nonce):
            raise NonceAlreadyUsed(f"nonce already used: {nonce}")

    def consume(self, nonce: str) -> None:
        """Atomically check and mark a nonce as used."""
        if not self.store.mark_nonce_used(self.scope, nonce):
            raise NonceAlreadyUsed(f"nonce already used: {nonce}")


__all__ = ["NonceLedger"]
