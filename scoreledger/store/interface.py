"""ScoreStore protocol - pluggable persisted state.

Implementations: InMemoryStore (tests, single process), SQLStore
(SQLAlchemy; sqlite or any server database).

State is partitioned by ``scope`` (the message variant key): each
variant has its own nonce set and its own per-player records.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from scoreledger.ledger.models import AuthorityConfig, PlayerScoreState


@runtime_checkable
class ScoreStore(Protocol):
    """Abstract interface for the ledger's persisted state."""

    def is_nonce_used(self, scope: str, nonce: str) -> bool:
        ...

    def mark_nonce_used(self, scope: str, nonce: str) -> bool:
        """Mark a nonce used. Returns False if it already was."""
        ...

    def get_player(self, scope: str, player: str) -> PlayerScoreState:
        """Fetch a player's state; unknown players read as all-zero."""
        ...

    def commit(self, scope: str, nonce: str, state: PlayerScoreState) -> PlayerScoreState:
        """Atomically consume ``nonce`` and write ``state``.

        The write only succeeds if the stored record is still at
        ``state.version``; the stored copy is returned with the version
        bumped.

        Raises NonceAlreadyUsed or StateConflict, writing nothing.
        """
        ...

    def get_authority(self) -> AuthorityConfig:
        ...

    def put_authority(self, config: AuthorityConfig) -> None:
        ...


__all__ = ["ScoreStore"]
