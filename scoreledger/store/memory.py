"""In-process ScoreStore. Nothing survives a restart."""

from __future__ import annotations

import threading

from scoreledger.errors import NonceAlreadyUsed, StateConflict
from scoreledger.ledger.models import AuthorityConfig, PlayerScoreState


class InMemoryStore:
    """Dict-backed ScoreStore implementation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._nonces: dict[str, set[str]] = {}
        self._players: dict[tuple[str, str], PlayerScoreState] = {}
        self._authority = AuthorityConfig()

    def is_nonce_used(self, scope: str, nonce: str) -> bool:
        with self._lock:
            return nonce in self._nonces.get(scope, ())

    def mark_nonce_used(self, scope: str, nonce: str) -> bool:
        with self._lock:
            used = self._nonces.setdefault(scope, set())
            if nonce in used:
                return False
            used.add(nonce)
            return True

    def get_player(self, scope: str, player: str) -> PlayerScoreState:
        with self._lock:
            state = self._players.get((scope, player))
        if state is None:
            return PlayerScoreState(player=player)
        return state.model_copy(deep=True)

    def commit(self, scope: str, nonce: str, state: PlayerScoreState) -> PlayerScoreState:
        key = (scope, state.player)
        with self._lock:
            used = self._nonces.setdefault(scope, set())
            if nonce in used:
                raise NonceAlreadyUsed(f"nonce already used: {nonce}")
            stored = self._players.get(key)
            stored_version = stored.version if stored is not None else 0
            if stored_version != state.version:
                raise StateConflict(
                    f"{state.player} is at version {stored_version}, not {state.version}"
                )
            used.add(nonce)
            committed = state.model_copy(deep=True, update={"version": state.version + 1})
            self._players[key] = committed
        return committed.model_copy(deep=True)

    def get_authority(self) -> AuthorityConfig:
        with self._lock:
            return self._authority.model_copy()

    def put_authority(self, config: AuthorityConfig) -> None:
        with self._lock:
            self._authority = config.model_copy()


__all__ = ["InMemoryStore"]
