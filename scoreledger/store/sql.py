"""SQLAlchemy-backed ScoreStore.

Each ``commit`` runs in one database transaction: the nonce row and the
player row are written together or not at all. The nonce primary key
is the final guard against a replay raced in by another process, and
the player row's version column catches a score update raced in by one:
the write only lands if the row is still at the version that was read.
"""

from __future__ import annotations

from sqlalchemy import create_engine, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from scoreledger.errors import NonceAlreadyUsed, StateConflict
from scoreledger.ledger.models import AuthorityConfig, PlayerScoreState
from scoreledger.protocol.schema import MilestoneTrack

from .tables import AuthorityState, Base, PlayerScoreRow, UsedNonce


def make_engine(url: str) -> Engine:
    """Create an engine; in-memory sqlite is pinned to one shared connection."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


def _row_to_state(row: PlayerScoreRow) -> PlayerScoreState:
    return PlayerScoreState(
        player=row.player,
        scores={k: int(v) for k, v in row.scores.items()},
        milestones={MilestoneTrack(k): int(v) for k, v in row.milestones.items()},
        version=row.version,
    )


class SQLStore:
    """Relational ScoreStore implementation."""

    def __init__(self, url: str = "sqlite://", engine: Engine | None = None):
        self.engine = engine if engine is not None else make_engine(url)
        Base.metadata.create_all(self.engine)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    def close(self) -> None:
        self.engine.dispose()

    def is_nonce_used(self, scope: str, nonce: str) -> bool:
        with self._sessions() as session:
            return session.get(UsedNonce, (scope, nonce)) is not None

    def mark_nonce_used(self, scope: str, nonce: str) -> bool:
        try:
            with self._sessions.begin() as session:
                if session.get(UsedNonce, (scope, nonce)) is not None:
                    return False
                session.add(UsedNonce(scope=scope, nonce=nonce))
        except IntegrityError:
            return False
        return True

    def get_player(self, scope: str, player: str) -> PlayerScoreState:
        with self._sessions() as session:
            row = session.get(PlayerScoreRow, (scope, player))
            if row is None:
                return PlayerScoreState(player=player)
            return _row_to_state(row)

    def commit(self, scope: str, nonce: str, state: PlayerScoreState) -> PlayerScoreState:
        with self._sessions.begin() as session:
            if session.get(UsedNonce, (scope, nonce)) is not None:
                raise NonceAlreadyUsed(f"nonce already used: {nonce}")
            session.add(UsedNonce(scope=scope, nonce=nonce))
            try:
                session.flush()
            except IntegrityError as e:
                raise NonceAlreadyUsed(f"nonce already used: {nonce}") from e
            self._write_player(session, scope, state)
        return state.model_copy(deep=True, update={"version": state.version + 1})

    def _write_player(self, session: Session, scope: str, state: PlayerScoreState) -> None:
        """Insert or compare-and-swap the player row at ``state.version``."""
        scores = {k: str(v) for k, v in state.scores.items()}
        milestones = {track.value: index for track, index in state.milestones.items()}
        conflict = StateConflict(f"{state.player} changed since version {state.version}")

        if state.version == 0:
            session.add(PlayerScoreRow(
                scope=scope,
                player=state.player,
                scores=scores,
                milestones=milestones,
                version=1,
            ))
            try:
                session.flush()
            except IntegrityError as e:
                raise conflict from e
            return

        result = session.execute(
            update(PlayerScoreRow)
            .where(
                PlayerScoreRow.scope == scope,
                PlayerScoreRow.player == state.player,
                PlayerScoreRow.version == state.version,
            )
            .values(scores=scores, milestones=milestones, version=state.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise conflict

    def get_authority(self) -> AuthorityConfig:
        with self._sessions() as session:
            row = session.get(AuthorityState, 1)
            if row is None:
                return AuthorityConfig()
            return AuthorityConfig(backend_signer=row.backend_signer, owner=row.owner)

    def put_authority(self, config: AuthorityConfig) -> None:
        with self._sessions.begin() as session:
            row = session.get(AuthorityState, 1)
            if row is None:
                session.add(AuthorityState(
                    id=1, backend_signer=config.backend_signer, owner=config.owner,
                ))
            else:
                row.backend_signer = config.backend_signer
                row.owner = config.owner


__all__ = ["SQLStore", "make_engine"]
