"""SQLAlchemy tables backing SQLStore."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UsedNonce(Base):
    """A consumed submission nonce. Rows are never deleted."""

    __tablename__ = "used_nonces"

    scope: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="Message variant the nonce was consumed under",
    )
    nonce: Mapped[str] = mapped_column(String, primary_key=True)
    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )


class PlayerScoreRow(Base):
    """Per-player score record for one variant."""

    __tablename__ = "player_scores"

    scope: Mapped[str] = mapped_column(String(64), primary_key=True)
    player: Mapped[str] = mapped_column(
        String(42),
        primary_key=True,
        comment="EIP-55 checksummed address",
    )
    scores: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Field name -> decimal string (uint256 does not fit BIGINT)",
    )
    milestones: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Track -> highest reached milestone index",
    )
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Bumped on every write; commits compare-and-swap on it",
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )


class AuthorityState(Base):
    """Singleton row holding the backend signer and owner.

    Always contains at most one row (id=1).
    """

    __tablename__ = "authority_state"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        default=1,
        comment="Singleton row (always id=1)",
    )
    backend_signer: Mapped[str | None] = mapped_column(String(42))
    owner: Mapped[str | None] = mapped_column(String(42))


__all__ = ["AuthorityState", "Base", "PlayerScoreRow", "UsedNonce"]
