"""Pydantic models for per-player score state and submission outcomes."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from scoreledger.protocol.schema import MilestoneTrack


class AuthorityConfig(BaseModel):
    """Who may sign scores, and who may change that."""

    backend_signer: str | None = None
    owner: str | None = None

    @property
    def initialized(self) -> bool:
        return self.owner is not None


class PlayerScoreState(BaseModel):
    """Stored scores and reached milestone indices for one player.

    Missing entries read as zero: a player who never submitted is
    indistinguishable from one whose scores are all zero.
    """

    player: str
    scores: dict[str, int] = Field(default_factory=dict)
    milestones: dict[MilestoneTrack, int] = Field(
        default_factory=dict,
        description="Track -> highest reached milestone index",
    )
    version: int = Field(
        default=0,
        description="Store revision this state was read at; 0 for a new player",
    )

    def score(self, name: str) -> int:
        return self.scores.get(name, 0)

    def reached(self, track: MilestoneTrack) -> int:
        return self.milestones.get(track, 0)


class ScoreChange(BaseModel):
    """Before/after for one field that actually moved."""

    field: str
    previous: int
    current: int


class MilestoneCrossing(BaseModel):
    track: MilestoneTrack
    index: int
    threshold: int


class AuthorityChange(BaseModel):
    """Owner-side rotation of the backend signer or the owner itself."""

    role: Literal["backend_signer", "owner"]
    previous: str | None
    current: str


class SubmissionResult(BaseModel):
    """What an accepted submission did."""

    accepted: bool = True
    variant: str
    player: str
    nonce: str
    previous: dict[str, int] = Field(description="Field values before the update")
    changes: list[ScoreChange] = Field(default_factory=list)
    milestones: list[MilestoneCrossing] = Field(default_factory=list)
    state: PlayerScoreState

    def changed_fields(self) -> list[str]:
        return [c.field for c in self.changes]


__all__ = [
    "AuthorityChange",
    "AuthorityConfig",
    "MilestoneCrossing",
    "PlayerScoreState",
    "ScoreChange",
    "SubmissionResult",
]
