"""Message variant table.

Each variant is described once by an ordered field list with ABI type
tags and per-field update policies. The EIP-712 type string and its
type hash are derived when the schema is built, never per call.

Every variant shares the same envelope: ``player: address`` first and
``nonce: string`` last. Everything in between is a score field.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from eth_utils import keccak


class UpdatePolicy(str, Enum):
    """How a submitted value is folded into the stored one."""

    STRICT_MAX = "strict_max"  # reject unless strictly greater
    ACCUMULATE = "accumulate"  # add to the running total
    MAX = "max"  # replace if greater, otherwise no-op
    MILESTONE = "milestone"  # must reach the next unreached milestone


class MilestoneTrack(str, Enum):
    INDIVIDUAL = "individual"
    CREW = "crew"


@dataclass(frozen=True)
class FieldSpec:
    """One struct member: name, ABI type tag, and how it updates state."""

    name: str
    type: str
    policy: UpdatePolicy | None = None
    track: MilestoneTrack | None = None

    @property
    def is_score(self) -> bool:
        return self.policy is not None


@dataclass(frozen=True)
class MessageSchema:
    """A score-message variant with its canonical type string precomputed."""

    key: str
    primary_type: str
    fields: tuple[FieldSpec, ...]
    domain_name: str
    domain_version: str = "1"
    type_string: str = field(init=False)
    type_hash: bytes = field(init=False)

    def __post_init__(self) -> None:
        _validate_fields(self.fields)
        members = ",".join(f"{f.type} {f.name}" for f in self.fields)
        type_string = f"{self.primary_type}({members})"
        object.__setattr__(self, "type_string", type_string)
        object.__setattr__(self, "type_hash", keccak(text=type_string))

    @property
    def score_fields(self) -> tuple[FieldSpec, ...]:
        return tuple(f for f in self.fields if f.is_score)

    @property
    def score_field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.score_fields)

    @property
    def tracks(self) -> tuple[MilestoneTrack, ...]:
        return tuple(f.track for f in self.score_fields if f.track is not None)

    def eip712_types(self) -> dict[str, list[dict[str, str]]]:
        """Struct definition in the shape typed-data signers expect."""
        return {
            self.primary_type: [{"name": f.name, "type": f.type} for f in self.fields],
        }


def _validate_fields(fields: tuple[FieldSpec, ...]) -> None:
    if len(fields) < 3:
        raise ValueError("schema needs player, at least one score field, and nonce")

    first, last = fields[0], fields[-1]
    if (first.name, first.type) != ("player", "address") or first.is_score:
        raise ValueError("first field must be 'address player'")
    if (last.name, last.type) != ("nonce", "string") or last.is_score:
        raise ValueError("last field must be 'string nonce'")

    names = [f.name for f in fields]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate field names: {names}")

    seen_tracks: set[MilestoneTrack] = set()
    for f in fields[1:-1]:
        if not f.is_score or f.type != "uint256":
            raise ValueError(f"score field {f.name} must be uint256 with a policy")
        if f.policy is UpdatePolicy.MILESTONE and f.track is None:
            raise ValueError(f"milestone field {f.name} needs a track")
        if f.track is not None:
            if f.track in seen_tracks:
                raise ValueError(f"track {f.track.value} assigned twice")
            seen_tracks.add(f.track)


def build_schema(
    key: str,
    primary_type: str,
    score_fields: list[FieldSpec],
    domain_name: str,
    domain_version: str = "1",
) -> MessageSchema:
    """Wrap score fields in the standard player/nonce envelope."""
    return MessageSchema(
        key=key,
        primary_type=primary_type,
        fields=(
            FieldSpec("player", "address"),
            *score_fields,
            FieldSpec("nonce", "string"),
        ),
        domain_name=domain_name,
        domain_version=domain_version,
    )


HIGH_SCORE = build_schema(
    "high_score",
    "HighScoreMessage",
    [FieldSpec("score", "uint256", UpdatePolicy.STRICT_MAX)],
    domain_name="HighScore",
)

SCORE = build_schema(
    "score",
    "ScoreMessage",
    [FieldSpec("score", "uint256", UpdatePolicy.ACCUMULATE)],
    domain_name="Score",
)

MILESTONE = build_schema(
    "milestone",
    "ScoreMessage",
    [FieldSpec("score", "uint256", UpdatePolicy.MILESTONE, MilestoneTrack.INDIVIDUAL)],
    domain_name="Milestone",
)

PEPENADE_CRUSH = build_schema(
    "pepenade_crush",
    "ScoreMessage",
    [
        FieldSpec("totalScore", "uint256", UpdatePolicy.MAX),
        FieldSpec("highScore", "uint256", UpdatePolicy.MAX, MilestoneTrack.INDIVIDUAL),
        FieldSpec("crewScore", "uint256", UpdatePolicy.MAX, MilestoneTrack.CREW),
    ],
    domain_name="PepenadeCrush",
)

VARIANTS: dict[str, MessageSchema] = {
    s.key: s for s in (HIGH_SCORE, SCORE, MILESTONE, PEPENADE_CRUSH)
}


def get_schema(key: str) -> MessageSchema:
    """Look up a built-in variant by key."""
    try:
        return VARIANTS[key]
    except KeyError:
        raise ValueError(
            f"unknown message variant {key!r}, expected one of {sorted(VARIANTS)}"
        ) from None


__all__ = [
    "HIGH_SCORE",
    "MILESTONE",
    "PEPENADE_CRUSH",
    "SCORE",
    "VARIANTS",
    "FieldSpec",
    "MessageSchema",
    "MilestoneTrack",
    "UpdatePolicy",
    "build_schema",
    "get_schema",
]
