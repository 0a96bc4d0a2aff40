"""Score ledger state: nonce ledger, milestone sequence, and the score
engine that folds verified messages into per-player state.
"""

from .engine import ScoreEngine, ScoreUpdate
from .milestones import crossed_milestones, get_milestone_score
from .models import (
    AuthorityChange,
    AuthorityConfig,
    MilestoneCrossing,
    PlayerScoreState,
    ScoreChange,
    SubmissionResult,
)
from .nonces import NonceLedger

__all__ = [
    "AuthorityChange",
    "AuthorityConfig",
    "MilestoneCrossing",
    "NonceLedger",
    "PlayerScoreState",
    "ScoreChange",
    "ScoreEngine",
    "ScoreUpdate",
    "SubmissionResult",
    "crossed_milestones",
    "get_milestone_score",
]
