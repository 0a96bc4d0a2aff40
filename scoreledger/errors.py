"""Rejection taxonomy for score submissions and admin calls.

Every error carries a stable ``kind`` string so callers (and the HTTP
layer) can match on it without parsing messages.
"""

from __future__ import annotations


class ScoreLedgerError(Exception):
    """Base class for all rejections raised by the ledger."""

    kind: str = "ScoreLedgerError"

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.kind)
        self.detail = detail


class InvalidMessage(ScoreLedgerError, ValueError):
    """Message does not match the variant schema."""

    kind = "InvalidMessage"


class InvalidSignatureFormat(ScoreLedgerError):
    """Malformed signature: length, recovery id, or high-s value."""

    kind = "InvalidSignatureFormat"


class InvalidSigner(ScoreLedgerError):
    """Recovered signer is not the configured authority."""

    kind = "InvalidSigner"


class NonceAlreadyUsed(ScoreLedgerError):
    kind = "NonceAlreadyUsed"


class ScoreNotHigherOrEqual(ScoreLedgerError):
    """Strict-max field received a value not above the current one."""

    kind = "ScoreNotHigherOrEqual"


# Name used by the high-score contracts for the same condition.
ScoreLowerOrEqualCurrentHighScore = ScoreNotHigherOrEqual


class ScoreBelowThreshold(ScoreLedgerError):
    """Milestone-gated field did not reach the next milestone."""

    kind = "ScoreBelowThreshold"


class ScoreOverflow(ScoreLedgerError, ValueError):
    kind = "ScoreOverflow"


class Unauthorized(ScoreLedgerError):
    """Caller is not the owner."""

    kind = "Unauthorized"


class AlreadyInitialized(ScoreLedgerError):
    kind = "AlreadyInitialized"


class StateConflict(ScoreLedgerError):
    """Player state changed between read and commit (another writer won)."""

    kind = "StateConflict"


ERRORS_BY_KIND: dict[str, type[ScoreLedgerError]] = {
    cls.kind: cls
    for cls in (
        InvalidMessage,
        InvalidSignatureFormat,
        InvalidSigner,
        NonceAlreadyUsed,
        ScoreNotHigherOrEqual,
        ScoreBelowThreshold,
        ScoreOverflow,
        Unauthorized,
        AlreadyInitialized,
        StateConflict,
    )
}


__all__ = [
    "ERRORS_BY_KIND",
    "AlreadyInitialized",
    "InvalidMessage",
    "InvalidSignatureFormat",
    "InvalidSigner",
    "NonceAlreadyUsed",
    "ScoreBelowThreshold",
    "ScoreLedgerError",
    "ScoreLowerOrEqualCurrentHighScore",
    "ScoreNotHigherOrEqual",
    "ScoreOverflow",
    "StateConflict",
    "Unauthorized",
]
