"""Signed score-message protocol: variant schemas, canonical encoding,
EIP-712 digests and signer recovery.
"""

from .encoding import encode_data, is_message_encoding_valid, struct_hash
from .messages import Domain, ScoreMessage, SignedSubmission
from .schema import (
    HIGH_SCORE,
    MILESTONE,
    PEPENADE_CRUSH,
    SCORE,
    VARIANTS,
    FieldSpec,
    MessageSchema,
    MilestoneTrack,
    UpdatePolicy,
    build_schema,
    get_schema,
)
from .signer import recover_signer, sign_message, typed_data_digest

__all__ = [
    "HIGH_SCORE",
    "MILESTONE",
    "PEPENADE_CRUSH",
    "SCORE",
    "VARIANTS",
    "Domain",
    "FieldSpec",
    "MessageSchema",
    "MilestoneTrack",
    "ScoreMessage",
    "SignedSubmission",
    "UpdatePolicy",
    "build_schema",
    "encode_data",
    "get_schema",
    "is_message_encoding_valid",
    "recover_signer",
    "sign_message",
    "struct_hash",
    "typed_data_digest",
]
