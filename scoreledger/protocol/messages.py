"""Pydantic models for signed score submissions and the signing domain."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, Field, ValidationError, field_validator

from scoreledger.errors import InvalidMessage

from .schema import MessageSchema

UINT256_MAX = 2**256 - 1


def checksum_address(value: str) -> str:
    """Normalise an address to its EIP-55 form, rejecting anything else."""
    if not isinstance(value, str) or not is_address(value):
        raise ValueError(f"not a 20-byte address: {value!r}")
    return to_checksum_address(value)


def _as_uint256(value: Any) -> int:
    # JSON clients send big scores as decimal strings
    if isinstance(value, bool):
        raise ValueError("booleans are not scores")
    if isinstance(value, str):
        if not (value.isascii() and value.isdigit()):
            raise ValueError(f"not a non-negative integer: {value!r}")
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"not an integer: {value!r}")
    if value < 0 or value > UINT256_MAX:
        raise ValueError(f"out of uint256 range: {value}")
    return value


class Domain(BaseModel):
    """EIP-712 domain: who the signature is bound to."""

    name: str
    version: str = "1"
    chain_id: int = Field(ge=0)
    verifying_contract: str

    @field_validator("verifying_contract")
    @classmethod
    def _checksum(cls, v: str) -> str:
        return checksum_address(v)

    @classmethod
    def for_schema(
        cls, schema: MessageSchema, chain_id: int, verifying_contract: str,
    ) -> Domain:
        return cls(
            name=schema.domain_name,
            version=schema.domain_version,
            chain_id=chain_id,
            verifying_contract=verifying_contract,
        )

    def as_eip712(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


class ScoreMessage(BaseModel):
    """A backend-attested score record.

    ``scores`` holds the variant's score fields by name; which names are
    required is decided by the :class:`MessageSchema` the message is
    checked against.
    """

    player: str
    scores: dict[str, int]
    nonce: str

    @field_validator("player")
    @classmethod
    def _checksum(cls, v: str) -> str:
        return checksum_address(v)

    @field_validator("scores", mode="before")
    @classmethod
    def _uint256_values(cls, v: Any) -> dict[str, int]:
        if not isinstance(v, Mapping):
            raise ValueError("scores must be a mapping")
        return {str(k): _as_uint256(val) for k, val in v.items()}

    @classmethod
    def from_fields(cls, schema: MessageSchema, data: Mapping[str, Any]) -> ScoreMessage:
        """Build from the flat struct layout, e.g. ``{player, score, nonce}``."""
        expected = {f.name for f in schema.fields}
        got = set(data)
        if got != expected:
            raise InvalidMessage(
                f"{schema.primary_type} fields mismatch: "
                f"missing={sorted(expected - got)} unexpected={sorted(got - expected)}"
            )
        try:
            return cls(
                player=data["player"],
                scores={name: data[name] for name in schema.score_field_names},
                nonce=data["nonce"],
            )
        except ValidationError as e:
            raise InvalidMessage(str(e)) from e

    def check_schema(self, schema: MessageSchema) -> None:
        """Raise InvalidMessage unless the score names match the variant exactly."""
        if set(self.scores) != set(schema.score_field_names):
            raise InvalidMessage(
                f"{schema.primary_type} expects scores {list(schema.score_field_names)}, "
                f"got {sorted(self.scores)}"
            )

    def to_fields(self, schema: MessageSchema) -> dict[str, Any]:
        """Flat struct layout in declaration order (what gets signed)."""
        self.check_schema(schema)
        out: dict[str, Any] = {"player": self.player}
        for name in schema.score_field_names:
            out[name] = self.scores[name]
        out["nonce"] = self.nonce
        return out


class SignedSubmission(BaseModel):
    message: ScoreMessage
    signature: str = Field(description="0x-prefixed 65-byte r || s || v")


__all__ = [
    "UINT256_MAX",
    "Domain",
    "ScoreMessage",
    "SignedSubmission",
    "checksum_address",
]
