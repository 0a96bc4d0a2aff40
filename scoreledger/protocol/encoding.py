"""Canonical struct encoding for score messages.

structHash = keccak256(typeHash || abi.encode(field_1, ..., keccak256(nonce)))

Address and integer fields are encoded as 32-byte words; the string
nonce is replaced by its own keccak256 hash, so the encoded tuple has a
fixed size whatever the nonce length.
"""

from __future__ import annotations

import binascii

from eth_abi import encode
from eth_utils import decode_hex, keccak

from .messages import ScoreMessage
from .schema import MessageSchema


def encode_data(message: ScoreMessage, schema: MessageSchema) -> bytes:
    """ABI-encode typeHash followed by every field in declaration order."""
    values = message.to_fields(schema)
    abi_types = ["bytes32"]
    abi_values: list = [schema.type_hash]
    for f in schema.fields:
        value = values[f.name]
        if f.type == "string":
            abi_types.append("bytes32")
            abi_values.append(keccak(text=value))
        else:
            abi_types.append(f.type)
            abi_values.append(value)
    return encode(abi_types, abi_values)


def struct_hash(message: ScoreMessage, schema: MessageSchema) -> bytes:
    """32-byte EIP-712 hashStruct of a message."""
    return keccak(encode_data(message, schema))


def is_message_encoding_valid(
    message: ScoreMessage,
    schema: MessageSchema,
    candidate: bytes | str,
) -> bool:
    """Check a caller-supplied digest against our own encoding.

    ``candidate`` may be raw bytes or a 0x-prefixed hex string. Anything
    that does not parse as 32 bytes is simply not a match.
    """
    if isinstance(candidate, str):
        try:
            candidate = decode_hex(candidate)
        except (binascii.Error, ValueError):
            return False
    if not isinstance(candidate, (bytes, bytearray)) or len(candidate) != 32:
        return False
    return bytes(candidate) == struct_hash(message, schema)


__all__ = ["encode_data", "is_message_encoding_valid", "struct_hash"]
