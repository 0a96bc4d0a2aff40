"""Typed-data digest, signer recovery, and backend-side signing.

The backend signs each score message with its authority key. The
ledger recovers the signer from the signature and leaves the accept /
reject decision to the caller, which compares against the configured
authority.
"""

from __future__ import annotations

import binascii
from typing import Any

from eth_abi import encode
from eth_account import Account
from eth_keys import keys
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError
from eth_utils import decode_hex, encode_hex, keccak

from scoreledger.errors import InvalidSignatureFormat

from .encoding import struct_hash
from .messages import Domain, ScoreMessage
from .schema import MessageSchema

DOMAIN_TYPE_STRING = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
DOMAIN_TYPE_HASH = keccak(text=DOMAIN_TYPE_STRING)

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2


def domain_separator(domain: Domain) -> bytes:
    return keccak(encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            DOMAIN_TYPE_HASH,
            keccak(text=domain.name),
            keccak(text=domain.version),
            domain.chain_id,
            domain.verifying_contract,
        ],
    ))


def typed_data_digest(
    message: ScoreMessage, schema: MessageSchema, domain: Domain,
) -> bytes:
    """keccak256(0x1901 || domainSeparator || structHash)"""
    return keccak(b"\x19\x01" + domain_separator(domain) + struct_hash(message, schema))


def split_signature(signature: bytes | str) -> tuple[int, int, int]:
    """Parse a 65-byte r || s || v signature into (v, r, s) with v in {0, 1}.

    Rejects wrong lengths, unknown recovery ids, out-of-range r, and
    high-s values (the malleable twin of every valid signature).
    """
    if isinstance(signature, str):
        try:
            signature = decode_hex(signature)
        except (binascii.Error, ValueError) as e:
            raise InvalidSignatureFormat(f"signature is not hex: {e}") from e
    if not isinstance(signature, (bytes, bytearray)):
        raise InvalidSignatureFormat(f"unsupported signature type: {type(signature).__name__}")
    if len(signature) != 65:
        raise InvalidSignatureFormat(f"signature must be 65 bytes, got {len(signature)}")

    r = int.from_bytes(signature[0:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if v in (27, 28):
        v -= 27
    if v not in (0, 1):
        raise InvalidSignatureFormat(f"invalid recovery id: {signature[64]}")
    if not 0 < r < SECP256K1_N:
        raise InvalidSignatureFormat("r out of range")
    if not 0 < s <= SECP256K1_HALF_N:
        raise InvalidSignatureFormat("s out of range (high-s or zero)")
    return v, r, s


def recover_digest_signer(digest: bytes, signature: bytes | str) -> str:
    """Recover the checksummed address that signed a 32-byte digest."""
    v, r, s = split_signature(signature)
    try:
        public_key = keys.Signature(vrs=(v, r, s)).recover_public_key_from_msg_hash(digest)
    except (BadSignature, KeyValidationError) as e:
        raise InvalidSignatureFormat(f"signature does not recover: {e}") from e
    return public_key.to_checksum_address()


def recover_signer(
    message: ScoreMessage,
    schema: MessageSchema,
    domain: Domain,
    signature: bytes | str,
) -> str:
    """Recover who signed ``message`` under ``domain``."""
    return recover_digest_signer(typed_data_digest(message, schema, domain), signature)


def build_typed_data(
    message: ScoreMessage, schema: MessageSchema, domain: Domain,
) -> dict[str, Any]:
    """Full EIP-712 JSON payload, as handed to wallets and signers."""
    return {
        "types": {
            "EIP712Domain": [
                {"name": "name", "type": "string"},
                {"name": "version", "type": "string"},
                {"name": "chainId", "type": "uint256"},
                {"name": "verifyingContract", "type": "address"},
            ],
            **schema.eip712_types(),
        },
        "primaryType": schema.primary_type,
        "domain": domain.as_eip712(),
        "message": message.to_fields(schema),
    }


def sign_message(
    message: ScoreMessage,
    schema: MessageSchema,
    domain: Domain,
    private_key: str | bytes,
) -> str:
    """Sign a score message as the backend authority.

    Returns:
        0x-prefixed 65-byte signature with v in {27, 28}.
    """
    signed = Account.sign_typed_data(
        private_key,
        domain_data=domain.as_eip712(),
        message_types=schema.eip712_types(),
        message_data=message.to_fields(schema),
    )
    return encode_hex(bytes(signed.signature))


def address_of(private_key: str | bytes) -> str:
    return Account.from_key(private_key).address


__all__ = [
    "DOMAIN_TYPE_HASH",
    "DOMAIN_TYPE_STRING",
    "address_of",
    "build_typed_data",
    "domain_separator",
    "recover_digest_signer",
    "recover_signer",
    "sign_message",
    "split_signature",
    "typed_data_digest",
]
