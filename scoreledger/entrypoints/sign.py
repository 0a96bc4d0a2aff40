"""Backend-signer CLI.

Builds a score message for the configured variant, signs it with the
authority key from ``SCORELEDGER__PRIVATE_KEY`` and prints the message,
signature and struct digest as JSON, ready to POST to /scores.

    scoreledger-sign --player 0x96C1... --score totalScore=10 \
        --score highScore=20 --score crewScore=0
"""

import argparse
import json
import os
import sys
import uuid

import bittensor as bt
from eth_utils import encode_hex

from scoreledger.config import add_args, load_settings
from scoreledger.errors import InvalidMessage
from scoreledger.protocol.encoding import struct_hash
from scoreledger.protocol.messages import ScoreMessage
from scoreledger.protocol.signer import address_of, sign_message


def _parse_scores(pairs: list[str]) -> dict[str, str]:
    scores = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise InvalidMessage(f"expected name=value, got {pair!r}")
        scores[name] = value
    return scores


def main() -> None:
    parser = argparse.ArgumentParser(description="Sign a score message as the backend")
    add_args(parser)
    parser.add_argument("--player", type=str, required=True)
    parser.add_argument("--score", action="append", default=[], help="name=value, repeatable")
    parser.add_argument("--nonce", type=str, default=None, help="Defaults to a fresh UUID4")
    args = parser.parse_args()

    settings = load_settings(args)
    private_key = os.environ.get("SCORELEDGER__PRIVATE_KEY")
    if not private_key:
        bt.logging.error({"score_sign": {"error": "missing_private_key", "detail": "SCORELEDGER__PRIVATE_KEY is required"}})
        sys.exit(1)

    schema = settings.message_schema
    domain = settings.domain()
    try:
        raw = {"player": args.player, **_parse_scores(args.score), "nonce": args.nonce or str(uuid.uuid4())}
        message = ScoreMessage.from_fields(schema, raw)
    except InvalidMessage as e:
        bt.logging.error({"score_sign": {"error": e.kind, "detail": e.detail}})
        sys.exit(2)

    signature = sign_message(message, schema, domain, private_key)
    print(json.dumps({
        "message": message.to_fields(schema),
        "signature": signature,
        "digest": encode_hex(struct_hash(message, schema)),
        "signer": address_of(private_key),
    }, indent=2))


if __name__ == "__main__":
    main()
