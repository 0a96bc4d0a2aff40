"""Shared fixtures: a known backend key and a signed-message factory."""

from __future__ import annotations

import uuid

import pytest

from scoreledger.protocol.messages import Domain, ScoreMessage
from scoreledger.protocol.schema import PEPENADE_CRUSH, MessageSchema
from scoreledger.protocol.signer import sign_message
from scoreledger.service import ScoreService
from scoreledger.store.memory import InMemoryStore

BACKEND_PK = "0xcae3bbc4e392118a36d25189a5b11e76915b9a4f2e287762f47aebc69ff05c89"
BACKEND_ADDRESS = "0x9534a32aeA7588531b5F85C612089011e947cD0E"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PLAYER = "0x96C15A68B5620DcbE86EC199E866Da5B6519Cd3D"


class MessageFactory:
    """Builds and signs messages for one variant, like the game backend does."""

    def __init__(self, schema: MessageSchema, domain: Domain, private_key: str = BACKEND_PK):
        self.schema = schema
        self.domain = domain
        self.private_key = private_key

    def unsigned(self, player: str = PLAYER, nonce: str | None = None, **scores: int) -> ScoreMessage:
        """Missing score fields default to 100."""
        return ScoreMessage(
            player=player,
            scores={name: scores.get(name, 100) for name in self.schema.score_field_names},
            nonce=nonce or str(uuid.uuid4()),
        )

    def sign(self, message: ScoreMessage, private_key: str | None = None) -> str:
        return sign_message(message, self.schema, self.domain, private_key or self.private_key)

    def signed(self, player: str = PLAYER, nonce: str | None = None, **scores: int):
        message = self.unsigned(player=player, nonce=nonce, **scores)
        return message, self.sign(message)


@pytest.fixture
def make_domain():
    def _make(schema: MessageSchema = PEPENADE_CRUSH, chain_id: int = 1337) -> Domain:
        return Domain.for_schema(schema, chain_id=chain_id, verifying_contract=CONTRACT_ADDRESS)
    return _make


@pytest.fixture
def make_ledger(make_domain):
    """Build an initialized ScoreService plus a factory signing for it."""

    def _make(schema: MessageSchema = PEPENADE_CRUSH, store=None, listeners=()):
        domain = make_domain(schema)
        service = ScoreService(
            schema=schema,
            domain=domain,
            store=store if store is not None else InMemoryStore(),
            listeners=listeners,
        )
        service.initialize(owner=OWNER, backend_signer=BACKEND_ADDRESS)
        return service, MessageFactory(schema, domain)

    return _make
