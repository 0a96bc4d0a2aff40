"""Tests for the nonce ledger."""

import pytest

from scoreledger.errors import NonceAlreadyUsed
from scoreledger.ledger.nonces import NonceLedger
from scoreledger.store.memory import InMemoryStore


@pytest.fixture
def store():
    return InMemoryStore()


class TestNonceLedger:

    def test_fresh_nonce_unused(self, store):
        ledger = NonceLedger(store, "score")
        assert not ledger.is_used("abc")
        ledger.check("abc")

    def test_consume_once(self, store):
        ledger = NonceLedger(store, "score")
        ledger.consume("abc")
        assert ledger.is_used("abc")
        with pytest.raises(NonceAlreadyUsed):
            ledger.consume("abc")
        with pytest.raises(NonceAlreadyUsed):
            ledger.check("abc")

    def test_check_does_not_consume(self, store):
        ledger = NonceLedger(store, "score")
        ledger.check("abc")
        ledger.check("abc")
        assert not ledger.is_used("abc")

    def test_scopes_are_independent(self, store):
        NonceLedger(store, "score").consume("abc")
        assert not NonceLedger(store, "high_score").is_used("abc")

    def test_nonces_are_exact_strings(self, store):
        ledger = NonceLedger(store, "score")
        ledger.consume("ABC")
        assert not ledger.is_used("abc")
        assert not ledger.is_used("ABC ")
