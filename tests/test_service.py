"""Tests for ScoreService: the full accept path and admin operations."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from eth_utils import encode_hex

from scoreledger.errors import (
    AlreadyInitialized,
    InvalidMessage,
    InvalidSignatureFormat,
    InvalidSigner,
    NonceAlreadyUsed,
    ScoreBelowThreshold,
    ScoreLowerOrEqualCurrentHighScore,
    ScoreNotHigherOrEqual,
    StateConflict,
    Unauthorized,
)
from scoreledger.protocol.encoding import struct_hash
from scoreledger.protocol.messages import ScoreMessage, SignedSubmission
from scoreledger.protocol.schema import HIGH_SCORE, MILESTONE, SCORE, MilestoneTrack
from scoreledger.service import ScoreService
from scoreledger.store import InMemoryStore, SQLStore

BACKEND_ADDRESS = "0x9534a32aeA7588531b5F85C612089011e947cD0E"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
OTHER_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
PLAYER = "0x96C15A68B5620DcbE86EC199E866Da5B6519Cd3D"
# Development key for OTHER_ACCOUNT
OTHER_PK = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"


class TestInitialization:

    def test_initialize_sets_owner_and_signer(self, make_domain):
        service = ScoreService(SCORE, make_domain(SCORE), InMemoryStore())
        assert service.authority is None
        service.initialize(owner=OWNER.lower(), backend_signer=BACKEND_ADDRESS)
        assert service.owner == OWNER
        assert service.authority == BACKEND_ADDRESS

    def test_initialize_only_once(self, make_ledger):
        service, _ = make_ledger()
        with pytest.raises(AlreadyInitialized):
            service.initialize(owner=OTHER_ACCOUNT, backend_signer=OTHER_ACCOUNT)
        assert service.owner == OWNER

    def test_uninitialized_rejects_every_signature(self, make_ledger):
        _, factory = make_ledger(SCORE)
        service = ScoreService(SCORE, factory.domain, InMemoryStore())
        message, signature = factory.signed(score=1)
        with pytest.raises(InvalidSigner):
            service.submit_score(message, signature)


class TestAuthority:

    def test_owner_rotates_signer(self, make_ledger):
        service, factory = make_ledger(SCORE)
        service.set_authority(OWNER, OTHER_ACCOUNT)
        assert service.authority == OTHER_ACCOUNT

        message, signature = factory.signed(score=5)
        with pytest.raises(InvalidSigner):
            service.submit_score(message, signature)

        message = factory.unsigned(score=5)
        result = service.submit_score(message, factory.sign(message, OTHER_PK))
        assert result.state.score("score") == 5

    def test_non_owner_rejected(self, make_ledger):
        service, _ = make_ledger()
        with pytest.raises(Unauthorized):
            service.set_authority(OTHER_ACCOUNT, OTHER_ACCOUNT)
        with pytest.raises(Unauthorized):
            service.set_authority("", OTHER_ACCOUNT)
        with pytest.raises(Unauthorized):
            service.set_authority("not-an-address", OTHER_ACCOUNT)
        assert service.authority == BACKEND_ADDRESS

    def test_owner_check_ignores_case(self, make_ledger):
        service, _ = make_ledger()
        assert service.is_owner(OWNER.lower())
        assert not service.is_owner(OTHER_ACCOUNT)

    def test_transfer_ownership(self, make_ledger):
        service, _ = make_ledger()
        service.transfer_ownership(OWNER, OTHER_ACCOUNT)
        assert service.owner == OTHER_ACCOUNT
        with pytest.raises(Unauthorized):
            service.set_authority(OWNER, PLAYER)
        service.set_authority(OTHER_ACCOUNT, PLAYER)
        assert service.authority == PLAYER


class TestSubmitScore:

    def test_accepts_backend_signature(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=100_000)
        result = service.submit_score(message, signature)
        assert result.accepted
        assert result.player == PLAYER
        assert result.previous == {"score": 0}
        assert service.get_score(PLAYER, "score") == 100_000
        assert service.is_nonce_used(message.nonce)

    def test_replay_rejected(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=100_000)
        service.submit_score(message, signature)
        with pytest.raises(NonceAlreadyUsed):
            service.submit_score(message, signature)
        assert service.get_score(PLAYER, "score") == 100_000

    def test_nonce_reuse_with_other_scores_rejected(self, make_ledger):
        service, factory = make_ledger(SCORE)
        service.submit_score(*factory.signed(nonce="fixed", score=1))
        with pytest.raises(NonceAlreadyUsed):
            service.submit_score(*factory.signed(nonce="fixed", score=2))

    def test_wrong_signer(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message = factory.unsigned(score=100)
        with pytest.raises(InvalidSigner):
            service.submit_score(message, factory.sign(message, OTHER_PK))
        assert not service.is_nonce_used(message.nonce)

    def test_tampered_message(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=100)
        tampered = message.model_copy(update={"scores": {"score": 1_000_000}})
        with pytest.raises(InvalidSigner):
            service.submit_score(tampered, signature)

    def test_malformed_signature(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=100)
        with pytest.raises(InvalidSignatureFormat):
            service.submit_score(message, signature[:-2])
        with pytest.raises(InvalidSignatureFormat):
            service.submit_score(message, "0x" + "ff" * 65)

    def test_rejected_nonce_stays_usable(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message = factory.unsigned(score=100)
        with pytest.raises(InvalidSigner):
            service.submit_score(message, factory.sign(message, OTHER_PK))
        service.submit_score(message, factory.sign(message))
        assert service.get_score(PLAYER, "score") == 100

    def test_wrong_variant_message(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message = ScoreMessage(player=PLAYER, scores={"totalScore": 1}, nonce="n")
        with pytest.raises(InvalidMessage):
            service.submit_score(message, factory.sign(factory.unsigned()))

    def test_submit_envelope(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=7)
        result = service.submit(SignedSubmission(message=message, signature=signature))
        assert result.state.score("score") == 7

    def test_players_are_independent(self, make_ledger):
        service, factory = make_ledger(HIGH_SCORE)
        service.submit_score(*factory.signed(score=100))
        service.submit_score(*factory.signed(player=OTHER_ACCOUNT, score=50))
        assert service.get_score(PLAYER, "score") == 100
        assert service.get_score(OTHER_ACCOUNT, "score") == 50

    def test_unknown_field(self, make_ledger):
        service, _ = make_ledger(SCORE)
        with pytest.raises(KeyError):
            service.get_score(PLAYER, "highScore")


class TestPolicies:

    def test_high_score_monotonic(self, make_ledger):
        service, factory = make_ledger(HIGH_SCORE)
        service.submit_score(*factory.signed(score=100))
        with pytest.raises(ScoreLowerOrEqualCurrentHighScore):
            service.submit_score(*factory.signed(score=90))
        with pytest.raises(ScoreNotHigherOrEqual):
            service.submit_score(*factory.signed(score=100))
        service.submit_score(*factory.signed(score=150))
        assert service.get_score(PLAYER, "score") == 150

    def test_score_accumulates(self, make_ledger):
        service, factory = make_ledger(SCORE)
        service.submit_score(*factory.signed(score=100_000))
        result = service.submit_score(*factory.signed(score=100_000))
        assert result.state.score("score") == 200_000

    def test_multi_metric_reports_changed_fields(self, make_ledger):
        service, factory = make_ledger()
        result = service.submit_score(*factory.signed(totalScore=1, highScore=2, crewScore=3))
        assert result.changed_fields() == ["totalScore", "highScore", "crewScore"]

        result = service.submit_score(*factory.signed(totalScore=1, highScore=1, crewScore=10))
        assert result.changed_fields() == ["crewScore"]
        assert [(m.track, m.index) for m in result.milestones] == [(MilestoneTrack.CREW, 1)]

        result = service.submit_score(*factory.signed(totalScore=0, highScore=0, crewScore=0))
        assert result.changes == []
        assert result.state.scores == {"totalScore": 1, "highScore": 2, "crewScore": 10}

    def test_milestone_gate(self, make_ledger):
        service, factory = make_ledger(MILESTONE)
        result = service.submit_score(*factory.signed(score=100))
        assert [m.index for m in result.milestones] == [1, 2, 3, 4, 5]

        message, signature = factory.signed(score=19)
        with pytest.raises(ScoreBelowThreshold):
            service.submit_score(message, signature)
        assert not service.is_nonce_used(message.nonce)
        assert service.get_player(PLAYER).reached(MilestoneTrack.INDIVIDUAL) == 5

        result = service.submit_score(*factory.signed(score=130))
        assert [m.index for m in result.milestones] == [6]

    def test_policy_rejection_writes_nothing(self, make_ledger):
        service, factory = make_ledger(HIGH_SCORE)
        service.submit_score(*factory.signed(score=100))
        before = service.get_player(PLAYER)
        message, signature = factory.signed(score=50)
        with pytest.raises(ScoreNotHigherOrEqual):
            service.submit_score(message, signature)
        assert service.get_player(PLAYER) == before
        assert not service.is_nonce_used(message.nonce)


class TestQueries:

    def test_milestone_score(self, make_ledger):
        service, _ = make_ledger()
        assert [service.get_milestone_score(i) for i in range(6)] == [0, 10, 20, 30, 50, 80]

    def test_get_signer(self, make_ledger):
        service, factory = make_ledger()
        message, signature = factory.signed()
        assert service.get_signer(message, signature) == BACKEND_ADDRESS
        assert service.get_signer(message, factory.sign(message, OTHER_PK)) == OTHER_ACCOUNT

    def test_is_message_encoding_valid(self, make_ledger):
        service, factory = make_ledger()
        message = factory.unsigned()
        digest = struct_hash(message, service.schema)
        assert service.is_message_encoding_valid(message, digest)
        assert service.is_message_encoding_valid(message, encode_hex(digest))
        assert not service.is_message_encoding_valid(message, b"\x00" * 32)


class TestAuthorityListeners:

    def test_signer_rotation_notifies(self, make_ledger):
        changes = []
        service, _ = make_ledger()
        service.add_authority_listener(changes.append)
        service.set_authority(OWNER, OTHER_ACCOUNT)
        assert [(c.role, c.previous, c.current) for c in changes] == [
            ("backend_signer", BACKEND_ADDRESS, OTHER_ACCOUNT),
        ]

    def test_ownership_transfer_notifies(self, make_ledger, make_domain):
        changes = []
        service = ScoreService(
            SCORE, make_domain(SCORE), InMemoryStore(), authority_listeners=[changes.append],
        )
        service.initialize(owner=OWNER, backend_signer=BACKEND_ADDRESS)
        service.transfer_ownership(OWNER, OTHER_ACCOUNT)
        assert [(c.role, c.previous, c.current) for c in changes] == [
            ("owner", OWNER, OTHER_ACCOUNT),
        ]

    def test_rejected_rotation_does_not_notify(self, make_ledger):
        changes = []
        service, _ = make_ledger()
        service.add_authority_listener(changes.append)
        with pytest.raises(Unauthorized):
            service.set_authority(OTHER_ACCOUNT, OTHER_ACCOUNT)
        assert changes == []


class TestListeners:

    def test_listener_receives_result(self, make_ledger):
        seen = []
        service, factory = make_ledger(SCORE, listeners=[seen.append])
        service.submit_score(*factory.signed(score=3))
        assert len(seen) == 1
        assert seen[0].state.score("score") == 3

    def test_listener_added_later(self, make_ledger):
        seen = []
        service, factory = make_ledger(SCORE)
        service.submit_score(*factory.signed(score=1))
        service.add_listener(seen.append)
        service.submit_score(*factory.signed(score=2))
        assert [r.state.score("score") for r in seen] == [3]

    def test_listener_not_called_on_rejection(self, make_ledger):
        seen = []
        service, factory = make_ledger(HIGH_SCORE, listeners=[seen.append])
        service.submit_score(*factory.signed(score=3))
        with pytest.raises(ScoreNotHigherOrEqual):
            service.submit_score(*factory.signed(score=2))
        assert len(seen) == 1

    def test_failing_listener_does_not_undo_commit(self, make_ledger):
        def broken(result):
            raise RuntimeError("listener down")

        seen = []
        service, factory = make_ledger(SCORE, listeners=[broken, seen.append])
        result = service.submit_score(*factory.signed(score=3))
        assert result.accepted
        assert len(seen) == 1
        assert service.get_score(PLAYER, "score") == 3


class TestConcurrency:

    def test_same_nonce_accepted_once(self, make_ledger):
        service, factory = make_ledger(SCORE)
        message, signature = factory.signed(score=1)
        barrier = threading.Barrier(8)

        def submit(_):
            barrier.wait()
            try:
                service.submit_score(message, signature)
                return True
            except NonceAlreadyUsed:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            outcomes = list(pool.map(submit, range(8)))

        assert outcomes.count(True) == 1
        assert service.get_score(PLAYER, "score") == 1

    def test_parallel_accumulation_is_serialized(self, make_ledger):
        service, factory = make_ledger(SCORE)
        signed = [factory.signed(score=1) for _ in range(20)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda ms: service.submit_score(*ms), signed))

        assert service.get_score(PLAYER, "score") == 20


class TestSQLBackedService:

    def test_state_persists_across_services(self, make_ledger, make_domain, tmp_path):
        url = f"sqlite:///{tmp_path / 'scores.db'}"
        store = SQLStore(url)
        service, factory = make_ledger(HIGH_SCORE, store=store)
        message, signature = factory.signed(score=100)
        service.submit_score(message, signature)
        store.close()

        reopened = SQLStore(url)
        try:
            again = ScoreService(HIGH_SCORE, make_domain(HIGH_SCORE), reopened)
            assert again.authority == BACKEND_ADDRESS
            assert again.get_score(PLAYER, "score") == 100
            with pytest.raises(NonceAlreadyUsed):
                again.submit_score(message, signature)
            with pytest.raises(ScoreNotHigherOrEqual):
                again.submit_score(*factory.signed(score=100))
        finally:
            reopened.close()

    def test_concurrent_writer_is_reapplied_not_lost(self, make_ledger, tmp_path):
        """Two services on one database; the second's read goes stale before it commits."""
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        first_store = SQLStore(url)
        first, factory = make_ledger(SCORE, store=first_store)
        racing = factory.signed(score=10)

        class _InterleavingStore(SQLStore):
            """Lets the other service commit right after our first read."""

            def __init__(self, url):
                super().__init__(url)
                self.reads = 0

            def get_player(self, scope, player):
                state = super().get_player(scope, player)
                self.reads += 1
                if self.reads == 1:
                    first.submit_score(*racing)
                return state

        second_store = _InterleavingStore(url)
        try:
            second = ScoreService(SCORE, factory.domain, second_store)
            message, signature = factory.signed(score=10)
            result = second.submit_score(message, signature)

            assert second_store.reads == 2
            assert result.previous == {"score": 10}
            assert result.state.score("score") == 20
            assert first.get_score(PLAYER, "score") == 20
            assert first.is_nonce_used(racing[0].nonce)
            assert first.is_nonce_used(message.nonce)
        finally:
            first_store.close()
            second_store.close()

    def test_gives_up_after_repeated_conflicts(self, make_ledger):
        class _AlwaysStale(InMemoryStore):
            def commit(self, scope, nonce, state):
                raise StateConflict("always behind")

        service, factory = make_ledger(SCORE, store=_AlwaysStale())
        message, signature = factory.signed(score=1)
        with pytest.raises(StateConflict):
            service.submit_score(message, signature)
        assert not service.is_nonce_used(message.nonce)
