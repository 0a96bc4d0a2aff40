"""Score verification core.

Accept path for one submission, all under a single lock:
  recover signer -> compare with authority -> check nonce ->
  apply score policies -> commit nonce + player state atomically.

Any rejection along the way leaves the store untouched. The same lock
serializes authority rotation, so a verification never sees a
half-updated authority. Across processes sharing one database the
store's versioned commit takes over: a commit that lost the race is
re-run against the fresh player state.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

import bittensor as bt

from scoreledger.errors import (
    AlreadyInitialized,
    InvalidSigner,
    ScoreLedgerError,
    StateConflict,
    Unauthorized,
)
from scoreledger.ledger.engine import ScoreEngine
from scoreledger.ledger.milestones import get_milestone_score
from scoreledger.ledger.models import (
    AuthorityChange,
    AuthorityConfig,
    PlayerScoreState,
    SubmissionResult,
)
from scoreledger.ledger.nonces import NonceLedger
from scoreledger.protocol.encoding import is_message_encoding_valid
from scoreledger.protocol.messages import Domain, ScoreMessage, SignedSubmission, checksum_address
from scoreledger.protocol.schema import MessageSchema
from scoreledger.protocol.signer import recover_signer
from scoreledger.store.interface import ScoreStore

Listener = Callable[[SubmissionResult], None]
AuthorityListener = Callable[[AuthorityChange], None]

COMMIT_ATTEMPTS = 5


def _addr(address: str | None) -> str:
    """Truncate an address for log readability."""
    if not address:
        return "none"
    return address[:10]


class ScoreService:
    """Verifies signed score messages of one variant and applies them."""

    def __init__(
        self,
        schema: MessageSchema,
        domain: Domain,
        store: ScoreStore,
        listeners: Iterable[Listener] = (),
        authority_listeners: Iterable[AuthorityListener] = (),
    ):
        self.schema = schema
        self.domain = domain
        self.store = store
        self.engine = ScoreEngine(schema)
        self.nonces = NonceLedger(store, scope=schema.key)
        self._listeners: list[Listener] = list(listeners)
        self._authority_listeners: list[AuthorityListener] = list(authority_listeners)
        self._lock = threading.RLock()

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def add_authority_listener(self, listener: AuthorityListener) -> None:
        self._authority_listeners.append(listener)

    # -- Authority / ownership --

    def initialize(self, owner: str, backend_signer: str) -> None:
        """Set owner and backend signer once."""
        owner = checksum_address(owner)
        backend_signer = checksum_address(backend_signer)
        with self._lock:
            if self.store.get_authority().initialized:
                raise AlreadyInitialized("ledger already initialized")
            self.store.put_authority(AuthorityConfig(backend_signer=backend_signer, owner=owner))
        bt.logging.info({"authority": {"event": "initialized", "owner": _addr(owner), "backend_signer": _addr(backend_signer)}})

    @property
    def authority(self) -> str | None:
        return self.store.get_authority().backend_signer

    @property
    def owner(self) -> str | None:
        return self.store.get_authority().owner

    def is_owner(self, caller: str) -> bool:
        """Authorization predicate for admin operations."""
        owner = self.owner
        if owner is None or not caller:
            return False
        try:
            return checksum_address(caller) == owner
        except ValueError:
            return False

    def set_authority(self, caller: str, new_address: str) -> None:
        """Replace the backend signer. Owner only."""
        new_address = checksum_address(new_address)
        with self._lock:
            if not self.is_owner(caller):
                bt.logging.warning({"authority": {"event": "unauthorized", "caller": _addr(caller)}})
                raise Unauthorized(f"caller is not the owner: {caller}")
            config = self.store.get_authority()
            change = AuthorityChange(
                role="backend_signer", previous=config.backend_signer, current=new_address,
            )
            config.backend_signer = new_address
            self.store.put_authority(config)
        bt.logging.info({"authority": {"event": "backend_signer_set", "backend_signer": _addr(new_address)}})
        self._notify(self._authority_listeners, change)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        new_owner = checksum_address(new_owner)
        with self._lock:
            if not self.is_owner(caller):
                bt.logging.warning({"authority": {"event": "unauthorized", "caller": _addr(caller)}})
                raise Unauthorized(f"caller is not the owner: {caller}")
            config = self.store.get_authority()
            change = AuthorityChange(role="owner", previous=config.owner, current=new_owner)
            config.owner = new_owner
            self.store.put_authority(config)
        bt.logging.info({"authority": {"event": "ownership_transferred", "owner": _addr(new_owner)}})
        self._notify(self._authority_listeners, change)

    # -- Reads --

    def get_player(self, player: str) -> PlayerScoreState:
        return self.store.get_player(self.schema.key, checksum_address(player))

    def get_score(self, player: str, field: str) -> int:
        if field not in self.schema.score_field_names:
            raise KeyError(f"{self.schema.primary_type} has no score field {field!r}")
        return self.get_player(player).score(field)

    def is_nonce_used(self, nonce: str) -> bool:
        return self.nonces.is_used(nonce)

    @staticmethod
    def get_milestone_score(index: int) -> int:
        return get_milestone_score(index)

    def is_message_encoding_valid(self, message: ScoreMessage, candidate: bytes | str) -> bool:
        return is_message_encoding_valid(message, self.schema, candidate)

    def get_signer(self, message: ScoreMessage, signature: bytes | str) -> str:
        return recover_signer(message, self.schema, self.domain, signature)

    # -- Accept path --

    def submit(self, submission: SignedSubmission) -> SubmissionResult:
        return self.submit_score(submission.message, submission.signature)

    def submit_score(self, message: ScoreMessage, signature: bytes | str) -> SubmissionResult:
        """Verify and apply one signed score message.

        Raises:
            InvalidMessage, InvalidSignatureFormat, InvalidSigner,
            NonceAlreadyUsed, ScoreNotHigherOrEqual, ScoreBelowThreshold,
            ScoreOverflow, StateConflict. Nothing is written when any of
            these is raised.
        """
        log_ctx = {"player": _addr(message.player), "nonce": message.nonce, "variant": self.schema.key}
        try:
            message.check_schema(self.schema)
            signer = self.get_signer(message, signature)
            with self._lock:
                authority = self.store.get_authority().backend_signer
                if authority is None or signer != authority:
                    raise InvalidSigner(f"signer {signer} is not the backend signer")
                update, committed = self._apply_and_commit(message)
        except ScoreLedgerError as e:
            bt.logging.info({"score_submission": {**log_ctx, "status": "rejected", "reason": e.kind}})
            raise

        result = SubmissionResult(
            variant=self.schema.key,
            player=message.player,
            nonce=message.nonce,
            previous=update.previous,
            changes=update.changes,
            milestones=update.milestones,
            state=committed,
        )
        bt.logging.info({"score_submission": {
            **log_ctx,
            "status": "accepted",
            "changed": result.changed_fields(),
            "milestones": [(m.track.value, m.index) for m in result.milestones],
        }})
        self._notify(self._listeners, result)
        return result

    def _apply_and_commit(self, message: ScoreMessage):
        """Read, apply and commit; re-read and re-apply when another writer got in first."""
        for attempt in range(1, COMMIT_ATTEMPTS + 1):
            self.nonces.check(message.nonce)
            state = self.store.get_player(self.schema.key, message.player)
            update = self.engine.apply(state, message)
            try:
                committed = self.store.commit(self.schema.key, message.nonce, update.state)
            except StateConflict:
                if attempt == COMMIT_ATTEMPTS:
                    raise
                bt.logging.debug({"score_submission": {"nonce": message.nonce, "status": "conflict", "attempt": attempt}})
                continue
            return update, committed

    def _notify(self, listeners: list, payload) -> None:
        # Observers run after commit; a failing observer cannot undo it.
        for listener in listeners:
            try:
                listener(payload)
            except Exception as e:
                bt.logging.warning({"score_listener_error": {"listener": getattr(listener, "__name__", repr(listener)), "error": str(e)}})


__all__ = ["AuthorityListener", "COMMIT_ATTEMPTS", "Listener", "ScoreService"]
