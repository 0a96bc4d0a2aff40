"""Score state transitions.

The engine folds a verified message into a player's state according to
each field's update policy and reports what moved. It never mutates the
state it is given: every field is checked against a copy first, so a
rejection on any field leaves nothing half-applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from scoreledger.errors import ScoreBelowThreshold, ScoreNotHigherOrEqual, ScoreOverflow
from scoreledger.protocol.messages import UINT256_MAX, ScoreMessage
from scoreledger.protocol.schema import FieldSpec, MessageSchema, UpdatePolicy

from .milestones import MAX_MILESTONE_INDEX, crossed_milestones, get_milestone_score
from .models import MilestoneCrossing, PlayerScoreState, ScoreChange


@dataclass
class ScoreUpdate:
    """Result of applying one message to one player."""

    state: PlayerScoreState
    previous: dict[str, int]
    changes: list[ScoreChange] = field(default_factory=list)
    milestones: list[MilestoneCrossing] = field(default_factory=list)


class ScoreEngine:
    """Applies score messages of one variant to player state."""

    def __init__(self, schema: MessageSchema):
        self.schema = schema

    def apply(self, state: PlayerScoreState, message: ScoreMessage) -> ScoreUpdate:
        """Compute the next state for ``message.player``.

        Raises:
            ScoreNotHigherOrEqual: strict-max field not strictly above current.
            ScoreBelowThreshold: milestone field below the next threshold
                (reaching it exactly is enough).
            ScoreOverflow: accumulated total exceeds uint256.
        """
        message.check_schema(self.schema)
        new_state = state.model_copy(deep=True)
        previous = {f.name: state.score(f.name) for f in self.schema.score_fields}
        update = ScoreUpdate(state=new_state, previous=previous)

        for spec in self.schema.score_fields:
            current = previous[spec.name]
            value = self._next_value(spec, state, current, message.scores[spec.name])
            if value != current:
                new_state.scores[spec.name] = value
                update.changes.append(
                    ScoreChange(field=spec.name, previous=current, current=value)
                )
            if spec.track is not None:
                reached = state.reached(spec.track)
                for index in crossed_milestones(value, reached):
                    update.milestones.append(MilestoneCrossing(
                        track=spec.track,
                        index=index,
                        threshold=get_milestone_score(index),
                    ))
                    new_state.milestones[spec.track] = index

        return update

    def _next_value(
        self, spec: FieldSpec, state: PlayerScoreState, current: int, submitted: int,
    ) -> int:
        policy = spec.policy
        if policy is UpdatePolicy.STRICT_MAX:
            if submitted <= current:
                raise ScoreNotHigherOrEqual(
                    f"{spec.name}: {submitted} is not higher than current {current}"
                )
            return submitted

        if policy is UpdatePolicy.ACCUMULATE:
            total = current + submitted
            if total > UINT256_MAX:
                raise ScoreOverflow(f"{spec.name}: accumulated total exceeds uint256")
            return total

        if policy is UpdatePolicy.MAX:
            return max(current, submitted)

        if policy is UpdatePolicy.MILESTONE:
            # Inclusive: a score equal to the next threshold reaches it.
            next_index = state.reached(spec.track) + 1
            if next_index > MAX_MILESTONE_INDEX:
                raise ScoreBelowThreshold(f"{spec.name}: every milestone is already reached")
            threshold = get_milestone_score(next_index)
            if submitted < threshold:
                raise ScoreBelowThreshold(
                    f"{spec.name}: {submitted} is below milestone {next_index} ({threshold})"
                )
            return submitted

        raise ValueError(f"unhandled update policy: {policy}")


__all__ = ["ScoreEngine", "ScoreUpdate"]
