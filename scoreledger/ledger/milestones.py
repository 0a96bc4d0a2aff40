"""Milestone thresholds.

milestone(0) = 0, milestone(1) = 10, milestone(2) = 20,
milestone(n) = milestone(n - 1) + milestone(n - 2) for n >= 3.

Thresholds are uint256 values, so the sequence ends at the last index
whose threshold still fits in 256 bits (MAX_MILESTONE_INDEX).
"""

from __future__ import annotations

from scoreledger.protocol.messages import UINT256_MAX


def _build_thresholds() -> tuple[int, ...]:
    thresholds = [0, 10, 20]
    while thresholds[-1] + thresholds[-2] <= UINT256_MAX:
        thresholds.append(thresholds[-1] + thresholds[-2])
    return tuple(thresholds)


_THRESHOLDS = _build_thresholds()

MAX_MILESTONE_INDEX = len(_THRESHOLDS) - 1


def get_milestone_score(index: int) -> int:
    """Threshold score for milestone ``index``.

    Raises:
        ValueError: negative index, or a threshold past uint256.
    """
    if index < 0:
        raise ValueError(f"milestone index must be non-negative, got {index}")
    if index > MAX_MILESTONE_INDEX:
        raise ValueError(
            f"milestone {index} exceeds uint256 (last index is {MAX_MILESTONE_INDEX})"
        )
    return _THRESHOLDS[index]


def crossed_milestones(value: int, reached_index: int) -> list[int]:
    """Indices above ``reached_index`` whose threshold ``value`` reaches."""
    crossed = []
    for index in range(reached_index + 1, MAX_MILESTONE_INDEX + 1):
        if _THRESHOLDS[index] > value:
            break
        crossed.append(index)
    return crossed


__all__ = ["MAX_MILESTONE_INDEX", "crossed_milestones", "get_milestone_score"]
