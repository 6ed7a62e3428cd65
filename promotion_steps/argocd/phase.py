"""Reduces the operation phases of several Applications to one step status."""

from collections.abc import Iterable
from datetime import timedelta

from promotion_steps.manifest import OperationPhase
from promotion_steps.promotion import StepStatus

__all__ = [
    "PHASE_SEVERITY",
    "RUNNING_RETRY_AFTER",
    "sort_phases",
    "operation_phase_to_step_status",
]


PHASE_SEVERITY: tuple[OperationPhase, ...] = (
    OperationPhase.ERROR,
    OperationPhase.FAILED,
    OperationPhase.TERMINATING,
    OperationPhase.RUNNING,
    OperationPhase.SUCCEEDED,
)
"""Operation phases, most urgent first."""

# Application status changes are sometimes observed late, so a Running step is
# polled more often than the default reconciliation interval.
RUNNING_RETRY_AFTER = timedelta(seconds=30)

_RANK: dict[str, int] = {phase: rank for rank, phase in enumerate(PHASE_SEVERITY)}


def _rank(phase: str) -> int:
    # Unknown phases sort first so they can't be hidden by a known one.
    return _RANK.get(phase, -1)


def sort_phases(phases: Iterable[str]) -> list[str]:
    """Return the phases sorted most urgent first, preserving ties."""
    return sorted(phases, key=_rank)


def operation_phase_to_step_status(phases: Iterable[str]) -> StepStatus | None:
    """Return the step status for the most urgent of the phases.

    Returns None if there are no phases or the most urgent one is unknown.
    """
    if not (ordered := sort_phases(phases)):
        return None
    match ordered[0]:
        case OperationPhase.RUNNING | OperationPhase.TERMINATING:
            return StepStatus.RUNNING
        case OperationPhase.FAILED | OperationPhase.ERROR:
            return StepStatus.ERRORED
        case OperationPhase.SUCCEEDED:
            return StepStatus.SUCCEEDED
    return None
