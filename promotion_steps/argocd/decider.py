"""Decides whether an Application needs a new sync operation.

Nothing about earlier invocations is remembered. Whether an update is needed
is derived every time from the operation state recorded on the Application:

1. No operation recorded: sync.
2. The last operation was not started by a promotion: wait for it to finish,
   then sync.
3. It was started by another Promotion: same as above.
4. It was started by this Promotion and is still running: wait.
5. It finished without a sync result: sync again.
6. It finished with a sync result: sync again only if a desired revision is
   not the one that was synced.
"""

from dataclasses import dataclass
import logging

from promotion_steps.manifest import (
    PROMOTION_INFO_KEY,
    Application,
    Operation,
)
from promotion_steps.promotion import StepContext

from .config import ArgoCDAppUpdate
from .sources import get_desired_revisions

__all__ = [
    "UpdateDecision",
    "is_promotion_initiated",
    "must_perform_update",
]

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpdateDecision:
    """Whether an Application must be updated and the phase it is in."""

    phase: str | None = None
    """The phase of the current operation, if the caller should track it."""

    must_update: bool = False
    """True if a new sync operation should be started."""

    reason: str | None = None
    """Why the Application is waiting or must be synced again, if noteworthy."""


def is_promotion_initiated(operation: Operation) -> bool:
    """Return True if the operation was started by a promotion."""
    return any(info.name == PROMOTION_INFO_KEY for info in operation.info or ())


def must_perform_update(
    step_ctx: StepContext, update: ArgoCDAppUpdate, app: Application
) -> UpdateDecision:
    """Decide whether the Application must be updated.

    This only reads the Application, so calling it repeatedly against the same
    state always gives the same answer.
    """
    name = app.namespaced_name
    if (state := app.status.operation_state) is None:
        _LOGGER.info("Application %s has no current operation", name)
        return UpdateDecision(must_update=True)

    operation = state.operation
    if not is_promotion_initiated(operation):
        initiated_by = operation.initiated_by.username or ""
        _LOGGER.info(
            "Current operation of %s was not initiated by a promotion (initiated by %s)",
            name,
            initiated_by,
        )
        if not state.completed:
            return UpdateDecision(
                phase=state.phase,
                reason=(
                    f"current operation was initiated by {initiated_by!r}: "
                    "waiting for operation to complete"
                ),
            )
        _LOGGER.info("Current operation of %s is complete; can start a new one", name)
        return UpdateDecision(must_update=True)

    if operation.info_value(PROMOTION_INFO_KEY) != step_ctx.promotion:
        _LOGGER.info(
            "Current operation of %s was not initiated for Promotion %s",
            name,
            step_ctx.promotion,
        )
        if not state.completed:
            return UpdateDecision(
                phase=state.phase,
                reason=(
                    f"current operation was not initiated for Promotion "
                    f"{step_ctx.promotion}: waiting for operation to complete"
                ),
            )
        _LOGGER.info("Current operation of %s is complete; can start a new one", name)
        return UpdateDecision(must_update=True)

    if not state.completed:
        _LOGGER.info("Waiting for current operation of %s to complete", name)
        return UpdateDecision(phase=state.phase)

    if (sync_result := state.sync_result) is None:
        _LOGGER.info("Operation of %s completed without a sync result", name)
        return UpdateDecision(
            must_update=True, reason="operation completed without a sync result"
        )

    desired_revisions = get_desired_revisions(update, app)
    if not any(desired_revisions):
        _LOGGER.info("No desired revisions specified for %s", name)
        return UpdateDecision(phase=state.phase)

    observed_revisions = sync_result.revisions or [sync_result.revision or ""]
    for i, (observed, desired) in enumerate(zip(observed_revisions, desired_revisions)):
        if not desired:
            continue
        if observed != desired:
            _LOGGER.info(
                "Sync result revision of %s does not match desired revision "
                "for source %d",
                name,
                i,
            )
            return UpdateDecision(
                must_update=True,
                reason=(
                    f"sync result revisions {observed_revisions} do not match "
                    f"desired revisions {desired_revisions}"
                ),
            )

    _LOGGER.info("Desired revisions were observably applied to %s", name)
    return UpdateDecision(phase=state.phase)
