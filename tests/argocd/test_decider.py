"""Tests for deciding whether an Application must be synced."""

import pytest

from promotion_steps.argocd.config import ArgoCDAppSourceUpdate, ArgoCDAppUpdate
from promotion_steps.argocd.decider import (
    UpdateDecision,
    is_promotion_initiated,
    must_perform_update,
)
from promotion_steps.manifest import Info, Operation, PROMOTION_INFO_KEY

from . import (
    CHART_REPO,
    GIT_REPO,
    PROMOTION,
    application,
    operation_state,
    step_context,
)

GIT_SOURCE = {"repoURL": GIT_REPO, "targetRevision": "v1"}
CHART_SOURCE = {"repoURL": CHART_REPO, "chart": "guestbook", "targetRevision": "1.0.0"}

UPDATE = ArgoCDAppUpdate(
    name="guestbook",
    sources=[ArgoCDAppSourceUpdate(repo_url=GIT_REPO, desired_revision="v2")],
)


def test_is_promotion_initiated() -> None:
    """Test detecting operations started by a promotion."""
    assert not is_promotion_initiated(Operation())
    assert not is_promotion_initiated(Operation(info=[Info(name="Reason", value="x")]))
    assert is_promotion_initiated(
        Operation(info=[Info(name=PROMOTION_INFO_KEY, value="other")])
    )


def test_no_operation() -> None:
    """Test an Application without an operation state is synced."""
    decision = must_perform_update(
        step_context(), UPDATE, application(source=GIT_SOURCE)
    )
    assert decision == UpdateDecision(must_update=True)


@pytest.mark.parametrize("phase", ["Running", "Terminating"])
def test_foreign_operation_running(phase: str) -> None:
    """Test waiting for an operation not started by a promotion."""
    app = application(
        source=GIT_SOURCE,
        state=operation_state(phase, promotion=None, initiated_by="admin"),
    )
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision.phase == phase
    assert not decision.must_update
    assert decision.reason == (
        "current operation was initiated by 'admin': waiting for operation to complete"
    )


@pytest.mark.parametrize("phase", ["Succeeded", "Failed", "Error"])
def test_foreign_operation_completed(phase: str) -> None:
    """Test syncing once an operation not started by a promotion completes."""
    app = application(
        source=GIT_SOURCE,
        state=operation_state(phase, promotion=None, initiated_by="admin"),
    )
    assert must_perform_update(step_context(), UPDATE, app) == UpdateDecision(
        must_update=True
    )


def test_other_promotion_running() -> None:
    """Test waiting for an operation started for another Promotion."""
    app = application(source=GIT_SOURCE, state=operation_state("Running", promotion="other"))
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision.phase == "Running"
    assert not decision.must_update
    assert decision.reason == (
        f"current operation was not initiated for Promotion {PROMOTION}: "
        "waiting for operation to complete"
    )


def test_other_promotion_completed() -> None:
    """Test syncing once an operation for another Promotion completes."""
    app = application(
        source=GIT_SOURCE,
        state=operation_state("Succeeded", promotion="other", revision="v2"),
    )
    assert must_perform_update(step_context(), UPDATE, app) == UpdateDecision(
        must_update=True
    )


def test_own_operation_running() -> None:
    """Test waiting for the operation started for this Promotion."""
    app = application(source=GIT_SOURCE, state=operation_state("Running"))
    assert must_perform_update(step_context(), UPDATE, app) == UpdateDecision(
        phase="Running"
    )


def test_own_operation_without_sync_result() -> None:
    """Test syncing again when the operation has no sync result."""
    app = application(
        source=GIT_SOURCE, state=operation_state("Succeeded", sync_result=False)
    )
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision.must_update
    assert decision.phase is None
    assert decision.reason == "operation completed without a sync result"


def test_own_operation_converged() -> None:
    """Test an Application synced to the desired revision."""
    app = application(
        source=GIT_SOURCE, state=operation_state("Succeeded", revision="v2")
    )
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision == UpdateDecision(phase="Succeeded")
    # Deciding again against the same state gives the same answer
    assert must_perform_update(step_context(), UPDATE, app) == decision


def test_own_operation_failed_converged() -> None:
    """Test the phase of a completed operation is reported as is."""
    app = application(source=GIT_SOURCE, state=operation_state("Failed", revision="v2"))
    assert must_perform_update(step_context(), UPDATE, app) == UpdateDecision(
        phase="Failed"
    )


def test_own_operation_revision_mismatch() -> None:
    """Test syncing again when a different revision was synced."""
    app = application(
        source=GIT_SOURCE, state=operation_state("Succeeded", revision="v1")
    )
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision.must_update
    assert decision.reason == (
        "sync result revisions ['v1'] do not match desired revisions ['v2']"
    )


def test_no_desired_revisions() -> None:
    """Test an update without desired revisions only tracks the phase."""
    app = application(
        source=GIT_SOURCE, state=operation_state("Succeeded", revision="v1")
    )
    update = ArgoCDAppUpdate(
        name="guestbook", sources=[ArgoCDAppSourceUpdate(repo_url=GIT_REPO)]
    )
    assert must_perform_update(step_context(), update, app) == UpdateDecision(
        phase="Succeeded"
    )


@pytest.mark.parametrize(
    ("observed", "must_update"),
    [
        (["v2", "1.0.0"], False),
        # Sources without a desired revision are not compared
        (["v2", "9.9.9"], False),
        (["v1", "9.9.9"], True),
    ],
)
def test_multi_source_revisions(observed: list[str], must_update: bool) -> None:
    """Test comparing the revisions of an Application with several sources."""
    app = application(
        sources=[GIT_SOURCE, CHART_SOURCE],
        state=operation_state("Succeeded", revisions=observed),
    )
    decision = must_perform_update(step_context(), UPDATE, app)
    assert decision.must_update == must_update
    if not must_update:
        assert decision.phase == "Succeeded"


def test_multi_source_falls_back_to_revision() -> None:
    """Test a sync result with a single revision for a multi-source update."""
    app = application(
        sources=[GIT_SOURCE, CHART_SOURCE],
        state=operation_state("Succeeded", revision="v2"),
    )
    assert not must_perform_update(step_context(), UPDATE, app).must_update
