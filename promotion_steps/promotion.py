"""Contract shared by every promotion step runner.

A step runner executes one step of a user-defined promotion process. It is
handed a `StepContext` describing the Promotion and the step's own
configuration, and returns a `StepResult` describing the outcome. Runners
are stateless: anything they need to remember between invocations must be
recoverable from the resources they act on.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import Any, Protocol

from mashumaro import field_options

from .manifest import BaseManifest

__all__ = [
    "StepStatus",
    "StepContext",
    "HealthCheckCriteria",
    "ArgoCDAppHealthCheck",
    "StepResult",
    "StepRunner",
]


class StepStatus(StrEnum):
    """High-level outcome of a step."""

    SUCCEEDED = "Succeeded"
    """The step completed and need not be run again."""

    FAILED = "Failed"
    """The step failed in a way retrying will not fix."""

    ERRORED = "Errored"
    """The step failed in a way that may be resolved by running it again."""

    RUNNING = "Running"
    """The step is waiting on something and should be run again later."""

    SKIPPED = "Skipped"
    """The step had nothing to do."""


@dataclass
class StepContext:
    """The context in which a single step is executed."""

    project: str
    """The Project the Promotion is associated with."""

    stage: str
    """The Stage the Promotion is targeting."""

    promotion: str
    """The name of the Promotion, used to recognize operations it started."""

    config: dict[str, Any] = field(default_factory=dict)
    """The raw configuration of the step being executed."""

    promotion_actor: str | None = None
    """The user who triggered the Promotion, if it was not automated."""

    alias: str | None = None
    """The alias of the step being executed."""

    shared_state: dict[str, Any] = field(default_factory=dict)
    """Outputs of previous steps, keyed by step alias."""


@dataclass
class HealthCheckCriteria(BaseManifest):
    """Input for a health check performed after a step completes."""

    kind: str
    """The kind of health check, named after the step that produced it."""

    input: dict[str, Any] = field(default_factory=dict)
    """Check specific input."""


@dataclass
class ArgoCDAppHealthCheck(BaseManifest):
    """An Application whose health should be checked after an update."""

    name: str
    namespace: str
    desired_revisions: list[str] = field(
        metadata=field_options(alias="desiredRevisions"), default_factory=list
    )


@dataclass
class StepResult(BaseManifest):
    """The outcome of executing a step."""

    status: StepStatus
    """The high-level outcome of the step."""

    message: str | None = None
    """Additional context about the outcome, e.g. the error encountered."""

    output: dict[str, Any] | None = None
    """Output made available to subsequent steps."""

    health_check: HealthCheckCriteria | None = field(
        metadata=field_options(alias="healthCheck"), default=None
    )
    """Criteria for a health check to perform once the step completes."""

    retry_after: timedelta | None = field(
        metadata=field_options(alias="retryAfter"), default=None
    )
    """A suggested delay before running a Running step again."""


class StepRunner(Protocol):
    """A component that executes an individual kind of step."""

    @property
    def name(self) -> str:
        """The kind of step this runner executes."""

    async def run(self, step_ctx: StepContext) -> StepResult:
        """Execute the step.

        Failures are reported through the status of the returned result. Only
        cancellation of the calling task propagates as an exception.
        """
