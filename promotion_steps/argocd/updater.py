"""The `argocd-update` step runner.

The runner updates one or more Argo CD Applications to the sources a
Promotion requires and asks Argo CD to sync them. It is meant to be run
repeatedly until it stops returning Running: each invocation re-reads the
Applications and picks up where the last one left off, starting a new sync
only when the current one wasn't started by this Promotion or didn't
converge on the desired revisions.

Every step of the process is a function held in `UpdaterFunctions`, so tests
can substitute any one of them.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
import logging

from promotion_steps.exceptions import (
    InputException,
    PromotionException,
    SelectorException,
    StepException,
    TerminalError,
)
from promotion_steps.manifest import (
    DEFAULT_ARGOCD_NAMESPACE,
    EVENT_REASON_OPERATION_STARTED,
    Application,
    ApplicationSource,
    OperationPhase,
    phase_failed,
)
from promotion_steps.merge import application_patch
from promotion_steps.promotion import (
    ArgoCDAppHealthCheck,
    HealthCheckCriteria,
    StepContext,
    StepResult,
    StepStatus,
)
from promotion_steps.registry import (
    CAPABILITY_STORE,
    StepRunnerCapabilities,
    StepRunnerMetadata,
    StepRunnerRegistration,
)
from promotion_steps.selector import AppSelector, LabelSelector, build_label_selector
from promotion_steps.store import PatchFn, Store

from .authorize import get_authorized_applications
from .config import (
    ArgoCDAppSourceUpdate,
    ArgoCDAppUpdate,
    ArgoCDUpdateConfig,
    parse_update_config,
)
from .decider import UpdateDecision, must_perform_update
from .phase import RUNNING_RETRY_AFTER, operation_phase_to_step_status
from .sources import (
    apply_source_update,
    build_desired_sources,
    get_desired_revisions,
    validate_source_updates_applicable,
)
from .sync import (
    APPLICATION_OPERATION_INITIATOR,
    format_sync_message,
    new_application_event,
    prepare_sync,
)

__all__ = [
    "STEP_KIND",
    "REGISTRATION",
    "UpdaterConfig",
    "UpdaterFunctions",
    "ArgoCDUpdater",
]

_LOGGER = logging.getLogger(__name__)

STEP_KIND = "argocd-update"


GetAuthorizedApplicationsFn = Callable[
    [StepContext, ArgoCDAppUpdate], Awaitable[list[Application]]
]
BuildLabelSelectorFn = Callable[[AppSelector], LabelSelector]
BuildDesiredSourcesFn = Callable[
    [ArgoCDAppUpdate, list[str], Application], list[ApplicationSource]
]
MustPerformUpdateFn = Callable[
    [StepContext, ArgoCDAppUpdate, Application], UpdateDecision
]
SyncApplicationFn = Callable[
    [StepContext, Application, list[ApplicationSource]], Awaitable[None]
]
ApplySourceUpdateFn = Callable[
    [ArgoCDAppSourceUpdate, str, ApplicationSource], tuple[ApplicationSource, bool]
]
PatchApplicationFn = Callable[[Application, PatchFn], Awaitable[None]]
LogAppEventFn = Callable[[Application, str, str, str], Awaitable[None]]


@dataclass
class UpdaterConfig:
    """Settings of the `argocd-update` runner."""

    argocd_namespace: str = DEFAULT_ARGOCD_NAMESPACE
    """The namespace Applications are looked up in when none is given."""

    running_retry_after: timedelta = RUNNING_RETRY_AFTER
    """Suggested delay before running the step again while it is Running."""

    max_validation_errors: int = 3
    """Number of incompatible Applications to describe when validation fails."""


@dataclass
class UpdaterFunctions:
    """Overrides for the individual steps of an update.

    Any function left unset is bound to the runner's own implementation.
    """

    get_authorized_applications: GetAuthorizedApplicationsFn | None = None
    build_label_selector: BuildLabelSelectorFn | None = None
    build_desired_sources: BuildDesiredSourcesFn | None = None
    must_perform_update: MustPerformUpdateFn | None = None
    sync_application: SyncApplicationFn | None = None
    apply_source_update: ApplySourceUpdateFn | None = None
    patch_application: PatchApplicationFn | None = None
    log_app_event: LogAppEventFn | None = None


class ArgoCDUpdater:
    """Step runner that updates and syncs Argo CD Applications."""

    def __init__(
        self,
        store: Store | None,
        config: UpdaterConfig | None = None,
        functions: UpdaterFunctions | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the ArgoCDUpdater.

        Args:
            store: Where Applications are read and patched, or None if the
                Argo CD integration is disabled.
            config: Settings of the runner.
            functions: Replacements for individual steps of the update.
            clock: Returns the current time, used to stamp events.
        """
        self._store = store
        self._config = config or UpdaterConfig()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        fns = functions or UpdaterFunctions()
        self._get_authorized_applications_fn = (
            fns.get_authorized_applications or self._get_authorized_applications
        )
        self._build_label_selector_fn = (
            fns.build_label_selector or build_label_selector
        )
        self._build_desired_sources_fn = (
            fns.build_desired_sources or self._build_desired_sources
        )
        self._must_perform_update_fn = fns.must_perform_update or must_perform_update
        self._sync_application_fn = fns.sync_application or self._sync_application
        self._apply_source_update_fn = fns.apply_source_update or apply_source_update
        self._patch_application_fn = fns.patch_application or self._patch_application
        self._log_app_event_fn = fns.log_app_event or self._log_app_event

    @property
    def name(self) -> str:
        """The kind of step this runner executes."""
        return STEP_KIND

    def _required_store(self) -> Store:
        if self._store is None:
            raise StepException(
                "Argo CD integration is disabled on this controller; cannot "
                "update Argo CD Application resources"
            )
        return self._store

    async def run(self, step_ctx: StepContext) -> StepResult:
        """Execute the step against the Applications named in its config."""
        try:
            try:
                config = parse_update_config(step_ctx.config)
            except InputException as err:
                raise TerminalError(err) from err
            return await self._run(step_ctx, config)
        except (TerminalError, SelectorException) as err:
            _LOGGER.warning("%s step failed: %s", STEP_KIND, err)
            return StepResult(status=StepStatus.FAILED, message=str(err))
        except PromotionException as err:
            _LOGGER.warning("%s step errored: %s", STEP_KIND, err)
            return StepResult(status=StepStatus.ERRORED, message=str(err))
        except Exception as err:
            _LOGGER.exception("%s step errored: %s", STEP_KIND, err)
            return StepResult(
                status=StepStatus.ERRORED,
                message=f"{type(err).__name__}: {err}",
            )

    async def _run(
        self, step_ctx: StepContext, config: ArgoCDUpdateConfig
    ) -> StepResult:
        self._required_store()

        _LOGGER.info(
            "Executing %s step for Promotion %s", STEP_KIND, step_ctx.promotion
        )
        phases: list[str] = []
        health_checks: list[ArgoCDAppHealthCheck] = []
        for update in config.apps:
            apps = await self._get_authorized_applications_fn(step_ctx, update)
            if update.selector is not None and apps:
                _LOGGER.info(
                    "Found %d Application(s) matching selector in namespace %s",
                    len(apps),
                    update.namespace or self._config.argocd_namespace,
                )

            if update.sources:
                _LOGGER.info(
                    "Validating source updates are applicable to %d Application(s)",
                    len(apps),
                )
                validate_source_updates_applicable(
                    update,
                    apps,
                    self._build_desired_sources_fn,
                    max_errors=self._config.max_validation_errors,
                )

            for app in apps:
                health_checks.append(
                    ArgoCDAppHealthCheck(
                        name=app.name,
                        namespace=app.namespace,
                        desired_revisions=get_desired_revisions(update, app),
                    )
                )
                phase = await self._process_application(step_ctx, update, app)
                if phase_failed(phase):
                    return StepResult(
                        status=StepStatus.ERRORED,
                        message=(
                            f"Argo CD Application {app.name!r} in namespace "
                            f"{app.namespace!r} operation phase is {phase}"
                        ),
                    )
                if phase:
                    phases.append(str(phase))

        if (status := operation_phase_to_step_status(phases)) is None:
            raise StepException(
                "could not determine promotion step status from operation "
                f"phases: {phases}"
            )
        _LOGGER.info("Done executing %s step with status %s", STEP_KIND, status)

        retry_after = None
        if status == StepStatus.RUNNING:
            retry_after = self._config.running_retry_after
            _LOGGER.info("Step to be retried after %s", retry_after)

        return StepResult(
            status=status,
            health_check=HealthCheckCriteria(
                kind=STEP_KIND,
                input={"apps": [check.to_dict() for check in health_checks]},
            ),
            retry_after=retry_after,
        )

    async def _process_application(
        self, step_ctx: StepContext, update: ArgoCDAppUpdate, app: Application
    ) -> str | None:
        """Bring a single Application closer to the desired state.

        Returns the phase of the operation being tracked, if any.
        """
        decision = self._must_perform_update_fn(step_ctx, update, app)
        if not decision.must_update:
            _LOGGER.info("Application %s does not require update", app.namespaced_name)
            if decision.reason:
                if not decision.phase:
                    raise StepException(decision.reason)
                _LOGGER.info(
                    "Application %s update cannot be performed: %s",
                    app.namespaced_name,
                    decision.reason,
                )
            if phase_failed(decision.phase) and (
                state := app.status.operation_state
            ) is not None:
                raise StepException(
                    f"Argo CD Application {app.name!r} in namespace "
                    f"{app.namespace!r} failed with: {state.message or ''}"
                )
            return decision.phase

        _LOGGER.info("Application %s requires update", app.namespaced_name)
        if decision.reason:
            _LOGGER.info(
                "Performing update of Application %s: %s",
                app.namespaced_name,
                decision.reason,
            )

        desired_revisions = get_desired_revisions(update, app)
        try:
            desired_sources = self._build_desired_sources_fn(
                update, desired_revisions, app
            )
        except PromotionException as err:
            raise StepException(
                f"error building desired sources for Argo CD Application "
                f"{app.name!r} in namespace {app.namespace!r}: {err}"
            ) from err

        try:
            await self._sync_application_fn(step_ctx, app, desired_sources)
        except PromotionException as err:
            raise StepException(
                f"error syncing Argo CD Application {app.name!r} in namespace "
                f"{app.namespace!r}: {err}"
            ) from err

        return OperationPhase.RUNNING

    async def _get_authorized_applications(
        self, step_ctx: StepContext, update: ArgoCDAppUpdate
    ) -> list[Application]:
        return await get_authorized_applications(
            self._required_store(),
            step_ctx,
            update,
            self._build_label_selector_fn,
            self._config.argocd_namespace,
        )

    def _build_desired_sources(
        self,
        update: ArgoCDAppUpdate,
        desired_revisions: list[str],
        app: Application,
    ) -> list[ApplicationSource]:
        return build_desired_sources(
            update, desired_revisions, app, apply_update=self._apply_source_update_fn
        )

    async def _sync_application(
        self,
        step_ctx: StepContext,
        app: Application,
        desired_sources: list[ApplicationSource],
    ) -> None:
        """Request a sync of the Application to the desired sources."""
        prepare_sync(step_ctx, app, desired_sources)
        try:
            await self._patch_application_fn(app, application_patch)
        except PromotionException as err:
            raise StepException(
                f"error patching Argo CD Application {app.name!r}: {err}"
            ) from err
        _LOGGER.debug("Patched Argo CD Application %s", app.namespaced_name)

        await self._log_app_event_fn(
            app,
            APPLICATION_OPERATION_INITIATOR,
            EVENT_REASON_OPERATION_STARTED,
            format_sync_message(app),
        )

    async def _patch_application(self, app: Application, modify: PatchFn) -> None:
        await self._required_store().patch_application(app, modify)

    async def _log_app_event(
        self, app: Application, user: str, reason: str, message: str
    ) -> None:
        """Record an Event like the one Argo CD records when a sync starts."""
        store = self._required_store()
        event = new_application_event(app, user, reason, message, self._clock())
        try:
            await store.create_event(event)
        except PromotionException as err:
            _LOGGER.error(
                "Unable to create %s event for Argo CD Application %s: %s",
                reason,
                app.namespaced_name,
                err,
            )


def _new_argocd_updater(caps: StepRunnerCapabilities) -> ArgoCDUpdater:
    return ArgoCDUpdater(caps.store)


REGISTRATION = StepRunnerRegistration(
    name=STEP_KIND,
    factory=_new_argocd_updater,
    metadata=StepRunnerMetadata(
        default_timeout=timedelta(minutes=5),
        required_capabilities=frozenset([CAPABILITY_STORE]),
    ),
)
