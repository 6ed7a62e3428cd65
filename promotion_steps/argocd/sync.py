"""Building the sync operation requested of an Application."""

import copy
from datetime import datetime, timedelta, timezone

from promotion_steps.manifest import (
    ANNOTATION_KEY_REFRESH,
    ARGOCD_API_VERSION,
    APPLICATION_KIND,
    EVENT_TYPE_NORMAL,
    PROMOTION_INFO_KEY,
    REFRESH_TYPE_HARD,
    Application,
    ApplicationSource,
    Event,
    Info,
    ObjectReference,
    Operation,
    OperationInitiator,
    SyncOperation,
)
from promotion_steps.promotion import StepContext

__all__ = [
    "APPLICATION_OPERATION_INITIATOR",
    "SYNC_REASON",
    "prepare_sync",
    "format_sync_message",
    "new_application_event",
]


APPLICATION_OPERATION_INITIATOR = "kargo-controller"
"""The identity automated promotions start operations as."""

SYNC_REASON = "Promotion triggered a sync of this Application resource."

_UNKNOWN_USER = "Unknown user"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def prepare_sync(
    step_ctx: StepContext,
    app: Application,
    desired_sources: list[ApplicationSource],
) -> None:
    """Update the Application in place to request a sync to the desired sources."""
    app.annotations = dict(app.annotations or {})
    app.annotations[ANNOTATION_KEY_REFRESH] = REFRESH_TYPE_HARD

    if app.spec.sources:
        app.spec.sources = copy.deepcopy(desired_sources)
    elif app.spec.source is not None and desired_sources:
        app.spec.source = copy.deepcopy(desired_sources[0])

    # A promotion triggered by a user is attributed to them so that sync
    # windows that only allow manual syncs are honored.
    initiator = OperationInitiator(
        username=APPLICATION_OPERATION_INITIATOR, automated=True
    )
    if step_ctx.promotion_actor:
        initiator = OperationInitiator(
            username=step_ctx.promotion_actor, automated=False
        )

    sync = SyncOperation(revisions=[])
    operation = Operation(
        initiated_by=initiator,
        info=[
            Info(name="Reason", value=SYNC_REASON),
            Info(name=PROMOTION_INFO_KEY, value=step_ctx.promotion),
        ],
        sync=sync,
    )
    if (sync_policy := app.spec.sync_policy) is not None:
        if sync_policy.retry is not None:
            operation.retry = copy.deepcopy(sync_policy.retry)
        if sync_policy.sync_options is not None:
            sync.sync_options = list(sync_policy.sync_options)
    app.operation = operation

    # The Application controller may not notice the refresh while a stale
    # operation state is recorded.
    app.status.operation_state = None


def format_sync_message(app: Application) -> str:
    """Return a short description of what the Application is being synced to."""
    message = "initiated sync"
    if app.spec.sources:
        if len(app.spec.sources) == 1:
            return f"{message} to {app.spec.sources[0].target_revision or ''}"
        return f"{message} to {len(app.spec.sources)} sources"
    if app.spec.source is not None:
        return f"{message} to {app.spec.source.target_revision or ''}"
    return message


def _unix_nanos(now: datetime) -> int:
    return (now - _EPOCH) // timedelta(microseconds=1) * 1000


def new_application_event(
    app: Application,
    user: str,
    reason: str,
    message: str,
    now: datetime,
) -> Event:
    """Return an Event recording an action on the Application.

    The Event is shaped like the ones the Argo CD API server records so that
    it shows up alongside them.
    """
    user = user or _UNKNOWN_USER
    timestamp = now.isoformat()
    return Event(
        name=f"{app.name}.{_unix_nanos(now):x}",
        namespace=app.namespace,
        annotations={"user": user},
        source_component=user,
        involved_object=ObjectReference(
            api_version=ARGOCD_API_VERSION,
            kind=APPLICATION_KIND,
            namespace=app.namespace,
            name=app.name,
            uid=app.uid,
            resource_version=app.resource_version,
        ),
        first_timestamp=timestamp,
        last_timestamp=timestamp,
        count=1,
        message=f"{user} {message}",
        type=EVENT_TYPE_NORMAL,
        reason=reason,
    )
