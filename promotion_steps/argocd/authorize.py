"""Selection of the Applications a Stage is allowed to update.

An Application must opt in to being mutated by a promotion by carrying an
annotation naming the one Stage allowed to do so, in the form
`<project>:<stage>`.
"""

from collections.abc import Callable
import logging

from promotion_steps.exceptions import (
    AuthorizationException,
    ObjectNotFoundError,
    PromotionException,
    SelectorException,
)
from promotion_steps.manifest import ANNOTATION_KEY_AUTHORIZED_STAGE, Application
from promotion_steps.promotion import StepContext
from promotion_steps.selector import AppSelector, LabelSelector
from promotion_steps.store import Store

from .config import ArgoCDAppUpdate

__all__ = [
    "authorize_application_update",
    "get_authorized_applications",
]

_LOGGER = logging.getLogger(__name__)


def authorize_application_update(step_ctx: StepContext, app: Application) -> None:
    """Raise if the Application does not permit mutation by the Stage.

    Raises:
        AuthorizationException: If the annotation is missing, malformed, uses
            a wildcard, or names another Stage.
    """
    perm_err = AuthorizationException(
        f"Argo CD Application {app.name!r} in namespace {app.namespace!r} does "
        f"not permit mutation by Kargo Stage {step_ctx.stage} in namespace "
        f"{step_ctx.project}"
    )
    allowed_stage = (app.annotations or {}).get(ANNOTATION_KEY_AUTHORIZED_STAGE)
    if allowed_stage is None:
        raise perm_err

    project, sep, stage = allowed_stage.partition(":")
    if not sep:
        raise AuthorizationException(
            f"unable to parse value of annotation {ANNOTATION_KEY_AUTHORIZED_STAGE!r} "
            f"({allowed_stage!r}) on Argo CD Application {app.name!r} in "
            f"namespace {app.namespace!r}"
        )
    if "*" in project or "*" in stage:
        raise AuthorizationException(
            f"Argo CD Application {app.name!r} in namespace {app.namespace!r} has "
            f"deprecated glob expression in annotation "
            f"{ANNOTATION_KEY_AUTHORIZED_STAGE!r} ({allowed_stage!r})"
        )
    if project != step_ctx.project or stage != step_ctx.stage:
        raise perm_err


async def get_authorized_applications(
    store: Store,
    step_ctx: StepContext,
    update: ArgoCDAppUpdate,
    build_selector: Callable[[AppSelector], LabelSelector],
    default_namespace: str,
) -> list[Application]:
    """Return the Applications selected by the update that the Stage may mutate.

    Applications that are selected but not authorized are logged and skipped.
    It is an error for no authorized Application to remain.
    """
    namespace = update.namespace or default_namespace

    apps: list[Application] = []
    if update.selector is not None:
        try:
            label_selector = build_selector(update.selector)
        except SelectorException as err:
            raise SelectorException(f"error building label selector: {err}") from err
        apps = await store.list_applications(namespace, label_selector)
    else:
        app = await store.get_application(namespace, update.name or "")
        if app is None:
            raise ObjectNotFoundError(
                f"unable to find Argo CD Application {update.name!r} in namespace "
                f"{namespace!r}"
            )
        apps.append(app)

    authorized = []
    for app in apps:
        try:
            authorize_application_update(step_ctx, app)
        except AuthorizationException as err:
            _LOGGER.info("Skipping unauthorized Application %s: %s", app.namespaced_name, err)
            continue
        authorized.append(app)

    if authorized:
        return authorized
    if update.selector is not None:
        if not apps:
            raise PromotionException(
                f"no Argo CD Applications found matching selector in namespace "
                f"{namespace!r}"
            )
        raise AuthorizationException(
            f"found {len(apps)} Application(s) matching selector in namespace "
            f"{namespace!r}, but none are authorized for Stage "
            f"{step_ctx.project}:{step_ctx.stage}"
        )
    raise AuthorizationException(
        f"Argo CD Application {update.name!r} in namespace {namespace!r} is not authorized"
    )
