"""Computation of the sources an Application should be updated to."""

from collections.abc import Callable
import copy
import logging

from promotion_steps.exceptions import SourceUpdateException
from promotion_steps.image import format_kustomize_image, merge_kustomize_images
from promotion_steps.manifest import (
    Application,
    ApplicationSource,
    ApplicationSourceHelm,
    ApplicationSourceKustomize,
    HelmParameter,
)
from promotion_steps.urls import normalize_git_url

from .config import ArgoCDAppSourceUpdate, ArgoCDAppUpdate, HelmParameterUpdates

__all__ = [
    "ApplySourceUpdateFn",
    "BuildDesiredSourcesFn",
    "get_desired_revisions",
    "source_update_applies",
    "apply_source_update",
    "build_helm_parameter_changes",
    "build_desired_sources",
    "validate_source_updates_applicable",
]

_LOGGER = logging.getLogger(__name__)


ApplySourceUpdateFn = Callable[
    [ArgoCDAppSourceUpdate, str, ApplicationSource], tuple[ApplicationSource, bool]
]
BuildDesiredSourcesFn = Callable[
    [ArgoCDAppUpdate, list[str], Application], list[ApplicationSource]
]


def source_update_applies(
    update: ArgoCDAppSourceUpdate, source: ApplicationSource
) -> bool:
    """Return True if the update targets the source.

    Helm chart sources must match the repository and chart exactly. Git
    sources are compared by normalized URL.
    """
    if source.chart or update.chart:
        return source.repo_url == update.repo_url and (source.chart or "") == (
            update.chart or ""
        )
    return normalize_git_url(source.repo_url) == normalize_git_url(update.repo_url)


def get_desired_revisions(update: ArgoCDAppUpdate, app: Application) -> list[str]:
    """Return the revision each source of the Application is expected to reach.

    There is one entry per current source, in order. A source no update
    applies to, or whose update does not name a revision, gets `""`.
    """
    revisions = []
    for source in app.current_sources():
        revision = ""
        for source_update in update.sources:
            if source_update_applies(source_update, source):
                revision = source_update.desired_revision or ""
                break
        revisions.append(revision)
    return revisions


def build_helm_parameter_changes(update: HelmParameterUpdates) -> dict[str, str]:
    """Return the Helm parameters to set, keyed by name."""
    return {image.key: image.value for image in update.images}


def apply_source_update(
    update: ArgoCDAppSourceUpdate,
    desired_revision: str,
    source: ApplicationSource,
) -> tuple[ApplicationSource, bool]:
    """Apply an update to a source if it targets it.

    Returns the updated copy of the source and True, or the source unchanged
    and False when the update is for another source.
    """
    if not source_update_applies(update, source):
        return source, False

    source = copy.deepcopy(source)
    if update.update_target_revision and desired_revision:
        source.target_revision = desired_revision

    if update.kustomize is not None and update.kustomize.images:
        if source.kustomize is None:
            source.kustomize = ApplicationSourceKustomize()
        source.kustomize.images = merge_kustomize_images(
            source.kustomize.images,
            [format_kustomize_image(image) for image in update.kustomize.images],
        )

    if update.helm is not None and update.helm.images:
        if source.helm is None:
            source.helm = ApplicationSourceHelm()
        parameters = list(source.helm.parameters or [])
        for name, value in build_helm_parameter_changes(update.helm).items():
            param = HelmParameter(name=name, value=value)
            for i, existing in enumerate(parameters):
                if existing.name == name:
                    parameters[i] = param
                    break
            else:
                parameters.append(param)
        source.helm.parameters = parameters

    return source, True


def build_desired_sources(
    update: ArgoCDAppUpdate,
    desired_revisions: list[str],
    app: Application,
    apply_update: ApplySourceUpdateFn = apply_source_update,
) -> list[ApplicationSource]:
    """Return the sources of the Application with every update applied.

    Each update is applied to the first source it targets. The Application
    itself is not modified.

    Raises:
        SourceUpdateException: If the revisions don't line up with the sources,
            or an update targets none of the sources.
    """
    desired_sources = app.current_sources()
    if len(desired_sources) != len(desired_revisions):
        raise SourceUpdateException(
            f"Argo CD Application {app.name!r} in namespace {app.namespace!r} has "
            f"{len(desired_sources)} sources but {len(desired_revisions)} desired "
            "revisions"
        )

    for source_update in update.sources:
        for i, source in enumerate(desired_sources):
            desired_sources[i], applied = apply_update(
                source_update, desired_revisions[i], source
            )
            if applied:
                _LOGGER.debug(
                    "Applied update for %s to source %d of %s",
                    source_update.repo_url,
                    i,
                    app.namespaced_name,
                )
                break
        else:
            message = (
                f"no source of Argo CD Application {app.name!r} in namespace "
                f"{app.namespace!r} matched update for source with repoURL "
                f"{source_update.repo_url}"
            )
            if source_update.chart:
                message += f" and chart {source_update.chart!r}"
            raise SourceUpdateException(message)
    return desired_sources


def validate_source_updates_applicable(
    update: ArgoCDAppUpdate,
    apps: list[Application],
    build: BuildDesiredSourcesFn,
    max_errors: int = 3,
) -> None:
    """Check that the updates apply to every Application before any is changed.

    A single Application is not checked here since building its sources
    reports the same error when it is processed.

    Raises:
        SourceUpdateException: Listing the first `max_errors` incompatible
            Applications and the total number found.
    """
    if len(apps) <= 1:
        return

    errors = []
    for app in apps:
        try:
            build(update, get_desired_revisions(update, app), app)
        except SourceUpdateException as err:
            errors.append(
                f"Application {app.name!r} in namespace {app.namespace!r}: {err}"
            )

    if not errors:
        return
    if len(errors) > max_errors:
        raise SourceUpdateException(
            "selected Applications must have compatible sources; "
            f"{len(errors)} incompatible (showing first {max_errors}). "
            "No Applications were updated:\n" + "\n".join(errors[:max_errors])
        )
    raise SourceUpdateException(
        "selected Applications must have compatible sources; "
        f"{len(errors)} incompatible. No Applications were updated:\n"
        + "\n".join(errors)
    )
