"""Configuration of the `argocd-update` step."""

from dataclasses import dataclass, field
import logging
from typing import Any

from mashumaro import field_options
from mashumaro.exceptions import InvalidFieldValue, MissingField

from promotion_steps.exceptions import InputException, SelectorException
from promotion_steps.image import KustomizeImageUpdate
from promotion_steps.manifest import BaseManifest
from promotion_steps.selector import AppSelector, build_label_selector

__all__ = [
    "HelmImageUpdate",
    "HelmParameterUpdates",
    "KustomizeImageUpdates",
    "ArgoCDAppSourceUpdate",
    "ArgoCDAppUpdate",
    "ArgoCDUpdateConfig",
    "parse_update_config",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class HelmImageUpdate(BaseManifest):
    """A Helm parameter to set on a chart source."""

    key: str
    """The name of the Helm parameter, e.g. `image.tag`."""

    value: str = ""
    """The value to set."""


@dataclass
class HelmParameterUpdates(BaseManifest):
    """Helm parameter overrides for a source."""

    images: list[HelmImageUpdate] = field(default_factory=list)


@dataclass
class KustomizeImageUpdates(BaseManifest):
    """Kustomize image overrides for a source."""

    images: list[KustomizeImageUpdate] = field(default_factory=list)


@dataclass
class ArgoCDAppSourceUpdate(BaseManifest):
    """An update to one source of an Application."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    """The repository the source to update must point at."""

    chart: str | None = None
    """The chart the source to update must point at, for Helm chart repositories."""

    desired_revision: str | None = field(
        metadata=field_options(alias="desiredRevision"), default=None
    )
    """The revision the source is expected to be synced to."""

    update_target_revision: bool = field(
        metadata=field_options(alias="updateTargetRevision"), default=False
    )
    """Whether to set the target revision of the source to the desired revision."""

    kustomize: KustomizeImageUpdates | None = None
    helm: HelmParameterUpdates | None = None


@dataclass
class ArgoCDAppUpdate(BaseManifest):
    """Selects one or more Applications and describes how to update them."""

    name: str | None = None
    """The name of a single Application to update."""

    selector: AppSelector | None = None
    """Selects Applications to update by label, instead of by name."""

    namespace: str | None = None
    """The namespace of the Applications, defaulting to the Argo CD namespace."""

    sources: list[ArgoCDAppSourceUpdate] = field(default_factory=list)
    """Updates to apply to the sources of every selected Application."""


@dataclass
class ArgoCDUpdateConfig(BaseManifest):
    """Configuration of the `argocd-update` step."""

    apps: list[ArgoCDAppUpdate] = field(default_factory=list)


def _validate_source(path: str, source: ArgoCDAppSourceUpdate) -> list[str]:
    errors = []
    if not source.repo_url:
        errors.append(f"{path}.repoURL: must not be empty")
    if source.chart is not None and not source.chart:
        errors.append(f"{path}.chart: must not be empty when set")
    if source.kustomize is not None:
        if not source.kustomize.images:
            errors.append(f"{path}.kustomize.images: must not be empty")
        for i, image in enumerate(source.kustomize.images):
            if not image.repo_url:
                errors.append(f"{path}.kustomize.images[{i}].repoURL: must not be empty")
    if source.helm is not None:
        if not source.helm.images:
            errors.append(f"{path}.helm.images: must not be empty")
        for i, helm_image in enumerate(source.helm.images):
            if not helm_image.key:
                errors.append(f"{path}.helm.images[{i}].key: must not be empty")
    return errors


def _validate(config: ArgoCDUpdateConfig) -> list[str]:
    errors = []
    if not config.apps:
        errors.append("apps: must contain at least one item")
    for i, app in enumerate(config.apps):
        path = f"apps[{i}]"
        if app.name is not None and app.selector is not None:
            errors.append(f"{path}: name and selector are mutually exclusive")
        elif app.name is None and app.selector is None:
            errors.append(f"{path}: one of name or selector is required")
        elif app.name is not None and not app.name:
            errors.append(f"{path}.name: must not be empty")
        if app.selector is not None:
            try:
                build_label_selector(app.selector)
            except SelectorException as err:
                errors.append(f"{path}.selector: {err}")
        if app.namespace is not None and not app.namespace:
            errors.append(f"{path}.namespace: must not be empty when set")
        for j, source in enumerate(app.sources):
            errors.extend(_validate_source(f"{path}.sources[{j}]", source))
    return errors


def parse_update_config(config: dict[str, Any]) -> ArgoCDUpdateConfig:
    """Decode and validate the raw configuration of an `argocd-update` step.

    Raises:
        InputException: Describing every problem found with the configuration.
    """
    if not isinstance(config, dict):
        raise InputException(
            f"Invalid argocd-update config: expected a mapping, got {type(config).__name__}"
        )
    try:
        update_config = ArgoCDUpdateConfig.from_dict(config)
    except (MissingField, InvalidFieldValue) as err:
        raise InputException(f"Invalid argocd-update config: {err}") from err
    if errors := _validate(update_config):
        _LOGGER.debug("Rejecting argocd-update config with %d problem(s)", len(errors))
        raise InputException(
            "Invalid argocd-update config:\n" + "\n".join(f"- {e}" for e in errors)
        )
    return update_config
