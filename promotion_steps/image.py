"""Helper functions for working with Kustomize image overrides."""

from dataclasses import dataclass, field
import logging

from mashumaro import field_options

from .manifest import BaseManifest

__all__ = [
    "KustomizeImageUpdate",
    "format_kustomize_image",
    "kustomize_image_name",
    "merge_kustomize_images",
]

_LOGGER = logging.getLogger(__name__)


@dataclass
class KustomizeImageUpdate(BaseManifest):
    """A declared override for a container image in a Kustomize source."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    """The image repository being overridden."""

    new_name: str | None = field(metadata=field_options(alias="newName"), default=None)
    """An optional replacement image name."""

    tag: str | None = None
    """The tag to use."""

    digest: str | None = None
    """The digest to use. Takes precedence over the tag."""


def format_kustomize_image(update: KustomizeImageUpdate) -> str:
    """Return the override string Argo CD expects for an image update.

    The format is `repo[=newName]` followed by `@digest` or `:tag`.
    """
    image = update.repo_url
    if update.new_name:
        image = f"{image}={update.new_name}"
    if update.digest:
        return f"{image}@{update.digest}"
    return f"{image}:{update.tag or ''}"


def kustomize_image_name(image: str) -> str:
    """Return the repository an override string applies to."""
    if "=" in image:
        return image.split("=", 1)[0]
    if "@" in image:
        return image.split("@", 1)[0]
    # A colon after the last slash separates the tag from the repository, any
    # other colon belongs to a registry port.
    name, sep, tag = image.rpartition(":")
    if sep and "/" not in tag:
        return name
    return image


def merge_kustomize_images(
    existing: list[str] | None, overrides: list[str]
) -> list[str]:
    """Merge image overrides into an existing list.

    Entries for the same repository are replaced in place, new repositories
    are appended in the order given.
    """
    result = list(existing or [])
    for override in overrides:
        name = kustomize_image_name(override)
        for i, image in enumerate(result):
            if kustomize_image_name(image) == name:
                _LOGGER.debug("Replacing image override %s with %s", image, override)
                result[i] = override
                break
        else:
            result.append(override)
    return result
