"""Representation of the Argo CD resources touched by promotion steps.

The objects here are typed views over raw Kubernetes documents. Only the
fields a promotion step reads or writes are modeled; anything else on the
underlying document is left alone when the object is patched back into the
store (see `promotion_steps.merge`).
"""

import copy
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from pathlib import Path
from typing import Any, ClassVar

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException

__all__ = [
    "read_applications",
    "write_applications",
    "NamedResource",
    "Application",
    "ApplicationSource",
    "ApplicationSpec",
    "Operation",
    "OperationPhase",
    "OperationState",
    "Event",
]

_LOGGER = logging.getLogger(__name__)


ARGOCD_API_GROUP = "argoproj.io"
ARGOCD_API_VERSION = f"{ARGOCD_API_GROUP}/v1alpha1"
APPLICATION_KIND = "Application"
EVENT_KIND = "Event"
DEFAULT_ARGOCD_NAMESPACE = "argocd"

# Annotation that asks the Argo CD Application controller to refresh an app
ANNOTATION_KEY_REFRESH = "argocd.argoproj.io/refresh"
REFRESH_TYPE_HARD = "hard"

# Annotation on an Application granting a "<project>:<stage>" mutation rights
ANNOTATION_KEY_AUTHORIZED_STAGE = "kargo.akuity.io/authorized-stage"

# Operation info entry identifying the Promotion that requested an operation
PROMOTION_INFO_KEY = "kargo.akuity.io/promotion"

EVENT_REASON_OPERATION_STARTED = "OperationStarted"
EVENT_TYPE_NORMAL = "Normal"


class OperationPhase(StrEnum):
    """Lifecycle phase of an Argo CD operation."""

    RUNNING = "Running"
    TERMINATING = "Terminating"
    FAILED = "Failed"
    ERROR = "Error"
    SUCCEEDED = "Succeeded"


COMPLETED_PHASES = frozenset(
    [OperationPhase.FAILED, OperationPhase.ERROR, OperationPhase.SUCCEEDED]
)
FAILED_PHASES = frozenset([OperationPhase.FAILED, OperationPhase.ERROR])


def phase_completed(phase: str | None) -> bool:
    """Return True if the phase is terminal."""
    return phase in COMPLETED_PHASES


def phase_failed(phase: str | None) -> bool:
    """Return True if the phase is a terminal failure."""
    return phase in FAILED_PHASES


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class HelmParameter(BaseManifest):
    """A Helm parameter override on an Application source."""

    name: str
    """The name of the parameter."""

    value: str = ""
    """The value of the parameter."""


@dataclass
class ApplicationSourceHelm(BaseManifest):
    """Helm specific options of an Application source."""

    parameters: list[HelmParameter] | None = None
    """Parameters overriding values in the chart."""


@dataclass
class ApplicationSourceKustomize(BaseManifest):
    """Kustomize specific options of an Application source."""

    images: list[str] | None = None
    """Image overrides e.g. `repo=new-name:tag` or `repo@digest`."""


@dataclass
class ApplicationSource(BaseManifest):
    """A repository holding the manifests of an Application."""

    repo_url: str = field(metadata=field_options(alias="repoURL"), default="")
    """The URL of the Git repository or Helm chart repository."""

    target_revision: str | None = field(
        metadata=field_options(alias="targetRevision"), default=None
    )
    """The commit, tag, branch or chart version to sync to."""

    path: str | None = None
    """The directory within a Git repository."""

    chart: str | None = None
    """The chart name, for a Helm chart repository."""

    helm: ApplicationSourceHelm | None = None
    """Helm specific options."""

    kustomize: ApplicationSourceKustomize | None = None
    """Kustomize specific options."""


@dataclass
class ApplicationDestination(BaseManifest):
    """Cluster and namespace an Application deploys into."""

    server: str | None = None
    namespace: str | None = None
    name: str | None = None


@dataclass
class Backoff(BaseManifest):
    """Backoff parameters of a retry strategy."""

    duration: str | None = None
    factor: int | None = None
    max_duration: str | None = field(
        metadata=field_options(alias="maxDuration"), default=None
    )


@dataclass
class RetryStrategy(BaseManifest):
    """Retry strategy for failed sync operations."""

    limit: int | None = None
    backoff: Backoff | None = None


@dataclass
class SyncPolicy(BaseManifest):
    """Sync policy of an Application."""

    sync_options: list[str] | None = field(
        metadata=field_options(alias="syncOptions"), default=None
    )
    retry: RetryStrategy | None = None


@dataclass
class ApplicationSpec(BaseManifest):
    """Desired state of an Application."""

    source: ApplicationSource | None = None
    """The legacy single source of the Application."""

    sources: list[ApplicationSource] | None = None
    """The sources of a multi-source Application."""

    project: str | None = None
    """The Argo CD project the Application belongs to."""

    destination: ApplicationDestination | None = None

    sync_policy: SyncPolicy | None = field(
        metadata=field_options(alias="syncPolicy"), default=None
    )


@dataclass
class Info(BaseManifest):
    """A name/value pair of informational data attached to an Operation."""

    name: str
    value: str = ""


@dataclass
class OperationInitiator(BaseManifest):
    """Who or what initiated an Operation."""

    username: str | None = None
    automated: bool = False


@dataclass
class SyncOperation(BaseManifest):
    """Sync parameters of an Operation."""

    sync_options: list[str] | None = field(
        metadata=field_options(alias="syncOptions"), default=None
    )
    revisions: list[str] | None = None


@dataclass
class Operation(BaseManifest):
    """A one-shot request for the Application controller to act."""

    sync: SyncOperation | None = None
    initiated_by: OperationInitiator = field(
        metadata=field_options(alias="initiatedBy"),
        default_factory=OperationInitiator,
    )
    info: list[Info] | None = None
    retry: RetryStrategy | None = None

    def info_value(self, name: str) -> str | None:
        """Return the value of the first info entry with the given name."""
        for info in self.info or ():
            if info.name == name:
                return info.value
        return None


@dataclass
class SyncOperationResult(BaseManifest):
    """The outcome of a completed sync operation."""

    revision: str | None = None
    """The revision synced for a single source Application."""

    revisions: list[str] | None = None
    """The revisions synced, one per source, for a multi-source Application."""

    source: ApplicationSource | None = None
    sources: list[ApplicationSource] | None = None


@dataclass
class OperationState(BaseManifest):
    """The last observed state of an Operation."""

    operation: Operation = field(default_factory=Operation)
    phase: str | None = None
    message: str | None = None
    sync_result: SyncOperationResult | None = field(
        metadata=field_options(alias="syncResult"), default=None
    )
    finished_at: str | None = field(
        metadata=field_options(alias="finishedAt"), default=None
    )

    @property
    def completed(self) -> bool:
        """Return True if the operation reached a terminal phase."""
        return phase_completed(self.phase)


@dataclass
class ApplicationStatus(BaseManifest):
    """Observed state of an Application."""

    operation_state: OperationState | None = field(
        metadata=field_options(alias="operationState"), default=None
    )


@dataclass
class Application(BaseManifest):
    """A representation of an Argo CD Application."""

    kind: ClassVar[str] = APPLICATION_KIND
    """The kind of the object."""

    name: str
    """The name of the Application."""

    namespace: str
    """The namespace of the Application."""

    resource_version: str | None = None
    """The version of the object last observed in the store."""

    uid: str | None = None

    annotations: dict[str, str] | None = None

    labels: dict[str, str] | None = None

    spec: ApplicationSpec = field(default_factory=ApplicationSpec)

    status: ApplicationStatus = field(default_factory=ApplicationStatus)

    operation: Operation | None = None
    """The operation currently requested of the Application controller."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Application":
        """Parse an Application from a raw kubernetes object."""
        if doc.get("kind") != APPLICATION_KIND:
            raise InputException(f"Invalid object expected {APPLICATION_KIND}: {doc}")
        if not (api_version := doc.get("apiVersion")):
            raise InputException(f"Invalid object missing apiVersion: {doc}")
        if not api_version.startswith(ARGOCD_API_GROUP):
            raise InputException(f"Invalid object expected '{ARGOCD_API_GROUP}': {doc}")
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid {cls.__name__} missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid {cls.__name__} missing metadata.name: {doc}")
        try:
            spec = ApplicationSpec.from_dict(doc.get("spec") or {})
            status = ApplicationStatus.from_dict(doc.get("status") or {})
            operation = None
            if (op := doc.get("operation")) is not None:
                operation = Operation.from_dict(op)
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(
                f"Invalid {cls.__name__} {name}: {err}"
            ) from err
        return cls(
            name=name,
            namespace=metadata.get("namespace", DEFAULT_ARGOCD_NAMESPACE),
            resource_version=metadata.get("resourceVersion"),
            uid=metadata.get("uid"),
            annotations=metadata.get("annotations"),
            labels=metadata.get("labels"),
            spec=spec,
            status=status,
            operation=operation,
        )

    def to_doc(self) -> dict[str, Any]:
        """Return the raw kubernetes object for this Application."""
        metadata: dict[str, Any] = {
            "name": self.name,
            "namespace": self.namespace,
        }
        if self.resource_version is not None:
            metadata["resourceVersion"] = self.resource_version
        if self.uid is not None:
            metadata["uid"] = self.uid
        if self.annotations is not None:
            metadata["annotations"] = dict(self.annotations)
        if self.labels is not None:
            metadata["labels"] = dict(self.labels)
        doc: dict[str, Any] = {
            "apiVersion": ARGOCD_API_VERSION,
            "kind": APPLICATION_KIND,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
            "status": self.status.to_dict(),
        }
        if self.operation is not None:
            doc["operation"] = self.operation.to_dict()
        return doc

    @property
    def namespaced_name(self) -> str:
        """Return the namespace and name concatenated as an id."""
        return f"{self.namespace}/{self.name}"

    @property
    def resource_id(self) -> NamedResource:
        """Return the store identifier of the Application."""
        return NamedResource(APPLICATION_KIND, self.namespace, self.name)

    def current_sources(self) -> list[ApplicationSource]:
        """Return a copy of the sources, treating a legacy source as a list of one."""
        if self.spec.sources:
            return copy.deepcopy(self.spec.sources)
        if self.spec.source is not None:
            return [copy.deepcopy(self.spec.source)]
        return []


@dataclass
class ObjectReference(BaseManifest):
    """Reference to the object an Event is about."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    namespace: str
    name: str
    uid: str | None = None
    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )


@dataclass
class Event(BaseManifest):
    """A kubernetes core Event recorded against an Application."""

    kind: ClassVar[str] = EVENT_KIND

    name: str
    namespace: str
    involved_object: ObjectReference = field(
        metadata=field_options(alias="involvedObject")
    )
    reason: str
    message: str
    type: str = EVENT_TYPE_NORMAL
    source_component: str | None = field(
        metadata=field_options(alias="sourceComponent"), default=None
    )
    annotations: dict[str, str] | None = None
    first_timestamp: str | None = field(
        metadata=field_options(alias="firstTimestamp"), default=None
    )
    last_timestamp: str | None = field(
        metadata=field_options(alias="lastTimestamp"), default=None
    )
    count: int = 1


async def read_applications(path: Path) -> list[dict[str, Any]]:
    """Read the raw Application documents in a multi-document YAML file."""
    async with aiofiles.open(str(path)) as app_file:
        content = await app_file.read()
    docs = []
    for doc in yaml.safe_load_all(content):
        if not doc:
            continue
        if doc.get("kind") != APPLICATION_KIND:
            _LOGGER.debug("Skipping %s document in %s", doc.get("kind"), path)
            continue
        docs.append(doc)
    return docs


async def write_applications(path: Path, docs: list[dict[str, Any]]) -> None:
    """Write raw Application documents as a multi-document YAML file."""
    content = yaml.dump_all(docs, sort_keys=False, explicit_start=True)
    async with aiofiles.open(str(path), mode="w") as app_file:
        await app_file.write(content)
