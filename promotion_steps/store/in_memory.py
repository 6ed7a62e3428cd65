"""Module for in memory object store."""

import copy
from collections import defaultdict
from collections.abc import Callable
from typing import Any, DefaultDict
import itertools
import logging
import uuid

from promotion_steps.exceptions import ConflictError, InputException, ObjectNotFoundError
from promotion_steps.manifest import (
    APPLICATION_KIND,
    DEFAULT_ARGOCD_NAMESPACE,
    Application,
    Event,
    NamedResource,
)
from promotion_steps.selector import LabelSelector

from .store import PatchFn, Store, StoreEvent


_LOGGER = logging.getLogger(__name__)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are kept as raw documents keyed by NamedResource, the same way an
    API server would hold them, so that fields the typed views don't model
    survive a patch. Every write assigns a new resource version.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[NamedResource, dict[str, Any]] = {}
        self._events: list[Event] = []
        self._versions = itertools.count(1)
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def _next_version(self) -> str:
        return str(next(self._versions))

    def add_object(self, doc: dict[str, Any]) -> NamedResource:
        """Add a raw object to the store, replacing any existing one."""
        if not (kind := doc.get("kind")):
            raise InputException(f"Object must have a kind: {doc}")
        metadata = doc.get("metadata") or {}
        if not (name := metadata.get("name")):
            raise InputException(f"Object must have metadata.name: {doc}")
        namespace = metadata.get("namespace")
        if kind == APPLICATION_KIND and namespace is None:
            namespace = DEFAULT_ARGOCD_NAMESPACE
        resource_id = NamedResource(kind, namespace, name)

        doc = copy.deepcopy(doc)
        metadata = doc.setdefault("metadata", {})
        if namespace is not None:
            metadata["namespace"] = namespace
        metadata.setdefault("uid", str(uuid.uuid4()))
        metadata["resourceVersion"] = self._next_version()
        if resource_id in self._objects:
            _LOGGER.debug("Updating existing object %s in store", resource_id)
        else:
            _LOGGER.debug("Adding object %s to store", resource_id)
        self._objects[resource_id] = doc
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, doc)
        return resource_id

    def get_object(self, resource_id: NamedResource) -> dict[str, Any] | None:
        """Return a copy of the raw object, or None if it does not exist."""
        if (doc := self._objects.get(resource_id)) is None:
            return None
        return copy.deepcopy(doc)

    def list_objects(self, kind: str | None = None) -> list[dict[str, Any]]:
        """List copies of all raw objects, optionally filtered by kind."""
        return [
            copy.deepcopy(doc)
            for resource_id, doc in self._objects.items()
            if kind is None or resource_id.kind == kind
        ]

    def list_events(self) -> list[Event]:
        """Return the events recorded so far, oldest first."""
        return list(self._events)

    async def list_applications(
        self, namespace: str, selector: LabelSelector
    ) -> list[Application]:
        """List the Applications in a namespace matching a label selector."""
        apps = []
        for resource_id, doc in self._objects.items():
            if resource_id.kind != APPLICATION_KIND or resource_id.namespace != namespace:
                continue
            if not selector.matches(doc["metadata"].get("labels")):
                continue
            apps.append(Application.parse_doc(copy.deepcopy(doc)))
        _LOGGER.debug(
            "Listed %d Application(s) in %s matching '%s'", len(apps), namespace, selector
        )
        return apps

    async def get_application(self, namespace: str, name: str) -> Application | None:
        """Get an Application by name, or None if it does not exist."""
        resource_id = NamedResource(APPLICATION_KIND, namespace, name)
        if (doc := self._objects.get(resource_id)) is None:
            return None
        return Application.parse_doc(copy.deepcopy(doc))

    async def patch_application(self, app: Application, modify: PatchFn) -> None:
        """Patch an Application guarded by its last observed resource version."""
        resource_id = app.resource_id
        if (current := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(
                f"Unable to patch {resource_id}: object not found"
            )
        actual = current["metadata"].get("resourceVersion")
        if app.resource_version != actual:
            raise ConflictError(
                resource_id.namespaced_name, str(app.resource_version), str(actual)
            )

        dst = copy.deepcopy(current)
        modify(app.to_doc(), dst)
        # Identity is owned by the store, not by the patch.
        dst["metadata"]["name"] = resource_id.name
        dst["metadata"]["namespace"] = resource_id.namespace
        dst["metadata"]["uid"] = current["metadata"].get("uid")
        dst["metadata"]["resourceVersion"] = self._next_version()

        _LOGGER.debug(
            "Patched %s from version %s to %s",
            resource_id,
            actual,
            dst["metadata"]["resourceVersion"],
        )
        self._objects[resource_id] = dst
        app.resource_version = dst["metadata"]["resourceVersion"]
        app.uid = dst["metadata"]["uid"]
        self._fire_event(StoreEvent.OBJECT_PATCHED, resource_id, copy.deepcopy(dst))

    async def create_event(self, event: Event) -> None:
        """Record an Event."""
        resource_id = NamedResource(event.kind, event.namespace, event.name)
        _LOGGER.debug("Recording event %s: %s", resource_id, event.message)
        self._events.append(event)
        self._fire_event(StoreEvent.EVENT_CREATED, resource_id, event)

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, Any], None],
    ) -> Callable[[], None]:
        """Register a callback for a specific store event."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)
        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
