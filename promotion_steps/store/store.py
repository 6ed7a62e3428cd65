"""Store module for the resources mutated by promotion steps."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any

from promotion_steps.manifest import Application, Event, NamedResource
from promotion_steps.selector import LabelSelector

__all__ = [
    "PatchFn",
    "Store",
    "StoreEvent",
]


PatchFn = Callable[[dict[str, Any], dict[str, Any]], None]
"""Modifies the raw latest object (dst) in place given the raw desired object (src)."""


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_PATCHED = "object_patched"
    EVENT_CREATED = "event_created"


class Store(ABC):
    """Abstract base class for a Kubernetes API compatible object store.

    Every object carries a resource version. Mutations are keyed on the version
    the caller last observed so that concurrent writers are rejected rather than
    silently overwritten.
    """

    @abstractmethod
    async def list_applications(
        self, namespace: str, selector: LabelSelector
    ) -> list[Application]:
        """List the Applications in a namespace matching a label selector."""

    @abstractmethod
    async def get_application(self, namespace: str, name: str) -> Application | None:
        """Get an Application by name, or None if it does not exist."""

    @abstractmethod
    async def patch_application(self, app: Application, modify: PatchFn) -> None:
        """Patch an Application.

        The `modify` function is called with the raw form of `app` and a copy of
        the raw object currently in the store, and must update the latter. The
        result is written only if the stored resource version still matches
        `app.resource_version`, and the new version is recorded on `app`.

        Raises:
            ObjectNotFoundError: If the Application no longer exists.
            ConflictError: If the Application changed since it was read.
        """

    @abstractmethod
    async def create_event(self, event: Event) -> None:
        """Record an Event."""

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, Any], None],
    ) -> Callable[[], None]:
        """Register a callback for a specific store event.

        Returns a callable that can be called to remove the listener.
        """
