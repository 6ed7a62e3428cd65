"""Registry of the step runners available to a process.

The registry is an explicit value. It is built once at start-up, usually with
`default_registry()`, and passed to whatever needs to construct runners, so
the set of runners never depends on which modules happen to be imported.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
import logging

from .exceptions import PromotionException
from .promotion import StepRunner
from .store import Store

__all__ = [
    "CAPABILITY_STORE",
    "StepRunnerCapabilities",
    "StepRunnerMetadata",
    "StepRunnerRegistration",
    "StepRunnerRegistry",
    "default_registry",
]

_LOGGER = logging.getLogger(__name__)

CAPABILITY_STORE = "store"


@dataclass
class StepRunnerCapabilities:
    """Shared resources handed to runners when they are constructed."""

    store: Store | None = None
    """Access to the Argo CD Applications, or None if the integration is disabled."""

    def provided(self) -> frozenset[str]:
        """Return the names of the capabilities that are available."""
        names = set()
        if self.store is not None:
            names.add(CAPABILITY_STORE)
        return frozenset(names)


@dataclass(frozen=True)
class StepRunnerMetadata:
    """Static information about a kind of step."""

    default_timeout: timedelta | None = None
    """How long a step may remain Running before the Promotion gives up."""

    required_capabilities: frozenset[str] = field(default_factory=frozenset)
    """Capabilities the runner can't work without."""


StepRunnerFactory = Callable[[StepRunnerCapabilities], StepRunner]


@dataclass(frozen=True)
class StepRunnerRegistration:
    """How to construct the runner for a kind of step."""

    name: str
    factory: StepRunnerFactory
    metadata: StepRunnerMetadata = field(default_factory=StepRunnerMetadata)


class StepRunnerRegistry:
    """A set of step runner registrations keyed by step kind."""

    def __init__(self) -> None:
        self._registrations: dict[str, StepRunnerRegistration] = {}

    def register(self, registration: StepRunnerRegistration) -> bool:
        """Add a registration, returning False if the name is already taken."""
        if not registration.name:
            raise PromotionException("Step runner registration must have a name")
        if registration.name in self._registrations:
            _LOGGER.warning(
                "Step runner %s is already registered, ignoring", registration.name
            )
            return False
        _LOGGER.debug("Registering step runner %s", registration.name)
        self._registrations[registration.name] = registration
        return True

    def must_register(self, registration: StepRunnerRegistration) -> None:
        """Add a registration, raising if the name is already taken."""
        if not self.register(registration):
            raise PromotionException(
                f"Step runner {registration.name!r} is already registered"
            )

    def get(self, name: str) -> StepRunnerRegistration | None:
        """Return the registration for a kind of step, if any."""
        return self._registrations.get(name)

    def names(self) -> list[str]:
        """Return the registered step kinds in sorted order."""
        return sorted(self._registrations)

    def new_runner(self, name: str, caps: StepRunnerCapabilities) -> StepRunner:
        """Construct the runner for a kind of step."""
        if (registration := self.get(name)) is None:
            raise PromotionException(f"No promotion step runner found for kind {name!r}")
        if missing := registration.metadata.required_capabilities - caps.provided():
            _LOGGER.info(
                "Step runner %s is missing capabilities: %s",
                name,
                ", ".join(sorted(missing)),
            )
        return registration.factory(caps)


def default_registry() -> StepRunnerRegistry:
    """Return a registry populated with the built-in step runners."""
    # Imported here so that runner modules may depend on this one.
    from .argocd.updater import REGISTRATION as ARGOCD_UPDATE

    registry = StepRunnerRegistry()
    registry.must_register(ARGOCD_UPDATE)
    return registry
