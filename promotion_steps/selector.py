"""Library for building label selectors used to find Applications.

A selector is declared as a set of exact `matchLabels` and a list of
set-based `matchExpressions`, the same way it is on a Kubernetes object,
and is turned into a `LabelSelector` that the store can evaluate.
"""

from dataclasses import dataclass, field
from enum import StrEnum
import logging

from mashumaro import field_options

from .exceptions import SelectorException
from .manifest import BaseManifest

__all__ = [
    "Operator",
    "MatchExpression",
    "AppSelector",
    "Requirement",
    "LabelSelector",
    "build_label_selector",
]

_LOGGER = logging.getLogger(__name__)


class Operator(StrEnum):
    """Set-based label selector operators."""

    IN = "In"
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"


@dataclass
class MatchExpression(BaseManifest):
    """A set-based requirement on a label."""

    key: str
    operator: str
    values: list[str] | None = None


@dataclass
class AppSelector(BaseManifest):
    """Declarative selector for Applications."""

    match_labels: dict[str, str] | None = field(
        metadata=field_options(alias="matchLabels"), default=None
    )
    """Labels that must be present with exactly these values."""

    match_expressions: list[MatchExpression] | None = field(
        metadata=field_options(alias="matchExpressions"), default=None
    )
    """Set-based requirements that must all hold."""


@dataclass(frozen=True)
class Requirement:
    """A single requirement of a label selector."""

    key: str
    operator: Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: dict[str, str]) -> bool:
        """Return True if the labels satisfy the requirement."""
        match self.operator:
            case Operator.IN:
                return self.key in labels and labels[self.key] in self.values
            case Operator.NOT_IN:
                return self.key not in labels or labels[self.key] not in self.values
            case Operator.EXISTS:
                return self.key in labels
            case Operator.DOES_NOT_EXIST:
                return self.key not in labels
        return False

    def __str__(self) -> str:
        match self.operator:
            case Operator.EXISTS:
                return self.key
            case Operator.DOES_NOT_EXIST:
                return f"!{self.key}"
            case Operator.IN if len(self.values) == 1:
                return f"{self.key}={self.values[0]}"
        values = ",".join(sorted(self.values))
        op = "in" if self.operator == Operator.IN else "notin"
        return f"{self.key} {op} ({values})"


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements."""

    requirements: tuple[Requirement, ...] = field(default_factory=tuple)

    def matches(self, labels: dict[str, str] | None) -> bool:
        """Return True if the labels satisfy every requirement."""
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)


def _new_requirement(key: str, operator: Operator, values: list[str]) -> Requirement:
    if not key:
        raise SelectorException("label key must not be empty")
    if operator in (Operator.IN, Operator.NOT_IN):
        if not values:
            raise SelectorException(
                f"values must be non-empty for operator {operator} on key {key!r}"
            )
    elif values:
        raise SelectorException(
            f"values must be empty for operator {operator} on key {key!r}"
        )
    return Requirement(key=key, operator=operator, values=tuple(values))


def build_label_selector(selector: AppSelector) -> LabelSelector:
    """Convert a declarative selector into a LabelSelector."""
    if not selector.match_labels and not selector.match_expressions:
        raise SelectorException("selector must have at least one match criterion")

    requirements: list[Requirement] = []
    for key, value in (selector.match_labels or {}).items():
        try:
            requirements.append(_new_requirement(key, Operator.IN, [value]))
        except SelectorException as err:
            raise SelectorException(f"invalid matchLabel {key}={value}: {err}") from err

    for expr in selector.match_expressions or ():
        try:
            op = Operator(expr.operator)
        except ValueError as err:
            raise SelectorException(f"invalid operator: {expr.operator}") from err
        try:
            requirements.append(_new_requirement(expr.key, op, expr.values or []))
        except SelectorException as err:
            raise SelectorException(f"invalid matchExpression: {err}") from err

    label_selector = LabelSelector(tuple(requirements))
    _LOGGER.debug("Built label selector %s", label_selector)
    return label_selector
