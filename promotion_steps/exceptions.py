"""Exceptions related to promotion-steps."""

__all__ = [
    "PromotionException",
    "InputException",
    "SelectorException",
    "AuthorizationException",
    "ObjectNotFoundError",
    "ConflictError",
    "SourceUpdateException",
    "StepException",
    "TerminalError",
]


class PromotionException(Exception):
    """Generic base exception used for this library."""


class InputException(PromotionException):
    """Raised when the step configuration or resources are not formatted as expected."""


class SelectorException(InputException):
    """Raised when a label selector can't be turned into a query."""


class AuthorizationException(PromotionException):
    """Raised when an Application does not permit mutation by a Stage."""


class ObjectNotFoundError(PromotionException):
    """Raised when an object is not found in the store."""


class ConflictError(PromotionException):
    """Raised when a patch is rejected because the object changed underneath it."""

    def __init__(self, resource_name: str, expected: str, actual: str) -> None:
        super().__init__(
            f"Conflict patching {resource_name}: resource version {expected} "
            f"is stale (now {actual})"
        )
        self.resource_name = resource_name
        self.expected = expected
        self.actual = actual


class SourceUpdateException(PromotionException):
    """Raised when declared source updates can't be applied to an Application."""


class StepException(PromotionException):
    """Raised when a step fails for a reason that may go away on retry."""


class TerminalError(PromotionException):
    """Raised when a step fails in a way that must never be retried."""

    def __init__(self, err: Exception) -> None:
        super().__init__(str(err))
        self.err = err
