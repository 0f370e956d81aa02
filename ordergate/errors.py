"""Error taxonomy for the decision core.

Insufficient data and duplicate proposals are not errors; the functions that
meet them return ``None`` or report a suppression instead of raising.
"""

from __future__ import annotations


class OrderGateError(Exception):
    """Base class for all errors raised by this package."""


class InvalidBar(OrderGateError):
    """A bar violates the OHLC invariants and must not enter history."""

    def __init__(self, rule: str, timestamp: object | None = None) -> None:
        self.rule = rule
        self.timestamp = timestamp
        at = f" at {timestamp}" if timestamp is not None else ""
        super().__init__(f"invalid bar{at}: {rule}")


class InvalidDecisionState(OrderGateError):
    """A trade proposal fails its own invariant check before submission."""


class CollaboratorError(OrderGateError):
    """A call to an external collaborator did not produce a usable result."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        message = f"{operation} failed"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class CollaboratorTimeout(CollaboratorError):
    """The collaborator call exceeded its time budget."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(operation, f"timed out after {timeout:g}s")


class CollaboratorFailure(CollaboratorError):
    """The collaborator answered with an explicit failure."""
