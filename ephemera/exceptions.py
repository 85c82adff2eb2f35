"""Exception hierarchy.

Everything deriving from ``EphemeraError`` is fatal for the current run
and propagates to the caller. ``InvalidRegistryError`` is the one
exception that is always handled where it is raised.
"""

from __future__ import annotations


class EphemeraError(Exception):
    """Base class for fatal orchestration errors."""


class WaitTimeoutError(EphemeraError):
    """A readiness poll exhausted its retry budget."""

    def __init__(self, condition: str, attempts: int) -> None:
        self.condition = condition
        self.attempts = attempts
        super().__init__(f"Timeout while waiting for {condition} after {attempts} attempts. Aborting.")


class TransferError(EphemeraError):
    """A file could not be copied onto the instance."""

    def __init__(self, what: str, target: str) -> None:
        self.what = what
        self.target = target
        super().__init__(f"Unable to copy the {what} on instance ({target}). Aborting.")


class OperationError(EphemeraError):
    """A cloud operation finished with an error code."""

    def __init__(self, operation: str, code: str, details: str | None = None) -> None:
        self.operation = operation
        self.code = code
        self.details = details
        super().__init__(
            f"An error occurred while running {operation}: {code} ({details or 'no details'})"
        )


class KeyFetchError(EphemeraError):
    """Admin public keys could not be downloaded."""


class InvalidRegistryError(ValueError):
    """A registry URI is not of the form docker://[user[:pass]@]host."""
