"""Loadout exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class LoadoutError(Exception):
    """Base exception for all Loadout failures."""

    rollback_failure: "RollbackFailure | None" = None


class LoadoutConfigError(LoadoutError):
    """Raised for invalid runtime configuration."""


class LoadoutStoreError(LoadoutError):
    """Raised for unreadable or corrupt persisted install metadata."""


class InvalidVersionFormat(LoadoutError):
    """Raised when a version string does not match the accepted grammar."""


class InvalidRollbackDefinition(LoadoutError):
    """Raised for rollback files that cannot be applied."""


class WorkloadNotFound(LoadoutError):
    """Raised when a workload id is unknown to the resolver."""


class UnsupportedOnPlatform(LoadoutError):
    """Raised when a workload cannot be installed on the current platform."""


class PackInstallFailure(LoadoutError):
    """Raised when a pack, manifest, or workload set fails to install."""


class InstallCancelled(LoadoutError):
    """Raised when cancellation prevents the next forward action."""


class TransactionStateError(LoadoutError):
    """Raised for illegal transaction lifecycle transitions."""


class GarbageCollectionFailure(LoadoutError):
    """Raised when reclaiming unreferenced content fails."""


class RollbackFailure(LoadoutError):
    """Raised when one or more compensating actions fail during rollback.

    Attributes:
        errors: Every exception raised by a compensation, in unwind order.
    """

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = tuple(errors)
        details = "; ".join(f"{type(error).__name__}: {error}" for error in errors)
        super().__init__(
            f"Rollback left {len(errors)} compensation(s) incomplete: {details}. "
            "Inspect the install root and run garbage collection to reclaim leftovers."
        )


def attach_rollback_failure(error: BaseException, failure: RollbackFailure) -> None:
    """Attach a rollback failure to the original forward error.

    Args:
        error: Forward error that triggered the rollback.
        failure: Aggregated compensation failures.
    """
    setattr(error, "rollback_failure", failure)
    error.add_note(f"Rollback also failed: {failure}")
