"""All-or-nothing install transactions.

A transaction records a compensating action for every forward action it
runs. When the body fails, compensations run in reverse order; failures
inside compensations are collected and attached to the original error as
a RollbackFailure instead of replacing it. Cleanups run after commit or
rollback and never fail the transaction.

Lifecycle: ``pending -> applying -> committed | rolled_back``.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import TracebackType
from typing import Callable, Literal, TypeVar

from core.errors import (
    InstallCancelled,
    RollbackFailure,
    TransactionStateError,
    attach_rollback_failure,
)
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

T = TypeVar("T")
TransactionState = Literal["pending", "applying", "committed", "rolled_back"]
ALLOWED_STATE_TRANSITIONS: dict[TransactionState, tuple[TransactionState, ...]] = {
    "pending": ("applying",),
    "applying": ("committed", "rolled_back"),
    "committed": (),
    "rolled_back": (),
}


class CancellationToken:
    """Coarse cancellation flag checked before each forward action."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class _Compensation:
    description: str
    undo: Callable[[], None]


class Transaction:
    """Compensation stack for one install or update call.

    Use as a context manager::

        with Transaction("install") as transaction:
            transaction.run(write_pack, rollback=delete_pack)
    """

    def __init__(self, name: str, cancellation: CancellationToken | None = None) -> None:
        self._name = name
        self._cancellation = cancellation
        self._state: TransactionState = "pending"
        self._compensations: list[_Compensation] = []
        self._cleanups: list[Callable[[], None]] = []
        self.rollback_failure: RollbackFailure | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> TransactionState:
        return self._state

    def run(
        self,
        action: Callable[[], T],
        rollback: Callable[[], None] | None = None,
        cleanup: Callable[[], None] | None = None,
        description: str = "",
    ) -> T:
        """Run one forward action inside the transaction.

        The compensation is pushed before the action starts, so it also
        undoes an action that failed halfway. Compensations must therefore
        tolerate state the action never reached.

        Args:
            action: Forward action.
            rollback: Compensation undoing the action.
            cleanup: Scratch cleanup run after commit or rollback.
            description: Label used in logs.

        Returns:
            The action's return value.

        Raises:
            InstallCancelled: If cancellation was requested before the action.
            TransactionStateError: If the transaction is not applying.
        """
        if self._state != "applying":
            raise TransactionStateError(
                f"Transaction '{self._name}' cannot run actions while {self._state}."
            )
        if self._cancellation is not None and self._cancellation.is_cancelled:
            raise InstallCancelled(
                f"Transaction '{self._name}' was cancelled before '{description or 'next action'}'."
            )
        if cleanup is not None:
            self._cleanups.append(cleanup)
        if rollback is not None:
            self._compensations.append(_Compensation(description=description, undo=rollback))
        return action()

    def __enter__(self) -> "Transaction":
        self._transition("applying")
        _LOGGER.debug("transaction_started", transaction=self._name)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool:
        try:
            if exc is None:
                self._transition("committed")
                _LOGGER.info("transaction_committed", transaction=self._name)
            else:
                self._roll_back(exc)
        finally:
            self._run_cleanups()
        return False

    def _roll_back(self, error: BaseException) -> None:
        self._transition("rolled_back")
        _LOGGER.warning(
            "rollback_started",
            transaction=self._name,
            error=str(error),
            compensation_count=len(self._compensations),
        )
        failures: list[BaseException] = []
        while self._compensations:
            compensation = self._compensations.pop()
            try:
                compensation.undo()
            except Exception as undo_error:
                failures.append(undo_error)
                _LOGGER.error(
                    "rollback_step_failed",
                    transaction=self._name,
                    step=compensation.description,
                    error=str(undo_error),
                )
        if failures:
            self.rollback_failure = RollbackFailure(failures)
            attach_rollback_failure(error, self.rollback_failure)
        _LOGGER.info("rollback_finished", transaction=self._name, failed_steps=len(failures))

    def _run_cleanups(self) -> None:
        while self._cleanups:
            cleanup = self._cleanups.pop()
            try:
                cleanup()
            except Exception as error:
                _LOGGER.warning("transaction_cleanup_failed", transaction=self._name, error=str(error))

    def _transition(self, next_state: TransactionState) -> None:
        allowed_states = ALLOWED_STATE_TRANSITIONS[self._state]
        if next_state not in allowed_states:
            raise TransactionStateError(
                f"Invalid transaction state transition {self._state!r} -> {next_state!r}. "
                f"Allowed: {', '.join(allowed_states) or 'none'}."
            )
        self._state = next_state
