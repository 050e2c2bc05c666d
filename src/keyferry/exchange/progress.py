"""
Progress reporting for backup export and import.

A small synchronous state machine. Orchestrators push transitions into it;
callers subscribe to watch them. It is an observation channel only: nothing
in the orchestrators reads it to decide what to do next.

State flow (success path, never revisits a state):
    idle -> reading -> [encrypting] -> [decrypting] -> [validating]
         -> writing -> completed

error is reachable from any state except idle, completed included, and
is terminal for the operation. A new operation always starts again from idle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    """Stage of an export or import operation."""

    IDLE = "idle"
    READING = "reading"
    ENCRYPTING = "encrypting"
    DECRYPTING = "decrypting"
    VALIDATING = "validating"
    WRITING = "writing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """True for completed and error."""
        return self in (OperationStatus.COMPLETED, OperationStatus.ERROR)


# Position on the success path; transitions may only move forward
_STATUS_RANK: dict[OperationStatus, int] = {
    OperationStatus.IDLE: 0,
    OperationStatus.READING: 1,
    OperationStatus.ENCRYPTING: 2,
    OperationStatus.DECRYPTING: 3,
    OperationStatus.VALIDATING: 4,
    OperationStatus.WRITING: 5,
    OperationStatus.COMPLETED: 6,
}


class InvalidTransitionError(ValueError):
    """Raised when a progress transition breaks the state flow."""

    pass


@dataclass(frozen=True)
class OperationProgress:
    """
    One progress event.

    Attributes:
        status: Current stage.
        message: Human-readable description.
        progress: Optional completion percentage (0-100).
        error: Error detail, set only when status is ERROR.
    """

    status: OperationStatus
    message: str
    progress: int | None = None
    error: str | None = None


ProgressListener = Callable[[OperationProgress], None]


class ProgressReporter:
    """
    Tracks the stage of one operation at a time and notifies listeners.

    Usage:
        reporter = ProgressReporter()
        unsubscribe = reporter.subscribe(lambda event: print(event.message))

        reporter.begin(OperationStatus.READING, "Reading backup file...")
        reporter.advance(OperationStatus.DECRYPTING, "Decrypting...")
        reporter.fail("Decryption failed", "wrong password")

        unsubscribe()
    """

    def __init__(self) -> None:
        self._current = OperationProgress(OperationStatus.IDLE, "Idle")
        self._listeners: list[ProgressListener] = []
        self.history: list[OperationProgress] = []

    @property
    def current(self) -> OperationProgress:
        """Most recent progress event."""
        return self._current

    @property
    def status(self) -> OperationStatus:
        """Current stage."""
        return self._current.status

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """
        Register a listener for progress events.

        Args:
            listener: Called with every OperationProgress emitted.

        Returns:
            A callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin(self, status: OperationStatus, message: str) -> None:
        """
        Start a new operation.

        Resets to idle, whatever state the previous operation ended in, then
        advances to the given first stage.
        """
        self._current = OperationProgress(OperationStatus.IDLE, "Idle")
        self.history = []
        self.advance(status, message)

    def advance(
        self,
        status: OperationStatus,
        message: str,
        progress: int | None = None,
    ) -> None:
        """
        Move forward to a later stage.

        Raises:
            InvalidTransitionError: If status is error (use fail()), or is not
                                   strictly after the current stage.
        """
        if status == OperationStatus.ERROR:
            raise InvalidTransitionError("Use fail() to enter the error state")
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Operation already {self.status.value}; call begin() to start a new one"
            )
        if _STATUS_RANK[status] <= _STATUS_RANK[self.status]:
            raise InvalidTransitionError(
                f"Cannot move from {self.status.value} to {status.value}"
            )
        self._emit(OperationProgress(status, message, progress))

    def report(self, message: str, progress: int | None = None) -> None:
        """
        Publish a new message for the current stage without changing it.

        Ignored when no operation is in progress.
        """
        if self.status == OperationStatus.IDLE or self.status.is_terminal:
            return
        self._emit(OperationProgress(self.status, message, progress))

    def fail(self, message: str, detail: str | None = None) -> None:
        """
        Enter the error state.

        Allowed from every state except idle and error, including completed.

        Raises:
            InvalidTransitionError: If no operation is in progress.
        """
        if self.status in (OperationStatus.IDLE, OperationStatus.ERROR):
            raise InvalidTransitionError(
                f"Cannot fail from {self.status.value}"
            )
        self._emit(OperationProgress(OperationStatus.ERROR, message, error=detail))

    def reset(self, message: str = "Idle") -> None:
        """Return to idle, e.g. after the user cancelled."""
        self._emit(OperationProgress(OperationStatus.IDLE, message))

    def _emit(self, event: OperationProgress) -> None:
        self._current = event
        self.history.append(event)
        logger.debug(f"Progress: {event.status.value} - {event.message}")

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # A broken listener must not change the outcome of the operation
                logger.exception("Progress listener failed")
