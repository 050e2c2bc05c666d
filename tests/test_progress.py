"""
Tests for progress reporting.

Uses Python's unittest module.
"""

from __future__ import annotations

import unittest

from keyferry.exchange.progress import (
    InvalidTransitionError,
    OperationProgress,
    OperationStatus,
    ProgressReporter,
)


class TestProgressReporter(unittest.TestCase):
    """Tests for the ProgressReporter state machine."""

    def setUp(self) -> None:
        self.reporter = ProgressReporter()
        self.events: list[OperationProgress] = []
        self.reporter.subscribe(self.events.append)

    def test_starts_idle(self) -> None:
        """Test that a new reporter is idle."""
        self.assertEqual(ProgressReporter().status, OperationStatus.IDLE)

    def test_success_path(self) -> None:
        """Test a full import-style state sequence."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.DECRYPTING, "Decrypting")
        self.reporter.advance(OperationStatus.VALIDATING, "Validating")
        self.reporter.advance(OperationStatus.WRITING, "Writing")
        self.reporter.advance(OperationStatus.COMPLETED, "Done", progress=100)

        self.assertEqual(
            [event.status for event in self.events],
            [
                OperationStatus.READING,
                OperationStatus.DECRYPTING,
                OperationStatus.VALIDATING,
                OperationStatus.WRITING,
                OperationStatus.COMPLETED,
            ],
        )
        self.assertEqual(self.reporter.current.progress, 100)

    def test_skipping_stages_allowed(self) -> None:
        """Test that optional stages can be skipped."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.WRITING, "Writing")

        self.assertEqual(self.reporter.status, OperationStatus.WRITING)

    def test_cannot_move_backwards(self) -> None:
        """Test that a state is never revisited."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.VALIDATING, "Validating")

        with self.assertRaises(InvalidTransitionError):
            self.reporter.advance(OperationStatus.DECRYPTING, "Decrypting")

    def test_advance_to_error_rejected(self) -> None:
        """Test that the error state is only reachable through fail()."""
        self.reporter.begin(OperationStatus.READING, "Reading")

        with self.assertRaises(InvalidTransitionError):
            self.reporter.advance(OperationStatus.ERROR, "Oops")

    def test_fail_carries_detail(self) -> None:
        """Test that fail() records the error detail."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.fail("Import failed", "wrong password")

        self.assertEqual(self.reporter.status, OperationStatus.ERROR)
        self.assertEqual(self.reporter.current.error, "wrong password")

    def test_fail_from_idle_rejected(self) -> None:
        """Test that nothing can fail before it started."""
        with self.assertRaises(InvalidTransitionError):
            self.reporter.fail("Failed")

    def test_terminal_states(self) -> None:
        """Test that completed and error are terminal."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.fail("Failed")

        with self.assertRaises(InvalidTransitionError):
            self.reporter.advance(OperationStatus.WRITING, "Writing")
        with self.assertRaises(InvalidTransitionError):
            self.reporter.fail("Failed again")

    def test_fail_after_completed(self) -> None:
        """Test that a completed operation can still move to error."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.COMPLETED, "Done")

        self.reporter.fail("Post-processing failed", "detail")

        self.assertEqual(self.reporter.status, OperationStatus.ERROR)
        self.assertEqual(self.reporter.current.error, "detail")

    def test_begin_restarts_after_terminal(self) -> None:
        """Test that a new operation starts fresh."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.COMPLETED, "Done")

        self.reporter.begin(OperationStatus.READING, "Reading again")

        self.assertEqual(self.reporter.status, OperationStatus.READING)
        self.assertEqual(len(self.reporter.history), 1)

    def test_report_keeps_status(self) -> None:
        """Test that report() updates the message only."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.advance(OperationStatus.WRITING, "Writing")
        self.reporter.report("1 of 2", progress=50)

        self.assertEqual(self.reporter.status, OperationStatus.WRITING)
        self.assertEqual(self.reporter.current.message, "1 of 2")
        self.assertEqual(self.reporter.current.progress, 50)

    def test_report_ignored_when_idle(self) -> None:
        """Test that report() does nothing without an operation."""
        self.reporter.report("stray")

        self.assertEqual(self.events, [])

    def test_reset(self) -> None:
        """Test that reset() returns to idle."""
        self.reporter.begin(OperationStatus.READING, "Reading")
        self.reporter.reset("Cancelled")

        self.assertEqual(self.reporter.status, OperationStatus.IDLE)
        self.assertEqual(self.reporter.current.message, "Cancelled")

    def test_unsubscribe(self) -> None:
        """Test that an unsubscribed listener stops receiving events."""
        received: list[OperationProgress] = []
        unsubscribe = self.reporter.subscribe(received.append)

        self.reporter.begin(OperationStatus.READING, "Reading")
        unsubscribe()
        self.reporter.advance(OperationStatus.WRITING, "Writing")

        self.assertEqual(len(received), 1)

    def test_failing_listener_does_not_break_reporter(self) -> None:
        """Test that listener exceptions are contained."""

        def broken(event: OperationProgress) -> None:
            raise RuntimeError("listener bug")

        self.reporter.subscribe(broken)

        with self.assertLogs("keyferry.exchange.progress", level="ERROR"):
            self.reporter.begin(OperationStatus.READING, "Reading")

        self.assertEqual(self.reporter.status, OperationStatus.READING)
        self.assertEqual(len(self.events), 1)


class TestOperationStatus(unittest.TestCase):
    """Tests for OperationStatus."""

    def test_values(self) -> None:
        """Test wire values of the states."""
        self.assertEqual(OperationStatus.DECRYPTING.value, "decrypting")
        self.assertEqual(OperationStatus("completed"), OperationStatus.COMPLETED)

    def test_is_terminal(self) -> None:
        """Test terminal state detection."""
        self.assertTrue(OperationStatus.COMPLETED.is_terminal)
        self.assertTrue(OperationStatus.ERROR.is_terminal)
        self.assertFalse(OperationStatus.WRITING.is_terminal)


if __name__ == "__main__":
    unittest.main()
