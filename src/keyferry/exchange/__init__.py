"""
Encrypted backup exchange for account credential bundles.

This module moves the whole credential store between machines as a single
password-protected file, and restores it with per-item fault isolation.

Usage:
    from keyferry.exchange import ExportOrchestrator, ImportOrchestrator

    # Export
    exporter = ExportOrchestrator(store, cipher)
    bundles = exporter.collect()
    result = exporter.export(password, output_path, bundles=bundles)

    # Import
    importer = ImportOrchestrator(store, cipher)
    result = importer.import_file(password, backup_path)
    print(result.outcome.summary())
"""

from keyferry.exchange.codec import SUPPORTED_VERSION, SnapshotCodec, compare_versions
from keyferry.exchange.exporter import ExportOrchestrator
from keyferry.exchange.importer import ImportOrchestrator
from keyferry.exchange.models import (
    ExportResult,
    FailedItem,
    ImportResult,
    RestoreOutcome,
    Snapshot,
    SnapshotMetadata,
    ValidationResult,
)
from keyferry.exchange.progress import (
    InvalidTransitionError,
    OperationProgress,
    OperationStatus,
    ProgressReporter,
)

__all__ = [
    # Orchestrators
    "ExportOrchestrator",
    "ImportOrchestrator",
    # Codec
    "SnapshotCodec",
    "SUPPORTED_VERSION",
    "compare_versions",
    # Data models
    "Snapshot",
    "SnapshotMetadata",
    "ValidationResult",
    "RestoreOutcome",
    "FailedItem",
    "ExportResult",
    "ImportResult",
    # Progress
    "ProgressReporter",
    "OperationProgress",
    "OperationStatus",
    "InvalidTransitionError",
]
