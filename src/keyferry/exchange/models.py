"""
Data models for backup export and import.

Schema Design Decisions:
    - Snapshots are built fresh on every export and rebuilt fresh on every
      import; they are never cached or written to disk unencrypted
    - Timestamps are timezone-aware UTC datetimes, ISO format on the wire
    - item_count is advisory on the wire; len(items) is the ground truth
    - Results are frozen: they are never mutated after construction
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from keyferry.store.models import CredentialBundle


@dataclass(frozen=True)
class SnapshotMetadata:
    """
    Provenance information stored alongside the bundles.

    Attributes:
        platform: Operating system of the exporting machine.
        encryption_algorithm_id: Cipher that produced the artifact.
        producer_tag: Identifies the application that wrote the snapshot.
    """

    platform: str
    encryption_algorithm_id: str
    producer_tag: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "platform": self.platform,
            "encryption_algorithm_id": self.encryption_algorithm_id,
            "producer_tag": self.producer_tag,
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Decrypted, structured form of a backup artifact.

    Attributes:
        format_version: Dotted version of the snapshot format.
        created_at: When the snapshot was built (UTC). None only for a
                    decoded snapshot that failed validation.
        item_count: Number of items as recorded by the producer.
        items: Bundles in collection order.
        metadata: Provenance information.
    """

    format_version: str
    created_at: datetime | None
    item_count: int
    items: tuple[CredentialBundle, ...]
    metadata: SnapshotMetadata

    @classmethod
    def create(
        cls,
        items: list[CredentialBundle] | tuple[CredentialBundle, ...],
        format_version: str,
        created_at: datetime,
        metadata: SnapshotMetadata,
    ) -> Snapshot:
        """Create a snapshot whose item_count matches its items."""
        items = tuple(items)
        return cls(
            format_version=format_version,
            created_at=created_at,
            item_count=len(items),
            items=items,
            metadata=metadata,
        )


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating a decoded snapshot.

    Warnings never block an import; any error does.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True if there are no errors."""
        return not self.errors


@dataclass(frozen=True)
class FailedItem:
    """A bundle that could not be restored, with the store's error message."""

    filename: str
    error: str

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary."""
        return {"filename": self.filename, "error": self.error}


@dataclass(frozen=True)
class RestoreOutcome:
    """
    Result of restoring every item of a snapshot.

    restored_count + len(failed) always equals the number of items that
    were attempted.
    """

    restored_count: int = 0
    failed: tuple[FailedItem, ...] = ()

    @property
    def total(self) -> int:
        """Number of items attempted."""
        return self.restored_count + len(self.failed)

    @property
    def all_restored(self) -> bool:
        """True if no item failed."""
        return not self.failed

    def summary(self) -> str:
        """Short human-readable summary, e.g. "restored 2, 1 failed"."""
        if self.failed:
            return f"restored {self.restored_count}, {len(self.failed)} failed"
        return f"restored {self.restored_count}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "restored_count": self.restored_count,
            "failed": [item.to_dict() for item in self.failed],
        }


@dataclass(frozen=True)
class ExportResult:
    """Result of a completed export."""

    path: Path
    item_count: int
    size_bytes: int
    created_at: datetime


@dataclass(frozen=True)
class ImportResult:
    """
    Result of an import that ran to completion.

    Completion does not mean every item was restored; check outcome.failed.
    """

    outcome: RestoreOutcome
    format_version: str
    created_at: datetime | None
    producer_tag: str
    warnings: list[str] = field(default_factory=list)
    path: Path | None = None
