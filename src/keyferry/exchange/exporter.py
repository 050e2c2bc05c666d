"""
Backup export: credential store -> encrypted backup file.

Export is all-or-nothing over the full current bundle set. The steps run in
a fixed order so that cheap precondition failures happen before any costly
or visible work:

    1. collect bundles        (empty store -> NothingToExportError)
    2. build the snapshot
    3. check password policy  (-> WeakPasswordError, nothing written)
    4. serialize and encrypt
    5. resolve destination    (no path chosen -> UserCancelledError)
    6. atomic write, then report completed
"""

from __future__ import annotations

import logging
import os
import platform
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path

from keyferry.crypto.cipher import CipherProvider
from keyferry.errors import (
    ArtifactWriteError,
    NothingToExportError,
    UserCancelledError,
    WeakPasswordError,
)
from keyferry.exchange.codec import SnapshotCodec
from keyferry.exchange.models import ExportResult, Snapshot, SnapshotMetadata
from keyferry.exchange.progress import OperationStatus, ProgressReporter
from keyferry.store.credential_store import CredentialStore
from keyferry.store.models import CredentialBundle

logger = logging.getLogger(__name__)

PRODUCER_TAG = "keyferry"
ARTIFACT_EXTENSION = ".enc"
DEFAULT_FILENAME_PREFIX = "keyferry_backup"

PathChooser = Callable[[str], Path | None]


class ExportOrchestrator:
    """
    Produces one encrypted backup file from the current credential store.

    Usage:
        exporter = ExportOrchestrator(store, cipher)

        bundles = exporter.collect()          # before asking for a password
        result = exporter.export(password, destination, bundles=bundles)
        print(result.path)

    Attributes:
        store: Source of the bundles.
        cipher: Encrypts the serialized snapshot.
        codec: Serializes the snapshot.
        progress: Receives stage transitions.
        path_chooser: Asked for a destination when export() gets none. It is
                     passed the default filename and returns a path, or None
                     if the user cancelled.
        output_dir: Directory used for the default destination.
        filename_prefix: Prefix of generated backup filenames.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: CipherProvider,
        codec: SnapshotCodec | None = None,
        progress: ProgressReporter | None = None,
        path_chooser: PathChooser | None = None,
        output_dir: Path | None = None,
        filename_prefix: str = DEFAULT_FILENAME_PREFIX,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.codec = codec or SnapshotCodec()
        self.progress = progress or ProgressReporter()
        self.path_chooser = path_chooser
        self.output_dir = Path(output_dir) if output_dir else None
        self.filename_prefix = filename_prefix

    def collect(self) -> list[CredentialBundle]:
        """
        Collect every bundle from the store.

        Returns:
            Bundles in the order the store returned them.

        Raises:
            NothingToExportError: If the store is empty.
        """
        bundles = list(self.store.collect_all())
        if not bundles:
            logger.warning("No accounts found, nothing to export")
            raise NothingToExportError()
        logger.info(f"Collected {len(bundles)} accounts for export")
        return bundles

    def build_snapshot(
        self,
        bundles: list[CredentialBundle],
        now: datetime | None = None,
    ) -> Snapshot:
        """Build a snapshot of the given bundles, stamped with the current time."""
        return Snapshot.create(
            items=bundles,
            format_version=self.codec.supported_version,
            created_at=now or datetime.now(UTC),
            metadata=SnapshotMetadata(
                platform=platform.system() or "Unknown",
                encryption_algorithm_id=self.cipher.algorithm_id,
                producer_tag=PRODUCER_TAG,
            ),
        )

    def default_filename(self, now: datetime | None = None) -> str:
        """Generate a backup filename such as keyferry_backup_2026-01-31T09-15-00.enc."""
        timestamp = (now or datetime.now(UTC)).strftime("%Y-%m-%dT%H-%M-%S")
        return f"{self.filename_prefix}_{timestamp}{ARTIFACT_EXTENSION}"

    def default_destination(self, now: datetime | None = None) -> Path:
        """Default backup path: output_dir (or the current directory) + default filename."""
        return (self.output_dir or Path.cwd()) / self.default_filename(now)

    def export(
        self,
        password: str,
        destination: Path | None = None,
        bundles: list[CredentialBundle] | None = None,
    ) -> ExportResult:
        """
        Export all bundles to an encrypted backup file.

        Args:
            password: Password to encrypt with.
            destination: Target file, or a directory to place the default
                        filename in. If None, path_chooser is asked.
            bundles: Bundles already returned by collect(). If None, the
                    store is read again.

        Returns:
            ExportResult describing the written file.

        Raises:
            NothingToExportError: If there is nothing to export.
            WeakPasswordError: If the password fails the cipher's policy.
            UserCancelledError: If no destination was chosen.
            ArtifactWriteError: If the file cannot be written.
        """
        self.progress.begin(OperationStatus.READING, "Collecting accounts...")

        try:
            if bundles is None:
                bundles = self.collect()
            elif not bundles:
                raise NothingToExportError()

            now = datetime.now(UTC)
            snapshot = self.build_snapshot(bundles, now)

            check = self.cipher.validate_password(password)
            if not check.is_valid:
                raise WeakPasswordError(check.message or "Invalid password")

            self.progress.advance(OperationStatus.ENCRYPTING, "Encrypting backup...")
            plaintext = self.codec.serialize(snapshot)
            artifact = self.cipher.encrypt(plaintext, password)

            path = self._resolve_destination(destination, now)

            self.progress.advance(OperationStatus.WRITING, f"Writing {path.name}...")
            size_bytes = self._write_artifact(path, artifact)

        except UserCancelledError:
            logger.info("Export cancelled: no save location selected")
            self.progress.reset("Export cancelled")
            raise
        except Exception as e:
            logger.error(f"Export failed: {e}")
            self.progress.fail("Export failed", str(e))
            raise

        self.progress.advance(
            OperationStatus.COMPLETED,
            f"Exported {len(snapshot.items)} accounts to {path}",
            progress=100,
        )
        logger.info(f"Backup exported: {path} ({len(snapshot.items)} accounts, {size_bytes:,} bytes)")

        return ExportResult(
            path=path,
            item_count=len(snapshot.items),
            size_bytes=size_bytes,
            created_at=now,
        )

    def _resolve_destination(self, destination: Path | None, now: datetime) -> Path:
        if destination is None and self.path_chooser is not None:
            destination = self.path_chooser(self.default_filename(now))

        if destination is None:
            raise UserCancelledError("Export cancelled: no save location selected")

        destination = Path(destination).expanduser()
        if destination.is_dir():
            destination = destination / self.default_filename(now)
        return destination

    def _write_artifact(self, path: Path, artifact: str) -> int:
        """
        Write the artifact atomically with owner-only permissions.

        Returns:
            Size of the written file in bytes.
        """
        data = artifact.encode("utf-8")
        temp_path = path.with_name(f".{path.name}.tmp")

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)

            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                # Windows or permission error - continue anyway
                pass

            temp_path.replace(path)

        except OSError as e:
            if temp_path.exists():
                temp_path.unlink()
            raise ArtifactWriteError(f"Failed to save backup file: {e}") from e

        return len(data)
