"""
Backup import: encrypted backup file -> credential store.

The outer steps (read, password policy, decrypt, validate) are
all-or-nothing: any failure aborts before a single bundle is written. The
restore step is not: every item is attempted, each failure is recorded
against its filename, and the loop moves on.

    1. read the file            (empty -> EmptyArtifactError)
    2. check password policy    (-> WeakPasswordError, no decrypt attempt)
    3. decrypt                  (-> DecryptionFailedError)
    4. parse and validate       (-> IncompatibleArtifactError)
    5. restore item by item     (failures recorded, never raised)
    6. build the RestoreOutcome

An import whose every item failed still returns normally; the outcome says
what happened.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from keyferry.crypto.cipher import CipherProvider
from keyferry.errors import (
    ArtifactReadError,
    EmptyArtifactError,
    IncompatibleArtifactError,
    MalformedArtifactError,
    UserCancelledError,
    WeakPasswordError,
)
from keyferry.exchange.codec import SnapshotCodec
from keyferry.exchange.models import (
    FailedItem,
    ImportResult,
    RestoreOutcome,
    Snapshot,
    ValidationResult,
)
from keyferry.exchange.progress import OperationStatus, ProgressReporter
from keyferry.store.credential_store import CredentialStore, StoreError

logger = logging.getLogger(__name__)

FileChooser = Callable[[], Path | None]


class ImportOrchestrator:
    """
    Restores bundles from one encrypted backup file.

    Usage:
        importer = ImportOrchestrator(store, cipher)
        result = importer.import_file(password, Path("backup.enc"))

        if result.outcome.failed:
            for item in result.outcome.failed:
                print(f"{item.filename}: {item.error}")

    Attributes:
        store: Destination of the restored bundles.
        cipher: Decrypts the artifact.
        codec: Parses and validates the decrypted snapshot.
        progress: Receives stage transitions.
        file_chooser: Asked for a file when import_file() gets none. Returns
                     None if the user cancelled.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: CipherProvider,
        codec: SnapshotCodec | None = None,
        progress: ProgressReporter | None = None,
        file_chooser: FileChooser | None = None,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.codec = codec or SnapshotCodec()
        self.progress = progress or ProgressReporter()
        self.file_chooser = file_chooser

    def read_artifact(self, path: Path) -> str:
        """
        Read an encrypted backup file.

        Raises:
            ArtifactReadError: If the file cannot be read.
            EmptyArtifactError: If the file has no content.
        """
        try:
            content = Path(path).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ArtifactReadError(f"Cannot read backup file: {e}") from e

        if not content.strip():
            raise EmptyArtifactError(f"Backup file is empty: {path}")

        return content

    def import_file(self, password: str, path: Path | None = None) -> ImportResult:
        """
        Import a backup file into the credential store.

        Args:
            password: Password the backup was encrypted with.
            path: Backup file. If None, file_chooser is asked.

        Returns:
            ImportResult with the per-item RestoreOutcome.

        Raises:
            UserCancelledError: If no file was chosen.
            ArtifactReadError: If the file cannot be read.
            EmptyArtifactError: If the file is empty.
            WeakPasswordError: If the password fails the cipher's policy.
            DecryptionFailedError: If the password is wrong or the file corrupted.
            IncompatibleArtifactError: If the decrypted snapshot is invalid.
        """
        path = self._resolve_source(path)

        self.progress.begin(OperationStatus.READING, f"Reading {path.name}...")
        try:
            artifact = self.read_artifact(path)
        except Exception as e:
            self._fail("Import failed", e)
            raise

        return self._run_import(artifact, password, path)

    def import_artifact(
        self,
        artifact: str,
        password: str,
        source: Path | None = None,
    ) -> ImportResult:
        """
        Import artifact text that has already been read.

        Args:
            artifact: Encrypted backup text.
            password: Password the backup was encrypted with.
            source: Where the artifact came from, for reporting only.

        Returns:
            ImportResult with the per-item RestoreOutcome.
        """
        self.progress.begin(OperationStatus.READING, "Reading backup...")
        return self._run_import(artifact, password, source)

    def inspect_file(self, password: str, path: Path | None = None) -> tuple[Snapshot, ValidationResult]:
        """
        Decrypt and validate a backup file without restoring anything.

        Returns:
            The decoded snapshot and its validation result (which is valid;
            an invalid snapshot raises IncompatibleArtifactError).
        """
        path = self._resolve_source(path)

        self.progress.begin(OperationStatus.READING, f"Reading {path.name}...")
        try:
            artifact = self.read_artifact(path)
            snapshot, validation = self._decrypt_and_validate(artifact, password)
        except Exception as e:
            self._fail("Inspection failed", e)
            raise

        self.progress.advance(OperationStatus.COMPLETED, "Backup verified", progress=100)
        return snapshot, validation

    def restore_items(self, snapshot: Snapshot) -> RestoreOutcome:
        """
        Restore every item of a snapshot, in order, one at a time.

        A failing item is recorded and the loop continues with the next one.

        Returns:
            RestoreOutcome whose restored_count + len(failed) == len(items).
        """
        restored_count = 0
        failed: list[FailedItem] = []
        total = len(snapshot.items)

        for index, bundle in enumerate(snapshot.items, start=1):
            try:
                self.store.restore_one(bundle)
            except StoreError as e:
                logger.warning(f"Failed to restore {bundle.filename!r}: {e}")
                failed.append(FailedItem(filename=bundle.filename, error=str(e)))
            except Exception as e:
                logger.warning(
                    f"Unexpected error restoring {bundle.filename!r}: {e}",
                    exc_info=True,
                )
                failed.append(FailedItem(filename=bundle.filename, error=str(e)))
            else:
                restored_count += 1

            self.progress.report(
                f"Restored {restored_count} of {total} accounts",
                progress=int(index * 100 / total),
            )

        return RestoreOutcome(restored_count=restored_count, failed=tuple(failed))

    def _run_import(
        self,
        artifact: str,
        password: str,
        source: Path | None,
    ) -> ImportResult:
        try:
            if not artifact or not artifact.strip():
                raise EmptyArtifactError()
            snapshot, validation = self._decrypt_and_validate(artifact, password)
        except Exception as e:
            self._fail("Import failed", e)
            raise

        self.progress.advance(
            OperationStatus.WRITING,
            f"Restoring {len(snapshot.items)} accounts...",
            progress=0,
        )
        outcome = self.restore_items(snapshot)

        if outcome.failed:
            logger.warning(
                f"Import finished with failures: {outcome.restored_count} restored, "
                f"{len(outcome.failed)} failed"
            )
        else:
            logger.info(f"Import finished: {outcome.restored_count} accounts restored")

        self.progress.advance(
            OperationStatus.COMPLETED,
            f"Import complete: {outcome.summary()}",
            progress=100,
        )

        return ImportResult(
            outcome=outcome,
            format_version=snapshot.format_version,
            created_at=snapshot.created_at,
            producer_tag=snapshot.metadata.producer_tag,
            warnings=list(validation.warnings),
            path=source,
        )

    def _decrypt_and_validate(
        self,
        artifact: str,
        password: str,
    ) -> tuple[Snapshot, ValidationResult]:
        self.progress.advance(OperationStatus.DECRYPTING, "Decrypting backup...")

        check = self.cipher.validate_password(password)
        if not check.is_valid:
            raise WeakPasswordError(check.message or "Invalid password")

        plaintext = self.cipher.decrypt(artifact, password)

        self.progress.advance(OperationStatus.VALIDATING, "Validating backup format...")
        try:
            candidate = self.codec.parse(plaintext)
        except MalformedArtifactError as e:
            raise IncompatibleArtifactError([str(e)]) from e

        validation = self.codec.validate(candidate)
        for warning in validation.warnings:
            logger.warning(f"Backup validation warning: {warning}")
        if not validation.is_valid:
            raise IncompatibleArtifactError(validation.errors, validation.warnings)

        return self.codec.from_dict(candidate), validation

    def _resolve_source(self, path: Path | None) -> Path:
        if path is None and self.file_chooser is not None:
            path = self.file_chooser()
        if path is None:
            logger.info("Import cancelled: no file selected")
            raise UserCancelledError("Import cancelled: no file selected")
        return Path(path).expanduser()

    def _fail(self, message: str, error: Exception) -> None:
        logger.error(f"{message}: {error}")
        self.progress.fail(message, str(error))
