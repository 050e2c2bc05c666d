"""
Credential store: the on-disk home of account credential bundles.

The exchange orchestrators only talk to the ``CredentialStore`` protocol.
``DirectoryCredentialStore`` is the reference implementation: every bundle
is a pretty-printed JSON file in one accounts directory.

Storage Structure:
    ~/.keyferry/accounts/
        {account}.json
        {account}.json
        ...
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from keyferry.store.models import CredentialBundle

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".json"


class StoreError(Exception):
    """
    Raised when the store cannot read, write, or delete a single bundle.

    During an import this error is recorded against the failing item and
    never aborts the batch.
    """

    def __init__(self, message: str, filename: str | None = None) -> None:
        self.message = message
        self.filename = filename
        super().__init__(message)


class BundleNotFoundError(StoreError):
    """Raised when a bundle to delete does not exist."""

    pass


@runtime_checkable
class CredentialStore(Protocol):
    """Contract the exchange orchestrators need from a credential store."""

    def collect_all(self) -> list[CredentialBundle]:
        """Return every bundle in the store (possibly none)."""
        ...

    def restore_one(self, bundle: CredentialBundle) -> None:
        """Write one bundle. Raises StoreError on failure."""
        ...

    def delete_one(self, filename: str) -> None:
        """Delete one bundle. Raises StoreError on failure."""
        ...

    def clear_all(self) -> int:
        """Delete every bundle and return how many were removed."""
        ...


class DirectoryCredentialStore:
    """
    Credential store backed by a directory of JSON files.

    Usage:
        store = DirectoryCredentialStore(Path("~/.keyferry/accounts").expanduser())
        bundles = store.collect_all()
        store.restore_one(bundles[0])
        store.delete_one("alice@example.com")
        removed = store.clear_all()

    Attributes:
        accounts_dir: Directory holding one JSON file per account.
    """

    def __init__(self, accounts_dir: Path) -> None:
        """
        Initialize the store.

        Args:
            accounts_dir: Directory holding the bundle files. It does not have
                         to exist yet; it is created on the first restore.
        """
        self.accounts_dir = Path(accounts_dir)

    def collect_all(self) -> list[CredentialBundle]:
        """
        Read every bundle in the accounts directory.

        Files that cannot be read or do not contain valid JSON are skipped
        with a warning. Bundles are returned sorted by filename.

        Returns:
            List of CredentialBundle objects. Empty if the directory is missing.

        Raises:
            StoreError: If the directory itself cannot be listed.
        """
        if not self.accounts_dir.exists():
            return []

        try:
            paths = sorted(self.accounts_dir.glob(f"*{BUNDLE_SUFFIX}"))
        except OSError as e:
            raise StoreError(f"Failed to read accounts directory: {e}") from e

        bundles: list[CredentialBundle] = []
        for path in paths:
            if not path.is_file():
                continue
            try:
                content = json.loads(path.read_text(encoding="utf-8"))
                timestamp = int(path.stat().st_mtime)
            except OSError as e:
                logger.warning(f"Failed to read bundle {path.name}: {e}")
                continue
            except json.JSONDecodeError as e:
                logger.warning(f"Failed to parse JSON from bundle {path.name}: {e}")
                continue

            bundles.append(
                CredentialBundle(filename=path.name, content=content, timestamp=timestamp)
            )

        logger.debug(f"Collected {len(bundles)} bundles from {self.accounts_dir}")
        return bundles

    def restore_one(self, bundle: CredentialBundle) -> None:
        """
        Write a bundle to disk, replacing any bundle with the same filename.

        Args:
            bundle: Bundle to write.

        Raises:
            StoreError: If the filename is unusable or the write fails.
        """
        path = self._resolve(bundle.filename)

        try:
            data = json.dumps(bundle.content, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreError(
                f"Content is not JSON serializable: {e}", bundle.filename
            ) from e

        try:
            self.accounts_dir.mkdir(parents=True, exist_ok=True)
            self._write_secure_file(path, data.encode("utf-8"))
        except OSError as e:
            raise StoreError(f"Failed to write file: {e}", bundle.filename) from e

        logger.debug(f"Restored bundle {bundle.filename}")

    def delete_one(self, filename: str) -> None:
        """
        Delete a single bundle.

        Args:
            filename: Bundle filename, with or without the ".json" suffix.

        Raises:
            BundleNotFoundError: If no such bundle exists.
            StoreError: If the file cannot be removed.
        """
        if not filename.endswith(BUNDLE_SUFFIX):
            filename = f"{filename}{BUNDLE_SUFFIX}"
        path = self._resolve(filename)

        if not path.is_file():
            raise BundleNotFoundError(f"Bundle does not exist: {filename}", filename)

        try:
            path.unlink()
        except OSError as e:
            raise StoreError(f"Failed to delete file: {e}", filename) from e

        logger.info(f"Deleted bundle {filename}")

    def clear_all(self) -> int:
        """
        Delete every bundle in the accounts directory.

        Only ``*.json`` files are removed; anything else is left alone.

        Returns:
            Number of bundle files deleted.

        Raises:
            StoreError: If a file cannot be removed.
        """
        if not self.accounts_dir.exists():
            return 0

        deleted = 0
        for path in self.accounts_dir.glob(f"*{BUNDLE_SUFFIX}"):
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as e:
                raise StoreError(f"Failed to delete file: {path}", path.name) from e
            deleted += 1

        logger.info(f"Cleared {deleted} bundles from {self.accounts_dir}")
        return deleted

    def _resolve(self, filename: str) -> Path:
        """Map a bundle filename to its path, rejecting anything path-like."""
        if not filename or not filename.strip():
            raise StoreError("Bundle filename is empty", filename)
        if (
            filename in (".", "..")
            or "/" in filename
            or "\\" in filename
            or os.sep in filename
            or "\x00" in filename
        ):
            raise StoreError(f"Invalid bundle filename: {filename!r}", filename)
        return self.accounts_dir / filename

    def _write_secure_file(self, path: Path, data: bytes) -> None:
        """
        Write data to file with restrictive permissions.

        Writes to a temporary file first and renames it over the target, so
        a failed write never leaves a truncated bundle behind.
        """
        temp_path = path.with_name(f".{path.name}.tmp")

        try:
            temp_path.write_bytes(data)

            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                # Windows or permission error - continue anyway
                pass

            temp_path.replace(path)

        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise
