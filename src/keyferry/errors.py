"""
Call-level errors for backup export and import.

Every error here aborts the operation that raised it. Per-item restore
failures are not in this module: they are ``keyferry.store.StoreError``
instances recorded inside a ``RestoreOutcome`` and never raised to the caller.
"""

from __future__ import annotations


class ExchangeError(Exception):
    """Base exception for backup export/import errors."""

    pass


class NothingToExportError(ExchangeError):
    """Raised when the credential store holds no bundles to export."""

    def __init__(self, message: str = "No accounts found, nothing to export") -> None:
        super().__init__(message)


class WeakPasswordError(ExchangeError):
    """Raised when a password fails the cipher's password policy."""

    pass


class EmptyArtifactError(ExchangeError):
    """Raised when a backup file has no content."""

    def __init__(self, message: str = "Backup file is empty") -> None:
        super().__init__(message)


class DecryptionFailedError(ExchangeError):
    """
    Raised when an artifact cannot be decrypted.

    This covers both a wrong password and a corrupted or truncated file; the
    two cannot be told apart by an authenticated cipher.
    """

    def __init__(
        self,
        message: str = "Decryption failed: wrong password or corrupted file",
    ) -> None:
        super().__init__(message)


class MalformedArtifactError(ExchangeError):
    """Raised when decrypted text is not a structurally parseable snapshot."""

    pass


class IncompatibleArtifactError(ExchangeError):
    """
    Raised when a decrypted snapshot fails validation.

    Attributes:
        errors: Validation errors that blocked the import.
        warnings: Validation warnings reported alongside.
    """

    def __init__(
        self,
        errors: list[str],
        warnings: list[str] | None = None,
    ) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(f"Incompatible backup file: {'; '.join(self.errors)}")


class UserCancelledError(ExchangeError):
    """
    Raised when the user abandons the operation (no path or file chosen).

    Not a failure: callers report it as a cancellation.
    """

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class ArtifactReadError(ExchangeError):
    """Raised when a backup file cannot be read from disk."""

    pass


class ArtifactWriteError(ExchangeError):
    """Raised when a backup file cannot be written to disk."""

    pass
