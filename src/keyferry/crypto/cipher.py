"""
Password-based encryption for backup artifacts.

This module provides the cipher contract used by backup export and import,
and a reference provider using Fernet symmetric encryption with PBKDF2 key
derivation.

Security Design:
    - A fresh random 128-bit salt is generated for every artifact
    - Encryption key derived from the password using PBKDF2-HMAC-SHA256
      (600,000 iterations by default)
    - Fernet (AES-128-CBC + HMAC-SHA256) authenticates the ciphertext, so a
      wrong password or tampered file is always detected, never decoded
      into garbage
    - The iteration count and salt travel with the artifact, so files stay
      readable after the default iteration count is raised

Artifact Format:
    kf1.{iterations}.{urlsafe_b64(salt)}.{fernet_token}
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from keyferry.errors import DecryptionFailedError

# OWASP 2023 recommends 600,000 iterations for PBKDF2-SHA256
# See: https://cheatsheetseries.owasp.org/cheatsheets/Password_Storage_Cheat_Sheet.html
PBKDF2_ITERATIONS = 600_000
SALT_LENGTH = 16  # 128 bits
MAX_ITERATIONS = 10_000_000  # refuse headers that would stall key derivation
ARTIFACT_PREFIX = "kf1"
ALGORITHM_ID = "fernet-pbkdf2-sha256"

MIN_PASSWORD_LENGTH = 4
MAX_PASSWORD_LENGTH = 50


@dataclass(frozen=True)
class PasswordCheck:
    """Result of checking a password against a password policy."""

    is_valid: bool
    message: str | None = None


@dataclass(frozen=True)
class PasswordPolicy:
    """
    Length rules for export/import passwords.

    Policy validity says nothing about correctness: a well-formed but wrong
    password passes here and fails at decryption.
    """

    min_length: int = MIN_PASSWORD_LENGTH
    max_length: int = MAX_PASSWORD_LENGTH

    def check(self, password: str) -> PasswordCheck:
        """
        Check a password against this policy.

        Args:
            password: Candidate password.

        Returns:
            PasswordCheck with is_valid and, when invalid, a message.
        """
        if not password or not password.strip():
            return PasswordCheck(False, "Password cannot be empty")
        if len(password) < self.min_length:
            return PasswordCheck(
                False, f"Password must be at least {self.min_length} characters"
            )
        if len(password) > self.max_length:
            return PasswordCheck(
                False, f"Password cannot exceed {self.max_length} characters"
            )
        return PasswordCheck(True)


@runtime_checkable
class CipherProvider(Protocol):
    """Contract the exchange orchestrators need from a cipher."""

    algorithm_id: str

    def encrypt(self, plaintext: str, password: str) -> str:
        """Encrypt text with a password."""
        ...

    def decrypt(self, ciphertext: str, password: str) -> str:
        """Decrypt text with a password. Raises DecryptionFailedError."""
        ...

    def validate_password(self, password: str) -> PasswordCheck:
        """Check a password against the provider's policy."""
        ...


class FernetCipherProvider:
    """
    Fernet cipher with a PBKDF2-derived key.

    Usage:
        cipher = FernetCipherProvider()
        artifact = cipher.encrypt(json_text, "correct horse")
        json_text = cipher.decrypt(artifact, "correct horse")

    Attributes:
        iterations: PBKDF2 iteration count used for new artifacts.
        policy: Password policy enforced by validate_password().
    """

    algorithm_id = ALGORITHM_ID

    def __init__(
        self,
        iterations: int = PBKDF2_ITERATIONS,
        policy: PasswordPolicy | None = None,
    ) -> None:
        if iterations < 1:
            raise ValueError("iterations must be at least 1")
        self.iterations = iterations
        self.policy = policy or PasswordPolicy()

    def validate_password(self, password: str) -> PasswordCheck:
        """Check a password against the configured policy."""
        return self.policy.check(password)

    def encrypt(self, plaintext: str, password: str) -> str:
        """
        Encrypt text with a password.

        Args:
            plaintext: Text to encrypt.
            password: Password to derive the key from.

        Returns:
            Artifact text in the "kf1.{iterations}.{salt}.{token}" format.
        """
        salt = secrets.token_bytes(SALT_LENGTH)
        fernet = self._derive_key(password, salt, self.iterations)
        token = fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")
        encoded_salt = base64.urlsafe_b64encode(salt).decode("ascii")
        return f"{ARTIFACT_PREFIX}.{self.iterations}.{encoded_salt}.{token}"

    def decrypt(self, ciphertext: str, password: str) -> str:
        """
        Decrypt an artifact produced by encrypt().

        Args:
            ciphertext: Artifact text.
            password: Password used at encryption time.

        Returns:
            The original plaintext.

        Raises:
            DecryptionFailedError: If the password is wrong or the artifact is
                                  corrupted, truncated, or in another format.
        """
        parts = ciphertext.strip().split(".")
        if len(parts) != 4 or parts[0] != ARTIFACT_PREFIX:
            raise DecryptionFailedError(
                "Decryption failed: not a recognized backup file format"
            )

        _, iterations_text, encoded_salt, token = parts
        try:
            iterations = int(iterations_text)
            salt = base64.urlsafe_b64decode(encoded_salt.encode("ascii"))
        except (ValueError, binascii.Error) as e:
            raise DecryptionFailedError(
                "Decryption failed: backup file header is corrupted"
            ) from e

        if not 1 <= iterations <= MAX_ITERATIONS or not salt:
            raise DecryptionFailedError(
                "Decryption failed: backup file header is corrupted"
            )

        fernet = self._derive_key(password, salt, iterations)
        try:
            decrypted = fernet.decrypt(token.encode("ascii"))
            return decrypted.decode("utf-8")
        except (InvalidToken, UnicodeError) as e:
            raise DecryptionFailedError() from e

    def _derive_key(self, password: str, salt: bytes, iterations: int) -> Fernet:
        """
        Derive a Fernet key from password and salt.

        Args:
            password: User-provided password.
            salt: Random salt bytes.
            iterations: PBKDF2 iteration count.

        Returns:
            Fernet instance configured with the derived key.
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,  # Fernet requires 32-byte keys
            salt=salt,
            iterations=iterations,
        )
        key = base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))
        return Fernet(key)
