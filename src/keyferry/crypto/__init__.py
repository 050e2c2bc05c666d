"""
Password-based encryption for backup artifacts.

Usage:
    from keyferry.crypto import FernetCipherProvider

    cipher = FernetCipherProvider()
    check = cipher.validate_password(password)
    artifact = cipher.encrypt(text, password)
"""

from keyferry.crypto.cipher import (
    ALGORITHM_ID,
    PBKDF2_ITERATIONS,
    CipherProvider,
    FernetCipherProvider,
    PasswordCheck,
    PasswordPolicy,
)

__all__ = [
    "CipherProvider",
    "FernetCipherProvider",
    "PasswordPolicy",
    "PasswordCheck",
    "ALGORITHM_ID",
    "PBKDF2_ITERATIONS",
]
