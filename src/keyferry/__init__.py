"""
keyferry - Encrypted backup and restore for local account credentials

Carry your accounts to another machine in one password-protected file.

keyferry collects every account credential bundle from a local accounts
directory, packs them into a versioned snapshot, encrypts it with a password,
and writes a single portable backup file. On the other machine it decrypts,
validates, and restores the bundles one by one, so a single bad entry never
costs you the rest.

Key Features:
    - One password-protected file per backup (PBKDF2 + Fernet)
    - Version-aware format validation with warnings for newer files
    - Per-account fault isolation on restore, with a detailed failure list
    - Progress reporting for both export and import

Design Principles:
    - Offline: no network access, ever
    - All-or-nothing export, best-effort import
    - Nothing is written in the clear
"""

__version__ = "0.1.0"
__author__ = ""
__email__ = ""

from keyferry.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
