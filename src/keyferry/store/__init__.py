"""
Credential store for account bundles.

This module provides the storage contract used by backup export and import,
and a reference implementation that keeps one JSON file per account.

Usage:
    from keyferry.store import DirectoryCredentialStore

    store = DirectoryCredentialStore(accounts_dir)
    bundles = store.collect_all()
"""

from keyferry.store.credential_store import (
    BUNDLE_SUFFIX,
    BundleNotFoundError,
    CredentialStore,
    DirectoryCredentialStore,
    StoreError,
)
from keyferry.store.models import CredentialBundle

__all__ = [
    # Store
    "CredentialStore",
    "DirectoryCredentialStore",
    "BUNDLE_SUFFIX",
    # Data models
    "CredentialBundle",
    # Exceptions
    "StoreError",
    "BundleNotFoundError",
]
