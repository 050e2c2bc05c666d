"""
Snapshot codec: the versioned, serialized form of a backup.

Converts between Snapshot objects and their JSON text, and decides whether a
decoded structure is acceptable to import. The encoded text is what the
cipher encrypts; it is never written to disk in the clear.

Validation rules (one entry per violated rule):
    errors:   missing/empty format_version, missing or unparseable created_at,
              missing metadata, missing metadata.producer_tag
    warnings: items not a list, item_count non-numeric or not matching
              len(items), malformed item entries, format_version newer than
              SUPPORTED_VERSION

Older artifacts used different field names for the same concepts; those are
accepted through LEGACY_FIELD_ALIASES.
"""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import UTC, datetime
from typing import Any

from keyferry.errors import MalformedArtifactError
from keyferry.exchange.models import (
    Snapshot,
    SnapshotMetadata,
    ValidationResult,
)
from keyferry.store.models import CredentialBundle

logger = logging.getLogger(__name__)

SUPPORTED_VERSION = "1.1.0"

# Current field name -> field name used by older artifacts
LEGACY_FIELD_ALIASES: dict[str, str] = {
    "format_version": "version",
    "created_at": "exportTime",
    "item_count": "backupCount",
    "items": "backups",
}
LEGACY_METADATA_ALIASES: dict[str, str] = {
    "producer_tag": "antigravityAgent",
    "encryption_algorithm_id": "encryptionType",
}

_LEADING_DIGITS = re.compile(r"\d+")


def compare_versions(left: str, right: str) -> int:
    """
    Compare two dotted version strings segment by segment.

    Segments are compared as integers, most significant first; the first
    differing segment decides. Missing segments count as 0, and a segment
    that is not a plain integer uses its leading digits (or 0).

    Args:
        left: First version, e.g. "1.2".
        right: Second version, e.g. "1.2.0".

    Returns:
        -1 if left is older, 0 if equal, 1 if left is newer.
    """
    left_parts = _version_parts(left)
    right_parts = _version_parts(right)

    for i in range(max(len(left_parts), len(right_parts))):
        a = left_parts[i] if i < len(left_parts) else 0
        b = right_parts[i] if i < len(right_parts) else 0
        if a > b:
            return 1
        if a < b:
            return -1
    return 0


def _version_parts(version: str) -> list[int]:
    parts = []
    for segment in str(version).strip().split("."):
        match = _LEADING_DIGITS.match(segment.strip())
        parts.append(int(match.group()) if match else 0)
    return parts


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def _reject_constant(name: str) -> Any:
    raise MalformedArtifactError(f"Backup content contains non-standard JSON value: {name}")


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 text or epoch seconds into an aware UTC datetime."""
    if _is_number(value):
        try:
            return datetime.fromtimestamp(value, UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return parsed
    return None


def _coerce_int(value: Any, default: int = 0) -> int:
    if _is_number(value):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _is_well_formed_item(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    filename = entry.get("filename")
    return isinstance(filename, str) and bool(filename.strip())


class SnapshotCodec:
    """
    Serializes, parses and validates backup snapshots.

    Usage:
        codec = SnapshotCodec()
        text = codec.serialize(snapshot)

        candidate = codec.parse(text)
        result = codec.validate(candidate)
        if result.is_valid:
            snapshot = codec.from_dict(candidate)

    Attributes:
        supported_version: Newest format version this codec fully understands.
                          Also the version stamped on new snapshots.
    """

    def __init__(self, supported_version: str = SUPPORTED_VERSION) -> None:
        self.supported_version = supported_version

    # -------------------------------------------------------------------------
    # Encoding
    # -------------------------------------------------------------------------

    def serialize(self, snapshot: Snapshot) -> str:
        """
        Encode a snapshot as JSON text.

        Field order is fixed. item_count is always written as len(items),
        whatever the snapshot carries.

        Args:
            snapshot: Snapshot to encode.

        Returns:
            Pretty-printed JSON text.
        """
        item_count = len(snapshot.items)
        if snapshot.item_count != item_count:
            logger.debug(
                f"Correcting item_count from {snapshot.item_count} to {item_count}"
            )

        data = {
            "format_version": snapshot.format_version,
            "created_at": (
                snapshot.created_at.isoformat() if snapshot.created_at else None
            ),
            "item_count": item_count,
            "items": [item.to_dict() for item in snapshot.items],
            "metadata": snapshot.metadata.to_dict(),
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    # -------------------------------------------------------------------------
    # Decoding
    # -------------------------------------------------------------------------

    def parse(self, text: str) -> dict[str, Any]:
        """
        Parse JSON text into a candidate snapshot dictionary.

        Legacy field names are mapped onto current ones; nothing else is
        checked here.

        Args:
            text: Decrypted snapshot text.

        Returns:
            Candidate dictionary for validate() and from_dict().

        Raises:
            MalformedArtifactError: If the text is not a JSON object, or uses
                                   NaN or Infinity.
        """
        try:
            data = json.loads(text, parse_constant=_reject_constant)
        except (json.JSONDecodeError, TypeError) as e:
            raise MalformedArtifactError(f"Backup content is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedArtifactError("Backup content must be a JSON object")

        return self._apply_legacy_aliases(data)

    def from_dict(self, candidate: dict[str, Any]) -> Snapshot:
        """
        Build a Snapshot from a parsed candidate.

        Construction is lenient: a non-list "items" becomes an empty tuple and
        item entries without a usable filename become bundles with an empty
        filename, which fail individually when restored.

        Args:
            candidate: Dictionary returned by parse().

        Returns:
            Snapshot instance.
        """
        raw_items = candidate.get("items")
        if not isinstance(raw_items, list):
            raw_items = []

        items = tuple(self._bundle_from_entry(entry) for entry in raw_items)

        metadata = candidate.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        raw_version = candidate.get("format_version")

        return Snapshot(
            format_version=str(raw_version) if raw_version is not None else "",
            created_at=_parse_timestamp(candidate.get("created_at")),
            item_count=_coerce_int(candidate.get("item_count"), default=len(items)),
            items=items,
            metadata=SnapshotMetadata(
                platform=str(metadata.get("platform") or ""),
                encryption_algorithm_id=str(
                    metadata.get("encryption_algorithm_id") or ""
                ),
                producer_tag=str(metadata.get("producer_tag") or ""),
            ),
        )

    def deserialize(self, text: str) -> Snapshot:
        """
        Decode JSON text into a Snapshot without validating it.

        Raises:
            MalformedArtifactError: If the text is not a JSON object.
        """
        return self.from_dict(self.parse(text))

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate(self, candidate: Any) -> ValidationResult:
        """
        Check whether a parsed candidate is acceptable to import.

        Args:
            candidate: Dictionary returned by parse().

        Returns:
            ValidationResult; is_valid is False if any error was found.
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not isinstance(candidate, dict):
            errors.append("Backup content must be an object")
            return ValidationResult(errors=errors, warnings=warnings)

        # Required fields
        version = candidate.get("format_version")
        if version is None or not str(version).strip():
            errors.append("Missing format_version")

        if "created_at" not in candidate or candidate["created_at"] is None:
            errors.append("Missing created_at")
        elif _parse_timestamp(candidate["created_at"]) is None:
            errors.append(f"Invalid created_at timestamp: {candidate['created_at']!r}")

        metadata = candidate.get("metadata")
        if not isinstance(metadata, dict):
            errors.append("Missing metadata")
        elif not metadata.get("producer_tag"):
            errors.append("Missing metadata.producer_tag")

        # Optional fields
        items = candidate.get("items")
        if items is not None and not isinstance(items, list):
            warnings.append("items is not a list; treating backup as empty")
        item_list = items if isinstance(items, list) else []

        if "item_count" in candidate and candidate["item_count"] is not None:
            item_count = candidate["item_count"]
            if not _is_number(item_count):
                warnings.append(f"item_count is not a number: {item_count!r}")
            elif item_count != len(item_list):
                warnings.append(
                    f"item_count ({item_count}) does not match number of items "
                    f"({len(item_list)}); using {len(item_list)}"
                )

        malformed = sum(1 for entry in item_list if not _is_well_formed_item(entry))
        if malformed:
            warnings.append(
                f"{malformed} item(s) are malformed and will fail to restore"
            )

        # Version compatibility
        if version is not None and str(version).strip():
            if not self.is_version_compatible(str(version)):
                warnings.append(
                    f"Backup format version {version} is newer than supported "
                    f"version {self.supported_version}; compatibility is uncertain"
                )

        return ValidationResult(errors=errors, warnings=warnings)

    def is_version_compatible(self, version: str) -> bool:
        """True if version is not newer than the supported version."""
        return compare_versions(version, self.supported_version) <= 0

    def summarize(self, snapshot: Snapshot) -> str:
        """
        One-line summary of a snapshot.

        Args:
            snapshot: Snapshot to describe.

        Returns:
            Summary such as "Version: 1.1.0 | Created: ... | Accounts: 3 | ...".
        """
        created = (
            snapshot.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
            if snapshot.created_at
            else "unknown"
        )
        return " | ".join(
            [
                f"Version: {snapshot.format_version or 'unknown'}",
                f"Created: {created}",
                f"Accounts: {len(snapshot.items)}",
                f"Encryption: {snapshot.metadata.encryption_algorithm_id or 'unknown'}",
                f"Platform: {snapshot.metadata.platform or 'unknown'}",
            ]
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _apply_legacy_aliases(self, data: dict[str, Any]) -> dict[str, Any]:
        """Copy legacy field values under their current names when absent."""
        result = dict(data)
        for current, legacy in LEGACY_FIELD_ALIASES.items():
            if current not in result and legacy in result:
                result[current] = result.pop(legacy)

        metadata = result.get("metadata")
        if isinstance(metadata, dict):
            metadata = dict(metadata)
            for current, legacy in LEGACY_METADATA_ALIASES.items():
                if current not in metadata and legacy in metadata:
                    metadata[current] = metadata.pop(legacy)
            result["metadata"] = metadata

        return result

    def _bundle_from_entry(self, entry: Any) -> CredentialBundle:
        if not isinstance(entry, dict):
            return CredentialBundle(filename="", content=entry, timestamp=0)
        filename = entry.get("filename")
        return CredentialBundle(
            filename=filename if isinstance(filename, str) else "",
            content=entry.get("content"),
            timestamp=_coerce_int(entry.get("timestamp")),
        )
