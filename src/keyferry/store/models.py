"""
Data model for stored account credential bundles.

A bundle is one account's credential payload as it sits on disk: the file
name (which doubles as the collision key), the parsed JSON content, and a
timestamp. keyferry never looks inside the content; it is carried as-is.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class CredentialBundle:
    """
    One account's credential payload.

    Attributes:
        filename: Unique file name of the bundle (e.g., "alice@example.com.json").
        content: Parsed JSON content. Opaque to keyferry.
        timestamp: Seconds since the epoch.
    """

    filename: str
    content: Any
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "filename": self.filename,
            "content": self.content,
            "timestamp": self.timestamp,
        }
