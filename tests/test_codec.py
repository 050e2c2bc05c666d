"""
Tests for the snapshot codec.

Tests cover:
- Serialization field order and item_count correction
- Parsing, including legacy field names
- Validation errors and warnings
- Version comparison
"""

import json
import unittest
from datetime import UTC, datetime

from keyferry.errors import MalformedArtifactError
from keyferry.exchange.codec import (
    SUPPORTED_VERSION,
    SnapshotCodec,
    compare_versions,
)
from keyferry.exchange.models import Snapshot, SnapshotMetadata
from keyferry.store.models import CredentialBundle


def make_snapshot(items=None, item_count=None):
    """Build a snapshot for tests."""
    items = tuple(items if items is not None else [
        CredentialBundle("alice.json", {"token": "a"}, 1700000000),
        CredentialBundle("bob.json", {"token": "b"}, 1700000100),
    ])
    return Snapshot(
        format_version=SUPPORTED_VERSION,
        created_at=datetime(2026, 1, 31, 9, 15, tzinfo=UTC),
        item_count=len(items) if item_count is None else item_count,
        items=items,
        metadata=SnapshotMetadata("Linux", "fernet-pbkdf2-sha256", "keyferry"),
    )


def valid_candidate(**overrides):
    """Build a valid parsed candidate dictionary."""
    data = {
        "format_version": "1.1.0",
        "created_at": "2026-01-31T09:15:00+00:00",
        "item_count": 1,
        "items": [{"filename": "alice.json", "content": {"k": 1}, "timestamp": 1}],
        "metadata": {
            "platform": "Linux",
            "encryption_algorithm_id": "fernet-pbkdf2-sha256",
            "producer_tag": "keyferry",
        },
    }
    data.update(overrides)
    return data


class TestCompareVersions(unittest.TestCase):
    """Tests for dotted version comparison."""

    def test_equal(self):
        """Test equal versions."""
        self.assertEqual(compare_versions("1.1.0", "1.1.0"), 0)

    def test_missing_segments_are_zero(self):
        """Test that 1.1 equals 1.1.0."""
        self.assertEqual(compare_versions("1.1", "1.1.0"), 0)

    def test_first_differing_segment_decides(self):
        """Test that a higher major wins over lower minor segments."""
        self.assertEqual(compare_versions("2.0.0", "1.9.9"), 1)
        self.assertEqual(compare_versions("1.0.9", "1.1.0"), -1)

    def test_numeric_not_lexical(self):
        """Test that 1.10 is newer than 1.9."""
        self.assertEqual(compare_versions("1.10", "1.9"), 1)

    def test_non_numeric_segment(self):
        """Test that non-numeric segments use their leading digits."""
        self.assertEqual(compare_versions("1.2rc1", "1.2"), 0)
        self.assertEqual(compare_versions("1.x", "1.0"), 0)


class TestSerialize(unittest.TestCase):
    """Tests for SnapshotCodec.serialize."""

    def setUp(self):
        self.codec = SnapshotCodec()

    def test_field_order(self):
        """Test that top-level keys are written in a fixed order."""
        data = json.loads(self.codec.serialize(make_snapshot()))

        self.assertEqual(
            list(data.keys()),
            ["format_version", "created_at", "item_count", "items", "metadata"],
        )
        self.assertEqual(
            list(data["metadata"].keys()),
            ["platform", "encryption_algorithm_id", "producer_tag"],
        )

    def test_item_count_written_as_length(self):
        """Test that a wrong item_count is corrected on output."""
        data = json.loads(self.codec.serialize(make_snapshot(item_count=7)))

        self.assertEqual(data["item_count"], 2)

    def test_items_in_order(self):
        """Test that items keep their order."""
        data = json.loads(self.codec.serialize(make_snapshot()))

        self.assertEqual(
            [item["filename"] for item in data["items"]],
            ["alice.json", "bob.json"],
        )
        self.assertEqual(data["items"][0]["content"], {"token": "a"})

    def test_created_at_iso(self):
        """Test that created_at is ISO-8601 text."""
        data = json.loads(self.codec.serialize(make_snapshot()))

        self.assertEqual(data["created_at"], "2026-01-31T09:15:00+00:00")

    def test_wrong_item_count_corrected_after_decoding(self):
        """Test that a decoded snapshot carries item_count == len(items)."""
        decoded = self.codec.deserialize(
            self.codec.serialize(make_snapshot(item_count=7))
        )

        self.assertEqual(decoded.item_count, 2)
        self.assertEqual(len(decoded.items), 2)

    def test_deserialize_restores_snapshot(self):
        """Test that serialized text decodes to an equal snapshot."""
        snapshot = make_snapshot()

        decoded = self.codec.deserialize(self.codec.serialize(snapshot))

        self.assertEqual(decoded, snapshot)


class TestParse(unittest.TestCase):
    """Tests for SnapshotCodec.parse."""

    def setUp(self):
        self.codec = SnapshotCodec()

    def test_invalid_json(self):
        """Test that non-JSON text is rejected."""
        with self.assertRaises(MalformedArtifactError):
            self.codec.parse("not json {")

    def test_non_object(self):
        """Test that a JSON array is rejected."""
        with self.assertRaises(MalformedArtifactError):
            self.codec.parse("[1, 2, 3]")

    def test_non_finite_constants_rejected(self):
        """Test that NaN and Infinity are not accepted as JSON values."""
        for text in (
            '{"format_version": "1.1.0", "item_count": NaN}',
            '{"items": [{"filename": "a.json", "timestamp": Infinity}]}',
            '{"item_count": -Infinity}',
        ):
            with self.subTest(text=text):
                with self.assertRaises(MalformedArtifactError):
                    self.codec.parse(text)

    def test_legacy_field_names(self):
        """Test that older field names are mapped to current ones."""
        legacy = {
            "version": "1.0.0",
            "exportTime": "2025-06-01T12:00:00Z",
            "backupCount": 1,
            "backups": [{"filename": "a.json", "content": {}, "timestamp": 5}],
            "metadata": {
                "platform": "darwin",
                "encryptionType": "AES-256-GCM",
                "antigravityAgent": "legacy-app",
            },
        }

        candidate = self.codec.parse(json.dumps(legacy))

        self.assertEqual(candidate["format_version"], "1.0.0")
        self.assertEqual(candidate["item_count"], 1)
        self.assertEqual(candidate["metadata"]["producer_tag"], "legacy-app")
        self.assertEqual(
            candidate["metadata"]["encryption_algorithm_id"], "AES-256-GCM"
        )
        self.assertTrue(self.codec.validate(candidate).is_valid)

        snapshot = self.codec.from_dict(candidate)
        self.assertEqual(snapshot.items[0].filename, "a.json")
        self.assertEqual(snapshot.created_at, datetime(2025, 6, 1, 12, 0, tzinfo=UTC))

    def test_current_name_wins_over_legacy(self):
        """Test that a current field is not overwritten by its legacy alias."""
        candidate = self.codec.parse(
            json.dumps(valid_candidate(version="0.1.0"))
        )

        self.assertEqual(candidate["format_version"], "1.1.0")


class TestValidate(unittest.TestCase):
    """Tests for SnapshotCodec.validate."""

    def setUp(self):
        self.codec = SnapshotCodec()

    def test_valid_candidate(self):
        """Test that a complete candidate has no errors or warnings."""
        result = self.codec.validate(valid_candidate())

        self.assertTrue(result.is_valid)
        self.assertEqual(result.errors, [])
        self.assertEqual(result.warnings, [])

    def test_missing_format_version(self):
        """Test that a missing format_version is an error."""
        candidate = valid_candidate()
        del candidate["format_version"]

        result = self.codec.validate(candidate)

        self.assertFalse(result.is_valid)
        self.assertIn("Missing format_version", result.errors)

    def test_missing_created_at(self):
        """Test that a missing created_at is an error."""
        candidate = valid_candidate()
        del candidate["created_at"]

        result = self.codec.validate(candidate)

        self.assertIn("Missing created_at", result.errors)

    def test_unparseable_created_at(self):
        """Test that an unparseable created_at is an error."""
        result = self.codec.validate(valid_candidate(created_at="yesterday"))

        self.assertFalse(result.is_valid)
        self.assertTrue(result.errors[0].startswith("Invalid created_at timestamp"))

    def test_epoch_created_at(self):
        """Test that epoch seconds are accepted for created_at."""
        result = self.codec.validate(valid_candidate(created_at=1700000000))

        self.assertTrue(result.is_valid)

    def test_missing_metadata(self):
        """Test that missing metadata is an error."""
        candidate = valid_candidate()
        del candidate["metadata"]

        result = self.codec.validate(candidate)

        self.assertIn("Missing metadata", result.errors)

    def test_missing_producer_tag(self):
        """Test that metadata without producer_tag is an error."""
        result = self.codec.validate(valid_candidate(metadata={"platform": "Linux"}))

        self.assertIn("Missing metadata.producer_tag", result.errors)

    def test_one_error_per_rule(self):
        """Test that every violated rule is reported."""
        result = self.codec.validate({})

        self.assertEqual(len(result.errors), 3)

    def test_newer_version_warns(self):
        """Test that a newer format version is a warning, not an error."""
        result = self.codec.validate(valid_candidate(format_version="2.0.0"))

        self.assertTrue(result.is_valid)
        self.assertEqual(len(result.warnings), 1)
        self.assertIn("newer than supported", result.warnings[0])

    def test_older_version_is_silent(self):
        """Test that an older format version raises no warning."""
        result = self.codec.validate(valid_candidate(format_version="1.0"))

        self.assertEqual(result.warnings, [])

    def test_item_count_mismatch_warns(self):
        """Test that a wrong item_count is only a warning."""
        result = self.codec.validate(valid_candidate(item_count=5))

        self.assertTrue(result.is_valid)
        self.assertIn("does not match", result.warnings[0])

    def test_item_count_not_a_number(self):
        """Test that a non-numeric item_count is a warning."""
        result = self.codec.validate(valid_candidate(item_count="three"))

        self.assertTrue(result.is_valid)
        self.assertIn("not a number", result.warnings[0])

    def test_items_not_a_list(self):
        """Test that non-list items are treated as empty with a warning."""
        candidate = valid_candidate(items={"a": 1}, item_count=0)

        result = self.codec.validate(candidate)

        self.assertTrue(result.is_valid)
        self.assertIn("items is not a list; treating backup as empty", result.warnings)
        self.assertEqual(self.codec.from_dict(candidate).items, ())

    def test_malformed_items_warn(self):
        """Test that malformed entries are counted in a warning."""
        candidate = valid_candidate(
            items=[{"filename": "ok.json", "content": {}}, "junk", {"content": {}}],
            item_count=3,
        )

        result = self.codec.validate(candidate)

        self.assertTrue(result.is_valid)
        self.assertIn("2 item(s) are malformed and will fail to restore", result.warnings)

    def test_non_dict_candidate(self):
        """Test that a non-object candidate is invalid."""
        result = self.codec.validate(["not", "an", "object"])

        self.assertFalse(result.is_valid)


class TestFromDict(unittest.TestCase):
    """Tests for lenient snapshot construction."""

    def setUp(self):
        self.codec = SnapshotCodec()

    def test_malformed_entries_keep_their_place(self):
        """Test that malformed entries become bundles with an empty filename."""
        candidate = valid_candidate(items=[{"filename": "a.json"}, 42, {"content": 1}])

        snapshot = self.codec.from_dict(candidate)

        self.assertEqual(
            [item.filename for item in snapshot.items], ["a.json", "", ""]
        )

    def test_non_finite_numbers_use_defaults(self):
        """Test that non-finite numbers in a candidate do not break construction."""
        candidate = valid_candidate(
            item_count=float("nan"),
            items=[{"filename": "a.json", "content": {}, "timestamp": float("inf")}],
        )

        self.assertIn(
            "item_count is not a number: nan", self.codec.validate(candidate).warnings
        )
        snapshot = self.codec.from_dict(candidate)

        self.assertEqual(snapshot.item_count, 1)
        self.assertEqual(snapshot.items[0].timestamp, 0)

    def test_is_version_compatible(self):
        """Test the supported version boundary."""
        self.assertTrue(self.codec.is_version_compatible(SUPPORTED_VERSION))
        self.assertTrue(self.codec.is_version_compatible("1.0.0"))
        self.assertFalse(self.codec.is_version_compatible("1.2.0"))

    def test_summarize(self):
        """Test one-line snapshot summary."""
        summary = self.codec.summarize(make_snapshot())

        self.assertIn("Version: 1.1.0", summary)
        self.assertIn("Accounts: 2", summary)
        self.assertIn("Platform: Linux", summary)


if __name__ == "__main__":
    unittest.main()
