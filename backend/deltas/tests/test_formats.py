"""Tests for callback payload encoders."""

from unittest import TestCase

from deltas.errors import UnsupportedResourceFormat
from deltas.formats import (
    DEFAULT_RESOURCE_FORMAT,
    GENESIS_RESOURCE_FORMAT,
    encode_changes,
    ensure_supported,
    supported_formats,
)
from deltas.tests.factories import addition, deletion


class TestEncodeChanges(TestCase):
    """Tests for encode_changes."""

    def test_v0_0_1_envelope(self):
        """v0.0.1 tags the envelope and each change, keeping order."""
        body = encode_changes("v0.0.1", [addition("s1", "p1", "o1"), deletion("s2", "p2", "o2")])
        self.assertEqual(body["resourceFormat"], "v0.0.1")
        self.assertEqual([c["changeType"] for c in body["changes"]], ["addition", "deletion"])
        self.assertEqual(body["changes"][0]["subject"]["value"], "http://example.com/s1")

    def test_genesis_splits_inserts_and_deletes(self):
        body = encode_changes(
            GENESIS_RESOURCE_FORMAT,
            [addition("s1", "p1", "o1"), deletion("s2", "p2", "o2"), addition("s3", "p3", "o3")],
        )
        self.assertEqual(len(body["delta"]["inserts"]), 2)
        self.assertEqual(len(body["delta"]["deletes"]), 1)
        self.assertNotIn("changeType", body["delta"]["inserts"][0])

    def test_unknown_format_raises(self):
        with self.assertRaises(UnsupportedResourceFormat):
            encode_changes("v2", [])
        with self.assertRaises(UnsupportedResourceFormat):
            ensure_supported("")

    def test_supported_formats(self):
        self.assertIn(DEFAULT_RESOURCE_FORMAT, supported_formats())
        self.assertIn(GENESIS_RESOURCE_FORMAT, supported_formats())
