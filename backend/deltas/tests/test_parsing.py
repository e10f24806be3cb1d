"""Tests for decoding incoming delta bodies."""

from django.test import SimpleTestCase

from deltas.changes import ChangeType
from deltas.parsing import MalformedChange, parse_delta, parse_term


def quad(s: str, p: str = "http://p", o: str = "http://o", graph: str | None = "http://g") -> dict:
    out = {
        "subject": {"type": "uri", "value": s},
        "predicate": {"type": "uri", "value": p},
        "object": {"type": "uri", "value": o},
    }
    if graph:
        out["graph"] = {"type": "uri", "value": graph}
    return out


class ParseDeltaTests(SimpleTestCase):
    def test_deletes_precede_inserts_within_change_set(self):
        body = [{"inserts": [quad("http://a")], "deletes": [quad("http://b")]}]
        delta, skipped = parse_delta(body, origin="o1")
        self.assertEqual(skipped, 0)
        self.assertEqual(
            [(c.subject.value, c.change_type) for c in delta.changes],
            [("http://b", ChangeType.DELETION), ("http://a", ChangeType.ADDITION)],
        )
        self.assertEqual(delta.origin, "o1")
        self.assertIsNotNone(delta.timestamp)

    def test_change_sets_keep_their_order(self):
        body = [{"inserts": [quad("http://1")]}, {"inserts": [quad("http://2")]}]
        delta, _ = parse_delta(body, origin="o1")
        self.assertEqual([c.subject.value for c in delta.changes], ["http://1", "http://2"])

    def test_single_change_set_object_is_accepted(self):
        delta, _ = parse_delta({"inserts": [quad("http://a")]}, origin="o1", scope="http://scope")
        self.assertEqual(len(delta), 1)
        self.assertEqual(delta.scope, "http://scope")

    def test_malformed_quads_are_skipped(self):
        body = [
            {
                "inserts": [
                    quad("http://a"),
                    {"subject": {"type": "uri", "value": "http://x"}},
                    {"subject": {"type": "uri"}, "predicate": "http://p", "object": "http://o"},
                    "nonsense",
                ]
            }
        ]
        with self.assertLogs("deltas.parsing", level="WARNING"):
            delta, skipped = parse_delta(body, origin="o1")
        self.assertEqual(len(delta), 1)
        self.assertEqual(skipped, 3)

    def test_missing_graph_is_allowed(self):
        delta, _ = parse_delta([{"inserts": [quad("http://a", graph=None)]}], origin="o1")
        self.assertIsNone(delta.changes[0].graph)

    def test_literal_attributes(self):
        body = [
            {
                "inserts": [
                    {
                        "subject": {"type": "uri", "value": "http://a"},
                        "predicate": {"type": "uri", "value": "http://p"},
                        "object": {"type": "literal", "value": "hallo", "xml:lang": "nl"},
                    }
                ]
            }
        ]
        delta, _ = parse_delta(body, origin="o1")
        self.assertEqual(delta.changes[0].object.lang, "nl")
        self.assertEqual(delta.changes[0].object.type, "literal")

    def test_body_must_be_list_or_object(self):
        with self.assertRaises(MalformedChange):
            parse_delta("nope", origin="o1")


class ParseTermTests(SimpleTestCase):
    def test_bare_string_is_uri(self):
        term = parse_term("http://a", field_name="subject")
        self.assertEqual(term.type, "uri")
        self.assertEqual(term.value, "http://a")

    def test_datatype(self):
        term = parse_term(
            {"type": "literal", "value": "1", "datatype": "http://www.w3.org/2001/XMLSchema#integer"},
            field_name="object",
        )
        self.assertEqual(term.datatype, "http://www.w3.org/2001/XMLSchema#integer")

    def test_value_required(self):
        with self.assertRaises(MalformedChange):
            parse_term({"type": "uri"}, field_name="subject")
