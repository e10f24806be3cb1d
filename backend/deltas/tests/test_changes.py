"""Tests for the change model and pattern matching."""

from unittest import TestCase

from deltas.changes import Change, ChangeType, Term, change_matches
from deltas.errors import MatchEvaluationError
from deltas.tests.factories import addition, deletion


class TestChangeMatches(TestCase):
    """Tests for change_matches."""

    def setUp(self):
        self.change = addition("s1", "p1", "o1")

    def test_empty_pattern_matches_everything(self):
        """A pattern with no constraints matches any change."""
        self.assertTrue(change_matches(self.change, {}))
        self.assertTrue(change_matches(deletion("x", "y", "z", graph=None), {}))

    def test_empty_term_constraint_is_wildcard(self):
        """`subject: {}` matches any subject."""
        self.assertTrue(change_matches(self.change, {"subject": {}}))
        self.assertTrue(change_matches(self.change, {"subject": None}))

    def test_string_constraint_compares_term_value(self):
        """A string constrains the term value."""
        self.assertTrue(change_matches(self.change, {"predicate": "http://example.com/p1"}))
        self.assertFalse(change_matches(self.change, {"predicate": "http://example.com/p2"}))

    def test_all_constrained_fields_must_match(self):
        """Every constrained field has to be equal."""
        pattern = {"subject": "http://example.com/s1", "object": "http://example.com/other"}
        self.assertFalse(change_matches(self.change, pattern))

    def test_mapping_constraint_checks_term_attributes(self):
        """Mapping constraints compare the listed term attributes."""
        self.assertTrue(change_matches(self.change, {"object": {"type": "uri"}}))
        self.assertFalse(change_matches(self.change, {"object": {"type": "literal"}}))

    def test_language_alias(self):
        """`xml:lang` and `lang` constrain the same attribute."""
        base = addition("s", "p", "o")
        change = Change(
            subject=base.subject,
            predicate=base.predicate,
            object=Term(value="hallo", type="literal", lang="nl"),
            graph=base.graph,
            change_type=ChangeType.ADDITION,
        )
        self.assertTrue(change_matches(change, {"object": {"xml:lang": "nl"}}))
        self.assertTrue(change_matches(change, {"object": {"lang": "nl"}}))
        self.assertFalse(change_matches(change, {"object": {"lang": "en"}}))

    def test_graph_constraint_on_graphless_change(self):
        """A change without graph does not match a graph constraint."""
        change = addition("s", "p", "o", graph=None)
        self.assertFalse(change_matches(change, {"graph": "http://example.com/graph"}))
        self.assertTrue(change_matches(change, {"graph": {}}))

    def test_change_type_does_not_affect_matching(self):
        """Additions and deletions of the same statement match the same patterns."""
        pattern = {"subject": "http://example.com/s1"}
        self.assertTrue(change_matches(deletion("s1", "p1", "o1"), pattern))

    def test_unknown_field_raises(self):
        """Unexpected pattern shapes raise MatchEvaluationError."""
        with self.assertRaises(MatchEvaluationError):
            change_matches(self.change, {"verb": "x"})
        with self.assertRaises(MatchEvaluationError):
            change_matches(self.change, {"subject": 42})
        with self.assertRaises(MatchEvaluationError):
            change_matches(self.change, {"subject": {"colour": "red"}})
        with self.assertRaises(MatchEvaluationError):
            change_matches(self.change, ["subject"])

    def test_non_change_raises(self):
        with self.assertRaises(MatchEvaluationError):
            change_matches({"subject": "x"}, {})


class TestChange(TestCase):
    """Tests for Change helpers."""

    def test_identity_ignores_change_type(self):
        self.assertEqual(addition("s", "p", "o").identity, deletion("s", "p", "o").identity)
        self.assertNotEqual(addition("s", "p", "o"), deletion("s", "p", "o"))

    def test_as_dict_tags_change_type(self):
        data = deletion("s", "p", "o").as_dict()
        self.assertEqual(data["changeType"], "deletion")
        self.assertEqual(data["subject"], {"type": "uri", "value": "http://example.com/s"})
        self.assertEqual(data["graph"]["value"], "http://example.com/graph")

    def test_as_quad_omits_missing_graph(self):
        self.assertNotIn("graph", addition("s", "p", "o", graph=None).as_quad())

    def test_literal_term_serialization(self):
        term = Term(value="5", type="literal", datatype="http://www.w3.org/2001/XMLSchema#integer")
        self.assertEqual(
            term.as_dict(),
            {"type": "literal", "value": "5", "datatype": "http://www.w3.org/2001/XMLSchema#integer"},
        )
        self.assertEqual(Term(value="hi", type="literal", lang="en").as_dict()["xml:lang"], "en")

