"""Tests for match confidence scoring."""

import unittest

import pytest

from formation_agent.core.browser_interface import ElementInfo
from formation_agent.core.models import FieldSnapshot, MatchConfidence
from formation_agent.tools.match_scorer import MatchScorer


def live_input(label: str, input_type: str = "text", **overrides) -> ElementInfo:
    fields = dict(
        tag="input",
        attributes={"type": input_type, "name": "field"},
        width=200.0,
        height=24.0,
        associated_label=label,
    )
    fields.update(overrides)
    return ElementInfo(**fields)


def stored(label: str, field_type: str = "text") -> FieldSnapshot:
    return FieldSnapshot(selector='input[name="field"]', value="x", label=label, type=field_type)


class TestLabelSimilarity(unittest.TestCase):

    def setUp(self):
        self.scorer = MatchScorer()

    def test_identical_after_normalization(self):
        self.assertEqual(self.scorer.label_similarity("E-mail:", "email"), 1.0)

    def test_containment(self):
        self.assertEqual(self.scorer.label_similarity("Email", "Email address"), 0.8)

    def test_positional_overlap(self):
        self.assertEqual(self.scorer.label_similarity("abcd", "abxy"), 0.5)
        self.assertEqual(self.scorer.label_similarity("abcd", "wxyz"), 0.0)

    def test_empty_label_scores_zero(self):
        self.assertEqual(self.scorer.label_similarity("", "Email"), 0.0)
        self.assertEqual(self.scorer.label_similarity("Email", "???"), 0.0)


class TestClassify(unittest.TestCase):

    def setUp(self):
        self.scorer = MatchScorer()

    def test_same_type_and_label_is_exact(self):
        confidence, similarity = self.scorer.classify(stored("Email"), live_input("Email"))
        self.assertIs(confidence, MatchConfidence.EXACT)
        self.assertEqual(similarity, 1.0)

    def test_containment_is_high(self):
        confidence, _ = self.scorer.classify(stored("Email"), live_input("Email address"))
        self.assertIs(confidence, MatchConfidence.HIGH)

    def test_threshold_boundaries(self):
        # "abcd" vs "abxy" scores exactly the medium threshold
        self.assertIs(self.scorer.classify(stored("abcd"), live_input("abxy"))[0], MatchConfidence.HIGH)
        self.assertIs(self.scorer.classify(stored("abcd"), live_input("axyz"))[0], MatchConfidence.MEDIUM)

    def test_compatible_type_is_medium(self):
        confidence, _ = self.scorer.classify(stored("Query"), live_input("Query", "search"))
        self.assertIs(confidence, MatchConfidence.MEDIUM)

    def test_incompatible_type_is_low(self):
        confidence, _ = self.scorer.classify(stored("Email", "text"), live_input("Email", "email"))
        self.assertIs(confidence, MatchConfidence.LOW)

    def test_ineligible_candidate_fails(self):
        confidence, _ = self.scorer.classify(stored("Email"), live_input("Email", disabled=True))
        self.assertIs(confidence, MatchConfidence.FAILED)
        confidence, _ = self.scorer.classify(stored("Secret", "password"), live_input("Secret", "password"))
        self.assertIs(confidence, MatchConfidence.FAILED)

    def test_custom_thresholds(self):
        scorer = MatchScorer(exact_threshold=0.95, medium_threshold=0.9)
        self.assertIs(scorer.classify(stored("Email"), live_input("Email address"))[0], MatchConfidence.MEDIUM)

    def test_confidence_never_rises_as_similarity_falls(self):
        labels = ["Email", "Email address", "Emxx", "Exxx", "Zzzz"]
        scored = []
        for label in labels:
            similarity = self.scorer.label_similarity("Email", label)
            confidence, _ = self.scorer.classify(stored("Email"), live_input(label))
            scored.append((similarity, confidence))
        scored.sort(key=lambda item: item[0], reverse=True)
        confidences = [confidence for _, confidence in scored]
        self.assertEqual(confidences, sorted(confidences, reverse=True))

    def test_usable_levels(self):
        self.assertTrue(MatchConfidence.EXACT.is_usable)
        self.assertTrue(MatchConfidence.HIGH.is_usable)
        self.assertFalse(MatchConfidence.MEDIUM.is_usable)
        self.assertLess(MatchConfidence.FAILED, MatchConfidence.LOW)


@pytest.mark.asyncio
async def test_score_resolves_first_match(document):
    document.add_label("Email", for_="email")
    first = document.add_input(type="email", id="email", name="email")
    document.add_input(type="email", name="email")
    scorer = MatchScorer()

    match = await scorer.score(document, FieldSnapshot('input[name="email"]', "a@b.c", "Email", "email"))

    assert match.handle is first
    assert match.confidence is MatchConfidence.EXACT
    assert match.is_usable
    assert match.is_empty


@pytest.mark.asyncio
async def test_score_reports_prefilled_field_as_not_empty(document):
    document.add_input(type="text", name="name", value="Bob", placeholder="Name")
    match = await MatchScorer().score(document, FieldSnapshot('input[name="name"]', "Alice", "Name", "text"))
    assert match.confidence is MatchConfidence.EXACT
    assert not match.is_empty


@pytest.mark.asyncio
async def test_unresolvable_or_invalid_selector_fails(document):
    document.add_input(name="email")
    scorer = MatchScorer()
    missing = await scorer.score(document, FieldSnapshot('input[name="phone"]', "1", "Phone", "text"))
    invalid = await scorer.score(document, FieldSnapshot("input:hover", "1", "Phone", "text"))
    for match in (missing, invalid):
        assert match.confidence is MatchConfidence.FAILED
        assert match.handle is None
        assert not match.is_empty
