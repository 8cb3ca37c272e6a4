"""
Tests for query normalization and exact-tier variants.
"""

import pytest

from src.sales_assistant.normalizer import (
    anchored_pattern,
    escape_regex,
    exact_variants,
    normalize_query,
)


class TestNormalizeQuery:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("  What's   the PRICE?! ", "what's the price"),
            ("Tell me about presales", "tell me about pre-sales"),
            ("pre sales support", "pre-sales support"),
            ("postsales help", "post-sales help"),
            ("Our cofounder", "our co-founder"),
            ("What will happen if I cancel?", "what happens if i cancel"),
            ("What happened to my order", "what happens to my order"),
            ("Tell me about sales.", "about sales"),
            ("", ""),
        ],
    )
    def test_canonical_forms(self, raw, expected):
        assert normalize_query(raw) == expected

    def test_idempotent(self):
        once = normalize_query("What would happen if I don't renew, and what's the cost?")
        assert normalize_query(once) == once


class TestExactVariants:
    def test_can_you_unification(self):
        variants = exact_variants("do you offer discounts")
        assert variants[0] == "do you offer discounts"
        assert "can you offer discounts" in variants
        assert "do-you-offer-discounts" in variants

    def test_no_duplicates(self):
        variants = exact_variants("pricing")
        assert len(variants) == len(set(variants))

    def test_empty(self):
        assert exact_variants("") == []


class TestAnchoredPattern:
    def test_plural_and_trailing_punctuation(self):
        pattern = anchored_pattern("can you match competitor pricing")
        assert pattern.search("Can you match competitors pricing?")
        assert pattern.search("can you MATCH competitor's pricing")

    def test_anchored(self):
        pattern = anchored_pattern("can you match competitor pricing")
        assert pattern.search("Can you match competitor pricing for enterprise?") is None

    def test_gerund_forms(self):
        assert anchored_pattern("matching offers").search("match offer")

    def test_escape_regex(self):
        assert escape_regex("a.b") == "a\\.b"
        assert escape_regex("") == ""
