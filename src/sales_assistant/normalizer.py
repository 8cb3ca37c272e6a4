"""
Query normalization.

Turns a raw transcribed question into a comparable form (casing, punctuation,
compound words, tense) and produces the bounded set of surface variants used
by the exact-match tier.
"""

from __future__ import annotations

import re
from typing import List, Pattern, Tuple

_PUNCT_RE = re.compile(r"[.,!?;:]")
_WS_RE = re.compile(r"\s+")

_CANONICAL_FORMS: Tuple[Tuple[Pattern[str], str], ...] = tuple(
    (re.compile(p), r)
    for p, r in (
        (r"\bpre\s*sales\b", "pre-sales"),
        (r"\bpost\s*sales\b", "post-sales"),
        (r"\bco\s*founder\b", "co-founder"),
        (r"\bwhat\s+happened\b", "what happens"),
        (r"\bwhat\s+will\s+happen\b", "what happens"),
        (r"\bwhat\s+would\s+happen\b", "what happens"),
        (r"\btell\s+me\s+about\s+sales?\b", "about sales"),
    )
)

# Each rewrite yields one extra exact-tier variant of the query.
_VARIANT_REWRITES: Tuple[Tuple[Pattern[str], str], ...] = tuple(
    (re.compile(p, re.IGNORECASE), r)
    for p, r in (
        (r"\s+", "-"),
        (r"-", " "),
        (r"\bpre\s*sales\b", "pre-sales"),
        (r"\bpost\s*sales\b", "post-sales"),
        (r"\bwhat\s+happened\b", "what happens"),
        (r"\bwhat\s+will\s+happen\b", "what happens"),
        (r"\bwhat\s+would\s+happen\b", "what happens"),
        (r"\btell\s+me\s+about\s+sales?\b", "about sales"),
        (r"\bcompetitors\b", "competitor"),
        (r"\bcompetitor's\b", "competitor"),
        (r"\bcompetitors'", "competitor"),
        (r"\bcompetitors\b", "competitor's"),
        (r"\bcompetitor\b", "competitor's"),
        (r"\bdo\s+you\b", "can you"),
        (r"\bwill\s+you\b", "can you"),
        (r"\bmatching\b", "match"),
        (r"\bbeat\b", "match"),
        (r"\bcompete\b", "match"),
    )
)

# Applied to an escaped variant so one anchored pattern covers word-form pairs.
_FLEXIBLE_FORMS: Tuple[Tuple[Pattern[str], str], ...] = tuple(
    (re.compile(p), r)
    for p, r in (
        (r"\bcompetitor's\b|\bcompetitors\b|\bcompetitor\b", "(?:competitors?|competitor's)"),
        (r"\bmatching\b|\bmatch\b", "(?:match|matching)"),
        (r"\boffers\b|\boffer\b", "(?:offer|offers)"),
    )
)


def normalize_query(text: str) -> str:
    """
    Canonicalize a raw question.

    Lowercases, strips sentence punctuation, collapses whitespace and applies
    the domain canonical forms ("presales" -> "pre-sales", "what will happen"
    -> "what happens", ...). Never fails; "" maps to "".
    """
    if not text:
        return ""

    result = _PUNCT_RE.sub("", text.lower().strip())
    result = _WS_RE.sub(" ", result)
    for pattern, replacement in _CANONICAL_FORMS:
        result = pattern.sub(replacement, result)
    return result.strip()


def exact_variants(query: str) -> List[str]:
    """
    Surface variants of `query` for the exact tier, de-duplicated in order.
    """
    if not query:
        return []

    candidates = [query, normalize_query(query)]
    candidates.extend(pattern.sub(replacement, query) for pattern, replacement in _VARIANT_REWRITES)

    seen = set()
    variants: List[str] = []
    for candidate in candidates:
        candidate = candidate.strip()
        if candidate and candidate not in seen:
            seen.add(candidate)
            variants.append(candidate)
    return variants


def escape_regex(text: str) -> str:
    return re.escape(text or "")


def anchored_pattern(variant: str) -> Pattern[str]:
    """
    Compile a case-insensitive, fully anchored pattern for one variant.

    Trailing sentence punctuation on the corpus side is tolerated since
    normalized queries never carry it.
    """
    escaped = escape_regex(variant)
    for pattern, replacement in _FLEXIBLE_FORMS:
        escaped = pattern.sub(replacement, escaped)
    return re.compile(rf"^\s*{escaped}\s*[?.!]*\s*$", re.IGNORECASE)
