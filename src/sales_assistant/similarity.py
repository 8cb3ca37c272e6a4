"""
Bounded [0, 1] question similarity.

Score = Jaccard overlap of significant tokens, plus a positional order bonus
and a raw-substring bonus. Symmetric in its two arguments and deterministic
for a given lexicon.
"""

from __future__ import annotations

from typing import List, Optional

from src.sales_assistant.lexicon import DEFAULT_LEXICON, Lexicon

MIN_LENGTH_RATIO = 0.3
SUBSTRING_ONLY_SCORE = 0.3
HIGH_JACCARD = 0.8
HIGH_JACCARD_BONUS = 0.1
ORDER_POSITIONS = 5
ORDER_BONUS_PER_POSITION = 0.1
SUBSTRING_BONUS = 0.2


class SimilarityScorer:
    def __init__(self, lexicon: Optional[Lexicon] = None):
        self.lexicon = lexicon or DEFAULT_LEXICON

    def tokens(self, text: str) -> List[str]:
        """Significant tokens: surface-unified, >2 chars, not stop words."""
        unified = self.lexicon.unify_surface_forms((text or "").lower())
        return [
            word
            for word in unified.split()
            if len(word) > 2 and not self.lexicon.is_stop_word(word)
        ]

    def score(self, a: str, b: str) -> float:
        if not a or not b:
            return 0.0

        if min(len(a), len(b)) / max(len(a), len(b)) < MIN_LENGTH_RATIO:
            return 0.0

        words_a = self.tokens(a)
        words_b = self.tokens(b)
        if not words_a or not words_b:
            return 0.0

        a_lower = a.lower()
        b_lower = b.lower()
        is_substring = a_lower in b_lower or b_lower in a_lower

        set_a = set(words_a)
        set_b = set(words_b)
        intersection = set_a & set_b
        if not intersection:
            return SUBSTRING_ONLY_SCORE if is_substring else 0.0

        jaccard = len(intersection) / len(set_a | set_b)
        if jaccard > HIGH_JACCARD:
            return min(1.0, jaccard + HIGH_JACCARD_BONUS)

        order_bonus = 0.0
        for left, right in zip(words_a[:ORDER_POSITIONS], words_b[:ORDER_POSITIONS]):
            if left == right:
                order_bonus += ORDER_BONUS_PER_POSITION

        substring_bonus = SUBSTRING_BONUS if is_substring else 0.0
        return min(1.0, jaccard + order_bonus + substring_bonus)

    def word_overlap(self, a: str, b: str) -> int:
        """Number of distinct >2-char words of `a` that also appear in `b`."""
        words_b = {w for w in (b or "").lower().split() if len(w) > 2}
        return len({w for w in (a or "").lower().split() if len(w) > 2} & words_b)

    def synonym_overlap(self, a: str, b: str) -> int:
        """Number of words of `a` with at least one synonym present in `b`."""
        words_b = {w for w in (b or "").lower().split() if len(w) > 2}
        count = 0
        for word in (a or "").lower().split():
            if len(word) <= 2:
                continue
            if any(synonym in words_b for synonym in self.lexicon.synonyms_for(word)):
                count += 1
        return count

    def replace_with_synonyms(self, query: str) -> str:
        """Swap every word that has synonyms for its first synonym."""
        replaced = []
        for word in (query or "").split(" "):
            synonyms = self.lexicon.synonyms_for(word)
            replaced.append(synonyms[0] if synonyms else word)
        return " ".join(replaced)


_default_scorer = SimilarityScorer()


def score(a: str, b: str) -> float:
    """Score with the default lexicon."""
    return _default_scorer.score(a, b)
