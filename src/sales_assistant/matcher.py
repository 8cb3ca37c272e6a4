"""
Tiered question matching.

Decides whether a curated answer exists for a free-form question. Tiers run
strictly in order and the first acceptable hit wins:

    cache -> casual filter -> exact -> partial -> indexed text
                                   (force path only) -> fuzzy scan -> fallback scan

Each tier scores candidates with the similarity scorer against its own
acceptance threshold. A tier whose backend fails is skipped, never fatal.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from src.sales_assistant.cache import MatchCache, ResultCache
from src.sales_assistant.config import Config, get_config
from src.sales_assistant.corpus import CorpusQuestion, CorpusStore
from src.sales_assistant.normalizer import (
    anchored_pattern,
    escape_regex,
    exact_variants,
    normalize_query,
)
from src.sales_assistant.options import LabeledOption, format_options, option_by_label
from src.sales_assistant.similarity import SimilarityScorer

logger = structlog.get_logger(__name__)

_CASUAL_PATTERNS: Tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(hello|hi|hey)\s+(how\s+are\s+you|are\s+you\s+listening|are\s+you\s+talking)",
        r"^(how\s+are\s+you|are\s+you\s+listening|are\s+you\s+talking)",
        r"^(good\s+morning|good\s+afternoon|good\s+evening)",
        r"^(thank\s+you|thanks|bye|goodbye)",
        r"^(yes|no|ok|okay|sure|alright)\b",
    )
)

PARTIAL_PATTERN_LIMIT = 10
TEXT_SEARCH_LIMIT = 5
TEXT_REGEX_FALLBACK_LIMIT = 3
TEXT_REGEX_FALLBACK_THRESHOLD = 0.15
TEXT_REGEX_FALLBACK_EARLY_EXIT = 0.5
DECENT_SCORE = 0.5
RELATED_SCAN_LIMIT = 30
RELATED_MIN_SCORE = 0.05
RELATED_OVERLAP_BONUS = 0.1


@dataclass(frozen=True)
class MatchResult:
    matched_question: str
    answers: Tuple[LabeledOption, ...]
    category: str
    description: str
    similarity: float
    tier: str = ""

    def answer(self, label: str) -> str:
        option = option_by_label(self.answers, label)
        return option.text if option else ""

    def to_reply_text(self) -> str:
        return format_options(
            LabeledOption(label=label, text=self.answer(label)) for label in ("A", "B", "C")
        )


@dataclass(frozen=True)
class QuestionMatch:
    """A match together with the (split) question that produced it."""
    query: str
    result: MatchResult


@dataclass(frozen=True)
class CorpusStats:
    total_questions: int
    categories: List[Dict[str, object]] = field(default_factory=list)


Tier = Callable[[str], Awaitable[Optional[MatchResult]]]


class TieredMatcher:
    def __init__(
        self,
        store: CorpusStore,
        cache: Optional[MatchCache] = None,
        scorer: Optional[SimilarityScorer] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.store = store
        self.cache = cache or ResultCache(
            max_size=self.config.cache_max_size,
            ttl_seconds=self.config.cache_ttl_seconds,
        )
        self.scorer = scorer or SimilarityScorer()

    # -- public API ---------------------------------------------------------

    async def match(self, query: object) -> Optional[MatchResult]:
        """Latency-sensitive path: cache, exact, partial, indexed text."""
        if not isinstance(query, str):
            return None

        key = normalize_query(query)
        if not key:
            return None

        cached = self.cache.get_trusted(key, self.config.cache_min_similarity)
        if cached is not None:
            logger.debug("Match served from cache", query=key[:80], similarity=cached.similarity)
            return cached

        if self.is_casual(key):
            logger.debug("Casual utterance, skipping corpus", query=key[:80])
            return None

        return await self._run_tiers(key, self._default_tiers(key))

    async def match_force(self, query: object) -> Optional[MatchResult]:
        """Cache-bypassing re-search that also runs the exhaustive scans."""
        if not isinstance(query, str):
            return None

        key = normalize_query(query)
        if not key:
            return None

        self.cache.invalidate(key)
        if self.is_casual(key):
            return None

        tiers = self._default_tiers(key) + [
            ("fuzzy", self._fuzzy_tier),
            ("fallback", self._fallback_tier),
        ]
        return await self._run_tiers(key, tiers)

    async def match_many(self, queries: Sequence[str], *, force: bool = False) -> List[QuestionMatch]:
        """Match each question in order; misses are dropped."""
        matches: List[QuestionMatch] = []
        for query in queries:
            if not isinstance(query, str) or not query.strip():
                continue
            query = query.strip()
            result = await (self.match_force(query) if force else self.match(query))
            if result is not None:
                matches.append(QuestionMatch(query=query, result=result))
        return matches

    async def related_questions(self, query: str, *, limit: int = 8) -> List[MatchResult]:
        """
        Loosely related corpus questions, best first.

        Used only to give the generative model examples of the house style; a
        store failure yields an empty list.
        """
        if not query:
            return []

        try:
            candidates = await self.store.scan(limit=RELATED_SCAN_LIMIT)
        except Exception as e:
            logger.warning("Related-question scan failed", error=str(e))
            return []

        normalized = normalize_query(query)
        scored: List[Tuple[float, CorpusQuestion]] = []
        for candidate in candidates:
            overlap = self.scorer.word_overlap(query, candidate.question) + self.scorer.synonym_overlap(
                query, candidate.question
            )
            if overlap <= 0:
                continue

            similarity = max(
                self.scorer.score(query, candidate.question),
                self.scorer.score(normalized, normalize_query(candidate.question)),
            )
            final = similarity + overlap * RELATED_OVERLAP_BONUS
            if final > RELATED_MIN_SCORE:
                scored.append((final, candidate))

        scored.sort(key=lambda item: -item[0])
        return [self._result(candidate, min(1.0, s), "related") for s, candidate in scored[:limit]]

    async def stats(self) -> CorpusStats:
        records = await self.store.records()
        return CorpusStats(
            total_questions=sum(len(r.questions) for r in records),
            categories=[
                {
                    "name": r.category,
                    "description": r.description,
                    "questionCount": len(r.questions),
                }
                for r in records
            ],
        )

    def clear_cache(self, query: Optional[str] = None) -> None:
        if query:
            self.cache.invalidate(normalize_query(query))
        else:
            self.cache.clear()

    @staticmethod
    def is_casual(query: str) -> bool:
        return any(pattern.search(query) for pattern in _CASUAL_PATTERNS)

    # -- tier plumbing ------------------------------------------------------

    def _default_tiers(self, key: str) -> List[Tuple[str, Tier]]:
        tiers: List[Tuple[str, Tier]] = [
            ("exact", self._exact_tier),
            ("partial", self._partial_tier),
        ]
        if len(key) > self.config.text_search_min_chars:
            tiers.append(("text", self._text_tier))
        return tiers

    async def _run_tiers(self, key: str, tiers: List[Tuple[str, Tier]]) -> Optional[MatchResult]:
        for name, tier in tiers:
            try:
                result = await tier(key)
            except Exception as e:
                logger.warning("Match tier skipped", tier=name, error=str(e))
                continue

            if result is not None:
                self.cache.set(key, result)
                logger.info(
                    "DB match found",
                    tier=name,
                    similarity=round(result.similarity, 3),
                    category=result.category,
                )
                return result

            logger.debug("Match tier missed", tier=name, query=key[:80])

        return None

    def _result(self, candidate: CorpusQuestion, similarity: float, tier: str) -> MatchResult:
        return MatchResult(
            matched_question=candidate.question,
            answers=candidate.answers,
            category=candidate.category,
            description=candidate.description,
            similarity=similarity,
            tier=tier,
        )

    def _threshold(self, query: str, candidate: CorpusQuestion) -> float:
        if candidate.category == self.config.basic_category_name:
            threshold = self.config.basic_category_threshold
        else:
            threshold = self.config.partial_threshold

        if self.scorer.word_overlap(query, normalize_query(candidate.question)) >= 3:
            threshold = min(threshold, self.config.word_match_threshold)
        return threshold

    def _significant_words(self, query: str) -> List[str]:
        return [w for w in query.split(" ") if len(w) > 2]

    @staticmethod
    def _presence_pattern(words: Sequence[str]) -> str:
        # Every word must appear, in any order.
        return "".join(f"(?=.*{escape_regex(word)})" for word in words)

    # -- tiers --------------------------------------------------------------

    async def _exact_tier(self, key: str) -> Optional[MatchResult]:
        patterns = [anchored_pattern(variant) for variant in exact_variants(key)]
        hit = await self.store.anchored_search(patterns)
        if hit is None:
            return None
        return self._result(hit, 1.0, "exact")

    async def _partial_tier(self, key: str) -> Optional[MatchResult]:
        words = self._significant_words(key)
        if not words:
            return None

        word_sets = [
            [w for w in words if not self.scorer.lexicon.is_stop_word(w)],
            self._significant_words(normalize_query(key)),
            words,
        ]
        patterns: List[str] = []
        for word_set in word_sets:
            if not word_set:
                continue
            pattern = self._presence_pattern(word_set)
            if pattern not in patterns:
                patterns.append(pattern)

        best: Optional[MatchResult] = None
        best_score = 0.0
        for pattern in patterns:
            candidates = await self.store.pattern_search(pattern, limit=PARTIAL_PATTERN_LIMIT)
            for candidate in candidates:
                similarity = self.scorer.score(key, normalize_query(candidate.question))
                if similarity > best_score and similarity > self._threshold(key, candidate):
                    best_score = similarity
                    best = self._result(candidate, similarity, "partial")
                    if similarity > self.config.early_accept_similarity:
                        return best

            if best_score > DECENT_SCORE:
                break

        return best

    async def _text_tier(self, key: str) -> Optional[MatchResult]:
        searches = [
            key,
            " ".join(
                w for w in key.split(" ") if len(w) > 2 and not self.scorer.lexicon.is_stop_word(w)
            ),
            self.scorer.replace_with_synonyms(key),
        ]

        best: Optional[MatchResult] = None
        best_score = 0.0
        for search in searches:
            if not search or len(search.strip()) < 3:
                continue

            try:
                candidates = await self.store.text_search(search, limit=TEXT_SEARCH_LIMIT)
            except Exception as e:
                logger.warning("Text search failed, falling back to regex scan", error=str(e))
                candidates = await self.store.pattern_search(
                    escape_regex(search), limit=TEXT_REGEX_FALLBACK_LIMIT
                )
                for candidate in candidates:
                    similarity = self.scorer.score(key, normalize_query(candidate.question))
                    if similarity > best_score and similarity > TEXT_REGEX_FALLBACK_THRESHOLD:
                        best_score = similarity
                        best = self._result(candidate, similarity, "text")
                        if similarity > TEXT_REGEX_FALLBACK_EARLY_EXIT:
                            return best
            else:
                for candidate in candidates:
                    similarity = self.scorer.score(key, normalize_query(candidate.question))
                    if similarity > best_score and similarity > self._threshold(key, candidate):
                        best_score = similarity
                        best = self._result(candidate, similarity, "text")
                        if similarity > self.config.early_accept_similarity:
                            return best

            if best_score > DECENT_SCORE:
                break

        return best

    async def _fuzzy_tier(self, key: str) -> Optional[MatchResult]:
        candidates = await self.store.scan(limit=self.config.scan_limit)

        best: Optional[MatchResult] = None
        best_score = 0.0
        for candidate in candidates:
            if self.scorer.word_overlap(key, candidate.question) == 0:
                continue

            similarity = max(
                self.scorer.score(key, candidate.question),
                self.scorer.score(key, normalize_query(candidate.question)),
            )
            if candidate.category == self.config.basic_category_name:
                threshold = self.config.basic_category_threshold
            else:
                threshold = self.config.partial_threshold

            if similarity > best_score and similarity > threshold:
                best_score = similarity
                best = self._result(candidate, similarity, "fuzzy")
                if similarity > self.config.early_accept_similarity:
                    break

        return best

    async def _fallback_tier(self, key: str) -> Optional[MatchResult]:
        candidates = await self.store.scan(limit=self.config.scan_limit)
        for candidate in candidates:
            if self.scorer.word_overlap(key, candidate.question) == 0:
                continue
            similarity = self.scorer.score(key, normalize_query(candidate.question))
            if similarity > self.config.partial_threshold:
                return self._result(candidate, similarity, "fallback")
        return None
