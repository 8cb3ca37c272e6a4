"""
Curated question/answer corpus.

The corpus is a list of categories, each holding questions with three labeled
answers (A, B, C). It is loaded once and only ever read. The matcher talks to
it through `CorpusStore`, which offers the three query shapes the tiers need:

- anchored-pattern match (exact tier)
- token-presence pattern match (partial tier, text-tier fallback)
- indexed free-text search (text tier)

plus a bounded sequential scan for the exhaustive tiers. Ranking and
thresholds live in the matcher; the store only returns candidates.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Literal, Optional, Pattern, Sequence, Tuple

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from rapidfuzz import fuzz, process

from src.sales_assistant.options import LabeledOption

logger = structlog.get_logger(__name__)


class CorpusUnavailableError(Exception):
    """Raised when the corpus backend cannot serve a query."""
    pass


class QAAnswer(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    label: Literal["A", "B", "C"] = Field(validation_alias=AliasChoices("label", "option"))
    text: str


class QAQuestion(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(validation_alias=AliasChoices("text", "question"))
    answers: Tuple[QAAnswer, ...] = ()


class QuestionRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    description: str = ""
    questions: Tuple[QAQuestion, ...] = ()


@dataclass(frozen=True)
class CorpusQuestion:
    """One question flattened together with its category."""
    question: str
    answers: Tuple[LabeledOption, ...]
    category: str
    description: str


def _flatten(records: Sequence[QuestionRecord]) -> Tuple[CorpusQuestion, ...]:
    flattened: List[CorpusQuestion] = []
    for record in records:
        for question in record.questions:
            flattened.append(
                CorpusQuestion(
                    question=question.text,
                    answers=tuple(LabeledOption(label=a.label, text=a.text) for a in question.answers),
                    category=record.category,
                    description=record.description,
                )
            )
    return tuple(flattened)


class CorpusStore(ABC):
    @abstractmethod
    async def anchored_search(self, patterns: Sequence[Pattern[str]]) -> Optional[CorpusQuestion]:
        """First question whose full text matches any of `patterns`."""
        raise NotImplementedError

    @abstractmethod
    async def pattern_search(self, pattern: str, *, limit: int = 10) -> List[CorpusQuestion]:
        """Questions matching a case-insensitive regex (searched, not anchored)."""
        raise NotImplementedError

    @abstractmethod
    async def text_search(self, query: str, *, limit: int = 5) -> List[CorpusQuestion]:
        """Full-text search, best candidates first."""
        raise NotImplementedError

    @abstractmethod
    async def scan(self, *, limit: int) -> List[CorpusQuestion]:
        """The first `limit` questions in corpus order."""
        raise NotImplementedError

    @abstractmethod
    async def records(self) -> List[QuestionRecord]:
        raise NotImplementedError


class InMemoryCorpusStore(CorpusStore):
    """
    Corpus held in memory.

    Built with `records=None` it models an unreachable backend: every query
    raises `CorpusUnavailableError`.
    """

    def __init__(
        self,
        records: Optional[Sequence[QuestionRecord]],
        *,
        text_score_cutoff: float = 50.0,
    ):
        self._records: Optional[Tuple[QuestionRecord, ...]] = (
            tuple(records) if records is not None else None
        )
        self._questions: Tuple[CorpusQuestion, ...] = _flatten(self._records or ())
        self._lowered: Tuple[str, ...] = tuple(q.question.lower() for q in self._questions)
        self._text_score_cutoff = text_score_cutoff

    @property
    def available(self) -> bool:
        return self._records is not None

    def _require(self) -> None:
        if self._records is None:
            raise CorpusUnavailableError("Corpus not loaded")

    async def anchored_search(self, patterns: Sequence[Pattern[str]]) -> Optional[CorpusQuestion]:
        self._require()
        for question in self._questions:
            if any(pattern.search(question.question) for pattern in patterns):
                return question
        return None

    async def pattern_search(self, pattern: str, *, limit: int = 10) -> List[CorpusQuestion]:
        self._require()
        try:
            compiled = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise CorpusUnavailableError(f"Invalid pattern: {e}") from e

        results: List[CorpusQuestion] = []
        for question in self._questions:
            if compiled.search(question.question):
                results.append(question)
                if len(results) >= limit:
                    break
        return results

    async def text_search(self, query: str, *, limit: int = 5) -> List[CorpusQuestion]:
        self._require()
        query = (query or "").strip().lower()
        if not query or not self._questions:
            return []

        ranked = process.extract(
            query,
            self._lowered,
            scorer=fuzz.WRatio,
            limit=limit,
            score_cutoff=self._text_score_cutoff,
        )
        return [self._questions[index] for _choice, _score, index in ranked]

    async def scan(self, *, limit: int) -> List[CorpusQuestion]:
        self._require()
        return list(self._questions[:limit])

    async def records(self) -> List[QuestionRecord]:
        self._require()
        return list(self._records or ())


def _project_root() -> Path:
    # src/sales_assistant/corpus.py -> src/sales_assistant -> src -> project root
    return Path(__file__).resolve().parent.parent.parent


def resolve_corpus_path(corpus_path: Optional[str] = None) -> Path:
    """
    Resolve a corpus path.

    Relative paths are interpreted relative to the project root.
    Defaults to `data/sales_qa.json`.
    """
    if not corpus_path:
        return _project_root() / "data" / "sales_qa.json"

    path = Path(corpus_path)
    if path.is_absolute():
        return path
    return _project_root() / path


def parse_corpus(data: object) -> List[QuestionRecord]:
    if not isinstance(data, list):
        raise CorpusUnavailableError("Corpus must be a JSON list of categories")
    try:
        return [QuestionRecord.model_validate(item) for item in data]
    except ValidationError as e:
        raise CorpusUnavailableError(f"Invalid corpus record: {e}") from e


def load_corpus(path: Path) -> List[QuestionRecord]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise CorpusUnavailableError(f"Cannot read corpus at {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorpusUnavailableError(f"Corpus at {path} is not valid JSON: {e}") from e

    return parse_corpus(data)


@lru_cache(maxsize=1)
def get_corpus_store(corpus_path: Optional[str] = None) -> InMemoryCorpusStore:
    """
    Load and cache the corpus store.

    A missing or invalid corpus yields an unavailable store (tiers are then
    skipped) instead of failing startup.
    """
    path = resolve_corpus_path(corpus_path)
    try:
        records = load_corpus(path)
    except CorpusUnavailableError as e:
        logger.error("Failed to load corpus", corpus_path=str(path), error=str(e))
        return InMemoryCorpusStore(None)

    store = InMemoryCorpusStore(records)
    logger.info(
        "Corpus loaded",
        corpus_path=str(path),
        num_categories=len(records),
        num_questions=sum(len(r.questions) for r in records),
    )
    return store
