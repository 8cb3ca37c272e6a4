"""
Split a compound utterance into its individual questions.

Callers often ask two things in one breath ("What does it cost and how long
is the contract?"). Each piece is matched against the corpus separately.
"""

import re
from typing import List, Pattern, Tuple

import structlog

logger = structlog.get_logger(__name__)

MIN_SPLIT_LENGTH = 30

_QUESTION_WORDS = (
    "what", "how", "why", "when", "where", "who",
    "can", "do", "will", "would", "should",
    # Hinglish
    "kya", "kaise", "kyun", "kab", "kahan", "kaun",
)
_QUESTION_WORD_RE = re.compile(r"\b(?:" + "|".join(_QUESTION_WORDS) + r")\b", re.IGNORECASE)
_COMPLETE_QUESTION_RE = re.compile(
    r"\b(?:" + "|".join(_QUESTION_WORDS) + r")\b[^.!?]*(?:[.!?]|$)",
    re.IGNORECASE,
)

# Tried in order; the first one producing two or more real questions wins.
_SEPARATORS: Tuple[Pattern[str], ...] = (
    re.compile(r"\?\s+(?=[A-Z])"),
    re.compile(r"\.\s+(?=[A-Z])"),
    re.compile(r"\s(?i:and)\s+(?=[A-Z])"),
    re.compile(r"\s(?i:aur)\s+(?=[A-Z])"),
    re.compile(r";\s+"),
    re.compile(
        r"\sand\s+(?=why|what|how|when|where|who|can|do|will|would|should)",
        re.IGNORECASE,
    ),
)

_CUSTOMER_SAID_RE = re.compile(r'Customer said:\s*"([^"]+)"', re.IGNORECASE)


def _looks_like_question(fragment: str) -> bool:
    return len(fragment) > 10 and ("?" in fragment or len(fragment) > 20)


def split_questions(text: str) -> List[str]:
    """
    Split `text` into candidate questions, in the order they were asked.

    Never returns an empty list: when nothing qualifies the whole (trimmed)
    input comes back as the only question.
    """
    stripped = (text or "").strip()
    if len(stripped) < MIN_SPLIT_LENGTH:
        return [stripped]

    for separator in _SEPARATORS:
        fragments = [f.strip() for f in separator.split(stripped) if f and f.strip()]
        if len(fragments) >= 2 and all(_looks_like_question(f) for f in fragments):
            logger.debug("Split compound question", parts=len(fragments), separator=separator.pattern)
            return fragments

    if len(_QUESTION_WORD_RE.findall(stripped)) > 1:
        pieces = [m.group(0).strip() for m in _COMPLETE_QUESTION_RE.finditer(stripped)]
        questions = [
            p for p in pieces
            if (len(p) > 15 and p.endswith("?")) or len(p) > 20
        ]
        if questions:
            logger.debug("Split compound question by question words", parts=len(questions))
            return questions

    return [stripped]


def extract_user_question(transcript: str) -> str:
    """Unwrap `Customer said: "..."` prompts built by the frontend."""
    if not transcript:
        return ""
    match = _CUSTOMER_SAID_RE.search(transcript)
    if match:
        return match.group(1).strip()
    return transcript.strip()
