"""
Static word tables used by the similarity scorer and the matcher.

Kept apart from the scoring algorithm so the tables can be tuned (and tested)
without touching matching logic. Bump `version` whenever a table changes so
cached scores and calibration runs can be tied to a table revision.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Tuple


STOP_WORDS: FrozenSet[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by",
        "is", "are", "was", "were", "be", "been", "have", "has", "had", "do", "does", "did",
        "will", "would", "could", "should", "may", "might", "can", "you", "i", "me", "my",
        "we", "us", "our", "they", "them", "their", "this", "that", "these", "those",
        "hello", "hi", "how", "listening", "talking", "please", "thank", "thanks",
        "yes", "no", "ok", "okay", "sure", "alright", "good", "bad", "great", "nice",
        "very", "really", "quite", "just", "only", "also", "too", "so", "then", "now",
        "here", "there", "where", "when", "why", "what", "who", "which", "whose",
    }
)

# Plural/possessive/gerund collapse applied to both sides before tokenizing.
SURFACE_FORMS: Tuple[Tuple[str, str], ...] = (
    (r"\bcompetitors\b", "competitor"),
    (r"\bcompetitor's\b", "competitor"),
    (r"\bmatching\b", "match"),
    (r"\boffers\b", "offer"),
)

SYNONYMS: Dict[str, Tuple[str, ...]] = {
    "different": ("unique", "distinct", "special", "unlike"),
    "free": ("complimentary", "no-cost", "gratis", "zero-cost"),
    "solution": ("solutions", "service", "services", "product", "products"),
    "make": ("makes", "create", "creates"),
    "you": ("your", "yours", "yourself"),
    "what": ("how", "why"),
    "from": ("than", "compared to", "versus"),
    "risk": ("risks", "endanger", "jeopardize"),
    "career": ("careers", "job", "jobs", "profession"),
    "choosing": ("choose", "chose", "select", "selecting"),
    "should": ("shall", "would", "could", "must", "need"),
    "writing": ("written", "document", "documentation", "email", "text", "paper", "papers"),
    "send": ("sending", "email", "provide", "give", "share", "deliver", "forward"),
    "everything": ("all", "complete", "full", "entire", "total", "whole"),
    "information": ("info", "details", "data", "facts", "material", "content"),
    "document": ("documents", "paper", "papers", "file", "files", "report", "summary"),
    "written": ("writing", "text", "documentation", "email", "printed", "formal"),
    "talk": ("speak", "discuss", "chat", "conversation", "call"),
    "online": ("internet", "web", "website", "digital", "web-based"),
    "checking": ("check", "look", "search", "find", "verify"),
    "instead": ("rather", "alternative", "option", "choice"),
    "me": ("my", "myself", "i"),
    "can": ("could", "able", "possible", "capable"),
    "competitor": ("competitors", "rival", "rivals", "opponent", "opponents", "competition", "competing"),
    "competitors": ("competitor", "rival", "rivals", "opponent", "opponents", "competition", "competing"),
    "match": ("matches", "matching", "equal", "equals", "meet", "meets", "beat", "beats", "compete", "competing"),
    "offer": ("offers", "deal", "deals", "proposal", "proposals", "quote", "quotes", "price", "pricing"),
    "sale": ("sales", "selling", "sell", "sells", "sold", "purchase", "buy", "transaction"),
    "sales": ("sale", "selling", "sell", "sells", "sold", "purchases", "buying", "transactions"),
    "selling": ("sale", "sales", "sell", "sells", "sold", "pitching", "presenting"),
    "sell": ("sale", "sales", "selling", "sells", "sold", "pitch", "present", "offer"),
    "process": ("procedure", "method", "approach", "system", "workflow"),
    "customer": ("client", "buyer", "prospect", "lead", "purchaser"),
    "client": ("customer", "buyer", "prospect", "lead", "purchaser"),
    "buyer": ("customer", "client", "prospect", "lead", "purchaser"),
    "product": ("products", "service", "services", "solution", "solutions", "offer", "offering"),
    "service": ("services", "product", "products", "solution", "solutions", "offer", "offering"),
    "price": ("pricing", "cost", "costs", "fee", "fees", "rate", "rates", "charge", "charges"),
    "cost": ("price", "pricing", "fee", "fees", "rate", "rates", "charge", "charges", "costs"),
    "value": ("worth", "benefit", "benefits", "advantage", "advantages", "merit", "merits"),
    "benefit": ("value", "worth", "advantage", "merit", "benefits", "advantages", "merits"),
    "training": ("education", "learning", "development", "coaching", "mentoring", "teaching"),
    "skill": ("skills", "ability", "abilities", "talent", "talents", "capability", "capabilities"),
    "technique": ("techniques", "method", "methods", "approach", "approaches", "strategy", "strategies"),
    "strategy": ("strategies", "approach", "approaches", "method", "methods", "plan", "plans"),
    "goal": ("goals", "objective", "objectives", "target", "targets", "aim", "aims"),
    "target": ("targets", "goal", "goals", "objective", "objectives", "aim", "aims"),
    "result": ("results", "outcome", "outcomes", "consequence", "consequences", "effect", "effects"),
    "success": ("successful", "achievement", "achievements", "accomplishment", "accomplishments"),
    "help": ("helps", "helping", "assist", "assists", "assisting", "support", "supports", "supporting"),
    "assist": ("help", "helps", "helping", "support", "supports", "supporting", "aid", "aids", "aiding"),
    "support": ("help", "helps", "helping", "assist", "assists", "assisting", "aid", "aids", "aiding"),
}


@dataclass(frozen=True)
class Lexicon:
    """A versioned bundle of the tables above."""

    version: str
    stop_words: FrozenSet[str] = STOP_WORDS
    synonyms: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(SYNONYMS))
    surface_forms: Tuple[Tuple[str, str], ...] = SURFACE_FORMS

    def is_stop_word(self, word: str) -> bool:
        return word.lower() in self.stop_words

    def synonyms_for(self, word: str) -> Tuple[str, ...]:
        return self.synonyms.get(word.lower(), ())

    def unify_surface_forms(self, text: str) -> str:
        for pattern, replacement in self.surface_forms:
            text = re.sub(pattern, replacement, text)
        return text


DEFAULT_LEXICON = Lexicon(version="2024.1")
