"""
Customer sentiment as a traffic light.

- green: positive (score > 0.1)
- yellow: neutral / small talk
- red: negative or objection (score < -0.1)
"""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from src.sales_assistant.config import get_config
from src.sales_assistant.llm import CompletionClient, CompletionError, extract_json

logger = structlog.get_logger(__name__)

POSITIVE_THRESHOLD = 0.1
NEGATIVE_THRESHOLD = -0.1

_SYSTEM_PROMPT = (
    "You are a sentiment analysis service. Score the overall sentiment of the customer's text. "
    'Return ONLY a JSON object: {"score": <float from -1.0 (negative) to 1.0 (positive)>, '
    '"magnitude": <float >= 0.0, overall emotional strength>}'
)


class SentimentScore(BaseModel):
    score: float = Field(ge=-1.0, le=1.0)
    magnitude: float = Field(default=0.0, ge=0.0)


@dataclass(frozen=True)
class Sentiment:
    score: float
    magnitude: float
    color: str
    sentiment: str
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["error"] is None:
            data.pop("error")
        return data


def classify(score: float, magnitude: float = 0.0) -> Sentiment:
    if score > POSITIVE_THRESHOLD:
        return Sentiment(score=score, magnitude=magnitude, color="green", sentiment="positive")
    if score < NEGATIVE_THRESHOLD:
        return Sentiment(score=score, magnitude=magnitude, color="red", sentiment="negative")
    return Sentiment(score=score, magnitude=magnitude, color="yellow", sentiment="neutral")


class SentimentAnalyzer:
    def __init__(self, llm: CompletionClient, config: Optional[Any] = None):
        self.llm = llm
        self.config = config or get_config()

    async def analyze(self, text: str) -> Optional[Sentiment]:
        """Traffic-light sentiment for `text`, or None if analysis failed."""
        if not text or not text.strip():
            return Sentiment(score=0.0, magnitude=0.0, color="yellow", sentiment="neutral", error="Empty text")

        try:
            raw = await self.llm.complete(_SYSTEM_PROMPT, text, max_tokens=50, temperature=0.0)
            parsed = SentimentScore.model_validate(extract_json(raw))
        except (CompletionError, ValidationError) as e:
            logger.warning("Sentiment analysis failed", error=str(e))
            return None

        result = classify(parsed.score, parsed.magnitude)
        logger.debug("Sentiment analyzed", score=result.score, color=result.color)
        return result
