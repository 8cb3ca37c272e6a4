"""
Key-highlight extraction.

Pulls CRM-worthy facts out of what the customer said:
- budget: budget information mentioned
- timeline: timing / deadlines mentioned
- objections: concerns or push-back
- importantInfo: anything else worth remembering

Runs as a background task next to the reply path; a late or failed
extraction never holds up the response.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

import structlog
from pydantic import ValidationError

from src.sales_assistant.config import get_config
from src.sales_assistant.llm import (
    CompletionClient,
    CompletionError,
    KeyHighlights,
    QuotaExceededError,
    extract_json,
)

logger = structlog.get_logger(__name__)

__all__ = ["HighlightExtractor", "HighlightResult", "KeyHighlights"]

_SYSTEM_PROMPT = (
    "You are a key highlights extraction assistant. Extract only factual information "
    "mentioned by customers and return valid JSON."
)


@dataclass
class HighlightResult:
    """Result of an extraction attempt."""
    success: bool
    highlights: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None
    latency_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _build_prompt(question: str, history: Sequence[Any]) -> str:
    context = ""
    if history:
        context = "Previous conversation:\n"
        for turn in list(history)[-3:]:  # Last 3 turns for context
            context += f"Customer: {turn.user_input}\n"
        context += "\n"

    return f"""Analyze the following customer conversation and extract key highlights. Return ONLY a JSON object with these exact fields:

{{
  "budget": "budget information mentioned" or null,
  "timeline": "timeline information mentioned" or null,
  "objections": "customer objections or concerns mentioned" or null,
  "importantInfo": "other important information mentioned" or null
}}

IMPORTANT:
- Only extract information that is explicitly mentioned by the customer
- Return null for fields where no relevant information is found
- Keep extracted text concise but meaningful
- Do NOT make assumptions or add information not mentioned

{context}Customer query: "{question}"

Extract only the key highlights mentioned by the customer in this specific query."""


class HighlightExtractor:
    def __init__(self, llm: CompletionClient, config: Optional[Any] = None, max_retries: int = 1):
        self.llm = llm
        self.config = config or get_config()
        self.max_retries = max_retries

    async def extract(self, question: str, history: Sequence[Any] = ()) -> HighlightResult:
        """
        Extract key highlights from a customer question.

        Args:
            question: What the customer said this turn
            history: Previous turns for context

        Returns:
            HighlightResult with the filtered highlights or the error
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        if not question or not question.strip():
            return HighlightResult(success=True)

        prompt = _build_prompt(question, history)

        for attempt in range(self.max_retries + 1):
            try:
                raw = await self.llm.complete(
                    _SYSTEM_PROMPT,
                    prompt,
                    max_tokens=300,
                    temperature=0.1,
                )
                highlights = KeyHighlights.model_validate(extract_json(raw)).filtered()
            except QuotaExceededError as e:
                logger.warning("Highlight extraction skipped, quota exceeded", error=str(e))
                return HighlightResult(
                    success=False,
                    error=str(e),
                    latency_ms=(loop.time() - start_time) * 1000,
                )
            except (CompletionError, ValidationError) as e:
                logger.warning(
                    "Highlight extraction attempt failed",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    error=str(e),
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                return HighlightResult(
                    success=False,
                    error=str(e),
                    latency_ms=(loop.time() - start_time) * 1000,
                )

            latency_ms = (loop.time() - start_time) * 1000
            logger.info(
                "Highlight extraction completed",
                fields=sorted(highlights),
                latency_ms=round(latency_ms, 2),
            )
            return HighlightResult(success=True, highlights=highlights, latency_ms=latency_ms)

        return HighlightResult(success=False, error="Max retries exceeded")

    async def detect(self, question: str, history: Sequence[Any] = ()) -> Dict[str, str]:
        """Filtered highlights; `{}` on any failure."""
        try:
            result = await self.extract(question, history)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Highlight extraction failed", error=str(e))
            return {}
        return result.highlights if result.success else {}
