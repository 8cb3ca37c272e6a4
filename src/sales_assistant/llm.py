"""
Generative completion client with OpenAI-compatible API.

Provides:
- Startup model validation
- Single-shot and streaming completions
- Error mapping (quota vs. other failures)
- Tolerant structured-JSON extraction from completion text
"""

import json
import re
from typing import Any, AsyncIterator, Dict, Optional

import httpx
import openai
import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.sales_assistant.config import get_config

logger = structlog.get_logger(__name__)

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROQ_BASE_URL = "https://api.groq.com/openai/v1"


class CompletionError(Exception):
    """Raised when the generative completion call fails."""
    pass


class QuotaExceededError(CompletionError):
    """Raised on rate-limit or exhausted-quota responses."""
    pass


class MalformedCompletionError(CompletionError):
    """Raised when no structured payload can be recovered from a completion."""
    pass


class KeyHighlights(BaseModel):
    """Customer facts worth carrying into the CRM."""

    model_config = ConfigDict(populate_by_name=True)

    budget: Optional[str] = None
    timeline: Optional[str] = None
    objections: Optional[str] = None
    important_info: Optional[str] = Field(default=None, alias="importantInfo")

    @field_validator("budget", "timeline", "objections", "important_info", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            value = ", ".join(str(v) for v in value if v is not None and str(v).strip())
        value = str(value).strip()
        if not value or value.lower() in ("null", "none", "n/a"):
            return None
        return value

    def filtered(self) -> Dict[str, str]:
        """camelCase dict without empty fields."""
        return {
            key: value
            for key, value in self.model_dump(by_alias=True).items()
            if value
        }


class CompletionPayload(BaseModel):
    """Structured reply: labeled options plus extracted highlights."""

    model_config = ConfigDict(populate_by_name=True)

    response: str
    key_highlights: KeyHighlights = Field(default_factory=KeyHighlights, alias="keyHighlights")

    @field_validator("key_highlights", mode="before")
    @classmethod
    def _default_highlights(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else {}


_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> Dict[str, Any]:
    """
    Recover a JSON object from completion text.

    Tries, in order: a fenced code block, the outermost `{...}` span, and the
    whole text. Raises MalformedCompletionError if none parses to an object.
    """
    if not text or not text.strip():
        raise MalformedCompletionError("Empty completion")

    candidates = []
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    obj = _OBJECT_RE.search(text)
    if obj:
        candidates.append(obj.group(0))
    candidates.append(text)

    for candidate in candidates:
        try:
            data = json.loads(candidate.strip())
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(data, dict):
            return data

    raise MalformedCompletionError(f"No JSON object in completion: {text[:120]!r}")


def parse_completion_payload(text: str) -> CompletionPayload:
    data = extract_json(text)
    try:
        return CompletionPayload.model_validate(data)
    except ValidationError as e:
        raise MalformedCompletionError(f"Invalid completion payload: {e}") from e


def is_quota_error(error: BaseException) -> bool:
    if isinstance(error, openai.RateLimitError):
        return True
    if getattr(error, "status_code", None) == 429:
        return True
    return getattr(error, "code", None) == "insufficient_quota"


def _map_error(error: Exception) -> CompletionError:
    if is_quota_error(error):
        return QuotaExceededError(str(error))
    return CompletionError(str(error))


async def validate_model(api_key: str, model_name: str, base_url: str = OPENAI_BASE_URL) -> bool:
    """
    Validate that the configured model exists.

    Calls GET {base_url}/models to check.

    Raises:
        SystemExit: If the model doesn't exist (fail fast)
    """
    logger.info("Validating LLM model", model=model_name, base_url=base_url)

    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(
                f"{base_url}/models",
                headers={"Authorization": f"Bearer {api_key}"},
                timeout=10.0,
            )
        except httpx.RequestError as e:
            logger.error("Failed to connect to LLM API", error=str(e))
            raise SystemExit(
                f"Failed to connect to LLM API: {e}\n"
                "Check your network connection and API key."
            )

    if response.status_code != 200:
        logger.error(
            "Failed to fetch LLM models",
            status_code=response.status_code,
            response=response.text[:200],
        )
        raise SystemExit(
            f"Failed to validate LLM model. API returned status {response.status_code}. "
            "Check your API key."
        )

    model_ids = [m.get("id") for m in response.json().get("data", [])]
    if model_name not in model_ids:
        available = ", ".join(sorted(str(m) for m in model_ids)[:10])
        logger.error("LLM model not found", requested_model=model_name, available_models=available)
        raise SystemExit(
            f"Model '{model_name}' not found in available models.\n"
            f"Available models include: {available}\n"
            "Please update your .env file."
        )

    logger.info("LLM model validated successfully", model=model_name)
    return True


class CompletionClient:
    """
    Completion client for OpenAI or Groq (OpenAI-compatible API).
    """

    def __init__(self, config: Optional[Any] = None, client: Optional[AsyncOpenAI] = None):
        self.config = config or get_config()

        if self.config.llm_provider == "groq":
            self.api_key = self.config.groq_api_key
            self.base_url = GROQ_BASE_URL
        else:
            self.api_key = self.config.openai_api_key
            self.base_url = OPENAI_BASE_URL

        self.model = self.config.llm_model
        self._client = client or AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)

    async def validate_model(self) -> bool:
        return await validate_model(self.api_key, self.model, self.base_url)

    @staticmethod
    def _messages(system: str, user: str) -> list:
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def complete(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 250,
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> str:
        """Single-shot completion. Raises CompletionError (or QuotaExceededError)."""
        try:
            response = await self._client.chat.completions.create(
                model=model or self.model,
                messages=self._messages(system, user),
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except openai.OpenAIError as e:
            logger.error("LLM completion failed", error=str(e), quota=is_quota_error(e))
            raise _map_error(e) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def complete_streaming(
        self,
        system: str,
        user: str,
        *,
        max_tokens: int = 250,
        temperature: float = 0.8,
        model: Optional[str] = None,
    ) -> AsyncIterator[str]:
        """Stream text deltas as they are generated."""
        try:
            stream = await self._client.chat.completions.create(
                model=model or self.model,
                messages=self._messages(system, user),
                max_tokens=max_tokens,
                temperature=temperature,
                stream=True,
            )
            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except openai.OpenAIError as e:
            logger.error("LLM streaming failed", error=str(e), quota=is_quota_error(e))
            raise _map_error(e) from e


# Singleton instance
_llm_instance: Optional[CompletionClient] = None


def get_llm() -> CompletionClient:
    """Get or create the completion client singleton."""
    global _llm_instance

    if _llm_instance is None:
        _llm_instance = CompletionClient()

    return _llm_instance
