"""Response Pipeline Orchestration.

One request, one reply:

    transcript -> (sentiment || DB search || highlights) -> reply selection
               -> synthesis -> response

- The DB search races a short grace window. A hit inside the window answers
  from the corpus and the generative call is never issued.
- A miss (or a slow search) goes straight to a streaming completion with
  conversation history only. Early synthesis can start speaking Response A
  before the completion ends.
- Sentiment and highlights are enrichments: awaited with short soft timeouts,
  dropped when late, never aborted.

Failure handling:
- Quota/rate limit on the completion -> fixed three-option fallback reply
- Any other completion failure -> terse failure string
- Anything unexpected -> a single pipeline-failure result, no partial data
"""

import asyncio
import json
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Set, Tuple, TypeVar

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from src.sales_assistant.config import Config, get_config
from src.sales_assistant.corpus import get_corpus_store
from src.sales_assistant.crm import CrmSync
from src.sales_assistant.highlights import HighlightExtractor
from src.sales_assistant.llm import (
    CompletionClient,
    CompletionPayload,
    QuotaExceededError,
    get_llm,
    parse_completion_payload,
)
from src.sales_assistant.matcher import QuestionMatch, TieredMatcher
from src.sales_assistant.options import FAILURE_REPLY, FALLBACK_REPLY, first_option_text
from src.sales_assistant.prompts import (
    general_system_prompt,
    general_user_prompt,
    sales_system_prompt,
    sales_user_prompt,
    structured,
    support_system_prompt,
    support_user_prompt,
)
from src.sales_assistant.sentiment import Sentiment, SentimentAnalyzer
from src.sales_assistant.splitter import extract_user_question, split_questions
from src.sales_assistant.streaming import EarlySynthesisTrigger
from src.sales_assistant.tts import TTSManager, get_tts, to_data_url

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PIPELINE_FAILURE = "Voice pipeline failed"
# Room for the JSON envelope and the highlight fields.
STRUCTURED_EXTRA_TOKENS = 150


class HistoryTurn(BaseModel):
    """One earlier exchange: what the customer said and what we answered."""

    model_config = ConfigDict(populate_by_name=True)

    user_input: str = Field(default="", validation_alias=AliasChoices("userInput", "user_input"))
    prior_response: str = Field(
        default="",
        validation_alias=AliasChoices("priorResponse", "predatorResponse", "prior_response"),
    )

    @field_validator("user_input", "prior_response", mode="before")
    @classmethod
    def _text(cls, value: Any) -> str:
        return "" if value is None else str(value)


class PipelineRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcript: str = ""
    mode: str = "sales"
    language: str = "en-US"
    conversation_history: List[HistoryTurn] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conversationHistory", "conversation_history"),
    )
    voice: Optional[str] = None
    force: bool = False
    contact_email: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contactEmail", "contact_email", "email"),
    )

    @field_validator("transcript", mode="before")
    @classmethod
    def _transcript(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("mode", mode="before")
    @classmethod
    def _mode(cls, value: Any) -> str:
        return "support" if str(value or "").strip().lower() == "support" else "sales"

    @field_validator("language", mode="before")
    @classmethod
    def _language(cls, value: Any) -> str:
        return str(value).strip() if value else "en-US"

    @field_validator("conversation_history", mode="before")
    @classmethod
    def _history(cls, value: Any) -> List[Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except (json.JSONDecodeError, ValueError):
                return []
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, (dict, HistoryTurn))]


@dataclass
class PipelineResult:
    transcript: str = ""
    response_text: str = ""
    audio: Optional[bytes] = None
    key_highlights: Dict[str, str] = field(default_factory=dict)
    sentiment: Optional[Sentiment] = None
    meta: Dict[str, Any] = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None

    @classmethod
    def failure(cls) -> "PipelineResult":
        return cls(success=False, error=PIPELINE_FAILURE)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error or PIPELINE_FAILURE}

        return {
            "transcript": self.transcript,
            "responseText": self.response_text,
            "audio": to_data_url(self.audio),
            "keyHighlights": self.key_highlights,
            "sentiment": self.sentiment.to_dict() if self.sentiment else None,
            "meta": self.meta,
            "success": True,
        }


class ResponsePipeline:
    """
    Per-request orchestrator. Stateless between requests apart from the
    shared match cache held by the matcher.
    """

    def __init__(
        self,
        matcher: TieredMatcher,
        llm: CompletionClient,
        tts: TTSManager,
        sentiment: Optional[SentimentAnalyzer] = None,
        highlights: Optional[HighlightExtractor] = None,
        crm: Optional[CrmSync] = None,
        config: Optional[Config] = None,
    ):
        self.config = config or get_config()
        self.matcher = matcher
        self.llm = llm
        self.tts = tts
        self.sentiment = sentiment or SentimentAnalyzer(llm, self.config)
        self.highlights = highlights or HighlightExtractor(llm, self.config)
        self.crm = crm or CrmSync(self.config)
        self._background: Set[asyncio.Task] = set()

    # -- entry point --------------------------------------------------------

    async def run(self, request: PipelineRequest) -> PipelineResult:
        try:
            return await self._run(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Voice pipeline failed", error=str(e))
            return PipelineResult.failure()

    async def _run(self, request: PipelineRequest) -> PipelineResult:
        started = time.time()
        transcript = request.transcript.strip()
        if not transcript:
            return PipelineResult(meta={"message": "No transcript provided"})

        question = extract_user_question(transcript)
        logger.info(
            "Pipeline started",
            mode=request.mode,
            language=request.language,
            force=request.force,
            transcript=question[:80],
        )

        sentiment_task = self._spawn(self.sentiment.analyze(question))
        meta: Dict[str, Any] = {"mode": request.mode, "language": request.language}
        trigger: Optional[EarlySynthesisTrigger] = None
        key_highlights: Dict[str, str] = {}

        if request.mode == "support":
            response_text, meta["source"] = await self._support_reply(request, transcript)
        else:
            highlights_task = self._spawn(self.highlights.detect(question, request.conversation_history))
            db_task = self._spawn(self._search(question, force=request.force))

            db_started = time.time()
            matches = await self._within(db_task, self.config.db_grace_seconds)
            meta["dbMs"] = round((time.time() - db_started) * 1000, 2)

            if matches:
                response_text = "\n\n".join(m.result.to_reply_text() for m in matches)
                meta["source"] = "database"
                meta["matches"] = [
                    {
                        "question": m.query,
                        "matchedQuestion": m.result.matched_question,
                        "similarity": round(m.result.similarity, 3),
                        "tier": m.result.tier,
                    }
                    for m in matches
                ]
                key_highlights = await self._within(
                    highlights_task, self.config.highlights_grace_seconds, default={}
                )
            else:
                if matches is None:
                    logger.info("DB search missed grace window", grace_s=self.config.db_grace_seconds)
                response_text, payload_highlights, trigger, meta["source"] = await self._generate(
                    request, question
                )
                background = await self._within(
                    highlights_task, self.config.highlights_grace_seconds, default={}
                )
                key_highlights = {**background, **payload_highlights}

        sentiment = await self._within(sentiment_task, self.config.sentiment_timeout_seconds)

        spoken = first_option_text(response_text)
        audio = await self._synthesize(spoken, request, trigger)
        meta["earlySynthesis"] = bool(trigger and trigger.fired)

        if request.contact_email and self.crm.enabled:
            self._spawn(
                self.crm.push(
                    request.contact_email,
                    key_highlights,
                    sentiment.to_dict() if sentiment else None,
                )
            )

        meta["totalMs"] = round((time.time() - started) * 1000, 2)
        logger.info(
            "Pipeline completed",
            source=meta.get("source"),
            total_ms=meta["totalMs"],
            has_audio=audio is not None,
            highlight_fields=sorted(key_highlights),
        )

        return PipelineResult(
            transcript=transcript,
            response_text=response_text,
            audio=audio,
            key_highlights=key_highlights,
            sentiment=sentiment,
            meta=meta,
        )

    # -- reply paths --------------------------------------------------------

    async def _search(self, question: str, *, force: bool = False) -> List[QuestionMatch]:
        questions = split_questions(question)
        try:
            return await self.matcher.match_many(questions, force=force)
        except Exception as e:
            logger.warning("DB search failed", error=str(e))
            return []

    async def _generate(
        self,
        request: PipelineRequest,
        question: str,
    ) -> Tuple[str, Dict[str, str], Optional[EarlySynthesisTrigger], str]:
        trigger: Optional[EarlySynthesisTrigger] = None
        try:
            if request.force:
                payload = await self.generate_reply(request, question)
            else:
                trigger = EarlySynthesisTrigger(
                    lambda text: self.tts.synthesize(text, request.voice, request.language),
                    min_words=self.config.early_tts_min_words,
                )
                payload = await self._stream_reply(request, question, trigger)
        except QuotaExceededError as e:
            logger.error("Completion quota exceeded, using fallback reply", error=str(e))
            return FALLBACK_REPLY, {}, None, "fallback"
        except Exception as e:
            logger.error("Completion failed", error=str(e), error_type=type(e).__name__)
            return FAILURE_REPLY, {}, None, "error"

        return payload.response, payload.key_highlights.filtered(), trigger, "generative"

    async def _stream_reply(
        self,
        request: PipelineRequest,
        question: str,
        trigger: EarlySynthesisTrigger,
    ) -> CompletionPayload:
        system = structured(
            general_system_prompt(
                request.conversation_history,
                request.language,
                self.config.max_history_turns,
            )
        )
        user = general_user_prompt(question, request.language)

        async for delta in self.llm.complete_streaming(
            system,
            user,
            max_tokens=self.config.sales_max_tokens + STRUCTURED_EXTRA_TOKENS,
            temperature=self.config.sales_temperature,
        ):
            trigger.feed(delta)

        return trigger.finish()

    async def generate_reply(self, request: PipelineRequest, question: Optional[str] = None) -> CompletionPayload:
        """
        Non-streaming structured reply seeded with related corpus answers.

        Slower than the streaming path (it scans the corpus for examples), so
        it is only used on forced re-searches.
        """
        question = question or extract_user_question(request.transcript)
        related = await self.matcher.related_questions(question)
        history = request.conversation_history
        max_turns = self.config.max_history_turns

        if related:
            system = sales_system_prompt(related, history, request.language, max_turns)
            user = sales_user_prompt(question, request.language)
        else:
            system = general_system_prompt(history, request.language, max_turns)
            user = general_user_prompt(question, request.language)

        logger.debug("Generating reply with related context", related=len(related))
        raw = await self.llm.complete(
            structured(system),
            user,
            max_tokens=self.config.sales_max_tokens + STRUCTURED_EXTRA_TOKENS,
            temperature=self.config.sales_temperature,
        )
        return parse_completion_payload(raw)

    async def _support_reply(self, request: PipelineRequest, transcript: str) -> Tuple[str, str]:
        try:
            text = await self.llm.complete(
                support_system_prompt(request.language),
                support_user_prompt(transcript, request.language),
                max_tokens=self.config.support_max_tokens,
                temperature=self.config.support_temperature,
                model=self.config.support_model,
            )
        except QuotaExceededError as e:
            logger.error("Completion quota exceeded, using fallback reply", error=str(e))
            return FALLBACK_REPLY, "fallback"
        except Exception as e:
            logger.error("Support completion failed", error=str(e), error_type=type(e).__name__)
            return FAILURE_REPLY, "error"
        return text.strip(), "support"

    # -- synthesis ----------------------------------------------------------

    async def _synthesize(
        self,
        text: str,
        request: PipelineRequest,
        trigger: Optional[EarlySynthesisTrigger],
    ) -> Optional[bytes]:
        if trigger is not None and trigger.future is not None:
            try:
                audio = await asyncio.wait_for(
                    asyncio.shield(trigger.future),
                    timeout=self.config.early_tts_grace_seconds,
                )
            except asyncio.TimeoutError:
                logger.info("Early synthesis late, synthesizing full text")
                audio = None
            if audio:
                return audio

        if not text:
            return None
        return await self.tts.synthesize(text, request.voice, request.language)

    # -- task helpers -------------------------------------------------------

    def _spawn(self, coro: Awaitable[T]) -> "asyncio.Task[T]":
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    async def _within(task: "asyncio.Task[T]", timeout: float, default: Any = None) -> Any:
        """Result of `task` if it finishes within `timeout`, else `default`. Never cancels."""
        done, _pending = await asyncio.wait({task}, timeout=timeout)
        if task not in done:
            return default
        if task.exception() is not None:
            logger.warning("Background task failed", error=str(task.exception()))
            return default
        return task.result()


def create_pipeline(config: Optional[Config] = None) -> ResponsePipeline:
    """Wire the default pipeline from configuration."""
    config = config or get_config()
    matcher = TieredMatcher(get_corpus_store(config.corpus_path), config=config)
    return ResponsePipeline(matcher=matcher, llm=get_llm(), tts=get_tts(), config=config)
