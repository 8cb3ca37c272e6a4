"""
Tests for the response pipeline.
"""

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.sales_assistant.config import get_config
from src.sales_assistant.highlights import HighlightExtractor
from src.sales_assistant.llm import CompletionError, QuotaExceededError
from src.sales_assistant.matcher import MatchResult, QuestionMatch
from src.sales_assistant.options import (
    FAILURE_REPLY,
    FALLBACK_REPLY,
    LabeledOption,
    parse_labeled_options,
)
from src.sales_assistant.pipeline import PipelineRequest, PipelineResult
from src.sales_assistant.sentiment import classify

PREMIUM_QUESTION = "What is your pricing for the premium package?"
UNMATCHED_QUESTION = "Tell me a joke about penguins and snowflakes"


async def _drain(pipeline):
    await asyncio.gather(*list(pipeline._background), return_exceptions=True)


def _request(transcript, **kwargs):
    return PipelineRequest.model_validate({"transcript": transcript, **kwargs})


class TestDatabasePath:
    @pytest.mark.asyncio
    async def test_hit_skips_generation(self, make_pipeline, fake_llm, fake_tts):
        llm = fake_llm(stream_chunks=["should not be used"])
        pipeline = make_pipeline(llm)

        result = await pipeline.run(_request(PREMIUM_QUESTION))

        assert result.success
        assert result.meta["source"] == "database"
        assert result.response_text.startswith("Response A: The premium package is 99 dollars")
        assert [o.label for o in parse_labeled_options(result.response_text)] == ["A", "B", "C"]
        assert llm.complete.await_count == 0
        assert llm.stream_calls == []
        assert result.key_highlights == {"budget": "10k"}
        fake_tts.synthesize.assert_awaited_once()
        spoken = fake_tts.synthesize.await_args.args[0]
        assert spoken.startswith("The premium package is 99 dollars")
        assert "Response" not in spoken

    @pytest.mark.asyncio
    async def test_compound_question_answers_each_part(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm())

        result = await pipeline.run(_request(f"{PREMIUM_QUESTION} Can you match competitor pricing?"))

        assert result.meta["source"] == "database"
        assert [m["matchedQuestion"] for m in result.meta["matches"]] == [
            PREMIUM_QUESTION,
            "Can you match competitor pricing?",
        ]
        assert len(result.response_text.split("\n\n")) == 2

    @pytest.mark.asyncio
    async def test_response_dict(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm())

        data = (await pipeline.run(_request(PREMIUM_QUESTION))).to_dict()

        assert data["success"] is True
        assert data["transcript"] == PREMIUM_QUESTION
        assert data["audio"].startswith("data:audio/mp3;base64,")
        assert data["sentiment"] == {
            "score": 0.6,
            "magnitude": 0.9,
            "color": "green",
            "sentiment": "positive",
        }
        assert data["meta"]["earlySynthesis"] is False
        assert "totalMs" in data["meta"]

    @pytest.mark.asyncio
    async def test_slow_database_falls_through_to_generation(self, make_pipeline, fake_llm, reply_chunks):
        async def slow_match(questions, force=False):
            await asyncio.sleep(0.3)
            result = MatchResult(
                matched_question=PREMIUM_QUESTION,
                answers=(LabeledOption("A", "late"),),
                category="Pricing",
                description="",
                similarity=1.0,
                tier="exact",
            )
            return [QuestionMatch(query=PREMIUM_QUESTION, result=result)]

        matcher = MagicMock()
        matcher.match_many = AsyncMock(side_effect=slow_match)
        llm = fake_llm(stream_chunks=reply_chunks(words=30))
        pipeline = make_pipeline(llm, config=replace(get_config(), db_grace_seconds=0.05), matcher=matcher)

        result = await pipeline.run(_request(PREMIUM_QUESTION))
        await _drain(pipeline)

        assert result.meta["source"] == "generative"
        assert "late" not in result.response_text
        assert len(llm.stream_calls) == 1


class TestGenerativePath:
    @pytest.mark.asyncio
    async def test_early_synthesis_used_for_audio(self, make_pipeline, fake_llm, fake_tts, reply_chunks):
        llm = fake_llm(stream_chunks=reply_chunks(words=30))
        pipeline = make_pipeline(llm)

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.success
        assert result.meta["source"] == "generative"
        assert result.meta["earlySynthesis"] is True
        assert result.response_text.startswith("Response A: w1 w2 w3")
        assert result.audio == b"audio"
        fake_tts.synthesize.assert_awaited_once_with(
            " ".join(f"w{i}" for i in range(1, 26)), None, "en-US"
        )

    @pytest.mark.asyncio
    async def test_late_early_synthesis_replaced_by_full_text(
        self, make_pipeline, fake_llm, fake_tts, reply_chunks
    ):
        async def synthesize(text, voice, language):
            if fake_tts.synthesize.await_count == 1:
                await asyncio.sleep(0.5)
                return b"early"
            return b"full"

        fake_tts.synthesize.side_effect = synthesize
        config = replace(get_config(), early_tts_grace_seconds=0.05)
        pipeline = make_pipeline(fake_llm(stream_chunks=reply_chunks(words=30)), config=config)

        result = await pipeline.run(_request(UNMATCHED_QUESTION))
        await asyncio.sleep(0.5)

        assert result.meta["earlySynthesis"] is True
        assert result.audio == b"full"
        assert fake_tts.synthesize.await_count == 2
        full_text = " ".join(f"w{i}" for i in range(1, 31))
        assert fake_tts.synthesize.await_args_list[1].args == (full_text, None, "en-US")

    @pytest.mark.asyncio
    async def test_highlights_merged(self, make_pipeline, fake_llm, reply_chunks):
        pipeline = make_pipeline(fake_llm(stream_chunks=reply_chunks(words=30)))

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.key_highlights == {"budget": "10k", "timeline": "next quarter"}

    @pytest.mark.asyncio
    async def test_short_reply_synthesized_after_stream(self, make_pipeline, fake_llm, fake_tts, reply_chunks):
        pipeline = make_pipeline(fake_llm(stream_chunks=reply_chunks(words=5)))

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.meta["earlySynthesis"] is False
        fake_tts.synthesize.assert_awaited_once_with("w1 w2 w3 w4 w5", None, "en-US")

    @pytest.mark.asyncio
    async def test_history_reaches_prompt(self, make_pipeline, fake_llm, reply_chunks):
        llm = fake_llm(stream_chunks=reply_chunks(words=30))
        pipeline = make_pipeline(llm)

        await pipeline.run(
            _request(
                UNMATCHED_QUESTION,
                conversationHistory=[{"userInput": "Do you ship?", "priorResponse": "Worldwide."}],
            )
        )

        system, user, kwargs = llm.stream_calls[0]
        assert "Customer: Do you ship?" in system
        assert "Your Response: Worldwide." in system
        assert UNMATCHED_QUESTION in user

    @pytest.mark.asyncio
    async def test_quota_error_yields_fallback_options(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm(stream_error=QuotaExceededError("quota exceeded")))

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.success
        assert result.meta["source"] == "fallback"
        assert result.response_text == FALLBACK_REPLY
        assert [o.label for o in parse_labeled_options(result.response_text)] == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_other_error_yields_failure_text(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm(stream_error=CompletionError("connection reset")))

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.success
        assert result.meta["source"] == "error"
        assert result.response_text == FAILURE_REPLY

    @pytest.mark.asyncio
    async def test_malformed_completion_yields_failure_text(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm(stream_chunks=["Response A: ", "no json here"]))

        result = await pipeline.run(_request(UNMATCHED_QUESTION))

        assert result.response_text == FAILURE_REPLY

    @pytest.mark.asyncio
    async def test_force_uses_single_shot_completion(self, make_pipeline, fake_llm, fake_tts):
        reply = json.dumps(
            {
                "response": "Response A: Penguins love a deal.\nResponse B: Two.\nResponse C: Three.",
                "keyHighlights": {"objections": "too cold"},
            }
        )
        llm = fake_llm(reply=reply)
        pipeline = make_pipeline(llm)

        result = await pipeline.run(_request(UNMATCHED_QUESTION, force=True))

        assert result.meta["source"] == "generative"
        assert llm.stream_calls == []
        assert llm.complete.await_count == 1
        assert result.key_highlights == {"budget": "10k", "objections": "too cold"}
        fake_tts.synthesize.assert_awaited_once_with("Penguins love a deal.", None, "en-US")


class TestEnrichment:
    @pytest.mark.asyncio
    async def test_highlight_failure_gives_empty_highlights(self, make_pipeline, fake_llm):
        llm = fake_llm(error=CompletionError("down"))
        pipeline = make_pipeline(llm, highlights=HighlightExtractor(llm, get_config(), max_retries=0))

        result = await pipeline.run(_request(PREMIUM_QUESTION))

        assert result.success
        assert result.key_highlights == {}

    @pytest.mark.asyncio
    async def test_slow_sentiment_dropped(self, make_pipeline, fake_llm):
        async def slow(text):
            await asyncio.sleep(0.5)
            return classify(0.9)

        sentiment = MagicMock()
        sentiment.analyze = AsyncMock(side_effect=slow)
        pipeline = make_pipeline(fake_llm(), sentiment=sentiment)

        result = await pipeline.run(_request(PREMIUM_QUESTION))
        await _drain(pipeline)

        assert result.success
        assert result.sentiment is None
        assert result.to_dict()["sentiment"] is None

    @pytest.mark.asyncio
    async def test_crm_push_scheduled(self, make_pipeline, fake_llm, fake_crm):
        fake_crm.enabled = True
        pipeline = make_pipeline(fake_llm())

        await pipeline.run(_request(PREMIUM_QUESTION, contactEmail="lead@example.com"))
        await _drain(pipeline)

        fake_crm.push.assert_awaited_once_with(
            "lead@example.com",
            {"budget": "10k"},
            classify(0.6, 0.9).to_dict(),
        )

    @pytest.mark.asyncio
    async def test_crm_skipped_without_email(self, make_pipeline, fake_llm, fake_crm):
        fake_crm.enabled = True
        pipeline = make_pipeline(fake_llm())

        await pipeline.run(_request(PREMIUM_QUESTION))
        await _drain(pipeline)

        fake_crm.push.assert_not_awaited()


class TestOtherModes:
    @pytest.mark.asyncio
    async def test_empty_transcript(self, make_pipeline, fake_llm, fake_tts):
        pipeline = make_pipeline(fake_llm())

        result = await pipeline.run(_request("   "))

        assert result.success
        assert result.meta == {"message": "No transcript provided"}
        assert result.response_text == ""
        fake_tts.synthesize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_support_mode(self, make_pipeline, fake_llm, fake_highlights):
        llm = fake_llm(reply="  Sorry about that. Let me reset your password.  ")
        pipeline = make_pipeline(llm)

        result = await pipeline.run(_request("I cannot log in to my account", mode="support"))

        assert result.meta["source"] == "support"
        assert result.response_text == "Sorry about that. Let me reset your password."
        assert llm.complete.await_args.kwargs["model"] == get_config().support_model
        fake_highlights.detect.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_support_mode_quota(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm(error=QuotaExceededError("quota")))

        result = await pipeline.run(_request("I cannot log in to my account", mode="support"))

        assert result.response_text == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_customer_said_wrapper_unwrapped(self, make_pipeline, fake_llm):
        pipeline = make_pipeline(fake_llm())

        result = await pipeline.run(_request(f'Customer said: "{PREMIUM_QUESTION}"'))

        assert result.meta["source"] == "database"


class TestFailure:
    @pytest.mark.asyncio
    async def test_unexpected_error_returns_single_failure(self, make_pipeline, fake_llm, fake_tts):
        fake_tts.synthesize.side_effect = RuntimeError("speaker on fire")
        pipeline = make_pipeline(fake_llm())

        result = await pipeline.run(_request(PREMIUM_QUESTION))

        assert not result.success
        assert result.to_dict() == {"success": False, "error": "Voice pipeline failed"}

    def test_failure_factory(self):
        assert PipelineResult.failure().to_dict() == {"success": False, "error": "Voice pipeline failed"}


class TestPipelineRequest:
    def test_defaults(self):
        request = PipelineRequest.model_validate({"transcript": "hi"})
        assert request.mode == "sales"
        assert request.language == "en-US"
        assert request.conversation_history == []
        assert request.force is False

    def test_history_from_json_string(self):
        history = json.dumps(
            [{"userInput": "Do you ship?", "predatorResponse": "Worldwide."}, "junk", {"userInput": None}]
        )
        request = PipelineRequest.model_validate({"transcript": "hi", "conversationHistory": history})

        assert len(request.conversation_history) == 2
        assert request.conversation_history[0].prior_response == "Worldwide."
        assert request.conversation_history[1].user_input == ""

    @pytest.mark.parametrize("history", ["not json", {"userInput": "x"}, 42, None])
    def test_unusable_history(self, history):
        request = PipelineRequest.model_validate({"transcript": "hi", "conversationHistory": history})
        assert request.conversation_history == []

    @pytest.mark.parametrize(
        "mode,expected",
        [("support", "support"), ("SUPPORT", "support"), ("sales", "sales"), ("other", "sales"), (None, "sales")],
    )
    def test_mode(self, mode, expected):
        assert PipelineRequest.model_validate({"transcript": "hi", "mode": mode}).mode == expected

    def test_email_aliases(self):
        assert PipelineRequest.model_validate({"email": "a@b.c"}).contact_email == "a@b.c"
        assert PipelineRequest.model_validate({"contactEmail": "a@b.c"}).contact_email == "a@b.c"

    def test_null_transcript(self):
        assert PipelineRequest.model_validate({"transcript": None}).transcript == ""
