"""
Tests for traffic-light sentiment.
"""

import pytest

from conftest import FakeCompletionClient
from src.sales_assistant.config import get_config
from src.sales_assistant.llm import CompletionError
from src.sales_assistant.sentiment import SentimentAnalyzer, classify


class TestClassify:
    @pytest.mark.parametrize(
        "score,color,label",
        [
            (0.8, "green", "positive"),
            (0.11, "green", "positive"),
            (0.1, "yellow", "neutral"),
            (0.0, "yellow", "neutral"),
            (-0.1, "yellow", "neutral"),
            (-0.5, "red", "negative"),
        ],
    )
    def test_thresholds(self, score, color, label):
        result = classify(score, 0.4)
        assert result.color == color
        assert result.sentiment == label

    def test_to_dict_omits_missing_error(self):
        assert classify(0.5, 0.2).to_dict() == {
            "score": 0.5,
            "magnitude": 0.2,
            "color": "green",
            "sentiment": "positive",
        }


class TestSentimentAnalyzer:
    @pytest.mark.asyncio
    async def test_scores_text(self):
        llm = FakeCompletionClient(reply='{"score": -0.7, "magnitude": 1.2}')
        result = await SentimentAnalyzer(llm, get_config()).analyze("This is far too expensive.")

        assert result.color == "red"
        assert result.magnitude == 1.2
        kwargs = llm.complete.await_args.kwargs
        assert kwargs["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_empty_text(self):
        llm = FakeCompletionClient()
        result = await SentimentAnalyzer(llm, get_config()).analyze("  ")

        assert result.to_dict()["error"] == "Empty text"
        assert result.color == "yellow"
        assert llm.complete.await_count == 0

    @pytest.mark.asyncio
    async def test_service_failure(self):
        llm = FakeCompletionClient(error=CompletionError("down"))
        assert await SentimentAnalyzer(llm, get_config()).analyze("great") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reply", ["not json", '{"score": 3.0}', '{"magnitude": 0.5}'])
    async def test_invalid_reply(self, reply):
        llm = FakeCompletionClient(reply=reply)
        assert await SentimentAnalyzer(llm, get_config()).analyze("great") is None
