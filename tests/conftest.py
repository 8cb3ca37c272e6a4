"""
Pytest configuration and fixtures.
"""

import pytest
import os
from unittest.mock import AsyncMock, MagicMock, patch

from src.sales_assistant.sentiment import classify


@pytest.fixture(autouse=True)
def mock_env_vars():
    """Mock environment variables for tests."""
    env_vars = {
        "PORT": "7860",
        "LOG_LEVEL": "DEBUG",
        "LLM_PROVIDER": "openai",
        "OPENAI_API_KEY": "test_openai_key",
        "OPENAI_MODEL": "gpt-4o-mini",
        "TTS_PROVIDER": "none",
        "CRM_WEBHOOK_URL": "",
        "CORPUS_PATH": "data/sales_qa.json",
        "VALIDATE_MODEL_ON_STARTUP": "false",
    }

    with patch.dict(os.environ, env_vars):
        # Clear config cache
        from src.sales_assistant.config import get_config
        get_config.cache_clear()
        yield


def structured_chunks(words=30, highlights='{"timeline": "next quarter", "budget": null}'):
    """Stream deltas of a structured reply whose Response A has `words` words."""
    chunks = ['{"response": "Response A:']
    chunks.extend(f" w{i}" for i in range(1, words + 1))
    chunks.append('\\n\\nResponse B: Option two.\\n\\nResponse C: Option three.", ')
    chunks.append(f'"keyHighlights": {highlights}}}')
    return chunks


class FakeCompletionClient:
    """Stand-in for CompletionClient; records calls, never touches the network."""

    def __init__(self, *, reply="", stream_chunks=(), error=None, stream_error=None):
        self.reply = reply
        self.stream_chunks = list(stream_chunks)
        self.error = error
        self.stream_error = stream_error
        self.stream_calls = []
        self.complete = AsyncMock(side_effect=self._complete)

    async def _complete(self, system, user, **kwargs):
        if self.error is not None:
            raise self.error
        return self.reply

    async def complete_streaming(self, system, user, **kwargs):
        self.stream_calls.append((system, user, kwargs))
        for chunk in self.stream_chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def validate_model(self):
        return True


@pytest.fixture
def corpus_store():
    from src.sales_assistant.corpus import InMemoryCorpusStore, load_corpus, resolve_corpus_path

    return InMemoryCorpusStore(load_corpus(resolve_corpus_path("data/sales_qa.json")))


@pytest.fixture
def matcher(corpus_store):
    from src.sales_assistant.config import get_config
    from src.sales_assistant.matcher import TieredMatcher

    return TieredMatcher(corpus_store, config=get_config())


@pytest.fixture
def fake_tts():
    tts = MagicMock()
    tts.synthesize = AsyncMock(return_value=b"audio")
    tts.stop = AsyncMock()
    return tts


@pytest.fixture
def fake_sentiment():
    sentiment = MagicMock()
    sentiment.analyze = AsyncMock(return_value=classify(0.6, 0.9))
    return sentiment


@pytest.fixture
def fake_highlights():
    highlights = MagicMock()
    highlights.detect = AsyncMock(return_value={"budget": "10k"})
    return highlights


@pytest.fixture
def fake_crm():
    crm = MagicMock()
    crm.enabled = False
    crm.push = AsyncMock(return_value=True)
    return crm


@pytest.fixture
def make_pipeline(matcher, fake_tts, fake_sentiment, fake_highlights, fake_crm):
    """Build a ResponsePipeline around a fake completion client."""
    from src.sales_assistant.config import get_config
    from src.sales_assistant.pipeline import ResponsePipeline

    def _make(llm, config=None, **overrides):
        parts = {
            "matcher": matcher,
            "llm": llm,
            "tts": fake_tts,
            "sentiment": fake_sentiment,
            "highlights": fake_highlights,
            "crm": fake_crm,
        }
        parts.update(overrides)
        return ResponsePipeline(config=config or get_config(), **parts)

    return _make


@pytest.fixture
def fake_llm():
    """Factory for FakeCompletionClient."""
    return FakeCompletionClient


@pytest.fixture
def reply_chunks():
    return structured_chunks
