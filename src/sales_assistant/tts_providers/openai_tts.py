from __future__ import annotations

import asyncio
from typing import Any, Optional

import structlog

from src.sales_assistant.config import get_config
from src.sales_assistant.tts_providers.base import TTSProvider

logger = structlog.get_logger(__name__)


class OpenAITTS(TTSProvider):
    """
    OpenAI Text-to-Speech provider (non-streaming).

    Synthesizes the whole text as one MP3.
    """

    def __init__(self, config: Optional[Any] = None):
        self.config = config or get_config()

    async def synthesize(
        self,
        text: str,
        *,
        voice_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> bytes:
        # `voice_id` and `language` are ignored; OpenAI picks the accent from the text.
        from openai import OpenAI  # Local import to keep module import light

        client = OpenAI(api_key=self.config.openai_api_key)

        def _call() -> bytes:
            resp = client.audio.speech.create(
                model=self.config.openai_tts_model,
                voice=self.config.openai_tts_voice,
                input=text,
                response_format="mp3",
            )
            # SDKs have varied over time; handle several shapes.
            data = getattr(resp, "content", None)
            if isinstance(data, (bytes, bytearray)):
                return bytes(data)
            read = getattr(resp, "read", None)
            if callable(read):
                return read()
            return bytes(resp)

        return await asyncio.to_thread(_call)
