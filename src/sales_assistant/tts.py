from __future__ import annotations

import asyncio
import base64
from typing import Any, Dict, List, Optional

import structlog

from src.sales_assistant.config import get_config
from src.sales_assistant.tts_providers.base import TTSProvider
from src.sales_assistant.tts_providers.http_tts import HttpTTS
from src.sales_assistant.tts_providers.openai_tts import OpenAITTS

logger = structlog.get_logger(__name__)

VOICES: List[Dict[str, str]] = [
    {"id": "en-US-Wavenet-A", "label": "Male Voice (Wavenet A)"},
    {"id": "en-US-Wavenet-B", "label": "Male Voice (Wavenet B)"},
    {"id": "en-US-Wavenet-C", "label": "Female Voice (Wavenet C)"},
    {"id": "en-US-Wavenet-D", "label": "Male Voice (Wavenet D)"},
    {"id": "en-US-Wavenet-E", "label": "Female Voice (Wavenet E)"},
    {"id": "en-US-Wavenet-F", "label": "Female Voice (Wavenet F)"},
    {"id": "en-US-Standard-A", "label": "Male Voice (Standard A)"},
    {"id": "en-US-Standard-B", "label": "Male Voice (Standard B)"},
    {"id": "en-US-Standard-C", "label": "Female Voice (Standard C)"},
    {"id": "en-US-Standard-D", "label": "Male Voice (Standard D)"},
    {"id": "de-DE-Standard-A", "label": "German Female Voice (Standard A)"},
    {"id": "de-DE-Standard-B", "label": "German Male Voice (Standard B)"},
    {"id": "de-DE-Standard-C", "label": "German Female Voice (Standard C)"},
    {"id": "de-DE-Standard-D", "label": "German Male Voice (Standard D)"},
    {"id": "de-DE-Wavenet-A", "label": "German Female Voice (Wavenet A)"},
    {"id": "de-DE-Wavenet-B", "label": "German Male Voice (Wavenet B)"},
    {"id": "de-DE-Wavenet-C", "label": "German Female Voice (Wavenet C)"},
    {"id": "de-DE-Wavenet-D", "label": "German Male Voice (Wavenet D)"},
]
VALID_VOICE_IDS = frozenset(v["id"] for v in VOICES)


def voice_for_language(voice: Optional[str], language: Optional[str], config: Optional[Any] = None) -> str:
    """
    Resolve the voice to use for `language`.

    Unknown voices, and voices of the wrong language, fall back to the
    language default.
    """
    config = config or get_config()
    language = language or "en-US"
    default = config.default_german_voice if language == "de-DE" else config.default_voice

    voice = (voice or "").strip()
    if voice not in VALID_VOICE_IDS:
        return default
    if language in ("de-DE", "en-US") and not voice.startswith(language):
        return default
    return voice


def to_data_url(audio: Optional[bytes]) -> Optional[str]:
    if not audio:
        return None
    return "data:audio/mp3;base64," + base64.b64encode(audio).decode("ascii")


class TTSManager:
    """
    TTS manager with a pluggable provider system.

    - `openai`: OpenAI Audio Speech API
    - `http`: generic JSON speech service (honours voice ids)
    - `none`: synthesis disabled, every call yields no audio

    Synthesis failures are never fatal: they yield `None`.
    """

    def __init__(self, config: Optional[Any] = None, provider: Optional[TTSProvider] = None):
        self.config = config or get_config()
        self._provider: Optional[TTSProvider] = provider
        self._started = provider is not None

    def start(self) -> None:
        self._started = True
        tts = (self.config.tts_provider or "openai").strip().lower()

        if tts == "openai":
            self._provider = OpenAITTS(self.config)
            return

        if tts == "http":
            self._provider = HttpTTS(self.config)
            return

        if tts == "none":
            self._provider = None
            return

        raise ValueError(f"Unsupported TTS_PROVIDER: {self.config.tts_provider}")

    async def stop(self) -> None:
        if self._provider:
            await self._provider.close()
            self._provider = None

    async def synthesize(
        self,
        text: str,
        voice_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Optional[bytes]:
        if not text or not text.strip():
            return None

        if not self._started:
            self.start()

        provider = self._provider
        if provider is None:
            return None

        voice = voice_for_language(voice_id, language, self.config)
        try:
            audio = await provider.synthesize(text, voice_id=voice, language=language or "en-US")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("TTS failed", provider=type(provider).__name__, error=str(e))
            return None

        return audio or None


# Singleton instance
_tts_instance: Optional[TTSManager] = None


def get_tts() -> TTSManager:
    global _tts_instance

    if _tts_instance is None:
        _tts_instance = TTSManager()

    return _tts_instance
