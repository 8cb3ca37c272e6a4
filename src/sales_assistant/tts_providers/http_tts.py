from __future__ import annotations

import base64
import time
from typing import Any, Optional

import httpx
import structlog

from src.sales_assistant.config import get_config
from src.sales_assistant.tts_providers.base import TTSProvider

logger = structlog.get_logger(__name__)


class HttpTTS(TTSProvider):
    """
    TTS provider backed by a generic HTTP speech service.

    POSTs `{text, voice, languageCode, audioEncoding}` to `TTS_HTTP_ENDPOINT`.
    Accepts either raw `audio/*` bytes or JSON carrying base64 audio.
    """

    def __init__(self, config: Optional[Any] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or get_config()
        self._client = client

    async def synthesize(
        self,
        text: str,
        *,
        voice_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> bytes:
        url = self.config.tts_http_endpoint
        timeout_s = max(0.1, (self.config.tts_timeout_ms or 4000) / 1000.0)

        payload = {
            "text": text,
            "voice": voice_id or self.config.default_voice,
            "languageCode": language or "en-US",
            "audioEncoding": "MP3",
        }

        started = time.time()
        headers = {"Accept": "audio/mpeg"}
        if self._client is not None:
            resp = await self._client.post(url, json=payload, headers=headers, timeout=timeout_s)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(timeout_s)) as client:
                resp = await client.post(url, json=payload, headers=headers)
        resp.raise_for_status()

        logger.debug("HTTP TTS response", elapsed_ms=round((time.time() - started) * 1000, 2))

        content_type = (resp.headers.get("content-type") or "").lower()
        if content_type.startswith("audio/"):
            return resp.content

        data = resp.json()
        audio_b64 = data.get("audioContent") or data.get("audio_base64") or data.get("audio")
        if not audio_b64:
            raise ValueError("TTS service response missing audio")
        return base64.b64decode(audio_b64)
