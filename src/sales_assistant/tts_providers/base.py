from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class TTSProvider(ABC):
    @abstractmethod
    async def synthesize(
        self,
        text: str,
        *,
        voice_id: Optional[str] = None,
        language: Optional[str] = None,
    ) -> bytes:
        """Return MP3 bytes for `text`. Raises on failure."""
        raise NotImplementedError

    async def close(self) -> None:
        return None
