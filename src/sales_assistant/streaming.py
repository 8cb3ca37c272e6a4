"""
Early speech synthesis from a still-streaming completion.

As deltas arrive the trigger watches for the first `Response A:` marker. Once
enough words follow it, the Response A segment is extracted and synthesis is
started in the background, exactly once per request. The running synthesis
is exposed as a future so the response stage can await it with a timeout.
"""

import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import structlog

from src.sales_assistant.llm import CompletionPayload, parse_completion_payload
from src.sales_assistant.options import (
    FIRST_MARKER_RE,
    LATER_MARKER_RE,
    LATER_REFERENCE_RE,
    collapse_whitespace,
)

logger = structlog.get_logger(__name__)

Synthesize = Callable[[str], Awaitable[Optional[bytes]]]

# A JSON payload, optionally inside a ```json fence.
_JSON_START_RE = re.compile(r"\s*(?:```(?:json)?\s*)?\{", re.IGNORECASE)
# End of a JSON string value: a quote preceded by an even number of backslashes.
_JSON_STRING_END_RE = re.compile(r'(?<!\\)(?:\\\\)*"')
_JSON_ESCAPE_RE = re.compile(r'\\(["\\/bfnrt])')
_JSON_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "",
    "f": " ",
    "n": " ",
    "r": " ",
    "t": " ",
}


@dataclass
class StreamState:
    """Per-request streaming state."""
    buffer: str = ""
    marker_end: Optional[int] = None
    fired: bool = False
    early_text: str = ""


def _unescape_json_fragment(text: str) -> str:
    return _JSON_ESCAPE_RE.sub(lambda m: _JSON_ESCAPES[m.group(1)], text)


class EarlySynthesisTrigger:
    def __init__(self, synthesize: Synthesize, min_words: int = 25):
        self._synthesize = synthesize
        self.min_words = min_words
        self.state = StreamState()
        self.future: Optional["asyncio.Task[Optional[bytes]]"] = None

    @property
    def fired(self) -> bool:
        return self.state.fired

    @property
    def text(self) -> str:
        return self.state.buffer

    def feed(self, delta: str) -> None:
        """Append a delta; may start synthesis. Never blocks."""
        if not delta:
            return

        state = self.state
        state.buffer += delta

        if state.marker_end is None:
            marker = FIRST_MARKER_RE.search(state.buffer)
            if marker is None:
                return
            state.marker_end = marker.end()

        if state.fired:
            return

        following = state.buffer[state.marker_end:]
        if len(following.split()) < self.min_words:
            return

        extract = self._extract(following)
        if not extract or LATER_REFERENCE_RE.search(extract):
            return

        self._fire(extract)

    def _extract(self, following: str) -> str:
        later = LATER_MARKER_RE.search(following)
        segment = following[:later.start()] if later else following

        if _JSON_START_RE.match(self.state.buffer):
            end = _JSON_STRING_END_RE.search(segment)
            if end:
                segment = segment[:end.end() - 1]
            segment = _unescape_json_fragment(segment)

        return collapse_whitespace(segment)

    def _fire(self, text: str) -> None:
        self.state.fired = True
        self.state.early_text = text
        logger.info("Early synthesis triggered", words=len(text.split()))
        self.future = asyncio.ensure_future(self._run(text))

    async def _run(self, text: str) -> Optional[bytes]:
        try:
            return await self._synthesize(text)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Early synthesis failed", error=str(e))
            return None

    def finish(self) -> CompletionPayload:
        """Parse the complete buffer. Raises MalformedCompletionError."""
        return parse_completion_payload(self.state.buffer)
