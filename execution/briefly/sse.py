"""
Server-Sent Events helpers

Relays gateway chat-completion chunks to the browser as SSE frames
(``data: <json>\\n\\n`` terminated by ``data: [DONE]``) and provides the
matching incremental parser used by clients and tests to turn a byte
stream back into content deltas.
"""

import json
import logging
from typing import Iterable, Iterator

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def format_sse(payload) -> str:
    """Format a single SSE data frame."""
    if isinstance(payload, str):
        return f"data: {payload}\n\n"
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def _chunk_to_dict(chunk) -> dict:
    if isinstance(chunk, dict):
        return chunk
    if hasattr(chunk, "model_dump"):
        return chunk.model_dump(exclude_none=True)
    return dict(chunk)


def relay_chat_stream(chunks: Iterable, on_complete=None) -> Iterator[str]:
    """
    Re-encode gateway stream chunks as SSE frames.

    Args:
        chunks: Iterator of ChatCompletionChunk objects (or dicts)
        on_complete: Optional callback receiving the full assembled text
            once the stream ends normally

    Yields:
        SSE frames, always ending with ``data: [DONE]``
    """
    full_text = []
    try:
        for chunk in chunks:
            data = _chunk_to_dict(chunk)
            content = _delta_content(data)
            if content:
                full_text.append(content)
            yield format_sse(data)
    except Exception as e:
        # Headers are already sent, so the failure is reported in-band
        logger.error(f"Stream interrupted: {type(e).__name__}: {e}")
        yield format_sse({"error": "AI service error"})
    else:
        if on_complete is not None:
            try:
                on_complete("".join(full_text))
            except Exception as e:
                logger.warning(f"Stream completion callback failed: {e}")
    yield format_sse(DONE_SENTINEL)


def _delta_content(payload: dict):
    choices = payload.get("choices") or []
    if not choices:
        return None
    delta = choices[0].get("delta") or {}
    return delta.get("content")


class SSEDeltaParser:
    """
    Incremental parser for a chat-completion SSE stream.

    Feed it decoded text as it arrives; it returns the content deltas found
    in complete ``data:`` lines. A data line whose JSON does not parse yet
    is pushed back to the front of the buffer and retried once more text
    arrives.

    Usage:
        parser = SSEDeltaParser()
        for piece in response.iter_text():
            for delta in parser.feed(piece):
                answer += delta
            if parser.done:
                break
    """

    def __init__(self):
        self._buffer = ""
        self.done = False
        self.tool_calls: list[dict] = []

    def feed(self, text: str) -> list[str]:
        """Consume more stream text and return any new content deltas."""
        if self.done:
            return []

        self._buffer += text
        deltas = []

        while True:
            newline_index = self._buffer.find("\n")
            if newline_index == -1:
                break

            line = self._buffer[:newline_index]
            self._buffer = self._buffer[newline_index + 1:]

            if line.endswith("\r"):
                line = line[:-1]
            if line.startswith(":") or line.strip() == "":
                continue
            if not line.startswith("data: "):
                continue

            json_str = line[6:].strip()
            if json_str == DONE_SENTINEL:
                self.done = True
                break

            try:
                payload = json.loads(json_str)
            except ValueError:
                self._buffer = line + "\n" + self._buffer
                break

            deltas.extend(self._consume(payload))

        return deltas

    def flush(self) -> list[str]:
        """Process whatever is left once the stream has closed."""
        if self.done or not self._buffer.strip():
            self._buffer = ""
            return []

        deltas = []
        for raw in self._buffer.split("\n"):
            raw = raw.rstrip("\r")
            if not raw.startswith("data: "):
                continue
            json_str = raw[6:].strip()
            if json_str == DONE_SENTINEL:
                self.done = True
                break
            try:
                payload = json.loads(json_str)
            except ValueError:
                logger.debug(f"Dropping unparseable trailing SSE line: {raw[:80]}")
                continue
            deltas.extend(self._consume(payload))

        self._buffer = ""
        return deltas

    def _consume(self, payload) -> list[str]:
        if not isinstance(payload, dict):
            return []
        choices = payload.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return []
        delta = choices[0].get("delta") or {}
        if not isinstance(delta, dict):
            return []
        if delta.get("tool_calls"):
            self.tool_calls.extend(delta["tool_calls"])
        content = delta.get("content")
        return [content] if content else []


def collect_text(frames: Iterable[str]) -> str:
    """Assemble the full assistant text from an iterable of SSE text pieces."""
    parser = SSEDeltaParser()
    parts = []
    for frame in frames:
        parts.extend(parser.feed(frame))
        if parser.done:
            break
    parts.extend(parser.flush())
    return "".join(parts)
