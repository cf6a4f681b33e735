"""
Response normalization: Ollama /api/generate records -> NormalizedGenerationEvent.

Non-streaming calls go through normalize_once(). Streaming calls wrap the
response body in a GenerationStream, which owns the decode buffer and the
underlying byte source and releases the source exactly once however the
iteration ends.

Usage:
    async with GenerationStream(response) as stream:
        async for event in stream:
            print(event.text, end="")
    print(stream.usage)
"""

import codecs
import logging
from typing import Any, AsyncIterator, Mapping, Optional, Protocol, Union

import httpx

from ollama_bridge.schema import (
    NormalizedGenerationEvent,
    RawInferenceEvent,
    UsageCounters,
)

logger = logging.getLogger(__name__)


class StreamReadError(Exception):
    """The byte source failed while a stream was being consumed."""
    pass


class ByteSource(Protocol):
    """
    What GenerationStream needs from a response body.

    httpx.Response satisfies this when sent with stream=True.
    """

    def aiter_bytes(self) -> AsyncIterator[bytes]:
        ...

    async def aclose(self) -> None:
        ...


# ─────────────────────────────────────────────────────────────────────
# RECORD -> EVENT
# ─────────────────────────────────────────────────────────────────────

def _event_from_record(record: RawInferenceEvent) -> NormalizedGenerationEvent:
    usage = None
    if record.done:
        usage = UsageCounters.from_counts(record.prompt_eval_count, record.eval_count)
    return NormalizedGenerationEvent(
        text=record.response,
        is_final=record.done,
        usage=usage,
    )


def normalize_once(raw: Union[RawInferenceEvent, Mapping[str, Any]]) -> NormalizedGenerationEvent:
    """
    Normalize the body of a non-streaming /api/generate call.

    The completion flag is copied from the payload rather than assumed, so a
    truncated payload comes back with is_final=False and no usage.
    """
    record = raw if isinstance(raw, RawInferenceEvent) else RawInferenceEvent.model_validate(dict(raw))
    return _event_from_record(record)


def normalize_line(line: str) -> Optional[NormalizedGenerationEvent]:
    """
    Normalize one NDJSON line from a stream.

    Returns None for blank lines, lines that are not a JSON object, and
    records with neither text nor a completion flag (e.g. "thinking" output
    some models emit before the answer).
    """
    if not line.strip():
        return None
    record = RawInferenceEvent.parse_line(line)
    if record is None:
        logger.debug("Dropping malformed stream line: %.200s", line)
        return None
    if not record.carries_content:
        return None
    return _event_from_record(record)


# ─────────────────────────────────────────────────────────────────────
# LINE BUFFER
# ─────────────────────────────────────────────────────────────────────

class NDJSONLineBuffer:
    """
    Splits an incoming byte stream into complete lines.

    Bytes are decoded incrementally, so a multi-byte UTF-8 character split
    across two chunks is reassembled. The trailing partial line is held back
    until the newline that completes it arrives.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Append a chunk; return the lines it completed."""
        self._pending += self._decoder.decode(chunk)
        *lines, self._pending = self._pending.split("\n")
        return lines

    def discard(self) -> str:
        """Drop and return whatever unterminated text is left."""
        leftover = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        self._decoder.reset()
        return leftover


# ─────────────────────────────────────────────────────────────────────
# STREAM
# ─────────────────────────────────────────────────────────────────────

class GenerationStream:
    """
    Lazy, finite, non-restartable sequence of NormalizedGenerationEvent.

    Iteration stops when the source is exhausted or after the event carrying
    the completion flag. The source is released on every exit path: normal
    end, aclose() / leaving an `async with` block, or a read failure (raised
    as StreamReadError).
    """

    def __init__(self, source: ByteSource):
        self._source = source
        self._buffer = NDJSONLineBuffer()
        self._events = self._generate()
        self._released = False
        self._text_parts: list[str] = []
        self.usage: Optional[UsageCounters] = None

    @property
    def released(self) -> bool:
        return self._released

    @property
    def text(self) -> str:
        """Text of all events emitted so far."""
        return "".join(self._text_parts)

    async def _generate(self) -> AsyncIterator[NormalizedGenerationEvent]:
        chunks = self._source.aiter_bytes()
        while True:
            try:
                chunk = await anext(chunks)
            except StopAsyncIteration:
                break
            except (httpx.HTTPError, httpx.StreamError, OSError) as e:
                raise StreamReadError(f"Ollama stream read failed: {e}") from e

            for line in self._buffer.feed(chunk):
                event = normalize_line(line)
                if event is None:
                    continue
                self._text_parts.append(event.text)
                if event.is_final:
                    self.usage = event.usage
                yield event
                if event.is_final:
                    return

        leftover = self._buffer.discard()
        if leftover.strip():
            logger.debug("Discarding unterminated trailing line: %.200s", leftover)

    def __aiter__(self) -> "GenerationStream":
        return self

    async def __anext__(self) -> NormalizedGenerationEvent:
        try:
            event = await anext(self._events)
        except BaseException:
            # StopAsyncIteration included: the sequence is over either way
            await self.aclose()
            raise
        if event.is_final:
            await self.aclose()
        return event

    async def aclose(self) -> None:
        """Stop the sequence and release the source. Safe to call repeatedly."""
        if self._released:
            return
        self._released = True
        try:
            await self._events.aclose()
        finally:
            await self._source.aclose()

    async def __aenter__(self) -> "GenerationStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
