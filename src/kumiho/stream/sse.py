"""
Incremental server-sent events parsing.

Frames are separated by a blank line. Only `data:` lines are kept; at most
one space after the prefix is stripped and multiple data lines of one frame
are joined with a newline. Frames without data are dropped. Chunk
boundaries may fall anywhere, including inside a multi-byte character, a
CRLF pair or the `data:` prefix itself.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator

from pydantic import ValidationError as PydanticValidationError

from kumiho.stream.events import SseEvent

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
FRAME_SEPARATOR = "\n\n"


class SseFrameParser:
    """
    Turns raw byte chunks into event payload strings.

    Not thread-safe; one parser per connection. A new connection must use a
    new parser (or call reset()) so a partial frame is never carried over.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Buffered text of the incomplete trailing frame."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Feed one chunk and return the payloads completed by it, in order."""
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        self._buffer = self._buffer.replace("\r\n", "\n")

        payloads = []
        while True:
            boundary = self._buffer.find(FRAME_SEPARATOR)
            if boundary == -1:
                break
            frame = self._buffer[:boundary]
            self._buffer = self._buffer[boundary + len(FRAME_SEPARATOR) :]

            payload = parse_frame(frame)
            if payload:
                payloads.append(payload)
        return payloads


def parse_frame(frame: str) -> str:
    """Extract the joined data of one frame ("" when it has none)."""
    data_lines = []
    for line in frame.split("\n"):
        if not line.startswith(DATA_PREFIX):
            continue
        value = line[len(DATA_PREFIX) :]
        if value.startswith(" "):
            value = value[1:]
        data_lines.append(value)
    return "\n".join(data_lines)


async def iter_payloads(chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
    """Lazily parse an async byte-chunk stream into payload strings."""
    parser = SseFrameParser()
    async for chunk in chunks:
        for payload in parser.feed(chunk):
            yield payload


def decode_event(payload: str) -> SseEvent | None:
    """
    Decode a payload into an SseEvent.

    Returns None for malformed JSON, non-object JSON or a payload that does
    not fit the event schema. A bad payload never ends the stream.
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug(
            "Dropping non-JSON stream payload",
            extra={"payload_length": len(payload)},
        )
        return None
    if not isinstance(data, dict):
        logger.debug(
            "Dropping non-object stream payload",
            extra={"payload_length": len(payload)},
        )
        return None
    try:
        return SseEvent.model_validate(data)
    except PydanticValidationError as e:
        logger.debug(
            "Dropping stream payload that does not match the event schema",
            extra={"payload_length": len(payload), "error_message": str(e)[:200]},
        )
        return None
