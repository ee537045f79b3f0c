"""Drive a translator over a sequence of stream chunks.

Every chunk has exactly one of three outcomes: a content ``Response``, a
``SkipChunk`` (keep reading), or a ``StreamEnd`` (stop). ``StreamReader``
applies that contract once so callers and the transport do not each
reimplement it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from llmwire.errors import SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Text, ToolCall, Usage

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from llmwire.providers.base import Provider

logger = logging.getLogger(__name__)


class StreamReader:
    """Iterate content responses until the vendor's terminal chunk.

    After iteration, ``finished`` tells whether a terminal chunk was seen and
    ``usage`` holds the final usage it carried.
    """

    def __init__(self, provider: Provider, chunks: Iterable[bytes | str] = ()) -> None:
        self._provider = provider
        self._chunks = chunks
        self.finished = False
        self.usage: Usage | None = None
        self.skipped = 0

    def step(self, chunk: bytes | str) -> Response | None:
        """Parse one chunk; return content, or None for skips and bare terminals.

        Raises:
            RuntimeError: Called again after the terminal chunk.
        """
        if self.finished:
            raise RuntimeError("stream already finished")
        try:
            return self._provider.parse_stream_response(chunk)
        except SkipChunk as skip:
            self.skipped += 1
            logger.debug("%s stream: skipped chunk (%s)", self._provider.name, skip.reason)
            return None
        except StreamEnd as end:
            self.finished = True
            self.usage = end.usage
            if end.response is not None and not end.response.is_empty:
                return end.response
            return None

    def __iter__(self) -> Iterator[Response]:
        for chunk in self._chunks:
            response = self.step(chunk)
            if response is not None:
                yield response
            if self.finished:
                return


def iter_stream(provider: Provider, chunks: Iterable[bytes | str]) -> StreamReader:
    """Return a reader yielding content responses from *chunks* in order."""
    return StreamReader(provider, chunks)


def merge_tool_calls(
    calls: list[ToolCall], fragments: Iterable[ToolCall]
) -> list[ToolCall]:
    """Fold streamed tool-call fragments into complete calls.

    A fragment with an id starts a new call; a fragment without one continues
    the previous call's name and arguments.
    """
    for fragment in fragments:
        if fragment.id or not calls:
            calls.append(fragment)
            continue
        last = calls[-1]
        calls[-1] = ToolCall(
            id=last.id,
            function=FunctionCall(
                name=last.function.name or fragment.function.name,
                arguments=_join_arguments(last.function.arguments, fragment.function.arguments),
            ),
        )
    return calls


def _join_arguments(head: str, tail: str) -> str:
    # Fragments start from an empty string; "{}" is only a placeholder.
    if head == "{}":
        head = ""
    return head + tail


def collect_stream(provider: Provider, chunks: Iterable[bytes | str]) -> Response:
    """Consume a whole stream and return one aggregated ``Response``."""
    reader = StreamReader(provider, chunks)
    text: list[str] = []
    tool_calls: list[ToolCall] = []
    for response in reader:
        text.append(response.as_text())
        merge_tool_calls(tool_calls, response.tool_calls)
    return Response(
        content=Text("".join(text)),
        usage=reader.usage,
        tool_calls=tuple(tool_calls),
    )
