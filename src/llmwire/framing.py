"""Incremental decoders for the two streaming wire formats.

Both decoders are fed raw network reads of any size and return the complete
units found so far, in arrival order. A unit split across reads is held back
until the rest arrives; nothing is dropped or emitted twice.
"""

from __future__ import annotations

import codecs
import json
from typing import Literal, Protocol

Framing = Literal["sse", "ndjson"]


class StreamDecoder(Protocol):
    """Turns raw reads into translator-sized chunks."""

    def feed(self, data: bytes | str) -> list[str]:
        """Consume one read and return every complete unit in it."""
        ...

    def flush(self) -> list[str]:
        """Return whatever is left once the connection closes."""
        ...


class _TextBuffer:
    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self.buffer = ""

    def add(self, data: bytes | str) -> None:
        if isinstance(data, str):
            self.buffer += data
        else:
            self.buffer += self._decoder.decode(bytes(data))

    def finish(self) -> None:
        self.buffer += self._decoder.decode(b"", final=True)


class SSEDecoder:
    """Server-Sent Events decoder yielding each event's ``data`` payload.

    Multi-line data fields are joined with ``\\n``. Comments and the
    ``event``/``id``/``retry`` fields are ignored; the ``[DONE]`` sentinel is
    returned verbatim so translators can recognize it.
    """

    def __init__(self) -> None:
        self._text = _TextBuffer()
        self._data: list[str] = []

    def feed(self, data: bytes | str) -> list[str]:
        self._text.add(data)
        events: list[str] = []
        while True:
            buffer = self._text.buffer
            idx = buffer.find("\n")
            if idx < 0:
                break
            line = buffer[:idx].removesuffix("\r")
            self._text.buffer = buffer[idx + 1 :]
            payload = self._process_line(line)
            if payload is not None:
                events.append(payload)
        return events

    def flush(self) -> list[str]:
        self._text.finish()
        rest = self._text.buffer
        self._text.buffer = ""
        events: list[str] = []
        if rest:
            self._process_line(rest.removesuffix("\r"))
        payload = self._dispatch()
        if payload is not None:
            events.append(payload)
        return events

    def _process_line(self, line: str) -> str | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        name, _, value = line.partition(":")
        if name == "data":
            self._data.append(value.removeprefix(" "))
        return None

    def _dispatch(self) -> str | None:
        if not self._data:
            return None
        payload = "\n".join(self._data)
        self._data = []
        return payload


class NDJSONDecoder:
    """Newline-delimited JSON decoder.

    Uses ``raw_decode`` so several objects packed into one read, or one object
    split over several reads, both come out as exactly one unit each. A
    complete line that is not JSON is passed on unchanged for the translator to
    skip.
    """

    def __init__(self) -> None:
        self._text = _TextBuffer()
        self._json = json.JSONDecoder()

    def feed(self, data: bytes | str) -> list[str]:
        self._text.add(data)
        return self._drain()

    def flush(self) -> list[str]:
        self._text.finish()
        units = self._drain()
        rest = self._text.buffer.strip()
        self._text.buffer = ""
        if rest:
            units.append(rest)
        return units

    def _drain(self) -> list[str]:
        units: list[str] = []
        while True:
            buffer = self._text.buffer.lstrip()
            if not buffer:
                self._text.buffer = ""
                break
            try:
                _, end = self._json.raw_decode(buffer)
            except json.JSONDecodeError:
                newline = buffer.find("\n")
                if newline < 0:
                    # Incomplete object; wait for the next read.
                    self._text.buffer = buffer
                    break
                units.append(buffer[:newline].rstrip("\r"))
                self._text.buffer = buffer[newline + 1 :]
                continue
            units.append(buffer[:end])
            self._text.buffer = buffer[end:]
        return units


def decoder_for(framing: Framing) -> SSEDecoder | NDJSONDecoder:
    """Return a fresh decoder for *framing*."""
    if framing == "sse":
        return SSEDecoder()
    if framing == "ndjson":
        return NDJSONDecoder()
    raise ValueError(f"Unknown stream framing: {framing!r}")
