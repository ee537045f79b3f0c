"""Mock translator for testing without a vendor."""

from __future__ import annotations

from collections.abc import Mapping
import json
from typing import TYPE_CHECKING, Any

from llmwire.errors import RequestBuildError, ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import Response, Role, Text, Usage
from llmwire.providers._utils import encode_body, sse_payload
from llmwire.providers.base import BaseProvider

if TYPE_CHECKING:
    from llmwire.models import Request
    from llmwire.options import Options


class MockProvider(BaseProvider):
    """Deterministic translator with scripted responses.

    ``prepare_request`` echoes the conversation into a small JSON body;
    ``respond`` produces the vendor-side bytes ``parse_response`` understands.
    """

    name = "mock"
    default_endpoint = "mock://chat"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        """Accept the standard constructor arguments."""
        super().__init__(*args, **kwargs)
        self._responses: list[str] = []
        self._loop = False
        self._index = 0
        self._error: str | None = None

    def set_responses(self, *texts: str, loop: bool = False) -> None:
        """Queue response texts returned by successive ``respond`` calls."""
        self._responses = list(texts)
        self._loop = loop
        self._index = 0

    def set_error(self, message: str | None) -> None:
        """Make ``prepare_request`` fail with *message* (None clears it)."""
        self._error = message

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        if self._error is not None:
            raise RequestBuildError(self._error)
        prompt = next(
            (m.content for m in reversed(request.messages) if m.role is Role.USER), ""
        )
        body: dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "messages": [
                {"role": m.role.value, "content": m.content} for m in request.messages
            ],
        }
        if request.system_prompt:
            body["system"] = request.system_prompt
        if opts.temperature is not None:
            body["temperature"] = opts.temperature
        if opts.max_tokens is not None:
            body["max_tokens"] = opts.max_tokens
        if stream:
            body["stream"] = True
        self._merge_passthrough(body, opts, stream=stream)
        return body

    def respond(self, request_body: bytes) -> bytes:
        """Return a response body for a body built by ``prepare_request``."""
        if self._responses:
            if self._index >= len(self._responses):
                if not self._loop:
                    return encode_body({"error": "mock responses exhausted"}, provider=self.name)
                self._index = 0
            text = self._responses[self._index]
            self._index += 1
        else:
            prompt = json.loads(request_body).get("prompt", "")
            text = f"echo: {prompt[:100]}"
        return encode_body(
            {"text": text, "usage": {"input_tokens": 10, "output_tokens": 10}},
            provider=self.name,
        )

    @staticmethod
    def _parse_usage(usage: Any) -> Usage | None:
        if not isinstance(usage, Mapping):
            return None
        return Usage(
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
        )

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping) or not isinstance(payload.get("text"), str):
            raise ResponseParseError("mock response has no text", provider=self.name)
        return Response(
            content=Text(payload["text"]), usage=self._parse_usage(payload.get("usage"))
        )

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = sse_payload(chunk)
        if not data:
            raise SkipChunk("keep-alive")
        if data == "[DONE]":
            raise StreamEnd()
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            raise SkipChunk("malformed JSON") from None
        if not isinstance(payload, Mapping):
            raise SkipChunk("not an object")
        if payload.get("done"):
            raise StreamEnd(Response(usage=self._parse_usage(payload.get("usage"))))
        text = payload.get("text")
        if not isinstance(text, str) or not text:
            raise SkipChunk("no text")
        return Response(content=Text(text))
