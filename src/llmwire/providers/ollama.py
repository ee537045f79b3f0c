"""Ollama ``/api/chat`` translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
import os
from typing import TYPE_CHECKING, Any, ClassVar

from llmwire.capabilities import Capability
from llmwire.errors import ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Role, Text, ToolCall, Usage
from llmwire.providers._errors import api_error_from_payload
from llmwire.providers._utils import (
    arguments_to_json,
    arguments_to_object,
    as_int,
    excerpt,
    format_tool_calls,
)
from llmwire.providers.base import BaseProvider
from llmwire.schema import OLLAMA_DIALECT, SchemaDialect

if TYPE_CHECKING:
    from llmwire.capabilities import CapabilityRegistry
    from llmwire.framing import Framing
    from llmwire.models import Message, Request
    from llmwire.options import Options

logger = logging.getLogger(__name__)

ENDPOINT_ENV_VAR = "OLLAMA_ENDPOINT"
DEFAULT_BASE_URL = "http://localhost:11434"

_MODEL_OPTIONS = (
    ("temperature", "temperature"),
    ("max_tokens", "num_predict"),
    ("top_p", "top_p"),
    ("top_k", "top_k"),
    ("seed", "seed"),
    ("frequency_penalty", "frequency_penalty"),
    ("presence_penalty", "presence_penalty"),
)


class OllamaProvider(BaseProvider):
    """Local or remote Ollama server.

    Streams newline-delimited JSON; each line is a complete chat response and
    the last one has ``done: true``.
    """

    name = "ollama"
    stream_framing: ClassVar[Framing] = "ndjson"
    schema_dialect: ClassVar[SchemaDialect] = OLLAMA_DIALECT
    feature_keys: ClassVar[Mapping[str, Capability]] = {
        "format": Capability.STRUCTURED_RESPONSE,
        "tools": Capability.FUNCTION_CALLING,
    }

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        base_url: str | None = None,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize; the server comes from ``base_url``, ``OLLAMA_ENDPOINT``, or localhost."""
        super().__init__(api_key, model, extra_headers, capabilities=capabilities)
        resolved = base_url or os.environ.get(ENDPOINT_ENV_VAR) or DEFAULT_BASE_URL
        self._base_url = resolved.rstrip("/").removesuffix("/api/chat")

    @property
    def endpoint(self) -> str:
        return f"{self._base_url}/api/chat"

    # -- request building ----------------------------------------------------

    @staticmethod
    def _encode_message(message: Message) -> dict[str, Any]:
        encoded: dict[str, Any] = {"role": message.role.value, "content": message.content}
        if message.role is Role.TOOL and message.name:
            encoded["tool_name"] = message.name
        if message.tool_calls:
            encoded["tool_calls"] = [
                {
                    "function": {
                        "name": call.name,
                        "arguments": arguments_to_object(call.arguments),
                    }
                }
                for call in message.tool_calls
            ]
        return encoded

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend(self._encode_message(m) for m in request.messages)

        # Ollama streams unless told otherwise.
        body: dict[str, Any] = {"model": self.model, "messages": messages, "stream": stream}

        model_options: dict[str, Any] = {}
        for field_name, wire_name in _MODEL_OPTIONS:
            value = getattr(opts, field_name)
            if value is not None:
                model_options[wire_name] = value
        if opts.stop:
            model_options["stop"] = list(opts.stop)
        if model_options:
            body["options"] = model_options

        if request.response_schema is not None:
            body["format"] = self._sanitized_schema(request.response_schema)

        if opts.tools:
            tools: list[dict[str, Any]] = []
            for tool in opts.tools:
                function: dict[str, Any] = {
                    "name": tool.name,
                    "parameters": self._tool_parameters(tool.parameters),
                }
                if tool.description:
                    function["description"] = tool.description
                tools.append({"type": "function", "function": function})
            body["tools"] = tools
            if opts.tool_choice is not None:
                logger.debug("ollama: tool_choice is not supported; dropped")

        self._merge_passthrough(body, opts, stream=stream)
        return body

    # -- response parsing ----------------------------------------------------

    @staticmethod
    def _parse_usage(payload: Mapping[str, Any]) -> Usage | None:
        if "prompt_eval_count" not in payload and "eval_count" not in payload:
            return None
        return Usage(
            input_tokens=as_int(payload.get("prompt_eval_count")),
            output_tokens=as_int(payload.get("eval_count")),
        )

    @staticmethod
    def _parse_message(payload: Mapping[str, Any]) -> tuple[str, tuple[ToolCall, ...]] | None:
        message = payload.get("message")
        if isinstance(message, Mapping):
            calls: list[ToolCall] = []
            raw_calls = message.get("tool_calls")
            for i, item in enumerate(raw_calls if isinstance(raw_calls, list) else []):
                function = item.get("function") if isinstance(item, Mapping) else None
                if not isinstance(function, Mapping):
                    continue
                calls.append(
                    ToolCall(
                        id=str(item.get("id") or f"call_{i}"),
                        function=FunctionCall(
                            name=str(function.get("name", "")),
                            arguments=arguments_to_json(function.get("arguments")),
                        ),
                    )
                )
            return str(message.get("content") or ""), tuple(calls)
        if isinstance(payload.get("response"), str):
            # /api/generate shape.
            return payload["response"], ()
        return None

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping):
            raise ResponseParseError("ollama response is not a JSON object", provider=self.name)
        parsed = self._parse_message(payload)
        if parsed is None:
            raise ResponseParseError(
                "ollama response has no message",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        text, calls = parsed
        if not text and calls:
            text = format_tool_calls(calls)
        return Response(content=Text(text), usage=self._parse_usage(payload), tool_calls=calls)

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else chunk
        data = data.strip()
        if not data:
            raise SkipChunk("blank line")
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("ollama stream: malformed line %s", excerpt(data))
            raise SkipChunk("malformed JSON") from None
        if not isinstance(payload, Mapping):
            raise SkipChunk("not an object")

        error = api_error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error

        parsed = self._parse_message(payload)
        text, calls = parsed if parsed is not None else ("", ())
        response = Response(content=Text(text), tool_calls=calls)
        if payload.get("done") is True:
            raise StreamEnd(response.with_usage(self._parse_usage(payload)))
        if response.is_empty:
            raise SkipChunk("empty message")
        return response
