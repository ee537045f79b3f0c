"""Cohere v2 Chat translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from llmwire.errors import ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Role, Text, ToolCall, Usage
from llmwire.providers._errors import api_error, api_error_from_payload
from llmwire.providers._utils import (
    arguments_to_json,
    as_int,
    excerpt,
    format_tool_calls,
    sse_payload,
)
from llmwire.providers.base import BaseProvider
from llmwire.schema import COHERE_DIALECT, SchemaDialect

if TYPE_CHECKING:
    from llmwire.models import Message, Request
    from llmwire.options import Options

logger = logging.getLogger(__name__)

_SAMPLING_FIELDS = (
    ("temperature", "temperature"),
    ("max_tokens", "max_tokens"),
    ("top_p", "p"),
    ("top_k", "k"),
    ("seed", "seed"),
    ("frequency_penalty", "frequency_penalty"),
    ("presence_penalty", "presence_penalty"),
)

_SKIPPED_EVENTS = frozenset(
    {
        "message-start",
        "content-start",
        "content-end",
        "tool-plan-delta",
        "tool-call-end",
        "citation-start",
        "citation-end",
    }
)


class CohereProvider(BaseProvider):
    """Cohere ``/v2/chat``."""

    name = "cohere"
    default_endpoint = "https://api.cohere.com/v2/chat"
    schema_dialect: ClassVar[SchemaDialect] = COHERE_DIALECT

    # -- request building ----------------------------------------------------

    @staticmethod
    def _encode_message(message: Message) -> dict[str, Any]:
        encoded: dict[str, Any] = {"role": message.role.value}
        if message.role is Role.TOOL:
            encoded["tool_call_id"] = message.tool_call_id or ""
            encoded["content"] = message.content
            return encoded
        if message.content or not message.tool_calls:
            encoded["content"] = message.content
        if message.tool_calls:
            encoded["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        return encoded

    @staticmethod
    def _encode_tool_choice(choice: str | Mapping[str, Any]) -> str | None:
        if isinstance(choice, Mapping):
            logger.debug("cohere: cannot force a named tool; sending REQUIRED")
            return "REQUIRED"
        if choice == "required":
            return "REQUIRED"
        if choice == "none":
            return "NONE"
        return None

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        messages: list[dict[str, Any]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend(self._encode_message(m) for m in request.messages)

        body: dict[str, Any] = {"model": self.model, "messages": messages}
        for field_name, wire_name in _SAMPLING_FIELDS:
            value = getattr(opts, field_name)
            if value is not None:
                body[wire_name] = value
        if opts.stop:
            body["stop_sequences"] = list(opts.stop)

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
                choice = self._encode_tool_choice(opts.tool_choice)
                if choice is not None:
                    body["tool_choice"] = choice

        if request.response_schema is not None:
            body["response_format"] = {
                "type": "json_object",
                "json_schema": self._sanitized_schema(request.response_schema),
            }
        if stream:
            body["stream"] = True

        self._merge_passthrough(body, opts, stream=stream)
        return body

    # -- response parsing ----------------------------------------------------

    @staticmethod
    def _parse_usage(usage: Any) -> Usage | None:
        if not isinstance(usage, Mapping):
            return None
        tokens = usage.get("tokens")
        if not isinstance(tokens, Mapping):
            tokens = usage.get("billed_units")
        if not isinstance(tokens, Mapping):
            return None
        input_tokens = as_int(tokens.get("input_tokens"))
        return Usage(
            input_tokens=input_tokens,
            cached_input_tokens=min(as_int(usage.get("cached_tokens")), input_tokens),
            output_tokens=as_int(tokens.get("output_tokens")),
        )

    @staticmethod
    def _content_text(content: Any) -> str:
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                str(item.get("text", ""))
                for item in content
                if isinstance(item, Mapping) and item.get("type", "text") == "text"
            )
        if isinstance(content, Mapping):
            return str(content.get("text", ""))
        return ""

    @staticmethod
    def _parse_tool_calls(raw: Any, *, partial: bool = False) -> tuple[ToolCall, ...]:
        if isinstance(raw, Mapping):
            raw = [raw]
        if not isinstance(raw, list):
            return ()
        calls: list[ToolCall] = []
        for item in raw:
            if not isinstance(item, Mapping):
                continue
            function = item.get("function")
            if not isinstance(function, Mapping):
                continue
            arguments = function.get("arguments")
            calls.append(
                ToolCall(
                    id=str(item.get("id") or ""),
                    function=FunctionCall(
                        name=str(function.get("name") or ""),
                        arguments=(arguments or "")
                        if partial and not isinstance(arguments, Mapping)
                        else arguments_to_json(arguments),
                    ),
                )
            )
        return tuple(calls)

    def _raise_for_error(self, payload: Mapping[str, Any]) -> None:
        # Cohere errors are {"message": "..."}; success bodies nest a message object.
        if isinstance(payload.get("message"), str):
            raise api_error(str(payload["message"]), provider=self.name)
        error = api_error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping):
            raise ResponseParseError("cohere response is not a JSON object", provider=self.name)
        self._raise_for_error(payload)
        message = payload.get("message")
        if not isinstance(message, Mapping):
            raise ResponseParseError(
                "cohere response has no message",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        text = self._content_text(message.get("content"))
        calls = self._parse_tool_calls(message.get("tool_calls"))
        if not text and calls:
            text = format_tool_calls(calls)
        return Response(
            content=Text(text),
            usage=self._parse_usage(payload.get("usage")),
            tool_calls=calls,
        )

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = sse_payload(chunk)
        if not data:
            raise SkipChunk("keep-alive")
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("cohere stream: malformed chunk %s", excerpt(data))
            raise SkipChunk("malformed JSON") from None
        if not isinstance(event, Mapping):
            raise SkipChunk("not an object")
        self._raise_for_error(event)

        event_type = event.get("type")
        if event_type in _SKIPPED_EVENTS:
            raise SkipChunk(str(event_type))

        delta = event.get("delta")
        message = delta.get("message") if isinstance(delta, Mapping) else None
        if event_type == "message-end":
            usage = self._parse_usage(delta.get("usage")) if isinstance(delta, Mapping) else None
            raise StreamEnd(Response(usage=usage))
        if not isinstance(message, Mapping):
            raise SkipChunk(f"no message in {event_type!r}")

        if event_type == "content-delta":
            text = self._content_text(message.get("content"))
            if text:
                return Response(content=Text(text))
            raise SkipChunk("empty content-delta")
        if event_type in ("tool-call-start", "tool-call-delta"):
            calls = self._parse_tool_calls(message.get("tool_calls"), partial=True)
            if calls:
                return Response(tool_calls=calls)
            raise SkipChunk(f"empty {event_type}")

        raise SkipChunk(f"unhandled event {event_type!r}")
