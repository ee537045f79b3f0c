"""Shared translator for OpenAI-style chat-completions APIs.

OpenAI, DeepSeek, Groq, OpenRouter, vLLM and the generic config-driven
endpoints all speak this shape; subclasses override the class attributes and
small hooks where their vendor differs.
"""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from llmwire.capabilities import Capability
from llmwire.errors import ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Role, Text, ToolCall, Usage
from llmwire.providers._errors import api_error_from_payload
from llmwire.providers._utils import (
    arguments_to_json,
    as_int,
    excerpt,
    format_tool_calls,
    sse_payload,
)
from llmwire.providers.base import BaseProvider
from llmwire.schema import OPENAI_DIALECT, SchemaDialect

if TYPE_CHECKING:
    from llmwire.models import Message, Request, Tool
    from llmwire.options import Options

logger = logging.getLogger(__name__)

_DONE = "[DONE]"


class ChatCompletionsProvider(BaseProvider):
    """Translator for ``/chat/completions``-style endpoints."""

    schema_dialect: ClassVar[SchemaDialect] = OPENAI_DIALECT
    feature_keys: ClassVar[Mapping[str, Capability]] = {
        "response_format": Capability.STRUCTURED_RESPONSE,
        "tools": Capability.FUNCTION_CALLING,
        "tool_choice": Capability.FUNCTION_CALLING,
        "parallel_tool_calls": Capability.FUNCTION_CALLING,
        "functions": Capability.FUNCTION_CALLING,
        "function_call": Capability.FUNCTION_CALLING,
    }
    stream_keys: ClassVar[frozenset[str]] = frozenset({"stream", "stream_options"})
    role_map: ClassVar[Mapping[Role, str]] = {
        Role.USER: "user",
        Role.ASSISTANT: "assistant",
        Role.SYSTEM: "system",
        Role.TOOL: "tool",
    }
    #: Emit ``"strict": true`` on function definitions.
    strict_tools: ClassVar[bool] = False
    #: The vendor sends usage in a trailing ``choices: []`` chunk after
    #: ``finish_reason``, so the finish chunk is not terminal.
    usage_trailer: ClassVar[bool] = False
    #: Sampling fields copied verbatim from Options when set.
    sampling_fields: ClassVar[tuple[str, ...]] = (
        "temperature",
        "top_p",
        "seed",
        "frequency_penalty",
        "presence_penalty",
    )

    # -- request building ----------------------------------------------------

    def _token_field(self) -> str:
        return "max_tokens"

    def _map_role(self, role: Role) -> str | None:
        return self.role_map.get(role)

    def _build_messages(self, request: Request, opts: Options) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        system_role = self._map_role(Role.SYSTEM)
        if request.system_prompt and system_role is not None:
            messages.append({"role": system_role, "content": request.system_prompt})
        for message in request.messages:
            role = self._map_role(message.role)
            if role is None:
                logger.debug("%s: dropping message with unmapped role %s", self.name, message.role)
                continue
            messages.append(self._encode_message(message, role, opts))
        return messages

    def _encode_message(
        self, message: Message, role: str, opts: Options
    ) -> dict[str, Any]:
        del opts
        encoded: dict[str, Any] = {"role": role, "content": message.content}
        if message.name:
            encoded["name"] = message.name
        if message.role is Role.TOOL and message.tool_call_id:
            encoded["tool_call_id"] = message.tool_call_id
        if message.tool_calls:
            encoded["tool_calls"] = [
                {
                    "id": call.id,
                    "type": call.type,
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
            if not message.content:
                encoded["content"] = None
        return encoded

    def _encode_tool(self, tool: Tool) -> dict[str, Any]:
        function: dict[str, Any] = {
            "name": tool.name,
            "parameters": self._tool_parameters(tool.parameters),
        }
        if tool.description:
            function["description"] = tool.description
        if self.strict_tools:
            function["strict"] = True
        return {"type": "function", "function": function}

    def _encode_tool_choice(self, choice: str | Mapping[str, Any]) -> Any:
        if isinstance(choice, str):
            return choice
        return {"type": "function", "function": {"name": choice["name"]}}

    def _response_format(self, schema: Any) -> dict[str, Any]:
        return {
            "type": "json_schema",
            "json_schema": {
                "name": "structured_response",
                "schema": self._sanitized_schema(schema),
                "strict": True,
            },
        }

    def _stream_fields(self) -> dict[str, Any]:
        return {"stream": True}

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self.model,
            "messages": self._build_messages(request, opts),
        }
        for name in self.sampling_fields:
            value = getattr(opts, name)
            if value is not None:
                body[name] = value
        if opts.max_tokens is not None:
            body[self._token_field()] = opts.max_tokens
        if opts.stop:
            body["stop"] = list(opts.stop)
        if opts.top_k is not None:
            logger.debug("%s: top_k is not a chat-completions field; dropped", self.name)

        if opts.tools:
            body["tools"] = [self._encode_tool(tool) for tool in opts.tools]
            if opts.tool_choice is not None:
                body["tool_choice"] = self._encode_tool_choice(opts.tool_choice)

        if request.response_schema is not None:
            body["response_format"] = self._response_format(request.response_schema)

        if stream:
            body.update(self._stream_fields())

        self._merge_passthrough(body, opts, stream=stream)
        return self._finalize_body(body, request, opts)

    def _finalize_body(
        self, body: dict[str, Any], request: Request, opts: Options
    ) -> dict[str, Any]:
        del request, opts
        return body

    # -- response parsing ----------------------------------------------------

    def _parse_usage(self, usage: Any) -> Usage | None:
        if not isinstance(usage, Mapping):
            return None
        prompt_details = usage.get("prompt_tokens_details")
        completion_details = usage.get("completion_tokens_details")
        cached = 0
        if isinstance(prompt_details, Mapping):
            cached = as_int(prompt_details.get("cached_tokens"))
        if not cached:
            cached = as_int(usage.get("cache_tokens"))
        reasoning = 0
        if isinstance(completion_details, Mapping):
            reasoning = as_int(completion_details.get("reasoning_tokens"))
        input_tokens = as_int(usage.get("prompt_tokens"))
        return Usage(
            input_tokens=input_tokens,
            cached_input_tokens=min(cached, input_tokens),
            output_tokens=as_int(usage.get("completion_tokens")),
            reasoning_tokens=reasoning,
        )

    @staticmethod
    def _message_text(content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            return "".join(
                part.get("text", "")
                for part in content
                if isinstance(part, Mapping) and isinstance(part.get("text"), str)
            )
        return str(content)

    @staticmethod
    def _parse_tool_calls(raw: Any, *, partial: bool = False) -> tuple[ToolCall, ...]:
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
            if partial and (arguments is None or isinstance(arguments, str)):
                # Stream fragments are pieces of one JSON text, not whole values.
                raw_arguments = arguments or ""
            else:
                raw_arguments = arguments_to_json(arguments)
            calls.append(
                ToolCall(
                    id=str(item.get("id") or ""),
                    function=FunctionCall(
                        name=str(function.get("name") or ""),
                        arguments=raw_arguments,
                    ),
                )
            )
        return tuple(calls)

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping):
            raise ResponseParseError(
                f"{self.name} response is not a JSON object",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise ResponseParseError(
                f"{self.name} response has no choices",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        choice = choices[0]
        if not isinstance(choice, Mapping):
            raise ResponseParseError(
                f"{self.name} response choice is not an object",
                provider=self.name,
            )

        usage = self._parse_usage(payload.get("usage"))
        message = choice.get("message")
        if isinstance(message, Mapping):
            text = self._message_text(message.get("content"))
            tool_calls = self._parse_tool_calls(message.get("tool_calls"))
        elif isinstance(choice.get("text"), str):
            # Legacy text-completion shape.
            text = choice["text"]
            tool_calls = ()
        else:
            raise ResponseParseError(
                f"{self.name} response matches neither chat nor text completion",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        if not text and tool_calls:
            text = format_tool_calls(tool_calls)
        return Response(content=Text(text), usage=usage, tool_calls=tool_calls)

    def _stream_usage(self, payload: Mapping[str, Any]) -> Usage | None:
        return self._parse_usage(payload.get("usage"))

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = sse_payload(chunk)
        if not data:
            raise SkipChunk("keep-alive")
        if data == _DONE:
            raise StreamEnd()
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("%s stream: malformed chunk %s", self.name, excerpt(data))
            raise SkipChunk("malformed JSON") from None

        error = api_error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error
        if not isinstance(payload, Mapping):
            raise SkipChunk("not an object")

        usage = self._stream_usage(payload)
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            if usage is not None:
                raise StreamEnd(Response(usage=usage))
            raise SkipChunk("no choices")

        choice = choices[0] if isinstance(choices[0], Mapping) else {}
        delta = choice.get("delta")
        if not isinstance(delta, Mapping):
            delta = {}
        text = self._message_text(delta.get("content")) or self._message_text(
            choice.get("text")
        )
        response = Response(
            content=Text(text),
            tool_calls=self._parse_tool_calls(delta.get("tool_calls"), partial=True),
            usage=usage,
        )
        if choice.get("finish_reason"):
            if not self.usage_trailer:
                raise StreamEnd(response)
            if response.is_empty:
                raise SkipChunk("finish_reason; usage follows")
            return response
        if response.is_empty:
            raise SkipChunk("role-only delta")
        return response
