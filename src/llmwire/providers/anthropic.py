"""Anthropic Messages API translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from llmwire.capabilities import Capability
from llmwire.errors import ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Role, Text, ToolCall, Usage
from llmwire.options import Options
from llmwire.providers._errors import api_error_from_payload
from llmwire.providers._utils import (
    arguments_to_object,
    arguments_to_json,
    as_int,
    excerpt,
    format_tool_calls,
    sse_payload,
)
from llmwire.providers.base import BaseProvider
from llmwire.schema import ANTHROPIC_DIALECT, SchemaDialect

if TYPE_CHECKING:
    from llmwire.models import Message, Request

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
PROMPT_CACHING_BETA = "prompt-caching-2024-07-31"
#: Upper bound on system prompt segments sent as separate cacheable blocks.
SYSTEM_PROMPT_MAX_PARTS = 3
#: Anthropic rejects requests with more cache breakpoints than this.
_MAX_CACHE_BREAKPOINTS = 4
_DEFAULT_MAX_TOKENS = 4096

_SKIPPED_EVENTS = frozenset({"content_block_stop", "ping"})


def split_system_prompt(prompt: str, max_parts: int = SYSTEM_PROMPT_MAX_PARTS) -> list[str]:
    """Split *prompt* at paragraph breaks into at most *max_parts* segments.

    Paragraphs are spread as evenly as possible, earlier segments taking the
    remainder, and never reordered.
    """
    if max_parts <= 1:
        return [prompt]
    paragraphs = prompt.split("\n\n")
    if len(paragraphs) <= max_parts:
        return paragraphs

    per_part, extra = divmod(len(paragraphs), max_parts)
    segments: list[str] = []
    start = 0
    for i in range(max_parts):
        end = start + per_part + (1 if i < extra else 0)
        segments.append("\n\n".join(paragraphs[start:end]))
        start = end
    return segments


def _append_message(messages: list[dict[str, Any]], message: dict[str, Any]) -> None:
    """Append while merging consecutive same-role messages.

    Anthropic requires strict user/assistant alternation.
    """
    if messages and messages[-1]["role"] == message["role"]:
        messages[-1]["content"].extend(message["content"])
        return
    messages.append(message)


def _merge_usage(start: Usage | None, final: Usage | None) -> Usage | None:
    """Combine ``message_start`` and ``message_delta`` usage field by field.

    The start event carries input and cache counts, the delta the output
    count; either may repeat a field, so the larger value wins.
    """
    if start is None or final is None:
        return final if start is None else start
    return Usage(
        input_tokens=max(start.input_tokens, final.input_tokens),
        cached_input_tokens=max(start.cached_input_tokens, final.cached_input_tokens),
        output_tokens=max(start.output_tokens, final.output_tokens),
    )


class AnthropicProvider(BaseProvider):
    """Anthropic ``/v1/messages``."""

    name = "anthropic"
    default_endpoint = "https://api.anthropic.com/v1/messages"
    schema_dialect: ClassVar[SchemaDialect] = ANTHROPIC_DIALECT
    builtin_options: ClassVar[Options] = Options(max_tokens=_DEFAULT_MAX_TOKENS)
    feature_keys: ClassVar[Mapping[str, Capability]] = {
        "output_config": Capability.STRUCTURED_RESPONSE,
        "tools": Capability.FUNCTION_CALLING,
        "tool_choice": Capability.FUNCTION_CALLING,
    }
    #: Usage from the current stream's ``message_start``, merged into its terminal.
    _stream_usage: Usage | None = None

    @staticmethod
    def version_headers() -> dict[str, str]:
        return {
            "anthropic-version": ANTHROPIC_VERSION,
            "anthropic-beta": PROMPT_CACHING_BETA,
        }

    def _auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"x-api-key": self.api_key}

    def headers(self) -> dict[str, str]:
        headers = self.version_headers()
        headers.update(super().headers())
        return headers

    # -- request building ----------------------------------------------------

    def _system_blocks(self, request: Request) -> list[dict[str, Any]]:
        texts = [request.system_prompt] if request.system_prompt else []
        texts.extend(
            m.content for m in request.messages if m.role is Role.SYSTEM and m.content
        )
        if not texts:
            return []
        blocks: list[dict[str, Any]] = []
        for i, segment in enumerate(split_system_prompt("\n\n".join(texts))):
            block: dict[str, Any] = {"type": "text", "text": segment}
            if i > 0:
                block["cache_control"] = {"type": "ephemeral"}
            blocks.append(block)
        return blocks

    @staticmethod
    def _cache_control(message: Message, *, is_last: bool, opts: Options) -> dict[str, str] | None:
        if message.cache_type is not None:
            return {"type": message.cache_type.value}
        if opts.caching and is_last:
            return {"type": "ephemeral"}
        return None

    def _build_messages(
        self, request: Request, opts: Options, *, breakpoints: int
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = []
        turns = [m for m in request.messages if m.role is not Role.SYSTEM]
        for index, message in enumerate(turns):
            blocks: list[dict[str, Any]] = []
            if message.role is Role.TOOL:
                if not message.tool_call_id:
                    logger.debug("anthropic: dropping tool message without tool_call_id")
                    continue
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": message.tool_call_id,
                        "content": message.content,
                    }
                )
                role = "user"
            else:
                role = "assistant" if message.role is Role.ASSISTANT else "user"
                if message.content:
                    blocks.append({"type": "text", "text": message.content})
                for call in message.tool_calls:
                    blocks.append(
                        {
                            "type": "tool_use",
                            "id": call.id,
                            "name": call.name,
                            "input": arguments_to_object(call.arguments),
                        }
                    )
            if not blocks:
                continue

            cache = self._cache_control(message, is_last=index == len(turns) - 1, opts=opts)
            if cache is not None:
                if breakpoints < _MAX_CACHE_BREAKPOINTS:
                    blocks[-1]["cache_control"] = cache
                    breakpoints += 1
                else:
                    logger.debug("anthropic: cache breakpoint limit reached; hint dropped")
            _append_message(messages, {"role": role, "content": blocks})
        return messages

    @staticmethod
    def _encode_tool_choice(choice: str | Mapping[str, Any] | None) -> dict[str, str]:
        if isinstance(choice, Mapping):
            return {"type": "tool", "name": choice["name"]}
        if choice == "required":
            return {"type": "any"}
        if choice == "none":
            return {"type": "none"}
        return {"type": "auto"}

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        system = self._system_blocks(request)
        breakpoints = sum(1 for block in system if "cache_control" in block)
        body: dict[str, Any] = {
            "model": self.model,
            "max_tokens": opts.max_tokens or _DEFAULT_MAX_TOKENS,
            "messages": self._build_messages(request, opts, breakpoints=breakpoints),
        }
        if system:
            body["system"] = system
        if opts.temperature is not None:
            body["temperature"] = opts.temperature
        if opts.top_p is not None:
            body["top_p"] = opts.top_p
        if opts.top_k is not None:
            body["top_k"] = opts.top_k
        if opts.stop:
            body["stop_sequences"] = list(opts.stop)
        for unsupported in ("seed", "frequency_penalty", "presence_penalty"):
            if getattr(opts, unsupported) is not None:
                logger.debug("anthropic: %s is not supported; dropped", unsupported)

        if opts.tools:
            tools: list[dict[str, Any]] = []
            for tool in opts.tools:
                definition: dict[str, Any] = {
                    "name": tool.name,
                    "input_schema": self._tool_parameters(tool.parameters),
                }
                if tool.description:
                    definition["description"] = tool.description
                tools.append(definition)
            body["tools"] = tools
            body["tool_choice"] = self._encode_tool_choice(opts.tool_choice)

        if request.response_schema is not None:
            body["output_config"] = {
                "format": {
                    "type": "json_schema",
                    "schema": self._sanitized_schema(request.response_schema),
                }
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
        cache_read = as_int(usage.get("cache_read_input_tokens"))
        cache_write = as_int(usage.get("cache_creation_input_tokens"))
        return Usage(
            input_tokens=as_int(usage.get("input_tokens")) + cache_read + cache_write,
            cached_input_tokens=cache_read,
            output_tokens=as_int(usage.get("output_tokens")),
        )

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping):
            raise ResponseParseError(
                "anthropic response is not a JSON object", provider=self.name
            )
        content = payload.get("content")
        if not isinstance(content, list):
            if payload.get("type") == "message":
                return Response(usage=self._parse_usage(payload.get("usage")))
            raise ResponseParseError(
                "anthropic response has no content blocks",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        for block in content:
            if not isinstance(block, Mapping):
                continue
            block_type = block.get("type")
            if block_type == "text":
                text_parts.append(str(block.get("text", "")))
            elif block_type == "tool_use":
                tool_calls.append(
                    ToolCall(
                        id=str(block.get("id", "")),
                        function=FunctionCall(
                            name=str(block.get("name", "")),
                            arguments=arguments_to_json(block.get("input")),
                        ),
                    )
                )
        text = "".join(text_parts)
        if not text and tool_calls:
            text = format_tool_calls(tool_calls)
        return Response(
            content=Text(text),
            usage=self._parse_usage(payload.get("usage")),
            tool_calls=tuple(tool_calls),
        )

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = sse_payload(chunk)
        if not data:
            raise SkipChunk("keep-alive")
        try:
            event = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("anthropic stream: malformed chunk %s", excerpt(data))
            raise SkipChunk("malformed JSON") from None
        if not isinstance(event, Mapping):
            raise SkipChunk("not an object")

        error = api_error_from_payload(event, provider=self.name)
        if error is not None:
            raise error

        event_type = event.get("type")
        if event_type in _SKIPPED_EVENTS:
            raise SkipChunk(str(event_type))
        if event_type == "message_start":
            message = event.get("message")
            self._stream_usage = self._parse_usage(
                message.get("usage") if isinstance(message, Mapping) else None
            )
            raise SkipChunk("message_start")
        if event_type == "message_stop":
            usage, self._stream_usage = self._stream_usage, None
            raise StreamEnd(Response(usage=usage) if usage is not None else None)
        if event_type == "message_delta":
            delta = event.get("delta")
            usage = self._parse_usage(event.get("usage"))
            if isinstance(delta, Mapping) and delta.get("stop_reason"):
                usage, self._stream_usage = _merge_usage(self._stream_usage, usage), None
                raise StreamEnd(Response(usage=usage))
            raise SkipChunk("message_delta")

        if event_type == "content_block_start":
            block = event.get("content_block")
            if isinstance(block, Mapping):
                if block.get("type") == "tool_use":
                    call = ToolCall(
                        id=str(block.get("id", "")),
                        function=FunctionCall(name=str(block.get("name", "")), arguments=""),
                    )
                    return Response(tool_calls=(call,))
                if block.get("type") == "text" and block.get("text"):
                    return Response(content=Text(str(block["text"])))
            raise SkipChunk("content_block_start")

        if event_type == "content_block_delta":
            delta = event.get("delta")
            if isinstance(delta, Mapping):
                if delta.get("type") == "text_delta" and delta.get("text"):
                    return Response(content=Text(str(delta["text"])))
                if delta.get("type") == "input_json_delta" and delta.get("partial_json"):
                    fragment = ToolCall(
                        id="",
                        function=FunctionCall(name="", arguments=str(delta["partial_json"])),
                    )
                    return Response(tool_calls=(fragment,))
            raise SkipChunk("empty delta")

        raise SkipChunk(f"unhandled event {event_type!r}")
