"""Google Gemini ``generateContent`` translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any, ClassVar

from llmwire.capabilities import Capability
from llmwire.errors import ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Response, Role, Text, ToolCall, Usage
from llmwire.providers._errors import api_error, api_error_from_payload
from llmwire.providers._utils import (
    arguments_to_json,
    arguments_to_object,
    as_int,
    excerpt,
    format_tool_calls,
    sse_payload,
)
from llmwire.providers.base import BaseProvider
from llmwire.schema import GEMINI_DIALECT, SchemaDialect

if TYPE_CHECKING:
    from llmwire.models import Request
    from llmwire.options import Options

logger = logging.getLogger(__name__)

_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

#: System turns are folded into ``systemInstruction`` rather than mapped.
ROLE_MAP: dict[Role, str] = {
    Role.USER: "user",
    Role.ASSISTANT: "model",
    Role.TOOL: "function",
}

_TOOL_MODES = {"auto": "AUTO", "required": "ANY", "none": "NONE"}

_GENERATION_FIELDS = (
    ("temperature", "temperature"),
    ("top_p", "topP"),
    ("top_k", "topK"),
    ("max_tokens", "maxOutputTokens"),
    ("seed", "seed"),
    ("presence_penalty", "presencePenalty"),
    ("frequency_penalty", "frequencyPenalty"),
)


class GeminiProvider(BaseProvider):
    """Gemini API (``generativelanguage.googleapis.com``)."""

    name = "gemini"
    schema_dialect: ClassVar[SchemaDialect] = GEMINI_DIALECT
    feature_keys: ClassVar[Mapping[str, Capability]] = {
        "tools": Capability.FUNCTION_CALLING,
        "toolConfig": Capability.FUNCTION_CALLING,
    }

    @property
    def endpoint(self) -> str:
        return f"{_BASE_URL}/{self.model}:generateContent"

    @property
    def stream_endpoint(self) -> str:
        return f"{_BASE_URL}/{self.model}:streamGenerateContent?alt=sse"

    def _auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"x-goog-api-key": self.api_key}

    # -- request building ----------------------------------------------------

    def _build_contents(self, request: Request) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        call_names: dict[str, str] = {}
        for message in request.messages:
            if message.role is Role.SYSTEM:
                continue
            role = ROLE_MAP.get(message.role)
            if role is None:
                logger.debug("gemini: dropping message with unmapped role %s", message.role)
                continue

            parts: list[dict[str, Any]] = []
            if message.role is Role.TOOL:
                name = message.name or call_names.get(message.tool_call_id or "", "")
                if not name:
                    logger.debug("gemini: dropping tool result with no function name")
                    continue
                parts.append(
                    {
                        "functionResponse": {
                            "name": name,
                            "response": {"content": message.content},
                        }
                    }
                )
            else:
                if message.content:
                    parts.append({"text": message.content})
                for call in message.tool_calls:
                    call_names[call.id] = call.name
                    parts.append(
                        {
                            "functionCall": {
                                "name": call.name,
                                "args": arguments_to_object(call.arguments),
                            }
                        }
                    )
            if parts:
                contents.append({"role": role, "parts": parts})
        return contents

    def _system_instruction(self, request: Request) -> dict[str, Any] | None:
        texts = [request.system_prompt] if request.system_prompt else []
        texts.extend(
            m.content for m in request.messages if m.role is Role.SYSTEM and m.content
        )
        if not texts:
            return None
        return {"parts": [{"text": "\n\n".join(texts)}]}

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        del stream  # Streaming is selected by the endpoint, not the body.
        body: dict[str, Any] = {"contents": self._build_contents(request)}
        system = self._system_instruction(request)
        if system is not None:
            body["systemInstruction"] = system

        generation: dict[str, Any] = {}
        for field_name, wire_name in _GENERATION_FIELDS:
            value = getattr(opts, field_name)
            if value is not None:
                generation[wire_name] = value
        if opts.stop:
            generation["stopSequences"] = list(opts.stop)
        if request.response_schema is not None:
            generation["responseMimeType"] = "application/json"
            generation["responseJsonSchema"] = self._sanitized_schema(
                request.response_schema
            )
        if generation:
            body["generationConfig"] = generation

        if opts.tools:
            declarations: list[dict[str, Any]] = []
            for tool in opts.tools:
                declaration: dict[str, Any] = {
                    "name": tool.name,
                    "parametersJsonSchema": self._tool_parameters(tool.parameters),
                }
                if tool.description:
                    declaration["description"] = tool.description
                declarations.append(declaration)
            body["tools"] = [{"functionDeclarations": declarations}]
            if opts.tool_choice is not None:
                body["toolConfig"] = {"functionCallingConfig": self._tool_config(opts)}

        self._merge_passthrough(body, opts)
        return body

    @staticmethod
    def _tool_config(opts: Options) -> dict[str, Any]:
        choice = opts.tool_choice
        if isinstance(choice, Mapping):
            return {"mode": "ANY", "allowedFunctionNames": [choice["name"]]}
        return {"mode": _TOOL_MODES.get(str(choice), "AUTO")}

    # -- response parsing ----------------------------------------------------

    @staticmethod
    def _parse_usage(metadata: Any) -> Usage | None:
        if not isinstance(metadata, Mapping):
            return None
        prompt = as_int(metadata.get("promptTokenCount"))
        thoughts = as_int(metadata.get("thoughtsTokenCount"))
        return Usage(
            input_tokens=prompt,
            cached_input_tokens=min(as_int(metadata.get("cachedContentTokenCount")), prompt),
            output_tokens=as_int(metadata.get("candidatesTokenCount")) + thoughts,
            reasoning_tokens=thoughts,
        )

    @staticmethod
    def _parse_candidate(candidate: Mapping[str, Any]) -> tuple[str, tuple[ToolCall, ...]]:
        content = candidate.get("content")
        parts = content.get("parts") if isinstance(content, Mapping) else None
        if not isinstance(parts, list):
            return "", ()
        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for part in parts:
            if not isinstance(part, Mapping) or part.get("thought"):
                continue
            if isinstance(part.get("text"), str):
                text_parts.append(part["text"])
            function_call = part.get("functionCall")
            if isinstance(function_call, Mapping):
                name = str(function_call.get("name", ""))
                calls.append(
                    ToolCall(
                        id=str(function_call.get("id") or f"call_{len(calls)}"),
                        function=FunctionCall(
                            name=name,
                            arguments=arguments_to_json(function_call.get("args")),
                        ),
                    )
                )
        return "".join(text_parts), tuple(calls)

    def _first_candidate(self, payload: Mapping[str, Any]) -> Mapping[str, Any] | None:
        candidates = payload.get("candidates")
        if isinstance(candidates, list) and candidates and isinstance(candidates[0], Mapping):
            return candidates[0]
        feedback = payload.get("promptFeedback")
        if isinstance(feedback, Mapping) and feedback.get("blockReason"):
            raise api_error(
                f"prompt blocked ({feedback['blockReason']})",
                provider=self.name,
                error_type="blocked",
            )
        return None

    def _parse_payload(self, payload: Any) -> Response:
        if not isinstance(payload, Mapping):
            raise ResponseParseError("gemini response is not a JSON object", provider=self.name)
        candidate = self._first_candidate(payload)
        if candidate is None:
            raise ResponseParseError(
                "gemini response has no candidates",
                provider=self.name,
                body_excerpt=excerpt(json.dumps(payload)),
            )
        text, calls = self._parse_candidate(candidate)
        if not text and calls:
            text = format_tool_calls(calls)
        return Response(
            content=Text(text),
            usage=self._parse_usage(payload.get("usageMetadata")),
            tool_calls=calls,
        )

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        data = sse_payload(chunk)
        if not data:
            raise SkipChunk("keep-alive")
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.debug("gemini stream: malformed chunk %s", excerpt(data))
            raise SkipChunk("malformed JSON") from None
        # Non-SSE streams arrive as a JSON array of chunks; one element each.
        if isinstance(payload, list) and len(payload) == 1:
            payload = payload[0]
        if not isinstance(payload, Mapping):
            raise SkipChunk("not an object")

        error = api_error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error

        candidate = self._first_candidate(payload)
        if candidate is None:
            raise SkipChunk("no candidates")
        text, calls = self._parse_candidate(candidate)
        response = Response(
            content=Text(text),
            tool_calls=calls,
            usage=self._parse_usage(payload.get("usageMetadata")),
        )
        if candidate.get("finishReason"):
            raise StreamEnd(response)
        if response.is_empty:
            raise SkipChunk("empty candidate")
        return response
