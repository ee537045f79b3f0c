"""Gemini generateContent translator wire shapes."""

from __future__ import annotations

import pytest

from llmwire.capabilities import Capability
from llmwire.errors import APIError, ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Message, Request, Role, Tool, ToolCall, Usage
from llmwire.options import Options
from llmwire.providers.gemini import GeminiProvider
from llmwire.stream import collect_stream
from tests.helpers import body_of, decode, sse

pytestmark = pytest.mark.contract

MODEL = "gemini-2.5-flash"
BASE = "https://generativelanguage.googleapis.com/v1beta/models"


@pytest.fixture
def provider() -> GeminiProvider:
    return GeminiProvider("g-key", MODEL)


def test_endpoints_and_auth_header(provider: GeminiProvider) -> None:
    assert provider.endpoint == f"{BASE}/{MODEL}:generateContent"
    assert provider.stream_endpoint == f"{BASE}/{MODEL}:streamGenerateContent?alt=sse"

    headers = provider.headers()
    assert headers["x-goog-api-key"] == "g-key"
    assert "Authorization" not in headers


def test_contents_roles_and_system_instruction(provider: GeminiProvider) -> None:
    call = ToolCall(id="c1", function=FunctionCall(name="weather", arguments='{"city": "Oslo"}'))
    request = Request(
        system_prompt="Be terse",
        messages=(
            Message(role=Role.SYSTEM, content="Metric units"),
            Message(role=Role.USER, content="Weather?"),
            Message(role=Role.ASSISTANT, tool_calls=(call,)),
            Message(role=Role.TOOL, content="12C", tool_call_id="c1"),
            Message(role=Role.TOOL, content="lost"),
        ),
    )
    body = decode(provider.prepare_request(request))

    assert body["systemInstruction"] == {"parts": [{"text": "Be terse\n\nMetric units"}]}
    assert body["contents"] == [
        {"role": "user", "parts": [{"text": "Weather?"}]},
        {
            "role": "model",
            "parts": [{"functionCall": {"name": "weather", "args": {"city": "Oslo"}}}],
        },
        {
            "role": "function",
            "parts": [{"functionResponse": {"name": "weather", "response": {"content": "12C"}}}],
        },
    ]
    assert "generationConfig" not in body


def test_streaming_does_not_change_the_body(provider: GeminiProvider) -> None:
    request = Request.from_prompt("Hi")
    assert provider.prepare_stream_request(request) == provider.prepare_request(request)


def test_generation_config(provider: GeminiProvider) -> None:
    schema = {
        "type": "object",
        "properties": {"tags": {"type": "array", "items": {"type": "string"}, "maxItems": 3}},
    }
    options = Options(temperature=0.1, top_p=0.8, top_k=20, max_tokens=64, stop="END", seed=7)
    request = Request.from_prompt("q", response_schema=schema, options=options)

    body = decode(provider.prepare_request(request))

    assert body["generationConfig"] == {
        "temperature": 0.1,
        "topP": 0.8,
        "topK": 20,
        "maxOutputTokens": 64,
        "seed": 7,
        "stopSequences": ["END"],
        "responseMimeType": "application/json",
        "responseJsonSchema": {
            "type": "object",
            "properties": {"tags": {"type": "array", "items": {"type": "string"}, "maxItems": 3}},
            "additionalProperties": False,
        },
    }


@pytest.mark.parametrize(
    ("choice", "expected"),
    [
        ("auto", {"mode": "AUTO"}),
        ("required", {"mode": "ANY"}),
        ("none", {"mode": "NONE"}),
        ({"name": "weather"}, {"mode": "ANY", "allowedFunctionNames": ["weather"]}),
    ],
)
def test_function_declarations_and_tool_config(provider: GeminiProvider, choice, expected) -> None:
    tool = Tool(
        name="weather",
        description="Current weather",
        parameters={"type": "object", "properties": {"city": {"type": "string"}}},
    )
    request = Request.from_prompt("q", options=Options(tools=[tool], tool_choice=choice))

    body = decode(provider.prepare_request(request))

    assert body["tools"] == [
        {
            "functionDeclarations": [
                {
                    "name": "weather",
                    "description": "Current weather",
                    "parametersJsonSchema": {
                        "type": "object",
                        "properties": {"city": {"type": "string"}},
                        "additionalProperties": False,
                    },
                }
            ]
        }
    ]
    assert body["toolConfig"] == {"functionCallingConfig": expected}


def test_tool_config_is_omitted_without_a_choice(provider: GeminiProvider) -> None:
    request = Request.from_prompt("q", options=Options(tools=[Tool(name="ping")]))
    body = decode(provider.prepare_request(request))
    assert "toolConfig" not in body


def test_older_models_lack_structured_output() -> None:
    provider = GeminiProvider("g-key", "gemini-1.0-pro")
    assert provider.capabilities == frozenset({Capability.STREAMING})


# =============================================================================
# Response parsing
# =============================================================================


def test_parse_text_usage_and_skips_thoughts(provider: GeminiProvider) -> None:
    payload = {
        "candidates": [
            {
                "content": {
                    "role": "model",
                    "parts": [
                        {"text": "thinking...", "thought": True},
                        {"text": "Hel"},
                        {"text": "lo"},
                    ],
                },
                "finishReason": "STOP",
            }
        ],
        "usageMetadata": {
            "promptTokenCount": 10,
            "cachedContentTokenCount": 4,
            "candidatesTokenCount": 5,
            "thoughtsTokenCount": 3,
        },
    }
    response = provider.parse_response(body_of(payload))

    assert response.as_text() == "Hello"
    assert response.usage == Usage(
        input_tokens=10, cached_input_tokens=4, output_tokens=8, reasoning_tokens=3
    )
    assert response.usage.total_tokens == 14


def test_function_call_only_response(provider: GeminiProvider) -> None:
    payload = {
        "candidates": [
            {
                "content": {
                    "parts": [{"functionCall": {"name": "weather", "args": {"city": "Oslo"}}}]
                }
            }
        ]
    }
    response = provider.parse_response(body_of(payload))

    assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
        ("call_0", "weather", '{"city": "Oslo"}')
    ]
    assert response.as_text() == (
        '<function_call>{"name":"weather","arguments":{"city":"Oslo"}}</function_call>'
    )


def test_candidate_without_parts_is_empty(provider: GeminiProvider) -> None:
    payload = {"candidates": [{"finishReason": "MAX_TOKENS"}]}
    assert provider.parse_response(body_of(payload)).is_empty


def test_blocked_prompt_raises(provider: GeminiProvider) -> None:
    payload = {"promptFeedback": {"blockReason": "SAFETY"}}
    with pytest.raises(APIError) as exc:
        provider.parse_response(body_of(payload))
    assert exc.value.error_type == "blocked"


def test_missing_candidates_is_parse_error(provider: GeminiProvider) -> None:
    with pytest.raises(ResponseParseError):
        provider.parse_response(body_of({"modelVersion": MODEL}))


def test_error_body_carries_status(provider: GeminiProvider) -> None:
    payload = {"error": {"code": 429, "message": "Quota", "status": "RESOURCE_EXHAUSTED"}}
    with pytest.raises(APIError) as exc:
        provider.parse_response(body_of(payload))
    assert exc.value.status_code == 429
    assert exc.value.retryable is True


# =============================================================================
# Streaming
# =============================================================================


def test_stream_yields_text_until_finish_reason(provider: GeminiProvider) -> None:
    chunks = [
        sse({"candidates": [{"content": {"parts": [{"text": "Hel"}]}}]}),
        sse({"candidates": [{"content": {"parts": []}}]}),
        sse(
            {
                "candidates": [{"content": {"parts": [{"text": "lo"}]}, "finishReason": "STOP"}],
                "usageMetadata": {"promptTokenCount": 3, "candidatesTokenCount": 2},
            }
        ),
        sse({"candidates": [{"content": {"parts": [{"text": "ignored"}]}}]}),
    ]
    response = collect_stream(provider, chunks)

    assert response.as_text() == "Hello"
    assert response.usage == Usage(input_tokens=3, output_tokens=2)


def test_stream_accepts_array_framed_chunks(provider: GeminiProvider) -> None:
    chunk = body_of([{"candidates": [{"content": {"parts": [{"text": "x"}]}}]}])
    assert provider.parse_stream_response(chunk).as_text() == "x"


def test_stream_terminal_without_content(provider: GeminiProvider) -> None:
    with pytest.raises(StreamEnd) as end:
        provider.parse_stream_response(sse({"candidates": [{"finishReason": "STOP"}]}))
    assert end.value.response is not None
    assert end.value.response.is_empty


@pytest.mark.parametrize("chunk", [b"", b": keep-alive\n\n", b"data: {oops\n\n", b"data: []\n\n"])
def test_stream_noise_is_skipped(provider: GeminiProvider, chunk: bytes) -> None:
    with pytest.raises(SkipChunk):
        provider.parse_stream_response(chunk)
