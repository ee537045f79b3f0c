"""Anthropic Messages translator wire shapes."""

from __future__ import annotations

import pytest

from llmwire.errors import APIError, ResponseParseError, SkipChunk, StreamEnd
from llmwire.models import FunctionCall, Message, Request, Role, Tool, ToolCall, Usage
from llmwire.options import Options
from llmwire.providers.anthropic import AnthropicProvider, split_system_prompt
from llmwire.stream import collect_stream
from tests.helpers import body_of, decode, sse

pytestmark = pytest.mark.contract

MODEL = "claude-3-5-sonnet-latest"


@pytest.fixture
def provider() -> AnthropicProvider:
    return AnthropicProvider("sk-ant", MODEL)


# =============================================================================
# System prompt segmentation
# =============================================================================


@pytest.mark.parametrize(
    ("paragraphs", "max_parts", "sizes"),
    [
        (1, 3, [1]),
        (3, 3, [1, 1, 1]),
        (4, 3, [2, 1, 1]),
        (5, 3, [2, 2, 1]),
        (9, 3, [3, 3, 3]),
        (10, 4, [3, 3, 2, 2]),
        (5, 1, [5]),
    ],
)
def test_split_distributes_paragraphs_evenly(
    paragraphs: int, max_parts: int, sizes: list[int]
) -> None:
    prompt = "\n\n".join(f"p{i}" for i in range(paragraphs))
    segments = split_system_prompt(prompt, max_parts)

    assert [len(s.split("\n\n")) for s in segments] == sizes
    assert "\n\n".join(segments) == prompt


def test_later_system_segments_are_cacheable(provider: AnthropicProvider) -> None:
    request = Request.from_prompt("q", system_prompt="a\n\nb\n\nc\n\nd")
    body = decode(provider.prepare_request(request))

    assert body["system"] == [
        {"type": "text", "text": "a\n\nb"},
        {"type": "text", "text": "c", "cache_control": {"type": "ephemeral"}},
        {"type": "text", "text": "d", "cache_control": {"type": "ephemeral"}},
    ]


def test_system_messages_fold_into_system_blocks(provider: AnthropicProvider) -> None:
    request = Request(
        system_prompt="Be terse",
        messages=(
            Message(role=Role.SYSTEM, content="Answer in French"),
            Message(role=Role.USER, content="Hello"),
        ),
    )
    body = decode(provider.prepare_request(request))

    texts = [block["text"] for block in body["system"]]
    assert texts == ["Be terse", "Answer in French"]
    assert body["messages"] == [{"role": "user", "content": [{"type": "text", "text": "Hello"}]}]


# =============================================================================
# Messages
# =============================================================================


def test_tool_round_trip_and_role_alternation(provider: AnthropicProvider) -> None:
    call = ToolCall(id="toolu_1", function=FunctionCall(name="lookup", arguments='{"q": "x"}'))
    request = Request(
        messages=(
            Message(role=Role.USER, content="first"),
            Message(role=Role.USER, content="second"),
            Message(role=Role.ASSISTANT, content="checking", tool_calls=(call,)),
            Message(role=Role.TOOL, content="found", tool_call_id="toolu_1"),
            Message(role=Role.TOOL, content="orphan"),
            Message(role=Role.USER, content="thanks"),
        )
    )
    body = decode(provider.prepare_request(request))

    assert body["messages"] == [
        {
            "role": "user",
            "content": [{"type": "text", "text": "first"}, {"type": "text", "text": "second"}],
        },
        {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "checking"},
                {"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {"q": "x"}},
            ],
        },
        {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "toolu_1", "content": "found"},
                {"type": "text", "text": "thanks"},
            ],
        },
    ]


def test_cache_breakpoints_are_capped(provider: AnthropicProvider) -> None:
    request = Request(
        system_prompt="s1\n\ns2\n\ns3",
        messages=(
            Message(role=Role.USER, content="u1", cache_type="ephemeral"),
            Message(role=Role.ASSISTANT, content="a1", cache_type="ephemeral"),
            Message(role=Role.USER, content="u2", cache_type="ephemeral"),
            Message(role=Role.ASSISTANT, content="a2"),
            Message(role=Role.USER, content="u3"),
        ),
    )
    body = decode(provider.prepare_request(request, {"enable_caching": True}))

    marked = [b for b in body["system"] if "cache_control" in b]
    for message in body["messages"]:
        marked += [b for b in message["content"] if "cache_control" in b]
    assert len(marked) == 4
    assert [b["text"] for b in marked] == ["s2", "s3", "u1", "a1"]
    assert "enable_caching" not in body


def test_caching_marks_the_last_turn(provider: AnthropicProvider) -> None:
    request = Request.from_prompt("q")
    body = decode(provider.prepare_request(request, {"enable_caching": True}))
    assert body["messages"][-1]["content"][-1]["cache_control"] == {"type": "ephemeral"}

    plain = decode(provider.prepare_request(request))
    assert "cache_control" not in plain["messages"][-1]["content"][-1]


# =============================================================================
# Options, tools, structured output
# =============================================================================


def test_sampling_options_and_default_max_tokens(provider: AnthropicProvider) -> None:
    request = Request.from_prompt(
        "q", options=Options(temperature=0.3, top_k=40, stop=["END"], seed=5)
    )
    body = decode(provider.prepare_request(request))

    assert body["max_tokens"] == 4096
    assert body["temperature"] == 0.3
    assert body["top_k"] == 40
    assert body["stop_sequences"] == ["END"]
    assert "seed" not in body

    provider.set_option("max_tokens", 256)
    assert decode(provider.prepare_request(request))["max_tokens"] == 256


@pytest.mark.parametrize(
    ("choice", "expected"),
    [
        (None, {"type": "auto"}),
        ("auto", {"type": "auto"}),
        ("required", {"type": "any"}),
        ("none", {"type": "none"}),
        ({"name": "lookup"}, {"type": "tool", "name": "lookup"}),
    ],
)
def test_tools_and_tool_choice(provider: AnthropicProvider, choice, expected) -> None:
    tool = Tool(
        name="lookup",
        description="Search",
        parameters={"type": "object", "properties": {"q": {"type": "string", "minLength": 2}}},
    )
    request = Request.from_prompt("q", options=Options(tools=(tool,), tool_choice=choice))
    body = decode(provider.prepare_request(request))

    assert body["tools"] == [
        {
            "name": "lookup",
            "description": "Search",
            "input_schema": {
                "type": "object",
                "properties": {"q": {"type": "string"}},
                "required": ["q"],
                "additionalProperties": False,
            },
        }
    ]
    assert body["tool_choice"] == expected


def test_structured_output_and_stream_flag(provider: AnthropicProvider) -> None:
    schema = {"type": "object", "properties": {"city": {"type": "string"}}}
    request = Request.from_prompt("q", response_schema=schema)

    body = decode(provider.prepare_stream_request(request))

    assert body["stream"] is True
    assert body["output_config"] == {
        "format": {
            "type": "json_schema",
            "schema": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
                "additionalProperties": False,
            },
        }
    }


def test_headers(provider: AnthropicProvider) -> None:
    headers = provider.headers()
    assert headers["x-api-key"] == "sk-ant"
    assert headers["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in headers
    assert provider.endpoint == "https://api.anthropic.com/v1/messages"


# =============================================================================
# Response parsing
# =============================================================================


def test_parse_text_tool_use_and_cache_usage(provider: AnthropicProvider) -> None:
    payload = {
        "type": "message",
        "role": "assistant",
        "content": [
            {"type": "text", "text": "Let me check."},
            {"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {"q": "x"}},
        ],
        "usage": {
            "input_tokens": 10,
            "cache_read_input_tokens": 50,
            "cache_creation_input_tokens": 20,
            "output_tokens": 5,
        },
    }
    response = provider.parse_response(body_of(payload))

    assert response.as_text() == "Let me check."
    assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
        ("toolu_1", "lookup", '{"q": "x"}')
    ]
    assert response.usage == Usage(input_tokens=80, cached_input_tokens=50, output_tokens=5)
    assert response.usage.total_tokens == 35


def test_tool_only_response_is_formatted(provider: AnthropicProvider) -> None:
    payload = {
        "type": "message",
        "content": [{"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {}}],
    }
    response = provider.parse_response(body_of(payload))
    assert response.as_text() == '<function_call>{"name":"lookup","arguments":{}}</function_call>'


@pytest.mark.parametrize(
    "payload",
    [{"type": "message", "content": []}, {"type": "message", "stop_reason": "end_turn"}],
)
def test_empty_message_is_empty_response(provider: AnthropicProvider, payload: dict) -> None:
    assert provider.parse_response(body_of(payload)).is_empty


def test_unknown_shape_is_parse_error(provider: AnthropicProvider) -> None:
    with pytest.raises(ResponseParseError):
        provider.parse_response(b'{"completion": "old api"}')


def test_error_body_is_api_error(provider: AnthropicProvider) -> None:
    body = body_of(
        {"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}
    )
    with pytest.raises(APIError) as exc:
        provider.parse_response(body)
    assert exc.value.error_type == "overloaded_error"
    assert "Overloaded" in str(exc.value)


# =============================================================================
# Streaming
# =============================================================================


def test_stream_tool_use_fragments(provider: AnthropicProvider) -> None:
    chunks = [
        sse({"type": "message_start", "message": {"id": "msg_1"}}),
        sse(
            {
                "type": "content_block_start",
                "index": 0,
                "content_block": {
                    "type": "tool_use",
                    "id": "toolu_9",
                    "name": "lookup",
                    "input": {},
                },
            }
        ),
        sse(
            {
                "type": "content_block_delta",
                "index": 0,
                "delta": {"type": "input_json_delta", "partial_json": '{"q": '},
            }
        ),
        sse(
            {
                "type": "content_block_delta",
                "index": 0,
                "delta": {"type": "input_json_delta", "partial_json": '"x"}'},
            }
        ),
        sse({"type": "content_block_stop", "index": 0}),
        sse(
            {
                "type": "message_delta",
                "delta": {"stop_reason": "tool_use"},
                "usage": {"output_tokens": 7},
            }
        ),
    ]
    response = collect_stream(provider, chunks)

    assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
        ("toolu_9", "lookup", '{"q": "x"}')
    ]
    assert response.usage == Usage(output_tokens=7)


def test_message_delta_without_stop_reason_is_skipped(provider: AnthropicProvider) -> None:
    with pytest.raises(SkipChunk):
        provider.parse_stream_response(sse({"type": "message_delta", "delta": {}}))


def test_message_stop_is_terminal(provider: AnthropicProvider) -> None:
    with pytest.raises(StreamEnd) as end:
        provider.parse_stream_response(b'event: message_stop\ndata: {"type": "message_stop"}\n\n')
    assert end.value.response is None


def test_stream_error_event_raises(provider: AnthropicProvider) -> None:
    with pytest.raises(APIError):
        provider.parse_stream_response(
            sse({"type": "error", "error": {"type": "api_error", "message": "boom"}})
        )


def _message_start(usage: dict) -> bytes:
    return sse({"type": "message_start", "message": {"id": "msg_2", "usage": usage}})


def test_stream_usage_combines_message_start_and_delta(provider: AnthropicProvider) -> None:
    chunks = [
        _message_start(
            {"input_tokens": 25, "cache_read_input_tokens": 10, "output_tokens": 1}
        ),
        sse(
            {
                "type": "content_block_delta",
                "index": 0,
                "delta": {"type": "text_delta", "text": "Hi"},
            }
        ),
        sse(
            {
                "type": "message_delta",
                "delta": {"stop_reason": "end_turn"},
                "usage": {"output_tokens": 15},
            }
        ),
        sse({"type": "message_stop"}),
    ]
    response = collect_stream(provider, chunks)

    assert response.as_text() == "Hi"
    assert response.usage == Usage(input_tokens=35, cached_input_tokens=10, output_tokens=15)
    assert response.usage.total_tokens == 40


def test_message_stop_carries_start_usage_when_delta_is_missing(
    provider: AnthropicProvider,
) -> None:
    with pytest.raises(SkipChunk):
        provider.parse_stream_response(_message_start({"input_tokens": 12}))
    with pytest.raises(StreamEnd) as end:
        provider.parse_stream_response(sse({"type": "message_stop"}))
    assert end.value.usage == Usage(input_tokens=12)


def test_start_usage_does_not_leak_into_the_next_stream(provider: AnthropicProvider) -> None:
    first = [
        _message_start({"input_tokens": 50}),
        sse({"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {}}),
    ]
    assert collect_stream(provider, first).usage == Usage(input_tokens=50)

    second = [
        sse({"type": "message_delta", "delta": {"stop_reason": "end_turn"}, "usage": {}}),
    ]
    assert collect_stream(provider, second).usage == Usage()
