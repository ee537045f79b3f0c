"""Three-way stream contract: content, skip and terminal stay disjoint."""

from __future__ import annotations

import pytest

from llmwire.errors import LLMWireError, SkipChunk, StreamEnd, StreamSignal
from llmwire.models import FunctionCall, ToolCall, Usage
from llmwire.providers.anthropic import AnthropicProvider
from llmwire.providers.generic import LMSTUDIO, GenericProvider
from llmwire.providers.ollama import OllamaProvider
from llmwire.providers.openai import OpenAIProvider
from llmwire.stream import StreamReader, collect_stream, iter_stream, merge_tool_calls
from tests.helpers import sse

pytestmark = pytest.mark.unit


def _delta(text: str) -> bytes:
    return sse({"choices": [{"index": 0, "delta": {"content": text}}]})


def _tool_fragment(arguments: str) -> bytes:
    fragment = {"index": 0, "function": {"arguments": arguments}}
    return sse({"choices": [{"delta": {"tool_calls": [fragment]}}]})


def test_signals_are_disjoint_types() -> None:
    assert not issubclass(SkipChunk, StreamEnd)
    assert not issubclass(StreamEnd, SkipChunk)
    assert issubclass(SkipChunk, StreamSignal)
    assert not issubclass(StreamSignal, LLMWireError)


def test_done_sentinel_is_terminal_not_content() -> None:
    provider = OpenAIProvider("sk-test", "gpt-4o-mini")
    with pytest.raises(StreamEnd) as end:
        provider.parse_stream_response(b"[DONE]")
    assert end.value.response is None
    assert end.value.usage is None


@pytest.mark.parametrize(("n_content", "n_skip"), [(0, 0), (1, 0), (3, 2), (5, 7)])
def test_n_content_m_skip_one_terminal(n_content: int, n_skip: int) -> None:
    provider = GenericProvider("", "local-model", config=LMSTUDIO)
    skips = [
        sse({"choices": [{"index": 0, "delta": {"role": "assistant"}}]}),
        b": keep-alive\n\n",
        b"data: {not json\n\n",
    ]
    chunks: list[bytes] = []
    for i in range(max(n_content, n_skip)):
        if i < n_skip:
            chunks.append(skips[i % len(skips)])
        if i < n_content:
            chunks.append(_delta(f"t{i}"))
    chunks.append(sse("[DONE]"))
    # Anything after the terminal chunk must not be read.
    chunks.append(_delta("after"))

    reader = iter_stream(provider, chunks)
    texts = [r.as_text() for r in reader]

    assert texts == [f"t{i}" for i in range(n_content)]
    assert reader.skipped == n_skip
    assert reader.finished is True


def test_usage_trailer_is_terminal_and_finish_reason_is_not() -> None:
    provider = OpenAIProvider("sk-test", "gpt-4o-mini")
    chunks = [
        sse({"choices": [{"index": 0, "delta": {"role": "assistant", "content": ""}}]}),
        _delta("Hel"),
        _delta("lo"),
        sse({"choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}]}),
        sse(
            {
                "choices": [],
                "usage": {
                    "prompt_tokens": 12,
                    "completion_tokens": 2,
                    "prompt_tokens_details": {"cached_tokens": 4},
                },
            }
        ),
        sse("[DONE]"),
    ]

    reader = StreamReader(provider, chunks)
    assert [r.as_text() for r in reader] == ["Hel", "lo"]
    assert reader.finished
    assert reader.usage == Usage(input_tokens=12, cached_input_tokens=4, output_tokens=2)
    assert reader.skipped == 2


def test_step_after_terminal_raises() -> None:
    reader = StreamReader(OpenAIProvider("sk", "gpt-4o"))
    assert reader.step(b"data: [DONE]\n\n") is None
    with pytest.raises(RuntimeError, match="already finished"):
        reader.step(_delta("late"))


def test_terminal_chunk_with_text_is_emitted() -> None:
    provider = OllamaProvider("", "llama3.2")
    chunks = [
        b'{"message": {"role": "assistant", "content": "Hi"}, "done": false}',
        b'{"message": {"role": "assistant", "content": "!"}, "done": true, '
        b'"prompt_eval_count": 5, "eval_count": 2}',
    ]
    response = collect_stream(provider, chunks)
    assert response.as_text() == "Hi!"
    assert response.usage == Usage(input_tokens=5, output_tokens=2)


def test_merge_tool_calls_joins_fragments_in_order() -> None:
    fragments = [
        ToolCall(id="call_1", function=FunctionCall(name="lookup", arguments="")),
        ToolCall(id="", function=FunctionCall(name="", arguments='{"q"')),
        ToolCall(id="", function=FunctionCall(name="", arguments=': "x"}')),
        ToolCall(id="call_2", function=FunctionCall(name="other", arguments="{}")),
    ]
    calls = merge_tool_calls([], fragments)
    assert [(c.id, c.name, c.arguments) for c in calls] == [
        ("call_1", "lookup", '{"q": "x"}'),
        ("call_2", "other", "{}"),
    ]


def test_collect_openai_tool_call_stream() -> None:
    provider = OpenAIProvider("sk-test", "gpt-4o")
    chunks = [
        sse(
            {
                "choices": [
                    {
                        "delta": {
                            "tool_calls": [
                                {
                                    "index": 0,
                                    "id": "call_9",
                                    "type": "function",
                                    "function": {"name": "get_weather", "arguments": ""},
                                }
                            ]
                        }
                    }
                ]
            }
        ),
        _tool_fragment('{"city"'),
        _tool_fragment(':"Oslo"}'),
        sse({"choices": [{"delta": {}, "finish_reason": "tool_calls"}]}),
        sse("[DONE]"),
    ]
    response = collect_stream(provider, chunks)
    assert len(response.tool_calls) == 1
    call = response.tool_calls[0]
    assert (call.id, call.name, call.arguments) == ("call_9", "get_weather", '{"city":"Oslo"}')


def _text_delta(text: str) -> bytes:
    delta = {"type": "text_delta", "text": text}
    return sse({"type": "content_block_delta", "index": 0, "delta": delta})


def test_collect_anthropic_stream() -> None:
    provider = AnthropicProvider("sk-ant", "claude-3-5-haiku-latest")
    chunks = [
        sse({"type": "message_start", "message": {"usage": {"input_tokens": 9}}}),
        sse(
            {
                "type": "content_block_start",
                "index": 0,
                "content_block": {"type": "text", "text": ""},
            }
        ),
        b"event: ping\ndata: {\"type\": \"ping\"}\n\n",
        _text_delta("Par"),
        _text_delta("is"),
        sse({"type": "content_block_stop", "index": 0}),
        sse(
            {
                "type": "message_delta",
                "delta": {"stop_reason": "end_turn"},
                "usage": {"output_tokens": 2},
            }
        ),
        sse({"type": "message_stop"}),
    ]
    reader = StreamReader(provider, chunks)
    assert "".join(r.as_text() for r in reader) == "Paris"
    assert reader.usage == Usage(input_tokens=9, output_tokens=2)
