"""Unified data model: validation, coercion and the usage invariant."""

from __future__ import annotations

import pytest

from llmwire.errors import ConfigurationError
from llmwire.models import (
    CacheType,
    FunctionCall,
    Message,
    Request,
    Response,
    Role,
    Text,
    Tool,
    ToolCall,
    Usage,
)
from llmwire.options import Options

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("input_tokens", "cached_in", "output_tokens", "cached_out"),
    [(0, 0, 0, 0), (100, 0, 50, 0), (100, 40, 50, 0), (100, 100, 50, 10), (7, 3, 9, 9)],
)
def test_usage_total_subtracts_cache_hits(
    input_tokens: int, cached_in: int, output_tokens: int, cached_out: int
) -> None:
    usage = Usage(
        input_tokens=input_tokens,
        cached_input_tokens=cached_in,
        output_tokens=output_tokens,
        cached_output_tokens=cached_out,
        reasoning_tokens=5,
    )
    assert usage.total_tokens == (input_tokens - cached_in) + (output_tokens - cached_out)


def test_usage_rejects_negative_counts() -> None:
    with pytest.raises(ValueError, match="input_tokens"):
        Usage(input_tokens=-1)


def test_message_coerces_role_and_cache_type() -> None:
    message = Message(role="assistant", content="hi", cache_type="ephemeral")
    assert message.role is Role.ASSISTANT
    assert message.cache_type is CacheType.EPHEMERAL


def test_message_unknown_role_is_a_caller_error() -> None:
    with pytest.raises(ConfigurationError, match="Unknown message role") as exc:
        Message(role="narrator", content="x")
    assert exc.value.hint is not None


def test_message_tool_calls_become_a_tuple() -> None:
    call = ToolCall(id="call_1", function=FunctionCall(name="f", arguments='{"a":1}'))
    message = Message(role=Role.ASSISTANT, tool_calls=[call])
    assert message.tool_calls == (call,)
    assert message.tool_calls[0].name == "f"
    assert message.tool_calls[0].arguments == '{"a":1}'


def test_tool_call_only_accepts_function_type() -> None:
    with pytest.raises(ConfigurationError):
        ToolCall(id="x", function=FunctionCall(name="f"), type="retrieval")


def test_tool_requires_a_name() -> None:
    with pytest.raises(ConfigurationError):
        Tool(name="")


def test_response_helpers() -> None:
    empty = Response()
    assert empty.is_empty
    assert empty.as_text() == ""
    assert empty.role is Role.ASSISTANT

    usage = Usage(input_tokens=1)
    filled = Response(content=Text("Paris")).with_usage(usage)
    assert not filled.is_empty
    assert filled.as_text() == "Paris"
    assert filled.usage is usage


def test_request_from_prompt_appends_user_turn_after_history() -> None:
    history = [Message(role=Role.USER, content="a"), Message(role=Role.ASSISTANT, content="b")]
    request = Request.from_prompt("c", system_prompt="sys", history=history)
    assert [m.content for m in request.messages] == ["a", "b", "c"]
    assert request.messages[-1].role is Role.USER
    assert request.system_prompt == "sys"


def test_request_converts_option_mappings() -> None:
    request = Request(options={"temperature": 0.2, "logprobs": True})
    assert isinstance(request.options, Options)
    assert request.options.temperature == 0.2
    assert request.options.extra == {"logprobs": True}


def test_request_rejects_non_message_turns() -> None:
    with pytest.raises(ConfigurationError, match="Message instances"):
        Request(messages=({"role": "user", "content": "hi"},))  # type: ignore[arg-type]
