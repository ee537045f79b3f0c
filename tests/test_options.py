"""Typed options: validation, aliases, layering and passthrough."""

from __future__ import annotations

import pytest

from llmwire.errors import ConfigurationError
from llmwire.models import Tool
from llmwire.options import INTERNAL_KEYS, Options, coerce_options, merge_options

pytestmark = pytest.mark.unit


def test_from_mapping_splits_typed_fields_and_extras() -> None:
    opts = Options.from_mapping(
        {"temperature": 0.5, "max_completion_tokens": 64, "logprobs": True}
    )
    assert opts.temperature == 0.5
    assert opts.max_tokens == 64
    assert opts.extra == {"logprobs": True}


def test_internal_keys_never_pass_through() -> None:
    opts = Options.from_mapping(
        {"enable_prompt_caching": True, "system_prompt": "x", "user": "u-1"}
    )
    assert opts.enable_caching is True
    assert opts.caching
    passthrough = opts.passthrough()
    assert passthrough == {"user": "u-1"}
    assert not INTERNAL_KEYS & set(passthrough)


def test_later_layers_win_and_none_means_unset() -> None:
    builtin = Options(max_tokens=4096)
    defaults = Options(temperature=0.1, extra={"user": "a"})
    request = Options(temperature=0.7)
    call = {"top_p": 0.9, "user": "b"}

    merged = merge_options(builtin, defaults, request, None, call)

    assert merged.max_tokens == 4096
    assert merged.temperature == 0.7
    assert merged.top_p == 0.9
    assert merged.extra == {"user": "b"}


def test_with_option_routes_known_keys_to_fields() -> None:
    opts = Options().with_option("stop_sequences", ["END"]).with_option("foo", 1)
    assert opts.stop == ("END",)
    assert opts.extra == {"foo": 1}


def test_stop_accepts_a_single_string() -> None:
    assert Options(stop="\n").stop == ("\n",)


def test_tools_accept_openai_style_dicts() -> None:
    opts = Options(
        tools=[
            {
                "type": "function",
                "function": {"name": "lookup", "parameters": {"type": "object"}},
            },
            Tool(name="other"),
        ]
    )
    assert opts.tools is not None
    assert [t.name for t in opts.tools] == ["lookup", "other"]
    assert opts.tools[0].parameters == {"type": "object"}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"temperature": -0.1},
        {"top_p": 1.5},
        {"max_tokens": 0},
        {"max_tokens": True},
        {"top_k": -3},
        {"seed": "42"},
        {"tool_choice": "sometimes"},
        {"tools": ["lookup"]},
    ],
)
def test_invalid_values_raise_configuration_error(kwargs: dict) -> None:
    with pytest.raises(ConfigurationError):
        Options(**kwargs)


def test_extra_is_read_only() -> None:
    opts = Options(extra={"a": 1})
    with pytest.raises(TypeError):
        opts.extra["b"] = 2  # type: ignore[index]


def test_coerce_options_rejects_other_types() -> None:
    assert coerce_options(None) is None
    with pytest.raises(ConfigurationError):
        coerce_options(["temperature"])  # type: ignore[arg-type]
