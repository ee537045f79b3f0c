"""Shared utilities for provider implementations."""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any

from llmwire.errors import RequestBuildError, ResponseParseError
from llmwire.models import FunctionCall, ToolCall

if TYPE_CHECKING:
    from collections.abc import Iterable

_EXCERPT_LIMIT = 200
_FUNCTION_CALL_RE = re.compile(r"<function_call>(.*?)</function_call>", re.DOTALL)


def excerpt(body: bytes | str, limit: int = _EXCERPT_LIMIT) -> str:
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    return text if len(text) <= limit else text[:limit] + "..."


def encode_body(body: dict[str, Any], *, provider: str) -> bytes:
    """Serialize a request body, failing before any bytes leave the process."""
    try:
        return json.dumps(body, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise RequestBuildError(
            f"{provider} request body is not JSON serializable: {e}",
            hint="Option values and tool schemas must be plain JSON types.",
        ) from e


def decode_body(body: bytes | str, *, provider: str) -> Any:
    """Decode a JSON response body.

    Raises:
        ResponseParseError: The body is not JSON.
    """
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ResponseParseError(
            f"{provider} response is not valid JSON",
            provider=provider,
            body_excerpt=excerpt(body),
        ) from e


def sse_payload(chunk: bytes | str) -> str:
    """Return the data payload of one SSE chunk.

    Accepts a bare payload, a ``data:`` line, or a whole event block. A block
    with no data lines (comments, ``event:`` only) yields an empty string.
    """
    text = chunk.decode("utf-8", errors="replace") if isinstance(chunk, bytes) else chunk
    text = text.strip()
    if not text:
        return ""
    lines = text.splitlines()
    if not any(line.startswith(("data:", "event:", ":", "id:", "retry:")) for line in lines):
        return text
    data = [line[5:].removeprefix(" ") for line in lines if line.startswith("data:")]
    return "\n".join(data).strip()


def arguments_to_json(arguments: Any) -> str:
    """Return tool-call arguments as raw JSON text.

    Strings are kept verbatim; decoded objects from vendors that send them
    parsed are re-encoded.
    """
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, ensure_ascii=False)


def arguments_to_object(arguments: str) -> Any:
    """Decode raw JSON arguments for vendors that want an object."""
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError as e:
        raise RequestBuildError(
            f"Tool call arguments are not valid JSON: {e.msg}",
            hint="ToolCall arguments must hold the raw JSON the model produced.",
        ) from e


def format_function_call(call: ToolCall | FunctionCall) -> str:
    """Render a call as ``<function_call>{"name": ..., "arguments": ...}</function_call>``."""
    function = call.function if isinstance(call, ToolCall) else call
    arguments: Any = function.arguments
    try:
        arguments = json.loads(function.arguments) if function.arguments else {}
    except json.JSONDecodeError:
        arguments = function.arguments
    payload = json.dumps(
        {"name": function.name, "arguments": arguments},
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return f"<function_call>{payload}</function_call>"


def format_tool_calls(calls: Iterable[ToolCall]) -> str:
    """Concatenate formatted calls, one per line, in call order."""
    return "\n".join(format_function_call(call) for call in calls)


def extract_function_calls(text: str) -> list[FunctionCall]:
    """Recover calls rendered by :func:`format_function_call`.

    Raises:
        ResponseParseError: A ``<function_call>`` block is not valid JSON.
    """
    calls: list[FunctionCall] = []
    for match in _FUNCTION_CALL_RE.finditer(text):
        try:
            payload = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            raise ResponseParseError(
                f"Malformed function call block: {e.msg}",
                body_excerpt=excerpt(match.group(0)),
            ) from e
        if not isinstance(payload, dict) or not isinstance(payload.get("name"), str):
            raise ResponseParseError(
                "Function call block has no name",
                body_excerpt=excerpt(match.group(0)),
            )
        calls.append(
            FunctionCall(
                name=payload["name"],
                arguments=arguments_to_json(payload.get("arguments")),
            )
        )
    return calls


def as_int(value: Any) -> int:
    """Coerce a usage counter to a non-negative int; junk counts as zero."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0)
    return 0
