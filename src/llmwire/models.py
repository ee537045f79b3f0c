"""Vendor-neutral request and response models.

Everything here is a short-lived value object: built once per call, never
mutated, and safe to share between threads.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
import enum
from typing import TYPE_CHECKING, Any

from llmwire.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from llmwire.options import Options


class Role(str, enum.Enum):
    """Closed set of conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"

    def __str__(self) -> str:
        return self.value


class CacheType(str, enum.Enum):
    """Prompt-caching hints understood by vendors that support them."""

    EPHEMERAL = "ephemeral"

    def __str__(self) -> str:
        return self.value


def _coerce_role(value: Role | str) -> Role:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown message role: {value!r}",
            hint="Use one of 'user', 'assistant', 'system', 'tool'.",
        ) from None


def _coerce_cache_type(value: CacheType | str | None) -> CacheType | None:
    if value is None or isinstance(value, CacheType):
        return value
    try:
        return CacheType(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown cache type: {value!r}",
            hint="The only supported cache hint is 'ephemeral'.",
        ) from None


@dataclass(frozen=True)
class FunctionCall:
    """A function invocation requested by the model.

    ``arguments`` is the raw JSON text exactly as the vendor produced it.
    """

    name: str
    arguments: str = "{}"


@dataclass(frozen=True)
class ToolCall:
    """A tool call requested by the model."""

    id: str
    function: FunctionCall
    type: str = "function"

    def __post_init__(self) -> None:
        if self.type != "function":
            raise ConfigurationError(
                f"Unsupported tool call type: {self.type!r}",
                hint="Only 'function' tool calls are defined.",
            )

    @property
    def name(self) -> str:
        return self.function.name

    @property
    def arguments(self) -> str:
        return self.function.arguments


@dataclass(frozen=True)
class Tool:
    """A caller-defined function the model may call."""

    name: str
    description: str = ""
    #: JSON Schema for the arguments object; sanitized per vendor on the way out.
    parameters: Mapping[str, Any] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(
                "Tool name must be a non-empty string",
                hint="Pass Tool(name='get_weather', parameters={...}).",
            )


@dataclass(frozen=True)
class Message:
    """One conversation turn."""

    role: Role
    content: str = ""
    name: str | None = None
    #: Set on ``tool`` messages: the id of the call this message answers.
    tool_call_id: str | None = None
    cache_type: CacheType | None = None
    #: Set on ``assistant`` messages that requested tool use, in call order.
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", _coerce_role(self.role))
        object.__setattr__(self, "cache_type", _coerce_cache_type(self.cache_type))
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.content is None:
            object.__setattr__(self, "content", "")


@dataclass(frozen=True)
class Text:
    """Plain text content."""

    value: str = ""


#: Closed set of response content kinds.
Content = Text


@dataclass(frozen=True)
class Usage:
    """Token accounting relayed from the vendor.

    ``total_tokens`` is always derived so cache hits are never double counted.
    """

    input_tokens: int = 0
    cached_input_tokens: int = 0
    output_tokens: int = 0
    cached_output_tokens: int = 0
    reasoning_tokens: int = 0

    def __post_init__(self) -> None:
        for name in (
            "input_tokens",
            "cached_input_tokens",
            "output_tokens",
            "cached_output_tokens",
            "reasoning_tokens",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"Usage.{name} must be a non-negative int, got {value!r}")

    @property
    def total_tokens(self) -> int:
        return (self.input_tokens - self.cached_input_tokens) + (
            self.output_tokens - self.cached_output_tokens
        )


@dataclass(frozen=True)
class Response:
    """A complete response, or one partial response per stream chunk."""

    content: Content = field(default_factory=Text)
    role: Role = Role.ASSISTANT
    usage: Usage | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    cache_type: CacheType | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "role", _coerce_role(self.role))
        if not isinstance(self.tool_calls, tuple):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    def as_text(self) -> str:
        """Return the text value of the content."""
        return self.content.value

    @property
    def is_empty(self) -> bool:
        return not self.content.value and not self.tool_calls

    def with_usage(self, usage: Usage | None) -> Response:
        return replace(self, usage=usage)


@dataclass(frozen=True)
class Request:
    """An outbound conversation.

    ``response_schema`` may be a JSON string, raw bytes, a mapping, or a
    pydantic model; translators normalize it through ``llmwire.schema``.
    """

    messages: tuple[Message, ...] = ()
    system_prompt: str | None = None
    response_schema: Any = None
    options: Options | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.messages, tuple):
            object.__setattr__(self, "messages", tuple(self.messages))
        for message in self.messages:
            if not isinstance(message, Message):
                raise ConfigurationError(
                    f"Request messages must be Message instances, got {type(message).__name__}",
                    hint="Wrap turns as Message(role='user', content='...').",
                )
        if isinstance(self.options, Mapping):
            from llmwire.options import Options

            object.__setattr__(self, "options", Options.from_mapping(self.options))

    @classmethod
    def from_prompt(
        cls,
        prompt: str,
        *,
        system_prompt: str | None = None,
        history: Iterable[Message] = (),
        response_schema: Any = None,
        options: Options | None = None,
    ) -> Request:
        """Build a request whose last turn is a single user prompt."""
        messages = (*history, Message(role=Role.USER, content=prompt))
        return cls(
            messages=messages,
            system_prompt=system_prompt,
            response_schema=response_schema,
            options=options,
        )
