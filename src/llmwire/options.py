"""Typed request options with a passthrough bag for vendor extras."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import Any

from llmwire.errors import ConfigurationError
from llmwire.models import Tool

#: Bookkeeping keys that steer encoding and must never reach a request body.
INTERNAL_KEYS: frozenset[str] = frozenset(
    {"enable_caching", "enable_prompt_caching", "system_prompt", "structured_messages"}
)

_ALIASES: dict[str, str] = {
    "max_completion_tokens": "max_tokens",
    "enable_prompt_caching": "enable_caching",
    "stop_sequences": "stop",
}

_TOOL_CHOICES = frozenset({"auto", "required", "none"})


def _coerce_tool(value: Tool | Mapping[str, Any]) -> Tool:
    if isinstance(value, Tool):
        return value
    if isinstance(value, Mapping):
        # Accept the OpenAI envelope as well as a flat definition.
        spec = value.get("function", value)
        if isinstance(spec, Mapping) and isinstance(spec.get("name"), str):
            return Tool(
                name=spec["name"],
                description=spec.get("description", "") or "",
                parameters=spec.get("parameters"),
            )
    raise ConfigurationError(
        "tools must be Tool instances or function definition dicts",
        hint="Pass tools=[Tool(name='lookup', parameters={'type': 'object'})].",
    )


@dataclass(frozen=True)
class Options:
    """Generation options shared by every vendor.

    Unset fields are ``None`` so that option layers can be merged without a
    default on one layer hiding a value on another.
    """

    temperature: float | None = None
    #: Upper bound on generated tokens; each vendor picks its own field name.
    max_tokens: int | None = None
    top_p: float | None = None
    top_k: int | None = None
    seed: int | None = None
    stop: tuple[str, ...] | None = None
    frequency_penalty: float | None = None
    presence_penalty: float | None = None
    tools: tuple[Tool, ...] | None = None
    tool_choice: str | Mapping[str, Any] | None = None
    #: Selects cache-aware message encoding; never serialized.
    enable_caching: bool | None = None
    #: Vendor-specific keys forwarded verbatim by translators that accept them.
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate option shapes early for clear errors."""
        if self.temperature is not None and (
            not isinstance(self.temperature, (int, float)) or self.temperature < 0
        ):
            raise ConfigurationError(
                "temperature must be a non-negative number",
                hint="Pass temperature=0.7.",
            )
        if self.top_p is not None and (
            not isinstance(self.top_p, (int, float)) or not 0 <= self.top_p <= 1
        ):
            raise ConfigurationError(
                "top_p must be between 0 and 1", hint="Pass top_p=0.9."
            )
        for name in ("max_tokens", "top_k"):
            value = getattr(self, name)
            if value is not None and (
                not isinstance(value, int) or isinstance(value, bool) or value <= 0
            ):
                raise ConfigurationError(
                    f"{name} must be a positive integer",
                    hint=f"Pass {name}=1024.",
                )
        if self.seed is not None and (
            not isinstance(self.seed, int) or isinstance(self.seed, bool)
        ):
            raise ConfigurationError("seed must be an integer", hint="Pass seed=42.")

        if isinstance(self.stop, str):
            object.__setattr__(self, "stop", (self.stop,))
        elif self.stop is not None:
            object.__setattr__(self, "stop", tuple(self.stop))
            if not all(isinstance(s, str) for s in self.stop):
                raise ConfigurationError(
                    "stop must be a string or a sequence of strings",
                    hint="Pass stop=['\\n\\n'].",
                )

        if self.tools is not None:
            object.__setattr__(
                self, "tools", tuple(_coerce_tool(t) for t in self.tools)
            )

        choice = self.tool_choice
        if choice is not None and not (
            (isinstance(choice, str) and choice in _TOOL_CHOICES)
            or (isinstance(choice, Mapping) and isinstance(choice.get("name"), str))
        ):
            raise ConfigurationError(
                f"Invalid tool_choice: {choice!r}",
                hint="Use 'auto', 'required', 'none', or {'name': 'tool_name'}.",
            )

        if not isinstance(self.extra, Mapping):
            raise ConfigurationError(
                "extra must be a mapping of vendor-specific keys",
                hint="Pass extra={'logprobs': True}.",
            )
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> Options:
        """Split a loose option mapping into typed fields and ``extra``."""
        known = {f.name for f in fields(cls)} - {"extra"}
        typed: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in values.items():
            name = _ALIASES.get(key, key)
            if name in known:
                typed[name] = value
            elif key == "extra" and isinstance(value, Mapping):
                extra.update(value)
            else:
                extra[key] = value
        return cls(**typed, extra=extra)

    def with_option(self, key: str, value: Any) -> Options:
        """Return a copy with one typed field or extra key set."""
        name = _ALIASES.get(key, key)
        if name in _field_names():
            return replace(self, **{name: value})
        return replace(self, extra={**self.extra, key: value})

    def passthrough(self) -> dict[str, Any]:
        """Return the extra keys that may be written into a request body."""
        return {k: v for k, v in self.extra.items() if k not in INTERNAL_KEYS}

    @property
    def caching(self) -> bool:
        return bool(self.enable_caching)


def _field_names() -> frozenset[str]:
    return frozenset(f.name for f in fields(Options)) - {"extra"}


def coerce_options(value: Options | Mapping[str, Any] | None) -> Options | None:
    """Accept either typed options or a loose mapping."""
    if value is None or isinstance(value, Options):
        return value
    if isinstance(value, Mapping):
        return Options.from_mapping(value)
    raise ConfigurationError(
        f"options must be Options or a mapping, got {type(value).__name__}",
        hint="Pass Options(temperature=0.2) or {'temperature': 0.2}.",
    )


def merge_options(*layers: Options | Mapping[str, Any] | None) -> Options:
    """Merge option layers; later layers win and ``None`` means unset."""
    merged: dict[str, Any] = {}
    extra: dict[str, Any] = {}
    for layer in layers:
        opts = coerce_options(layer)
        if opts is None:
            continue
        for name in _field_names():
            value = getattr(opts, name)
            if value is not None:
                merged[name] = value
        extra.update(opts.extra)
    return Options(**merged, extra=extra)
