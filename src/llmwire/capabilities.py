"""Declarative per-vendor, per-model capability tables.

Lookups are fail-closed: an unknown vendor or model has no capabilities.
Matching tries the exact model id first, then glob patterns in the order they
were registered; the first hit wins.
"""

from __future__ import annotations

from dataclasses import dataclass
import enum
from fnmatch import fnmatchcase
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class Capability(str, enum.Enum):
    """A feature whose availability depends on vendor and model."""

    STREAMING = "streaming"
    STRUCTURED_RESPONSE = "structured_response"
    FUNCTION_CALLING = "function_calling"

    def __str__(self) -> str:
        return self.value


ALL: frozenset[Capability] = frozenset(Capability)
NONE: frozenset[Capability] = frozenset()

_GLOB_CHARS = frozenset("*?[")


def is_pattern(model: str) -> bool:
    """Return True when *model* contains glob syntax."""
    return any(ch in _GLOB_CHARS for ch in model)


@dataclass
class _VendorTable:
    exact: dict[str, frozenset[Capability]]
    wildcards: list[tuple[str, frozenset[Capability]]]


class CapabilityRegistry:
    """Registry answering "what does this vendor/model support?".

    Exact registrations for the same model replace each other. Wildcard
    registrations accumulate, so register specific families before broad
    catch-alls such as ``"*"``.
    """

    def __init__(self) -> None:
        self._tables: dict[str, _VendorTable] = {}
        self._lock = threading.Lock()

    def register_model(
        self, vendor: str, pattern: str, *features: Capability | str
    ) -> None:
        """Declare the features *vendor* supports for models matching *pattern*."""
        feature_set = frozenset(Capability(f) for f in features)
        with self._lock:
            table = self._tables.setdefault(vendor, _VendorTable({}, []))
            if is_pattern(pattern):
                if (pattern, feature_set) not in table.wildcards:
                    table.wildcards.append((pattern, feature_set))
            else:
                table.exact[pattern] = feature_set

    def register_models(
        self, vendor: str, models: Iterable[str], *features: Capability | str
    ) -> None:
        for model in models:
            self.register_model(vendor, model, *features)

    def get_capabilities(self, vendor: str, model: str) -> frozenset[Capability]:
        """Return the features for *model*, or the empty set when unknown."""
        with self._lock:
            table = self._tables.get(vendor)
            if table is None:
                return NONE
            exact = table.exact.get(model)
            if exact is not None:
                return exact
            for pattern, feature_set in table.wildcards:
                if fnmatchcase(model, pattern):
                    return feature_set
        return NONE

    def has_capability(
        self, vendor: str, model: str, feature: Capability | str
    ) -> bool:
        return Capability(feature) in self.get_capabilities(vendor, model)

    def vendors(self) -> tuple[str, ...]:
        with self._lock:
            return tuple(self._tables)


S = Capability.STREAMING
SR = Capability.STRUCTURED_RESPONSE
FC = Capability.FUNCTION_CALLING

_GEMINI_STRUCTURED = (
    "gemini-2.5-pro",
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-2.0-pro",
    "gemini-2.0-flash-lite",
    "gemini-2.0-flash",
)

_COHERE_STRUCTURED = (
    "command-a-03-2025",
    "command-r-plus-08-2024",
    "command-r-plus",
    "command-r-08-2024",
    "command-r",
)

_GROQ_STREAMING = (
    "openai/gpt-oss-20b",
    "openai/gpt-oss-120b",
    "moonshotai/kimi-k2-instruct",
    "meta-llama/llama-4-maverick-17b-128e-instruct",
    "meta-llama/llama-4-scout-17b-16e-instruct",
)

_OPENROUTER_STRUCTURED = (
    "openai/gpt-4o*",
    "openai/gpt-4.1*",
    "openai/gpt-5*",
    "openai/o1*",
    "openai/o3*",
    "openai/o4*",
    "google/gemini-2.*",
    "mistralai/mistral-large*",
    "mistralai/mistral-small*",
    "x-ai/grok-*",
    "meta-llama/llama-4-*",
)

_OPENROUTER_FUNCTION_CALLING = (
    "anthropic/claude-*",
    "openai/gpt-3.5-turbo*",
    "openai/gpt-4-turbo*",
    "cohere/command-r*",
    "qwen/qwen-2.5-*",
    "qwen/qwen3-*",
    "deepseek/deepseek-chat*",
    "meta-llama/llama-3.1-*",
    "meta-llama/llama-3.3-*",
)

_MISTRAL_FUNCTION_CALLING = (
    "mistral-large-latest",
    "mistral-medium-latest",
    "mistral-small-latest",
    "codestral-latest",
    "ministral-8b-latest",
    "ministral-3b-latest",
    "pixtral-large-latest",
    "open-mistral-nemo",
)


def register_builtin_capabilities(registry: CapabilityRegistry) -> CapabilityRegistry:
    """Seed *registry* with the built-in vendor tables and return it."""
    reg = registry.register_model
    regs = registry.register_models

    # OpenAI: json_schema arrived with the 4o generation; older chat models
    # still stream and call tools.
    for family in ("gpt-4o*", "gpt-4.1*", "gpt-5*", "o1*", "o3*", "o4*", "chatgpt-4o*"):
        reg("openai", family, S, SR, FC)
    reg("openai", "gpt-4*", S, FC)
    reg("openai", "gpt-3.5-turbo*", S, FC)
    reg("openai", "*", S)

    reg("anthropic", "claude-*", S, SR, FC)

    regs("cohere", _COHERE_STRUCTURED, S, SR, FC)
    reg("cohere", "command*", S, FC)

    regs("gemini", _GEMINI_STRUCTURED, S, SR, FC)
    regs("gemini", ("gemini-1.5-pro", "gemini-1.5-flash"), S, FC)
    reg("gemini", "gemini-2.*", S, SR, FC)
    reg("gemini", "gemini-*", S)

    reg("deepseek", "deepseek-chat", S, SR, FC)
    reg("deepseek", "deepseek-reasoner", S, SR)
    reg("deepseek", "deepseek-*", S)

    regs("groq", _GROQ_STREAMING, S, SR, FC)
    reg("groq", "*", SR, FC)

    reg("ollama", "*", S, SR, FC)

    regs("openrouter", _OPENROUTER_STRUCTURED, S, SR, FC)
    regs("openrouter", _OPENROUTER_FUNCTION_CALLING, S, FC)
    reg("openrouter", "*", S)

    reg("vllm", "*", S, SR)

    reg("mistral", "codestral-mamba*", S)
    regs("mistral", _MISTRAL_FUNCTION_CALLING, S, SR, FC)
    reg("mistral", "*", S, SR)

    reg("mock", "*", S, SR, FC)
    return registry


def default_capabilities() -> CapabilityRegistry:
    """Return a fresh registry populated with the built-in tables."""
    return register_builtin_capabilities(CapabilityRegistry())
