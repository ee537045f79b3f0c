"""Configuration: frozen Config resolved from arguments and the environment."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from typing import TYPE_CHECKING, Any

from dotenv import load_dotenv

from llmwire.errors import ConfigurationError
from llmwire.options import Options
from llmwire.providers._errors import api_key_env_var
from llmwire.retry import RetryPolicy

if TYPE_CHECKING:
    from llmwire.providers.base import Provider
    from llmwire.providers.registry import ProviderRegistry

load_dotenv()

#: Providers that run locally or behind a self-hosted gateway and need no key.
KEYLESS_PROVIDERS: frozenset[str] = frozenset({"ollama", "vllm", "lmstudio", "mock"})
#: Providers whose constructor accepts ``base_url`` directly.
_BASE_URL_PROVIDERS: frozenset[str] = frozenset({"ollama", "vllm"})

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True)
class Config:
    """Immutable configuration for one vendor and model.

    Provider and model are required; llmwire does not guess what you want.
    API keys are auto-resolved from ``<PROVIDER>_API_KEY``.

    Example:
        config = Config(provider="anthropic", model="claude-3-5-sonnet-latest")
        # API key is automatically resolved from ANTHROPIC_API_KEY
    """

    provider: str
    model: str
    #: Auto-resolved from the provider's conventional variable when *None*.
    api_key: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    seed: int | None = None
    enable_caching: bool = False
    #: Base URL for self-hosted servers (Ollama, vLLM, ``{base_url}`` configs).
    endpoint: str | None = None
    extra_headers: Mapping[str, str] = field(default_factory=dict)
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        """Auto-resolve the API key and validate configuration."""
        if not self.provider:
            raise ConfigurationError(
                "provider is required",
                hint="Pass provider='openai' or set LLM_PROVIDER.",
            )
        if not self.model:
            raise ConfigurationError(
                f"model is required for {self.provider}",
                hint="Pass model=... or set LLM_MODEL.",
            )

        # Reuse Options validation so both layers agree on ranges.
        self.to_options()

        if self.api_key is None and self.provider not in KEYLESS_PROVIDERS:
            object.__setattr__(
                self, "api_key", os.environ.get(api_key_env_var(self.provider))
            )

        if self.provider not in KEYLESS_PROVIDERS and not self.api_key:
            env_var = api_key_env_var(self.provider)
            raise ConfigurationError(
                f"API key required for {self.provider}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

        object.__setattr__(self, "extra_headers", dict(self.extra_headers))

    @classmethod
    def from_env(cls, **overrides: Any) -> Config:
        """Build a Config from ``LLM_*`` variables; keyword arguments win."""
        values: dict[str, Any] = {
            "provider": os.environ.get("LLM_PROVIDER", ""),
            "model": os.environ.get("LLM_MODEL", ""),
            "temperature": _env_number("LLM_TEMPERATURE", float),
            "max_tokens": _env_number("LLM_MAX_TOKENS", int),
            "top_p": _env_number("LLM_TOP_P", float),
            "seed": _env_number("LLM_SEED", int),
            "enable_caching": _env_bool("LLM_ENABLE_CACHING"),
            "endpoint": os.environ.get("LLM_ENDPOINT") or None,
        }
        values.update(overrides)
        return cls(**values)

    def to_options(self) -> Options:
        """Return the configured defaults as an option layer."""
        return Options(
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            seed=self.seed,
            enable_caching=True if self.enable_caching else None,
        )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"Config(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"endpoint={self.endpoint!r})"
        )

    __repr__ = __str__


def _env_number(name: str, kind: type[int] | type[float]) -> Any:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return kind(raw)
    except ValueError:
        raise ConfigurationError(
            f"{name} must be a{'n integer' if kind is int else ' number'}, got {raw!r}",
            hint=f"Fix or unset {name}.",
        ) from None


def _env_bool(name: str) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(
        f"{name} must be a boolean, got {raw!r}",
        hint="Use one of: 1, 0, true, false, yes, no, on, off.",
    )


def create_provider(config: Config, registry: ProviderRegistry | None = None) -> Provider:
    """Build a translator for *config* with its defaults already applied."""
    if registry is None:
        from llmwire.providers.registry import default_registry

        registry = default_registry()

    kwargs: dict[str, Any] = {}
    if config.endpoint:
        if config.provider in _BASE_URL_PROVIDERS or registry.get_config(config.provider):
            kwargs["base_url"] = config.endpoint
        else:
            raise ConfigurationError(
                f"{config.provider} does not accept a custom endpoint",
                hint="endpoint applies to self-hosted providers such as ollama or vllm.",
            )

    provider = registry.get(
        config.provider,
        config.api_key or "",
        config.model,
        config.extra_headers,
        **kwargs,
    )
    provider.set_default_options(config.to_options())
    return provider
