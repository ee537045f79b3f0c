"""Config-driven translators for endpoints that reuse a known wire format."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlencode

from llmwire._http import CONTENT_TYPE_JSON
from llmwire.capabilities import Capability
from llmwire.errors import ConfigurationError
from llmwire.providers._chat_completions import ChatCompletionsProvider
from llmwire.providers.anthropic import AnthropicProvider

if TYPE_CHECKING:
    from llmwire.capabilities import CapabilityRegistry
    from llmwire.providers.base import BaseProvider

WireType = Literal["openai", "anthropic"]


@dataclass(frozen=True)
class ProviderConfig:
    """Static description of an endpoint that speaks a known wire format.

    ``endpoint`` may contain ``{model}`` and, when ``base_url_env`` is set,
    ``{base_url}``. ``endpoint_params`` become the query string and may use
    ``{model}`` too. Only ``{base_url}`` endpoints accept a caller base URL.
    """

    name: str
    endpoint: str
    type: WireType = "openai"
    auth_header: str = "Authorization"
    auth_prefix: str = "Bearer "
    required_headers: Mapping[str, str] = field(default_factory=dict)
    endpoint_params: Mapping[str, str] = field(default_factory=dict)
    #: Environment variable holding ``{base_url}`` when not passed explicitly.
    base_url_env: str | None = None
    #: Fallback for ``{base_url}`` when neither argument nor variable is set.
    default_base_url: str | None = None
    supports_streaming: bool = True
    supports_structured_response: bool = False
    supports_function_calling: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ConfigurationError("ProviderConfig.name must be non-empty")
        if not self.endpoint:
            raise ConfigurationError(
                f"ProviderConfig {self.name!r} has no endpoint",
                hint="Pass endpoint='https://host/v1/chat/completions'.",
            )
        if self.type not in ("openai", "anthropic"):
            raise ConfigurationError(
                f"Unsupported wire type for {self.name!r}: {self.type!r}",
                hint="Generic providers speak 'openai' or 'anthropic'.",
            )
        if "{base_url}" in self.endpoint and not self.base_url_env:
            raise ConfigurationError(
                f"ProviderConfig {self.name!r} uses {{base_url}} without base_url_env",
                hint="Set base_url_env to the variable that holds the base URL.",
            )

    @property
    def capabilities(self) -> frozenset[Capability]:
        """Vendor-wide features declared by the flags."""
        flags = {
            Capability.STREAMING: self.supports_streaming,
            Capability.STRUCTURED_RESPONSE: self.supports_structured_response,
            Capability.FUNCTION_CALLING: self.supports_function_calling,
        }
        return frozenset(cap for cap, on in flags.items() if on)


class _ConfiguredEndpoint:
    """Endpoint, auth and capability behavior taken from a ProviderConfig."""

    config: ProviderConfig
    name: str
    model: str
    api_key: str
    _base_url: str | None
    _extra_headers: dict[str, str]
    _capability_registry: CapabilityRegistry

    def _init_config(self, config: ProviderConfig, base_url: str | None) -> None:
        self.config = config
        self.name = config.name
        self._base_url = None
        if "{base_url}" not in config.endpoint:
            if base_url:
                raise ConfigurationError(
                    f"{config.name} does not accept a base URL",
                    hint=f"Its endpoint is fixed at {config.endpoint}.",
                )
            return
        env_var = config.base_url_env or ""
        resolved = base_url or os.environ.get(env_var) or config.default_base_url
        if not resolved:
            raise ConfigurationError(
                f"{config.name} requires a base URL",
                hint=f"Pass base_url=... or set {env_var}.",
            )
        self._base_url = resolved.rstrip("/")

    @property
    def endpoint(self) -> str:
        model = self.model
        url = self.config.endpoint.format(model=model, base_url=self._base_url or "")
        if self.config.endpoint_params:
            params = {
                key: value.format(model=model)
                for key, value in self.config.endpoint_params.items()
            }
            url = f"{url}?{urlencode(params)}"
        return url

    def _auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {self.config.auth_header: f"{self.config.auth_prefix}{self.api_key}"}

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": CONTENT_TYPE_JSON,
            **self.config.required_headers,
            **self._auth_headers(),
            **self._extra_headers,
        }

    @property
    def capabilities(self) -> frozenset[Capability]:
        registry = self._capability_registry
        if self.config.name in registry.vendors():
            return registry.get_capabilities(self.config.name, self.model)
        return self.config.capabilities


class GenericProvider(_ConfiguredEndpoint, ChatCompletionsProvider):
    """OpenAI-compatible endpoint described by a ProviderConfig."""

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        config: ProviderConfig,
        base_url: str | None = None,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize from *config*; ``base_url`` fills ``{base_url}`` endpoints."""
        ChatCompletionsProvider.__init__(
            self, api_key, model, extra_headers, capabilities=capabilities
        )
        self._init_config(config, base_url)


class GenericAnthropicProvider(_ConfiguredEndpoint, AnthropicProvider):
    """Anthropic Messages-compatible endpoint described by a ProviderConfig."""

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        config: ProviderConfig,
        base_url: str | None = None,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize from *config*; ``base_url`` fills ``{base_url}`` endpoints."""
        AnthropicProvider.__init__(
            self, api_key, model, extra_headers, capabilities=capabilities
        )
        self._init_config(config, base_url)

    def headers(self) -> dict[str, str]:
        headers = AnthropicProvider.version_headers()
        headers.update(super().headers())
        return headers


def build_generic(
    config: ProviderConfig,
    api_key: str,
    model: str,
    extra_headers: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> BaseProvider:
    """Instantiate the translator matching ``config.type``."""
    if config.type == "anthropic":
        return GenericAnthropicProvider(api_key, model, extra_headers, config=config, **kwargs)
    return GenericProvider(api_key, model, extra_headers, config=config, **kwargs)


AZURE_OPENAI = ProviderConfig(
    name="azure-openai",
    endpoint="{base_url}/openai/deployments/{model}/chat/completions",
    auth_header="api-key",
    auth_prefix="",
    endpoint_params={"api-version": "2024-10-21"},
    base_url_env="AZURE_OPENAI_ENDPOINT",
    supports_structured_response=True,
    supports_function_calling=True,
)

MISTRAL = ProviderConfig(
    name="mistral",
    endpoint="https://api.mistral.ai/v1/chat/completions",
    supports_structured_response=True,
    supports_function_calling=True,
)

LMSTUDIO = ProviderConfig(
    name="lmstudio",
    endpoint="{base_url}/v1/chat/completions",
    base_url_env="LMSTUDIO_BASE_URL",
    default_base_url="http://localhost:1234",
    supports_structured_response=True,
)

# Gemini through its OpenAI-compatible surface; "gemini" is the native API.
GOOGLE_OPENAI = ProviderConfig(
    name="google-openai",
    endpoint="https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
    supports_structured_response=True,
    supports_function_calling=True,
)

LAMBDA = ProviderConfig(
    name="lambda",
    endpoint="https://api.lambdalabs.com/v1/chat/completions",
    supports_structured_response=True,
)

# DashScope compatible mode; set ALIYUN_BASE_URL for the international region.
ALIYUN = ProviderConfig(
    name="aliyun",
    endpoint="{base_url}/chat/completions",
    base_url_env="ALIYUN_BASE_URL",
    default_base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
    supports_structured_response=True,
    supports_function_calling=True,
)

BUILTIN_CONFIGS: tuple[ProviderConfig, ...] = (
    AZURE_OPENAI,
    MISTRAL,
    LMSTUDIO,
    GOOGLE_OPENAI,
    LAMBDA,
    ALIYUN,
)
