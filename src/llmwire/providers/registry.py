"""Name-based lookup of translator constructors and endpoint configs.

The registry is an explicit object: build one at startup with
:func:`default_registry` and pass it to whatever resolves vendors by name.
Nothing registers itself at import time.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import replace
import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol

from llmwire.capabilities import CapabilityRegistry, default_capabilities
from llmwire.errors import ConfigurationError, UnknownProviderError
from llmwire.providers.anthropic import AnthropicProvider
from llmwire.providers.cohere import CohereProvider
from llmwire.providers.deepseek import DeepSeekProvider
from llmwire.providers.gemini import GeminiProvider
from llmwire.providers.generic import BUILTIN_CONFIGS, ProviderConfig, build_generic
from llmwire.providers.groq import GroqProvider
from llmwire.providers.mock import MockProvider
from llmwire.providers.ollama import OllamaProvider
from llmwire.providers.openai import OpenAIProvider
from llmwire.providers.openrouter import OpenRouterProvider
from llmwire.providers.vllm import VLLMProvider

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from llmwire.providers.base import Provider

logger = logging.getLogger(__name__)


class ProviderConstructor(Protocol):
    """Callable building a translator; receives ``capabilities=`` plus any kwargs."""

    def __call__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Provider: ...


class _ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ProviderRegistry:
    """Thread-safe map from vendor name to constructor or static config.

    Every ``get`` builds a fresh translator outside the lock, so instances
    are never shared between callers.
    """

    def __init__(self, capabilities: CapabilityRegistry | None = None) -> None:
        self.capabilities = capabilities if capabilities is not None else default_capabilities()
        self._constructors: dict[str, ProviderConstructor] = {}
        self._configs: dict[str, ProviderConfig] = {}
        self._lock = _ReadWriteLock()

    def register(self, name: str, constructor: ProviderConstructor) -> None:
        """Register (or replace) the constructor for *name*."""
        if not name:
            raise ConfigurationError("Provider name must be non-empty")
        with self._lock.write():
            self._constructors[name] = constructor
        logger.debug("registered provider constructor %r", name)

    def register_config(self, name: str, config: ProviderConfig) -> None:
        """Register (or replace) a config-driven provider under *name*.

        The config's ``supports_*`` flags become a ``"*"`` capability entry
        unless the vendor already has tables.
        """
        if config.name != name:
            config = replace(config, name=name)
        if name not in self.capabilities.vendors():
            self.capabilities.register_model(name, "*", *config.capabilities)
        with self._lock.write():
            self._configs[name] = config
        logger.debug("registered provider config %r", name)

    def get(
        self,
        name: str,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Provider:
        """Return a new translator for *name*.

        Raises:
            UnknownProviderError: Nothing is registered under *name*.
            ConfigurationError: The constructor rejected its configuration.
        """
        with self._lock.read():
            constructor = self._constructors.get(name)
            config = self._configs.get(name)
        kwargs.setdefault("capabilities", self.capabilities)
        if constructor is not None:
            return constructor(api_key, model, extra_headers, **kwargs)
        if config is None:
            raise UnknownProviderError(name, known=self.names())
        return build_generic(config, api_key, model, extra_headers, **kwargs)

    def get_config(self, name: str) -> ProviderConfig | None:
        with self._lock.read():
            return self._configs.get(name)

    def names(self) -> tuple[str, ...]:
        with self._lock.read():
            return tuple(sorted({*self._constructors, *self._configs}))

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._constructors or name in self._configs


_BUILTIN_CONSTRUCTORS: dict[str, ProviderConstructor] = {
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "cohere": CohereProvider,
    "gemini": GeminiProvider,
    # Alias kept for configs written against the "google" vendor name.
    "google": GeminiProvider,
    "deepseek": DeepSeekProvider,
    "groq": GroqProvider,
    "ollama": OllamaProvider,
    "openrouter": OpenRouterProvider,
    "vllm": VLLMProvider,
    "mock": MockProvider,
}


def default_registry(capabilities: CapabilityRegistry | None = None) -> ProviderRegistry:
    """Return a registry with every built-in vendor and endpoint config."""
    registry = ProviderRegistry(capabilities)
    for name, constructor in _BUILTIN_CONSTRUCTORS.items():
        registry.register(name, constructor)
    for config in BUILTIN_CONFIGS:
        registry.register_config(config.name, config)
    return registry
