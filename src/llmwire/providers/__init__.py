"""Vendor translators and the registry that resolves them by name."""

from .anthropic import AnthropicProvider
from .base import BaseProvider, Provider
from .cohere import CohereProvider
from .deepseek import DeepSeekProvider
from .gemini import GeminiProvider
from .generic import GenericAnthropicProvider, GenericProvider, ProviderConfig
from .groq import GroqProvider
from .mock import MockProvider
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .openrouter import OpenRouterProvider
from .registry import ProviderRegistry, default_registry
from .vllm import VLLMProvider

__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "CohereProvider",
    "DeepSeekProvider",
    "GeminiProvider",
    "GenericAnthropicProvider",
    "GenericProvider",
    "GroqProvider",
    "MockProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "Provider",
    "ProviderConfig",
    "ProviderRegistry",
    "VLLMProvider",
    "default_registry",
]
