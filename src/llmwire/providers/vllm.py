"""vLLM OpenAI-compatible server translator."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from llmwire.errors import ConfigurationError
from llmwire.providers._chat_completions import ChatCompletionsProvider

if TYPE_CHECKING:
    from collections.abc import Mapping

    from llmwire.capabilities import CapabilityRegistry

BASE_URL_ENV_VAR = "VLLM_BASE_URL"


def normalize_base_url(base_url: str) -> str:
    """Return the chat-completions URL for a vLLM server base URL."""
    url = base_url.rstrip("/")
    if url.endswith("/chat/completions"):
        return url
    if url.endswith("/v1"):
        return f"{url}/chat/completions"
    return f"{url}/v1/chat/completions"


class VLLMProvider(ChatCompletionsProvider):
    """Self-hosted vLLM server.

    The API key is optional (vLLM only checks it when started with
    ``--api-key``); the base URL is not.
    """

    name = "vllm"

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        base_url: str | None = None,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize with a server base URL from the argument or ``VLLM_BASE_URL``."""
        super().__init__(api_key, model, extra_headers, capabilities=capabilities)
        resolved = base_url or os.environ.get(BASE_URL_ENV_VAR)
        if not resolved:
            raise ConfigurationError(
                "vLLM requires a server base URL",
                hint=f"Pass base_url='http://host:8000' or set {BASE_URL_ENV_VAR}.",
            )
        self._endpoint = normalize_base_url(resolved)

    @property
    def endpoint(self) -> str:
        return self._endpoint
