"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration and shared request
builders. Fixtures here are autouse unless noted.
"""

from __future__ import annotations

from contextlib import suppress
import logging
import os

import pytest

from llmwire.capabilities import default_capabilities
from llmwire.models import Message, Request, Role

# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================

_ISOLATED_PREFIXES = (
    "LLM_",
    "OPENAI_",
    "ANTHROPIC_",
    "GEMINI_",
    "COHERE_",
    "DEEPSEEK_",
    "GROQ_",
    "OPENROUTER_",
    "MISTRAL_",
    "AZURE_OPENAI_",
    "LMSTUDIO_",
    "GOOGLE_",
    "LAMBDA_",
    "ALIYUN_",
    "DASHSCOPE_",
    "OLLAMA_",
    "VLLM_",
)


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears ``LLM_*`` and vendor-prefixed variables (API keys, endpoints).
    Opt-out: @pytest.mark.allow_env_pollution
    """
    if request.node.get_closest_marker("allow_env_pollution"):
        return
    for key in list(os.environ.keys()):
        if key.startswith(_ISOLATED_PREFIXES):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Shared builders (not autouse)
# =============================================================================


@pytest.fixture
def capabilities():
    """A fresh capability registry with the built-in tables."""
    return default_capabilities()


@pytest.fixture
def hello_request() -> Request:
    """One user turn plus a system prompt."""
    return Request(
        messages=(Message(role=Role.USER, content="Hello"),),
        system_prompt="Be terse",
    )
