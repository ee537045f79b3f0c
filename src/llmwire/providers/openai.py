"""OpenAI Chat Completions translator."""

from __future__ import annotations

from typing import Any, ClassVar

from llmwire.models import Role
from llmwire.providers._chat_completions import ChatCompletionsProvider


class OpenAIProvider(ChatCompletionsProvider):
    """OpenAI ``/v1/chat/completions``.

    System instructions use the ``developer`` role. Reasoning-era models
    (``o``-series and the ``4o`` family) take ``max_completion_tokens``; older
    chat models take ``max_tokens``.
    """

    name = "openai"
    default_endpoint = "https://api.openai.com/v1/chat/completions"
    role_map: ClassVar[dict[Role, str]] = {
        Role.USER: "user",
        Role.ASSISTANT: "assistant",
        Role.SYSTEM: "developer",
        Role.TOOL: "tool",
    }
    strict_tools = True
    usage_trailer = True

    def _token_field(self) -> str:
        return token_field_for(self.model)

    def _stream_fields(self) -> dict[str, Any]:
        return {"stream": True, "stream_options": {"include_usage": True}}


def token_field_for(model: str) -> str:
    """Return the output-token limit field OpenAI accepts for *model*."""
    if model.startswith("o") or "4o" in model or "-o" in model:
        return "max_completion_tokens"
    return "max_tokens"
