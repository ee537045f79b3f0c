"""Groq translator (OpenAI-compatible)."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import TYPE_CHECKING, Any

from llmwire.providers._chat_completions import ChatCompletionsProvider

if TYPE_CHECKING:
    from llmwire.models import Request, Usage
    from llmwire.options import Options

logger = logging.getLogger(__name__)


class GroqProvider(ChatCompletionsProvider):
    """Groq ``/openai/v1/chat/completions``.

    Groq does not combine JSON schema enforcement with streaming, so
    ``response_format`` is left out of streaming bodies.
    """

    name = "groq"
    default_endpoint = "https://api.groq.com/openai/v1/chat/completions"

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        body = super()._build_body(request, opts, stream=stream)
        if stream and body.pop("response_format", None) is not None:
            logger.debug("groq: response_format is not sent with streaming requests")
        return body

    def _stream_usage(self, payload: Mapping[str, Any]) -> Usage | None:
        x_groq = payload.get("x_groq")
        if isinstance(x_groq, Mapping) and isinstance(x_groq.get("usage"), Mapping):
            return self._parse_usage(x_groq["usage"])
        return super()._stream_usage(payload)
