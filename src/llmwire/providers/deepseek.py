"""DeepSeek translator."""

from __future__ import annotations

from collections.abc import Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from llmwire.models import Usage
from llmwire.providers._chat_completions import ChatCompletionsProvider
from llmwire.providers._utils import as_int

if TYPE_CHECKING:
    from llmwire.models import Request
    from llmwire.options import Options

logger = logging.getLogger(__name__)

_ALLOWED_KEYS = frozenset(
    {
        "model",
        "messages",
        "temperature",
        "max_tokens",
        "top_p",
        "stop",
        "frequency_penalty",
        "presence_penalty",
        "tools",
        "tool_choice",
        "response_format",
        "stream",
        "stream_options",
        "logprobs",
        "top_logprobs",
    }
)

_SCHEMA_INSTRUCTION = "Respond with a JSON object that conforms to this JSON schema:\n"


class DeepSeekProvider(ChatCompletionsProvider):
    """DeepSeek chat completions.

    DeepSeek offers JSON mode but not schema enforcement, so the sanitized
    schema travels in the system message alongside ``json_object``. Keys the
    API does not document are dropped.
    """

    name = "deepseek"
    default_endpoint = "https://api.deepseek.com/v1/chat/completions"

    def _response_format(self, schema: Any) -> dict[str, Any]:
        del schema
        return {"type": "json_object"}

    def _finalize_body(
        self, body: dict[str, Any], request: Request, opts: Options
    ) -> dict[str, Any]:
        del opts
        if request.response_schema is not None:
            schema = self._sanitized_schema(request.response_schema)
            instruction = _SCHEMA_INSTRUCTION + json.dumps(schema, ensure_ascii=False)
            messages: list[dict[str, Any]] = body["messages"]
            if messages and messages[0]["role"] == "system":
                first = dict(messages[0])
                first["content"] = f"{first['content']}\n\n{instruction}"
                messages[0] = first
            else:
                messages.insert(0, {"role": "system", "content": instruction})

        dropped = sorted(set(body) - _ALLOWED_KEYS)
        if dropped:
            logger.debug("deepseek: dropping unsupported keys %s", dropped)
        return {k: v for k, v in body.items() if k in _ALLOWED_KEYS}

    def _parse_usage(self, usage: Any) -> Usage | None:
        parsed = super()._parse_usage(usage)
        if parsed is None or not isinstance(usage, Mapping):
            return parsed
        hit = as_int(usage.get("prompt_cache_hit_tokens"))
        if not hit:
            return parsed
        return Usage(
            input_tokens=parsed.input_tokens,
            cached_input_tokens=min(hit, parsed.input_tokens),
            output_tokens=parsed.output_tokens,
            reasoning_tokens=parsed.reasoning_tokens,
        )
