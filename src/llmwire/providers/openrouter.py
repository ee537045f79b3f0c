"""OpenRouter translator (OpenAI-compatible, with routing extensions)."""

from __future__ import annotations

from collections.abc import Mapping
import logging
from typing import TYPE_CHECKING, Any

from llmwire.models import Role
from llmwire.options import coerce_options, merge_options
from llmwire.providers._chat_completions import ChatCompletionsProvider
from llmwire.providers._utils import encode_body

if TYPE_CHECKING:
    from llmwire.capabilities import CapabilityRegistry
    from llmwire.models import Message, Request
    from llmwire.options import Options

logger = logging.getLogger(__name__)

AUTO_ROUTER_MODEL = "openrouter/auto"
_EPHEMERAL = {"type": "ephemeral"}


class OpenRouterProvider(ChatCompletionsProvider):
    """OpenRouter ``/api/v1/chat/completions``.

    Routing extras understood in ``Options.extra``:

    - ``fallback_models``: list of models tried after ``model`` (sent as ``models``).
    - ``auto_route``: route through ``openrouter/auto`` instead of ``model``.
    - ``provider_preferences``: sent as ``provider``.
    - ``enable_reasoning``: sent as ``reasoning: {"enabled": true}``.

    ``route``, ``transforms``, ``plugins``, ``provider`` and ``usage`` pass
    through unchanged.
    """

    name = "openrouter"
    default_endpoint = "https://openrouter.ai/api/v1/chat/completions"
    completion_endpoint = "https://openrouter.ai/api/v1/completions"
    usage_trailer = True

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        site_url: str | None = None,
        app_name: str | None = None,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize; ``site_url``/``app_name`` feed OpenRouter's app attribution headers."""
        super().__init__(api_key, model, extra_headers, capabilities=capabilities)
        self.site_url = site_url
        self.app_name = app_name

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        if self.site_url:
            headers.setdefault("HTTP-Referer", self.site_url)
        if self.app_name:
            headers.setdefault("X-Title", self.app_name)
        return headers

    # -- request building ----------------------------------------------------

    def _build_messages(self, request: Request, opts: Options) -> list[dict[str, Any]]:
        messages = super()._build_messages(request, opts)
        if opts.caching and request.system_prompt and messages:
            # The system prompt is the stable prefix worth caching.
            messages[0] = {
                "role": messages[0]["role"],
                "content": [
                    {
                        "type": "text",
                        "text": request.system_prompt,
                        "cache_control": dict(_EPHEMERAL),
                    }
                ],
            }
        return messages

    def _encode_message(
        self, message: Message, role: str, opts: Options
    ) -> dict[str, Any]:
        encoded = super()._encode_message(message, role, opts)
        if (
            opts.caching
            and message.cache_type is not None
            and message.role is not Role.TOOL
            and message.content
        ):
            encoded["content"] = [
                {
                    "type": "text",
                    "text": message.content,
                    "cache_control": {"type": message.cache_type.value},
                }
            ]
        return encoded

    def _stream_fields(self) -> dict[str, Any]:
        return {"stream": True, "usage": {"include": True}}

    def _finalize_body(
        self, body: dict[str, Any], request: Request, opts: Options
    ) -> dict[str, Any]:
        del request, opts
        return self._apply_routing(body)

    def _apply_routing(self, body: dict[str, Any]) -> dict[str, Any]:
        fallback = body.pop("fallback_models", None)
        auto_route = body.pop("auto_route", None)
        if fallback:
            body["models"] = [self.model, *fallback]
        elif auto_route is True:
            body["model"] = AUTO_ROUTER_MODEL

        preferences = body.pop("provider_preferences", None)
        if isinstance(preferences, Mapping):
            body["provider"] = dict(preferences)

        if body.pop("enable_reasoning", None):
            body.setdefault("reasoning", {"enabled": True})
        return body

    def prepare_completion_request(
        self, prompt: str, options: Options | Mapping[str, Any] | None = None
    ) -> bytes:
        """Build a body for the legacy ``/completions`` endpoint.

        Sent to :attr:`completion_endpoint`; the response parses with
        :meth:`parse_response` like any chat completion.
        """
        opts = merge_options(self.builtin_options, self._defaults, coerce_options(options))
        body: dict[str, Any] = {"model": self.model, "prompt": prompt}
        for name in self.sampling_fields:
            value = getattr(opts, name)
            if value is not None:
                body[name] = value
        if opts.max_tokens is not None:
            body["max_tokens"] = opts.max_tokens
        if opts.stop:
            body["stop"] = list(opts.stop)
        self._merge_passthrough(body, opts)
        return encode_body(self._apply_routing(body), provider=self.name)
