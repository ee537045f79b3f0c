"""Shared error helpers for vendor payloads and HTTP failures.

Errors carry retry metadata via APIError so transport retry logic can be
bounded and deterministic without brittle substring matching.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import httpx

from llmwire._http import RETRYABLE_STATUS_CODES
from llmwire.errors import APIError, RateLimitError, _walk_exception_chain

_API_KEY_ENV_VARS: dict[str, str] = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "cohere": "COHERE_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "groq": "GROQ_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "azure-openai": "AZURE_OPENAI_API_KEY",
    "google": "GEMINI_API_KEY",
    "google-openai": "GEMINI_API_KEY",
    "aliyun": "DASHSCOPE_API_KEY",
}


def api_key_env_var(provider: str) -> str:
    """Return the conventional API key variable for *provider*."""
    known = _API_KEY_ENV_VARS.get(provider)
    if known is not None:
        return known
    return provider.upper().replace("-", "_") + "_API_KEY"


def _auth_hint(provider: str, status_code: int | None, message: str) -> str | None:
    """Generate a hint for auth errors where naming the env var is useful."""
    lower = message.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in lower or "api_key" in lower)
    ):
        return (
            f"Check credentials/permissions (try setting {api_key_env_var(provider)} "
            "or Config.api_key)."
        )
    return None


def _error_class(status_code: int | None, error_type: str | None) -> type[APIError]:
    if status_code == 429 or (error_type is not None and "rate_limit" in error_type):
        return RateLimitError
    return APIError


def api_error_from_payload(
    payload: Any,
    *,
    provider: str,
    status_code: int | None = None,
    retry_after_s: float | None = None,
) -> APIError | None:
    """Return an APIError when *payload* is a vendor error body, else None.

    Recognizes ``{"error": {"message": ...}}`` (OpenAI family, Anthropic,
    Gemini) and ``{"error": "..."}`` (Ollama, some OpenAI-compatible servers).
    """
    if not isinstance(payload, Mapping):
        return None
    error = payload.get("error")
    if error is None or error is False:
        return None

    message: str
    error_type: str | None = None
    code: str | None = None
    if isinstance(error, Mapping):
        message = str(error.get("message") or "unknown error")
        raw_type = error.get("type") or error.get("status")
        error_type = str(raw_type) if raw_type is not None else None
        raw_code = error.get("code")
        if isinstance(raw_code, int) and not isinstance(raw_code, bool):
            if status_code is None and 100 <= raw_code <= 599:
                status_code = raw_code
            code = str(raw_code)
        elif raw_code is not None:
            code = str(raw_code)
    else:
        message = str(error)

    return api_error(
        message,
        provider=provider,
        status_code=status_code,
        retry_after_s=retry_after_s,
        error_type=error_type,
        code=code,
    )


def api_error(
    message: str,
    *,
    provider: str,
    status_code: int | None = None,
    retry_after_s: float | None = None,
    error_type: str | None = None,
    code: str | None = None,
) -> APIError:
    """Build an APIError with derived retry metadata and hint."""
    retryable = retry_after_s is not None or (
        isinstance(status_code, int) and status_code in RETRYABLE_STATUS_CODES
    )
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    err_cls = _error_class(status_code, error_type)
    return err_cls(
        f"{provider} API error{status_note}: {message}",
        hint=_auth_hint(provider, status_code, message),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
        error_type=error_type,
        code=code,
    )


def extract_retry_after_s(headers: Mapping[str, str] | None) -> float | None:
    """Read a numeric ``Retry-After`` header in seconds."""
    if headers is None:
        return None
    raw = headers.get("Retry-After")
    if not isinstance(raw, str) or not raw.strip():
        return None
    try:
        seconds = float(raw)
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


def wrap_transport_error(
    exc: BaseException,
    *,
    provider: str,
    message: str | None = None,
) -> APIError:
    """Map httpx failures into APIError with stable retry metadata."""
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    if isinstance(exc, APIError):
        if exc.provider is None:
            exc.provider = provider
        return exc

    status_code: int | None = None
    retry_after_s: float | None = None
    retryable = False
    for e in _walk_exception_chain(exc):
        if isinstance(e, httpx.HTTPStatusError):
            status_code = e.response.status_code
            retry_after_s = extract_retry_after_s(e.response.headers)
            break
        if isinstance(e, (httpx.TimeoutException, httpx.RequestError)):
            retryable = True
            break

    if status_code is not None:
        retryable = retry_after_s is not None or status_code in RETRYABLE_STATUS_CODES

    msg = message or f"{provider} request failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    cause = str(exc)
    err_cls = RateLimitError if status_code == 429 else APIError
    return err_cls(
        f"{msg}{status_note}: {cause}" if cause else f"{msg}{status_note}",
        hint=_auth_hint(provider, status_code, cause),
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
    )
