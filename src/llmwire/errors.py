"""Exception hierarchy for llmwire."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

    from llmwire.models import Response, Usage


class LLMWireError(Exception):
    """Base exception for all llmwire errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(LLMWireError):
    """Configuration validation or resolution failed."""


class UnknownProviderError(ConfigurationError):
    """No constructor or config is registered under the requested name."""

    def __init__(
        self, name: str, *, known: tuple[str, ...] = (), hint: str | None = None
    ) -> None:
        if hint is None and known:
            hint = f"Registered providers: {', '.join(known)}"
        super().__init__(f"Unknown provider: {name!r}", hint=hint)
        self.name = name


class SchemaError(LLMWireError):
    """A response schema could not be decoded into a recognized form."""


class RequestBuildError(LLMWireError):
    """A request body could not be serialized."""


class UnsupportedFeatureError(LLMWireError):
    """A capability was requested for a model that does not declare it.

    Raised before any request bytes are built, so the vendor never sees the
    offending field.
    """

    def __init__(
        self,
        *,
        provider: str,
        model: str,
        capability: str,
        hint: str | None = None,
    ) -> None:
        super().__init__(
            f"{provider} model {model!r} does not support {capability}",
            hint=hint
            or "Check CapabilityRegistry.get_capabilities() before building the request.",
        )
        self.provider = provider
        self.model = model
        self.capability = capability


class APIError(LLMWireError):
    """The vendor reported an error.

    Carries retry metadata so transports can perform bounded retries without
    brittle substring matching.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        retryable: bool | None = None,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
        error_type: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider
        self.error_type = error_type
        self.code = code


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""


class ResponseParseError(LLMWireError):
    """A vendor response matched none of the shapes we understand.

    Distinct from APIError: the vendor did not say no, we could not read
    what it said.
    """

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        body_excerpt: str | None = None,
        hint: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.provider = provider
        self.body_excerpt = body_excerpt


class StreamSignal(Exception):  # noqa: N818
    """Base for the non-content outcomes of parsing one stream chunk.

    Not an LLMWireError: signals are control flow, not failures.
    """


class SkipChunk(StreamSignal):
    """The chunk carries nothing to emit; keep reading."""

    def __init__(self, reason: str = "no content") -> None:
        super().__init__(reason)
        self.reason = reason


class StreamEnd(StreamSignal):
    """The vendor signalled end of stream.

    ``response`` holds whatever the terminal chunk carried: trailing text,
    tool-call fragments, or final aggregate usage.
    """

    def __init__(self, response: Response | None = None) -> None:
        super().__init__("end of stream")
        self.response = response

    @property
    def usage(self) -> Usage | None:
        """Final usage reported by the terminal chunk, if any."""
        return self.response.usage if self.response is not None else None


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
