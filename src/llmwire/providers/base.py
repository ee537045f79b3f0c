"""Provider protocol and the plumbing shared by every vendor translator."""

from __future__ import annotations

from collections.abc import Mapping
from functools import lru_cache
import logging
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, runtime_checkable

from llmwire._http import CONTENT_TYPE_JSON
from llmwire.capabilities import Capability, CapabilityRegistry, default_capabilities
from llmwire.errors import UnsupportedFeatureError
from llmwire.options import Options, merge_options
from llmwire.providers._errors import api_error_from_payload
from llmwire.providers._utils import decode_body, encode_body
from llmwire.schema import BASE_DIALECT, SchemaDialect, sanitize_schema

if TYPE_CHECKING:
    from llmwire.framing import Framing
    from llmwire.models import Request, Response

logger = logging.getLogger(__name__)


@runtime_checkable
class Provider(Protocol):
    """Translator between the unified models and one vendor's wire format.

    Instances hold configuration only (API key, model, default options) and
    are reused across calls. They are not safe for concurrent ``set_option``
    and ``prepare_request`` from several threads.
    """

    name: str
    model: str
    stream_framing: Framing

    @property
    def endpoint(self) -> str:
        """URL for non-streaming requests."""
        ...

    @property
    def stream_endpoint(self) -> str:
        """URL for streaming requests."""
        ...

    def headers(self) -> dict[str, str]:
        """HTTP headers for every request, auth included."""
        ...

    def set_extra_headers(self, headers: Mapping[str, str]) -> None:
        """Replace the caller-supplied extra headers."""
        ...

    def set_option(self, key: str, value: Any) -> None:
        """Persist one default option for later requests."""
        ...

    def set_default_options(self, options: Options | Mapping[str, Any]) -> None:
        """Persist several default options at once."""
        ...

    def prepare_request(
        self, request: Request, options: Options | Mapping[str, Any] | None = None
    ) -> bytes:
        """Build the vendor JSON body for a non-streaming call."""
        ...

    def prepare_stream_request(
        self, request: Request, options: Options | Mapping[str, Any] | None = None
    ) -> bytes:
        """Build the vendor JSON body for a streaming call."""
        ...

    def parse_response(self, body: bytes | str) -> Response:
        """Decode a complete vendor response."""
        ...

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        """Decode one stream chunk; raise SkipChunk or StreamEnd for non-content."""
        ...

    @property
    def capabilities(self) -> frozenset[Capability]:
        """Features this vendor supports for ``model``."""
        ...


@lru_cache(maxsize=1)
def builtin_capabilities() -> CapabilityRegistry:
    """Shared registry of built-in tables, built on first use."""
    return default_capabilities()


class BaseProvider:
    """Shared behavior for concrete translators.

    Subclasses set the class attributes and implement ``_build_body``,
    ``_parse_payload`` and ``parse_stream_response``.
    """

    name: str = "base"
    stream_framing: ClassVar[Framing] = "sse"
    default_endpoint: ClassVar[str] = ""
    schema_dialect: ClassVar[SchemaDialect] = BASE_DIALECT
    #: Lowest-precedence option layer.
    builtin_options: ClassVar[Options] = Options()
    #: Wire keys tied to a capability. Passthrough extras may set one only when
    #: the model has that capability.
    feature_keys: ClassVar[Mapping[str, Capability]] = {
        "response_format": Capability.STRUCTURED_RESPONSE,
        "tools": Capability.FUNCTION_CALLING,
        "tool_choice": Capability.FUNCTION_CALLING,
    }
    #: Wire keys that belong only in streaming bodies.
    stream_keys: ClassVar[frozenset[str]] = frozenset({"stream"})

    def __init__(
        self,
        api_key: str,
        model: str,
        extra_headers: Mapping[str, str] | None = None,
        *,
        capabilities: CapabilityRegistry | None = None,
    ) -> None:
        """Initialize with credentials, a model id and optional extra headers."""
        self.api_key = api_key
        self.model = model
        self._extra_headers: dict[str, str] = dict(extra_headers or {})
        self._defaults = Options()
        self._capability_registry = (
            capabilities if capabilities is not None else builtin_capabilities()
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"

    # -- endpoints and headers ----------------------------------------------

    @property
    def endpoint(self) -> str:
        return self.default_endpoint

    @property
    def stream_endpoint(self) -> str:
        return self.endpoint

    def _auth_headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": CONTENT_TYPE_JSON,
            **self._auth_headers(),
            **self._extra_headers,
        }

    def set_extra_headers(self, headers: Mapping[str, str]) -> None:
        self._extra_headers = dict(headers)

    # -- options -------------------------------------------------------------

    def set_option(self, key: str, value: Any) -> None:
        self._defaults = self._defaults.with_option(key, value)

    def set_default_options(self, options: Options | Mapping[str, Any]) -> None:
        self._defaults = merge_options(self._defaults, options)

    @property
    def default_options(self) -> Options:
        return self._defaults

    def resolve_options(
        self, request: Request, options: Options | Mapping[str, Any] | None = None
    ) -> Options:
        """Fold option layers: built-in < persisted < request < call-time."""
        return merge_options(self.builtin_options, self._defaults, request.options, options)

    # -- capabilities --------------------------------------------------------

    @property
    def capability_vendor(self) -> str:
        """Vendor key used for capability lookups."""
        return self.name

    @property
    def capabilities(self) -> frozenset[Capability]:
        return self._capability_registry.get_capabilities(
            self.capability_vendor, self.model
        )

    def supports(self, capability: Capability | str) -> bool:
        return Capability(capability) in self.capabilities

    def _require(self, capability: Capability) -> None:
        if capability not in self.capabilities:
            raise UnsupportedFeatureError(
                provider=self.name, model=self.model, capability=capability.value
            )

    def _check_features(self, request: Request, opts: Options, *, stream: bool) -> None:
        if stream:
            self._require(Capability.STREAMING)
        if request.response_schema is not None:
            self._require(Capability.STRUCTURED_RESPONSE)
        if opts.tools:
            self._require(Capability.FUNCTION_CALLING)

    # -- request building ----------------------------------------------------

    def prepare_request(
        self, request: Request, options: Options | Mapping[str, Any] | None = None
    ) -> bytes:
        return self._prepare(request, options, stream=False)

    def prepare_stream_request(
        self, request: Request, options: Options | Mapping[str, Any] | None = None
    ) -> bytes:
        return self._prepare(request, options, stream=True)

    def _prepare(
        self,
        request: Request,
        options: Options | Mapping[str, Any] | None,
        *,
        stream: bool,
    ) -> bytes:
        opts = self.resolve_options(request, options)
        self._check_features(request, opts, stream=stream)
        body = self._build_body(request, opts, stream=stream)
        return encode_body(body, provider=self.name)

    def _build_body(
        self, request: Request, opts: Options, *, stream: bool
    ) -> dict[str, Any]:
        raise NotImplementedError

    def _sanitized_schema(self, schema: Any) -> Any:
        return sanitize_schema(schema, self.schema_dialect)

    def _tool_parameters(self, parameters: Mapping[str, Any] | None) -> Any:
        if parameters is None:
            return {"type": "object", "properties": {}, "additionalProperties": False}
        return self._sanitized_schema(parameters)

    def _merge_passthrough(
        self, body: dict[str, Any], opts: Options, *, stream: bool = False
    ) -> None:
        """Copy extras into *body* without overriding built fields.

        Raises:
            UnsupportedFeatureError: An extra sets a capability-bound wire key
                the model does not support.
        """
        for key, value in opts.passthrough().items():
            if key in body:
                logger.debug("%s: extra option %r ignored; field already set", self.name, key)
                continue
            if key in self.stream_keys and not stream:
                logger.debug("%s: extra option %r ignored; not a stream request", self.name, key)
                continue
            capability = self.feature_keys.get(key)
            if capability is not None:
                self._require(capability)
            body[key] = value

    # -- response parsing ----------------------------------------------------

    def parse_response(self, body: bytes | str) -> Response:
        payload = decode_body(body, provider=self.name)
        error = api_error_from_payload(payload, provider=self.name)
        if error is not None:
            raise error
        return self._parse_payload(payload)

    def _parse_payload(self, payload: Any) -> Response:
        raise NotImplementedError

    def parse_stream_response(self, chunk: bytes | str) -> Response:
        raise NotImplementedError
