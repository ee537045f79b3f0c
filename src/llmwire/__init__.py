"""llmwire: one request and response model for many LLM vendor APIs.

Translators turn a vendor-neutral :class:`Request` into each vendor's JSON
body and parse replies and stream chunks back into :class:`Response`. They do
no I/O; :mod:`llmwire.transport` is an optional httpx-based executor.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version
import logging

from llmwire.capabilities import Capability, CapabilityRegistry, default_capabilities
from llmwire.config import Config, create_provider
from llmwire.errors import (
    APIError,
    ConfigurationError,
    LLMWireError,
    RateLimitError,
    RequestBuildError,
    ResponseParseError,
    SchemaError,
    SkipChunk,
    StreamEnd,
    StreamSignal,
    UnknownProviderError,
    UnsupportedFeatureError,
)
from llmwire.models import (
    CacheType,
    Content,
    FunctionCall,
    Message,
    Request,
    Response,
    Role,
    Text,
    Tool,
    ToolCall,
    Usage,
)
from llmwire.options import Options
from llmwire.providers import Provider, ProviderConfig, ProviderRegistry, default_registry
from llmwire.retry import RetryPolicy
from llmwire.schema import sanitize_schema
from llmwire.stream import StreamReader, collect_stream, iter_stream

try:
    __version__ = version("llmwire")
except PackageNotFoundError:  # pragma: no cover - source checkout without install
    __version__ = "0.0.0"

# Library logging stays silent unless the application configures handlers.
logging.getLogger("llmwire").addHandler(logging.NullHandler())

__all__ = [
    "APIError",
    "CacheType",
    "Capability",
    "CapabilityRegistry",
    "Config",
    "ConfigurationError",
    "Content",
    "FunctionCall",
    "LLMWireError",
    "Message",
    "Options",
    "Provider",
    "ProviderConfig",
    "ProviderRegistry",
    "RateLimitError",
    "Request",
    "RequestBuildError",
    "Response",
    "ResponseParseError",
    "RetryPolicy",
    "Role",
    "SchemaError",
    "SkipChunk",
    "StreamEnd",
    "StreamReader",
    "StreamSignal",
    "Text",
    "Tool",
    "ToolCall",
    "UnknownProviderError",
    "UnsupportedFeatureError",
    "Usage",
    "collect_stream",
    "create_provider",
    "default_capabilities",
    "default_registry",
    "iter_stream",
    "sanitize_schema",
    "__version__",
]
