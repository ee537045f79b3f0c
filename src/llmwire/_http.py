"""Small HTTP-related constants shared across llmwire.

This module is intentionally tiny to avoid circular imports and drift.
"""

from __future__ import annotations

# Retryable status codes shared by error mapping and transport retry.
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 409, 429, 500, 502, 503, 504})

CONTENT_TYPE_JSON = "application/json"
