"""Test helpers shared across translator suites."""

from __future__ import annotations

import json
from typing import Any


def decode(body: bytes) -> dict[str, Any]:
    """Decode a prepared request body."""
    return json.loads(body)


def sse(payload: Any) -> bytes:
    """Frame one JSON payload (or a raw string) as a complete SSE event."""
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n".encode()


def body_of(payload: Any) -> bytes:
    return json.dumps(payload).encode()
