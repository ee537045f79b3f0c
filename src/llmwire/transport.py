"""Reference HTTP executor for translators, built on ``httpx.AsyncClient``.

Translators only produce ``(endpoint, headers, body)`` and parse bytes back;
this module performs the round trip, classifies failures and drives the
streaming contract.
"""

from __future__ import annotations

from collections.abc import Mapping
from contextlib import asynccontextmanager
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from llmwire.errors import APIError
from llmwire.framing import decoder_for
from llmwire.providers._errors import (
    api_error,
    api_error_from_payload,
    extract_retry_after_s,
    wrap_transport_error,
)
from llmwire.providers._utils import excerpt
from llmwire.retry import RetryPolicy, retry_async
from llmwire.stream import StreamReader

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from llmwire.models import Request, Response, Usage
    from llmwire.options import Options
    from llmwire.providers.base import Provider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 60.0


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    # Caller-owned clients are left open.
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT_S) as owned:
        yield owned


def status_error(provider: Provider, response: httpx.Response) -> APIError:
    """Build an APIError from a non-2xx response, preferring the vendor's message."""
    status = response.status_code
    retry_after = extract_retry_after_s(response.headers)
    text = response.text
    try:
        payload: Any = json.loads(text) if text else None
    except json.JSONDecodeError:
        payload = None

    error = api_error_from_payload(
        payload, provider=provider.name, status_code=status, retry_after_s=retry_after
    )
    if error is not None:
        return error
    if isinstance(payload, Mapping) and isinstance(payload.get("message"), str):
        message = payload["message"]
    else:
        message = excerpt(text) or response.reason_phrase or "request failed"
    return api_error(
        message, provider=provider.name, status_code=status, retry_after_s=retry_after
    )


async def complete(
    provider: Provider,
    request: Request,
    *,
    options: Options | Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
    retry: RetryPolicy | None = None,
) -> Response:
    """Send a non-streaming request and parse the vendor's reply.

    The body is built once, before any network activity, so capability and
    schema errors surface without a round trip.

    Raises:
        UnsupportedFeatureError: The model lacks a requested capability.
        APIError: The vendor rejected the call or the transport failed.
        ResponseParseError: The reply matched no known shape.
    """
    body = provider.prepare_request(request, options)
    policy = retry if retry is not None else RetryPolicy()

    async with _client_scope(client) as http:

        async def attempt() -> Response:
            try:
                response = await http.post(
                    provider.endpoint, content=body, headers=provider.headers()
                )
            except httpx.HTTPError as exc:
                raise wrap_transport_error(exc, provider=provider.name) from exc
            if response.is_error:
                raise status_error(provider, response)
            return provider.parse_response(response.content)

        return await retry_async(attempt, policy=policy)


class ResponseStream:
    """Async iterable of content responses from one streaming call.

    Once iteration ends, ``usage`` holds the final usage reported by the
    vendor's terminal chunk and ``finished`` tells whether one arrived.
    """

    def __init__(
        self,
        provider: Provider,
        body: bytes,
        client: httpx.AsyncClient | None,
    ) -> None:
        self._provider = provider
        self._body = body
        self._client = client
        self._reader = StreamReader(provider)

    @property
    def usage(self) -> Usage | None:
        return self._reader.usage

    @property
    def finished(self) -> bool:
        return self._reader.finished

    def __aiter__(self) -> AsyncIterator[Response]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Response]:
        provider = self._provider
        decoder = decoder_for(provider.stream_framing)
        async with _client_scope(self._client) as http:
            try:
                async with http.stream(
                    "POST",
                    provider.stream_endpoint,
                    content=self._body,
                    headers=provider.headers(),
                ) as response:
                    if response.is_error:
                        await response.aread()
                        raise status_error(provider, response)
                    async for data in response.aiter_bytes():
                        for unit in decoder.feed(data):
                            item = self._reader.step(unit)
                            if item is not None:
                                yield item
                            if self._reader.finished:
                                return
                    for unit in decoder.flush():
                        item = self._reader.step(unit)
                        if item is not None:
                            yield item
                        if self._reader.finished:
                            return
            except httpx.HTTPError as exc:
                raise wrap_transport_error(exc, provider=provider.name) from exc

        if not self._reader.finished:
            logger.warning("%s stream closed without a terminal chunk", provider.name)


def stream(
    provider: Provider,
    request: Request,
    *,
    options: Options | Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
) -> ResponseStream:
    """Start a streaming call; iterate the result with ``async for``.

    The body is built immediately, so capability errors raise here rather
    than on first iteration. Streams are not retried.
    """
    body = provider.prepare_stream_request(request, options)
    return ResponseStream(provider, body, client)
