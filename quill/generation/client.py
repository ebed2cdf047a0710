"""Streaming chat-completion client over httpx."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Any, Protocol

import httpx

from quill.config import LLMConfig
from quill.core import RequestError

logger = logging.getLogger("quill.client")


class CompletionStream(Protocol):
    def chunks(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class CompletionTransport(Protocol):
    async def open(self, payload: dict[str, Any]) -> CompletionStream:
        """Send the request; return once a success status has been received."""
        ...

    async def aclose(self) -> None: ...


class HttpCompletionStream:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise RequestError(f"Stream interrupted: {e}") from e

    async def aclose(self) -> None:
        await self._response.aclose()


class HttpCompletionClient:
    """POSTs to an OpenAI-compatible chat completions endpoint with stream=true."""

    def __init__(self, config: LLMConfig, *, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_seconds, connect=10.0))

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        api_key = os.environ.get(self._config.api_key_env, "")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        return headers

    async def open(self, payload: dict[str, Any]) -> HttpCompletionStream:
        request = self._client.build_request("POST", self._config.endpoint, json=payload, headers=self._headers())
        try:
            response = await self._client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise RequestError(f"Completion request failed: {e}") from e

        if response.is_error:
            body = (await response.aread())[:200].decode("utf-8", errors="replace")
            await response.aclose()
            logger.warning("Completion endpoint returned %d: %s", response.status_code, body)
            raise RequestError(
                f"Completion endpoint returned {response.status_code}", status_code=response.status_code
            )

        logger.info("Completion stream opened: model=%s status=%d", payload.get("model"), response.status_code)
        return HttpCompletionStream(response)

    async def aclose(self) -> None:
        await self._client.aclose()
