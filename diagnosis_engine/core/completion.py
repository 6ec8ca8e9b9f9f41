"""Chat-completion client for an OpenAI-compatible HTTP backend.

Exposes a blocking call (used for extraction) and a token stream (used for
conversation). Both are bounded by a total timeout; the stream's deadline is
only enforced while waiting on the network, never while the caller holds a
fragment.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

import httpx

from diagnosis_engine.core.config import Settings
from diagnosis_engine.core.exceptions import CompletionError, CompletionTimeoutError, ParseError
from diagnosis_engine.core.logging import get_logger
from diagnosis_engine.core.sse import SSEParser

logger = get_logger(__name__)


@dataclass
class CompletionOptions:
    """Sampling options for one completion call."""

    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 2000
    timeout: float | None = None  # falls back to the client default


def parse_stream_fragment(data: str) -> str | None:
    """Return the incremental text carried by one stream payload.

    Raises:
        ParseError: If the payload is not JSON or not a completion chunk
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise ParseError(f"Malformed stream fragment: {e}") from e

    if not isinstance(payload, dict):
        raise ParseError("Stream fragment is not a JSON object")

    choices = payload.get("choices") or []
    if not choices:
        # Usage-only or keep-alive chunks carry no text
        return None

    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    if content is not None and not isinstance(content, str):
        raise ParseError("Stream fragment content is not a string")
    return content or None


class CompletionClient:
    """Async wrapper around a chat-completions endpoint."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_url = api_url
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._client = http_client or httpx.AsyncClient()

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> "CompletionClient":
        return cls(
            api_url=settings.COMPLETION_API_URL,
            api_key=settings.completion_api_key,
            model=settings.COMPLETION_MODEL,
            timeout=settings.COMPLETION_TIMEOUT_SECONDS,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise CompletionError("Completion API key not configured")
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _body(
        self, messages: list[dict[str, str]], options: CompletionOptions, stream: bool
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": messages,
            "temperature": options.temperature,
            "top_p": options.top_p,
            "max_tokens": options.max_tokens,
            "stream": stream,
        }

    async def complete(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions | None = None,
    ) -> str:
        """
        Run a non-streaming completion.

        Args:
            messages: Chat messages as {role, content} dicts
            options: Sampling options (defaults to CompletionOptions())

        Returns:
            Full completion text

        Raises:
            CompletionTimeoutError: If the call exceeds the timeout
            CompletionError: On transport failure, non-2xx status or malformed body
        """
        options = options or CompletionOptions()
        timeout = options.timeout or self.timeout

        try:
            async with asyncio.timeout(timeout):
                response = await self._client.post(
                    self.api_url,
                    headers=self._headers(),
                    json=self._body(messages, options, stream=False),
                    timeout=timeout,
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise CompletionTimeoutError(f"Completion timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion request failed: {e}") from e

        if response.status_code >= 400:
            raise CompletionError(
                f"Completion API error {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise CompletionError(f"Malformed completion response: {e}") from e

        if not isinstance(content, str):
            raise CompletionError("Completion response content is not a string")

        logger.debug(f"Completion returned {len(content)} chars from {self.model}")
        return content

    async def stream_complete(
        self,
        messages: list[dict[str, str]],
        options: CompletionOptions | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream a completion as text fragments.

        Malformed fragments are skipped with a warning. Fragments already
        yielded are never retracted; a failure mid-stream raises after them.

        Raises:
            CompletionTimeoutError: If the stream exceeds the timeout
            CompletionError: On transport failure or non-2xx status
        """
        options = options or CompletionOptions()
        timeout = options.timeout or self.timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        parser = SSEParser()
        skipped = 0

        try:
            async with self._client.stream(
                "POST",
                self.api_url,
                headers=self._headers(),
                json=self._body(messages, options, stream=True),
                timeout=timeout,
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise CompletionError(
                        f"Completion API error {response.status_code}: "
                        f"{body.decode('utf-8', 'replace')[:500]}",
                        status_code=response.status_code,
                    )

                chunks = response.aiter_text()
                finished = False
                while not finished:
                    try:
                        async with asyncio.timeout_at(deadline):
                            chunk = await anext(chunks)
                        events = parser.feed(chunk)
                    except StopAsyncIteration:
                        events = parser.flush()
                        finished = True

                    for event in events:
                        if event.done:
                            return
                        try:
                            text = parse_stream_fragment(event.data)
                        except ParseError as e:
                            skipped += 1
                            logger.warning(f"Skipping stream fragment: {e}")
                            continue
                        if text:
                            yield text
        except (TimeoutError, httpx.TimeoutException) as e:
            raise CompletionTimeoutError(f"Completion stream timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise CompletionError(f"Completion stream failed: {e}") from e
        finally:
            if skipped:
                logger.info(f"Completion stream skipped {skipped} malformed fragments")
