"""
AI gateway client for the chat tutor.

Opens a streaming chat-completions request against an OpenAI-compatible
gateway, retrying transport failures and 5xx responses with exponential
backoff. The open response is handed back unread so the caller can relay the
event stream verbatim.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger

from studybuddy.core.errors import RateLimited, UpstreamUnavailable

MAX_RETRY_DELAY_SECONDS = 5.0


class AIGatewayClient:
    """HTTP client for the chat-completions gateway."""

    def __init__(
        self,
        api_url: str,
        api_key: str | None,
        model: str,
        timeout_ms: int = 30000,
        retry_attempts: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Initialize gateway client.

        Args:
            api_url: Chat completions endpoint
            api_key: Bearer key for the gateway (None disables chat)
            model: Model identifier sent with every request
            timeout_ms: Request timeout in milliseconds
            retry_attempts: Number of attempts on transport/5xx failure
            transport: Optional httpx transport (tests inject a mock)
            sleep: Awaitable used between retries
        """
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.retry_attempts = max(1, retry_attempts)
        self._sleep = sleep
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_ms / 1000.0),
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    @staticmethod
    def retry_delay(attempt: int) -> float:
        """Backoff before the next attempt: 1s, 2s, 4s, capped at 5s."""
        return min(2.0**attempt, MAX_RETRY_DELAY_SECONDS)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    async def open_chat_stream(self, messages: list[dict[str, str]]) -> httpx.Response:
        """
        Start a streaming completion.

        Args:
            messages: Full message list, system prompt included

        Returns:
            Open streaming response with a 2xx status; the caller must close it

        Raises:
            RateLimited: Gateway answered 429
            UpstreamUnavailable: Gateway unreachable, unconfigured or failing
        """
        if not self.api_key:
            logger.error("AI gateway key is not configured")
            raise UpstreamUnavailable()

        payload = {"model": self.model, "messages": messages, "stream": True}
        response: httpx.Response | None = None
        last_error: Exception | None = None

        for attempt in range(self.retry_attempts):
            is_last = attempt == self.retry_attempts - 1
            try:
                request = self.client.build_request(
                    "POST", self.api_url, json=payload, headers=self._headers()
                )
                response = await self.client.send(request, stream=True)
            except httpx.RequestError as e:
                last_error = e
                response = None
                wait_time = self.retry_delay(attempt)
                logger.warning(
                    "AI gateway request error on attempt {}/{}: {}",
                    attempt + 1,
                    self.retry_attempts,
                    e,
                )
                if not is_last:
                    await self._sleep(wait_time)
                continue

            if response.status_code >= 500 and not is_last:
                wait_time = self.retry_delay(attempt)
                logger.warning(
                    "AI gateway server error {} on attempt {}/{}. Retrying in {}s...",
                    response.status_code,
                    attempt + 1,
                    self.retry_attempts,
                    wait_time,
                )
                await response.aclose()
                await self._sleep(wait_time)
                continue
            break

        if response is None:
            logger.error("AI gateway unreachable after {} attempts: {}", self.retry_attempts, last_error)
            raise UpstreamUnavailable("Unable to connect to AI service. Please try again later.")

        if response.is_success:
            return response

        status = response.status_code
        await response.aclose()
        if status == 429:
            raise RateLimited()
        if status == 402:
            raise UpstreamUnavailable("AI service unavailable. Please contact support.", status_code=402)
        logger.error("AI gateway error: status {}", status)
        raise UpstreamUnavailable()
