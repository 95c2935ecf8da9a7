#!/usr/bin/env python3
"""
Chat-completion client with rate-limit backoff and cooperative cancellation.

Talks to any OpenAI-compatible /chat/completions endpoint.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from .cancellation import CancellationToken
from .errors import (
    APIResponseError,
    ExhaustedRetries,
    NetworkError,
    RateLimited,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-3.5-turbo"
BACKOFF_BASE_MS = 2000


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the rate-limited attempt number `attempt` (0-based)"""
    return (2 ** attempt) * BACKOFF_BASE_MS / 1000


@dataclass
class LLMResponse:
    """Raw reply of one successful attempt"""
    content: str
    model: str
    attempts: int = 1
    response_time: float = 0
    token_count: Optional[int] = None


class ChatGPTClient:
    """
    Minimal chat-completion client.

    Usage:
        client = ChatGPTClient(base_url="https://api.openai.com/v1")
        raw = await client.call_api(system_role, user_prompt, api_key, token)

    A session may be injected (tests pass a fake one); otherwise a fresh
    aiohttp session is opened per attempt.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 60,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session
        self._sleep = sleep

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _build_payload(
        self,
        system_role: str,
        user_prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
        frequency_penalty: float,
        presence_penalty: float,
    ) -> Dict[str, Any]:
        return {
            "model": model,
            "messages": [
                {"role": "system", "content": system_role},
                {"role": "user", "content": user_prompt},
            ],
            "max_tokens": max_tokens,
            "n": 1,
            "stop": None,
            "temperature": temperature,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }

    async def call_api(
        self,
        system_role: str,
        user_prompt: str,
        api_key: str,
        token: CancellationToken,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 150,
        temperature: float = 0,
        top_p: float = 0.95,
        frequency_penalty: float = 0,
        presence_penalty: float = 0.5,
        max_retries: int = 5,
    ) -> str:
        """Return the first choice's message content, unvalidated."""
        response = await self.generate(
            system_role, user_prompt, api_key, token,
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            top_p=top_p,
            frequency_penalty=frequency_penalty,
            presence_penalty=presence_penalty,
            max_retries=max_retries,
        )
        logger.info(
            f"{response.model} answered in {response.response_time:.2f}s "
            f"(attempt {response.attempts}, tokens: {response.token_count or 'n/a'})"
        )
        return response.content

    async def generate(
        self,
        system_role: str,
        user_prompt: str,
        api_key: str,
        token: CancellationToken,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 150,
        temperature: float = 0,
        top_p: float = 0.95,
        frequency_penalty: float = 0,
        presence_penalty: float = 0.5,
        max_retries: int = 5,
    ) -> LLMResponse:
        """Same as call_api but keeps the attempt count and timing"""
        payload = self._build_payload(
            system_role, user_prompt, model, max_tokens,
            temperature, top_p, frequency_penalty, presence_penalty,
        )
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

        for attempt in range(max_retries):
            token.raise_if_cancelled()
            start_time = time.time()
            try:
                data = await self._post(payload, headers)
            except RateLimited as e:
                delay = backoff_delay(attempt)
                logger.warning(
                    f"Rate limited (attempt {attempt + 1}/{max_retries}), retrying in {delay:.0f}s: {e}"
                )
                await self._wait(delay, token)
                continue

            content = self._extract_content(data)
            usage = data.get("usage") or {}
            return LLMResponse(
                content=content,
                model=data.get("model", model),
                attempts=attempt + 1,
                response_time=time.time() - start_time,
                token_count=usage.get("total_tokens"),
            )

        token.raise_if_cancelled()
        raise ExhaustedRetries(f"max retries reached ({max_retries} attempts)")

    async def _wait(self, delay: float, token: CancellationToken):
        if self._sleep is not None:
            await self._sleep(delay)
        else:
            await token.sleep(delay)

    async def _post(self, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        """Single attempt. Raises RateLimited on 429 so the caller can back off."""
        try:
            if self._session is not None:
                return await self._send(self._session, payload, headers)
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                return await self._send(session, payload, headers)
        except asyncio.TimeoutError as e:
            raise NetworkError(f"Request timed out after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Connection failed: {e}") from e

    async def _send(self, session, payload: Dict[str, Any], headers: Dict[str, str]) -> Dict[str, Any]:
        async with session.post(self.endpoint, json=payload, headers=headers) as response:
            if response.status == 429:
                raise RateLimited(f"HTTP 429: {response.reason}")
            if not 200 <= response.status < 300:
                body = await response.text()
                raise APIResponseError(
                    f"API call error: HTTP {response.status} {response.reason}: {body[:200]}",
                    status=response.status,
                )
            try:
                return await response.json()
            except (aiohttp.ContentTypeError, ValueError) as e:
                raise APIResponseError(
                    f"API returned a non-JSON body: {e}", status=response.status
                ) from e

    def _extract_content(self, data: Any) -> str:
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise APIResponseError(f"Unexpected API response format: {e}") from e
        if not isinstance(content, str):
            raise APIResponseError("API response content is not a string")
        return content


__all__ = [
    "ChatGPTClient",
    "LLMResponse",
    "backoff_delay",
]
