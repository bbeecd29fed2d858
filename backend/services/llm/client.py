"""OpenRouter client conforming to the LLMClient protocol.

Both the SQL generator and the chat agent talk to the model through the
OpenAI SDK pointed at OpenRouter. SDK errors are mapped to the two
exceptions below, which ``main`` turns into 503 and 502 responses.
"""
from __future__ import annotations

import json
import re
from functools import lru_cache
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from openai import APIError, AsyncOpenAI, RateLimitError

from config import settings
from protocols import Message


class LLMRateLimitError(Exception):
    """Raised when the LLM API rate limit is exceeded."""
    pass


class LLMAPIError(Exception):
    """Raised when the LLM API returns an error."""
    pass


RATE_LIMIT_MESSAGE = (
    "Rate limit exceeded. The AI service is temporarily unavailable. "
    "Please wait a moment and try again."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_decoder = json.JSONDecoder()


def parse_json_object(response: str) -> Optional[Dict[str, Any]]:
    """First JSON object in a model reply, fenced or inline; None if there is none."""
    text = (response or "").strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1)

    start = text.find("{")
    while start != -1:
        try:
            parsed, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(parsed, dict):
            return parsed
        start = text.find("{", start + 1)

    logger.warning("[LLM] No JSON object in reply: {}", text[:200])
    return None


class OpenRouterClient:
    """Async chat-completions client for OpenRouter."""

    def __init__(self, api_key: Optional[str] = None, default_model: Optional[str] = None):
        api_key = api_key or settings.llm.api_key
        if not api_key:
            raise ValueError("OPENROUTER_API_KEY not set in environment")
        self._default_model = default_model or settings.llm.default_model
        self._client = AsyncOpenAI(base_url=settings.llm.base_url, api_key=api_key)

    async def _create(self, model: Optional[str], **kwargs: Any) -> Any:
        try:
            return await self._client.chat.completions.create(model=model or self._default_model, **kwargs)
        except RateLimitError as e:
            logger.warning("[LLM] Rate limited on {}", model or self._default_model)
            raise LLMRateLimitError(RATE_LIMIT_MESSAGE) from e
        except APIError as e:
            raise LLMAPIError(f"AI service error: {e}") from e

    async def complete(
        self,
        messages: Sequence[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> str:
        """Plain completion; returns the reply text.

        Raises:
            LLMRateLimitError: If rate limit is exceeded.
            LLMAPIError: If the API returns an error.
        """
        response = await self._create(
            model, messages=list(messages), temperature=temperature, max_tokens=max_tokens
        )
        return response.choices[0].message.content or ""

    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> Any:
        """Completion with function calling; returns the raw SDK response."""
        return await self._create(
            model,
            messages=list(messages),
            tools=tools,
            tool_choice="auto",
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def parse_json_response(self, response: str) -> Optional[Dict[str, Any]]:
        return parse_json_object(response)


@lru_cache(maxsize=1)
def get_llm_client() -> OpenRouterClient:
    """Get the singleton LLM client instance."""
    return OpenRouterClient()
