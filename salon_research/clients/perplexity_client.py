"""
Singleton Perplexity client (OpenAI-compatible) governed by a RequestGovernor.
"""
from typing import Callable, Optional

from aiolimiter import AsyncLimiter
from openai import AsyncOpenAI
from loguru import logger

from salon_research.config import (
    BURST_LIMIT_PER_SECOND,
    PERPLEXITY_API_KEY,
    PERPLEXITY_API_URL,
    REQUEST_TIMEOUT,
)
from salon_research.errors import RetryableError, TerminalRequestError
from salon_research.governor import RequestGovernor
from salon_research.models import CompletionRequest


class PerplexityClient:
    """
    Singleton client for the upstream completion service.

    The SDK's own retries are disabled; the governor owns the retry policy and
    the sliding-window rate limit, while the AsyncLimiter smooths bursts.
    """
    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if not PerplexityClient._initialized:
            if not PERPLEXITY_API_KEY:
                raise ValueError("PERPLEXITY_API_KEY must be set in environment or config")

            self.client = AsyncOpenAI(
                api_key=PERPLEXITY_API_KEY,
                base_url=PERPLEXITY_API_URL,
                timeout=REQUEST_TIMEOUT,
                max_retries=0,
            )
            self.rate_limiter = AsyncLimiter(max_rate=BURST_LIMIT_PER_SECOND, time_period=1.0)
            self.governor = RequestGovernor(self._send)
            PerplexityClient._initialized = True

    async def _send(self, request: CompletionRequest) -> str:
        """One raw upstream call; returns the first completion's text."""
        async with self.rate_limiter:
            resp = await self.client.chat.completions.create(**request.to_kwargs())
        choices = getattr(resp, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise TerminalRequestError("Invalid response format from Perplexity API")
        return content

    async def complete(
        self,
        request: CompletionRequest,
        on_retry: Optional[Callable[[RetryableError], None]] = None,
        raise_on_retry: bool = False,
    ) -> str:
        """
        Run a completion through the request governor.

        Returns:
            str: The raw response text.
        """
        now = self.governor.clock()
        logger.debug(
            f"📡 Perplexity request ({request.model}), "
            f"{self.governor.state.remaining_requests(now)} requests remaining in window"
        )
        return await self.governor.execute(request, on_retry=on_retry, raise_on_retry=raise_on_retry)
