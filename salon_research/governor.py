"""
Request governor for the upstream completion service.

Wraps a single upstream call with a sliding-window rate limiter and a
classified exponential-backoff retry policy. One governor (and one RetryState)
per governed endpoint; callers are expected to keep one call in flight at a
time. Concurrent callers would need a per-destination RetryState guarded by an
asyncio.Lock.
"""
import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Deque, Dict, Optional, Tuple

import aiohttp
import openai
from loguru import logger

from salon_research.config import MAX_ATTEMPTS, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_SECONDS
from salon_research.errors import RetryableError, TerminalRequestError
from salon_research.models import CompletionRequest


class FailureKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    AUTHENTICATION = "authentication"
    SERVER = "server"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class BackoffPolicy:
    base: float
    cap: float
    label: str


BACKOFF_POLICIES: Dict[FailureKind, BackoffPolicy] = {
    FailureKind.RATE_LIMITED: BackoffPolicy(base=1.0, cap=300.0, label="Rate limit hit"),
    FailureKind.AUTHENTICATION: BackoffPolicy(base=2.0, cap=600.0, label="Auth error"),
    FailureKind.SERVER: BackoffPolicy(base=3.0, cap=600.0, label="Server error"),
    FailureKind.TRANSIENT: BackoffPolicy(base=1.0, cap=120.0, label="Upstream unavailable"),
}

WINDOW_BUFFER_SECONDS = 0.1


def classify_status(status: Optional[int]) -> Optional[FailureKind]:
    """Map an HTTP status to a retry bucket, or None when it is not retryable."""
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status == 401:
        return FailureKind.AUTHENTICATION
    if status == 500:
        return FailureKind.SERVER
    if status in (502, 503, 504):
        return FailureKind.TRANSIENT
    return None


def status_of(exc: BaseException) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(exc, "status", None)
    return status if isinstance(status, int) else None


def classify_failure(exc: BaseException) -> Optional[FailureKind]:
    """Classify an exception raised by the send function."""
    if isinstance(exc, (openai.APIConnectionError, aiohttp.ClientConnectionError, asyncio.TimeoutError)):
        return FailureKind.TRANSIENT
    return classify_status(status_of(exc))


def backoff_delay(kind: FailureKind, attempt: int, jitter: float) -> float:
    """min(base * 2^attempt + jitter, cap) for the bucket of `kind`."""
    policy = BACKOFF_POLICIES[kind]
    return min(policy.base * (2 ** attempt) + jitter, policy.cap)


class RetryState:
    """
    Sliding-window request log plus backoff bookkeeping.

    `backoff_until` only moves forward while errors are consecutive and is reset
    to the past on the first success.
    """

    def __init__(self, max_requests: int, window_seconds: float) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.request_times: Deque[float] = deque(maxlen=max_requests)
        self.backoff_until = 0.0
        self.consecutive_errors = 0

    def _prune(self, now: float) -> None:
        while self.request_times and now - self.request_times[0] >= self.window_seconds:
            self.request_times.popleft()

    def remaining_requests(self, now: float) -> int:
        self._prune(now)
        return max(0, self.max_requests - len(self.request_times))

    def time_until_next_slot(self, now: float) -> float:
        if now < self.backoff_until:
            return self.backoff_until - now
        self._prune(now)
        if len(self.request_times) < self.max_requests:
            return 0.0
        return max(0.0, self.window_seconds - (now - self.request_times[0]))

    def record_success(self, now: float) -> None:
        self.request_times.append(now)
        self.consecutive_errors = 0
        self.backoff_until = 0.0

    def register_failure(self, now: float, delay: float) -> int:
        self.consecutive_errors += 1
        self.backoff_until = max(self.backoff_until, now + delay)
        return self.consecutive_errors

    def reset(self) -> None:
        self.request_times.clear()
        self.backoff_until = 0.0
        self.consecutive_errors = 0


class RequestGovernor:
    """
    Governs calls to one upstream endpoint.

    Args:
        send: Coroutine function performing the actual upstream call.
        max_requests: Requests allowed per sliding window.
        window_seconds: Sliding window length.
        max_attempts: Total sends allowed per call across all failure buckets.
        clock: Monotonic clock, injectable so tests can simulate time.
        sleep: Cooperative sleep, injectable alongside the clock.
        jitter: Returns a value in [0, 1) added to each backoff.
    """

    def __init__(
        self,
        send: Callable[[CompletionRequest], Awaitable[str]],
        *,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        window_seconds: float = RATE_LIMIT_WINDOW_SECONDS,
        max_attempts: int = MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self.send = send
        self.max_attempts = max_attempts
        self.state = RetryState(max_requests, window_seconds)
        self.clock = clock
        self.sleep = sleep
        self.jitter = jitter

    async def wait_for_slot(self) -> None:
        """Block until no backoff is active and the window has capacity."""
        while True:
            now = self.clock()
            if now < self.state.backoff_until:
                wait = self.state.backoff_until - now
                logger.debug(f"⏳ Rate limit backoff: waiting {wait:.1f}s")
                await self.sleep(wait)
                continue
            wait = self.state.time_until_next_slot(now)
            if wait <= 0:
                return
            wait += WINDOW_BUFFER_SECONDS
            logger.debug(
                f"⏳ Rate limit reached ({len(self.state.request_times)}/{self.state.max_requests}), "
                f"waiting {wait:.1f}s"
            )
            await self.sleep(wait)

    async def execute(
        self,
        request: CompletionRequest,
        *,
        on_retry: Optional[Callable[[RetryableError], None]] = None,
        raise_on_retry: bool = False,
    ) -> str:
        """
        Send `request`, retrying classified transport failures internally.

        Args:
            request: The completion request.
            on_retry: Called with each interim RetryableError before waiting.
                Exceptions it raises propagate to the caller.
            raise_on_retry: Raise the RetryableError instead of waiting. The
                backoff stays registered, so the next call waits it out.

        Returns:
            str: The upstream response text.

        Raises:
            RetryableError: Only when raise_on_retry is set.
            TerminalRequestError: Non-retryable failure or attempts exhausted.
        """
        # Counter and backoff as they were before this call registered a failure.
        before: Optional[Tuple[int, float]] = None
        try:
            while True:
                await self.wait_for_slot()
                try:
                    text = await self.send(request)
                except (TerminalRequestError, RetryableError):
                    raise
                except Exception as e:
                    # Attempts count consecutive failures on this endpoint, so callers
                    # using raise_on_retry still reach the ceiling across calls.
                    attempt = self.state.consecutive_errors + 1
                    status = status_of(e)
                    kind = classify_failure(e)
                    logger.debug(f"⚠️ Upstream request failed (attempt {attempt}, status {status}): {e}")
                    if kind is None:
                        self.state.consecutive_errors = 0
                        raise TerminalRequestError(f"Upstream error {status}: {e}", status, attempt) from e

                    policy = BACKOFF_POLICIES[kind]
                    if attempt >= self.max_attempts:
                        self.state.consecutive_errors = 0
                        logger.error(f"❌ {policy.label} persisted after {attempt} attempts")
                        raise TerminalRequestError(f"{policy.label}: {e}", status, attempt) from e

                    if before is None:
                        before = (self.state.consecutive_errors, self.state.backoff_until)
                    now = self.clock()
                    delay = backoff_delay(kind, attempt, self.jitter())
                    self.state.register_failure(now, delay)
                    wait = self.state.time_until_next_slot(now)
                    retry = RetryableError(f"{policy.label}: {e}", attempt, self.max_attempts, wait, status)
                    logger.warning(
                        f"🚫 {policy.label} - waiting {wait:.1f}s before retry {attempt}/{self.max_attempts}"
                    )
                    if on_retry is not None:
                        on_retry(retry)
                    if raise_on_retry:
                        raise retry from e
                    continue

                self.state.record_success(self.clock())
                logger.debug(
                    f"📊 Rate limit: {len(self.state.request_times)}/{self.state.max_requests} requests in window"
                )
                return text
        except asyncio.CancelledError:
            if before is not None:
                self.state.consecutive_errors, self.state.backoff_until = before
                logger.debug("🛑 Governed call cancelled, discarding its backoff")
            raise
