import asyncio

import pytest
from unittest.mock import AsyncMock

from salon_research.errors import RetryableError, TerminalRequestError
from salon_research.governor import FailureKind, RequestGovernor, backoff_delay, classify_status
from salon_research.models import CompletionRequest


class FakeClock:
    """Simulated time: sleeping advances the clock instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class UpstreamStatusError(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def make_governor(send, clock, **kwargs) -> RequestGovernor:
    return RequestGovernor(send, clock=clock, sleep=clock.sleep, jitter=lambda: 0.0, **kwargs)


REQUEST = CompletionRequest.build("system", "user", "sonar")


def test_classify_status_buckets():
    assert classify_status(429) is FailureKind.RATE_LIMITED
    assert classify_status(401) is FailureKind.AUTHENTICATION
    assert classify_status(500) is FailureKind.SERVER
    assert classify_status(503) is FailureKind.TRANSIENT
    assert classify_status(400) is None
    assert classify_status(None) is None


def test_backoff_delay_is_capped():
    assert backoff_delay(FailureKind.RATE_LIMITED, 1, 0.0) == 2.0
    assert backoff_delay(FailureKind.SERVER, 2, 0.5) == 12.5
    assert backoff_delay(FailureKind.RATE_LIMITED, 20, 0.0) == 300.0


@pytest.mark.asyncio
async def test_three_rate_limits_then_success():
    clock = FakeClock()
    send = AsyncMock(side_effect=[
        UpstreamStatusError(429),
        UpstreamStatusError(429),
        UpstreamStatusError(429),
        "ok",
    ])
    governor = make_governor(send, clock)

    result = await governor.execute(REQUEST)

    assert result == "ok"
    assert clock.sleeps == [2.0, 4.0, 8.0]
    assert send.await_count == 4
    assert governor.state.consecutive_errors == 0
    assert governor.state.backoff_until == 0.0


@pytest.mark.asyncio
async def test_auth_error_uses_its_own_base():
    clock = FakeClock()
    send = AsyncMock(side_effect=[UpstreamStatusError(401), "ok"])
    governor = make_governor(send, clock)

    assert await governor.execute(REQUEST) == "ok"
    assert clock.sleeps == [4.0]


@pytest.mark.asyncio
async def test_client_error_fails_after_one_send():
    clock = FakeClock()
    send = AsyncMock(side_effect=UpstreamStatusError(400))
    governor = make_governor(send, clock)

    with pytest.raises(TerminalRequestError) as exc_info:
        await governor.execute(REQUEST)

    assert exc_info.value.status == 400
    assert exc_info.value.attempts == 1
    assert send.await_count == 1
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_server_errors_exhaust_after_five_sends():
    clock = FakeClock()
    send = AsyncMock(side_effect=UpstreamStatusError(500))
    governor = make_governor(send, clock)

    with pytest.raises(TerminalRequestError) as exc_info:
        await governor.execute(REQUEST)

    assert send.await_count == 5
    assert exc_info.value.attempts == 5
    assert exc_info.value.status == 500
    assert clock.sleeps == [6.0, 12.0, 24.0, 48.0]
    assert governor.state.consecutive_errors == 0


@pytest.mark.asyncio
async def test_full_window_blocks_until_oldest_slot_ages_out():
    clock = FakeClock()
    send = AsyncMock(return_value="ok")
    governor = make_governor(send, clock, max_requests=5, window_seconds=10.0)

    for _ in range(5):
        await governor.execute(REQUEST)
    assert clock.sleeps == []
    assert governor.state.remaining_requests(clock.now) == 0

    await governor.execute(REQUEST)

    assert clock.sleeps == [pytest.approx(10.1)]
    assert send.await_count == 6


@pytest.mark.asyncio
async def test_raise_on_retry_surfaces_retry_progress():
    clock = FakeClock()
    send = AsyncMock(side_effect=[UpstreamStatusError(429), "ok"])
    governor = make_governor(send, clock)

    with pytest.raises(RetryableError) as exc_info:
        await governor.execute(REQUEST, raise_on_retry=True)

    err = exc_info.value
    assert err.attempt == 1
    assert err.max_attempts == 5
    assert err.next_retry_in == 2
    assert err.status == 429
    assert "Retrying 1/5 in 2s" in str(err)
    assert err.to_dict()["isRetrying"] is True
    assert governor.state.consecutive_errors == 1

    # The next call waits out the registered backoff first
    assert await governor.execute(REQUEST) == "ok"
    assert clock.sleeps == [2.0]
    assert governor.state.consecutive_errors == 0


@pytest.mark.asyncio
async def test_on_retry_sees_every_interim_failure():
    clock = FakeClock()
    send = AsyncMock(side_effect=[UpstreamStatusError(503), UpstreamStatusError(503), "ok"])
    governor = make_governor(send, clock)
    seen = []

    assert await governor.execute(REQUEST, on_retry=seen.append) == "ok"

    assert [e.attempt for e in seen] == [1, 2]
    assert [e.wait_seconds for e in seen] == [2.0, 4.0]


@pytest.mark.asyncio
async def test_cancellation_leaves_state_untouched():
    clock = FakeClock()
    send = AsyncMock(side_effect=asyncio.CancelledError())
    governor = make_governor(send, clock)

    with pytest.raises(asyncio.CancelledError):
        await governor.execute(REQUEST)

    assert governor.state.consecutive_errors == 0
    assert governor.state.backoff_until == 0.0
    assert len(governor.state.request_times) == 0


@pytest.mark.asyncio
async def test_cancellation_during_backoff_discards_the_failure():
    clock = FakeClock()

    async def cancelled_sleep(seconds: float) -> None:
        raise asyncio.CancelledError()

    send = AsyncMock(side_effect=UpstreamStatusError(500))
    governor = RequestGovernor(send, clock=clock, sleep=cancelled_sleep, jitter=lambda: 0.0)

    with pytest.raises(asyncio.CancelledError):
        await governor.execute(REQUEST)

    assert send.await_count == 1
    assert governor.state.consecutive_errors == 0
    assert governor.state.backoff_until == 0.0

    # The next call gets the full attempt budget again.
    governor.sleep = clock.sleep
    send.side_effect = [UpstreamStatusError(500)] * 4 + ["ok"]
    assert await governor.execute(REQUEST) == "ok"


@pytest.mark.asyncio
async def test_cancellation_keeps_backoff_from_earlier_calls():
    clock = FakeClock()
    send = AsyncMock(side_effect=UpstreamStatusError(429))
    governor = make_governor(send, clock)

    with pytest.raises(RetryableError):
        await governor.execute(REQUEST, raise_on_retry=True)
    assert governor.state.consecutive_errors == 1
    backoff_until = governor.state.backoff_until

    async def cancelled_sleep(seconds: float) -> None:
        raise asyncio.CancelledError()

    governor.sleep = cancelled_sleep
    with pytest.raises(asyncio.CancelledError):
        await governor.execute(REQUEST)

    assert governor.state.consecutive_errors == 1
    assert governor.state.backoff_until == backoff_until


@pytest.mark.asyncio
async def test_statusless_failure_is_terminal():
    clock = FakeClock()
    send = AsyncMock(side_effect=ValueError("malformed response object"))
    governor = make_governor(send, clock)

    with pytest.raises(TerminalRequestError) as exc_info:
        await governor.execute(REQUEST)

    assert exc_info.value.status is None
    assert send.await_count == 1
    assert clock.sleeps == []
