"""Tests for retry_with_backoff."""

import pytest

from aws_oidc_console.retry import RetryExhaustedError, retry_with_backoff


class FlakyOperation:
    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError(f"failure {self.calls}")
        return "ok"


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def sleep(delay: float) -> None:
        sleeps.append(delay)
    return sleep


@pytest.mark.asyncio
async def test_succeeds_first_try(fake_sleep, sleeps):
    operation = FlakyOperation(failures=0)
    assert await retry_with_backoff(operation, sleep=fake_sleep) == "ok"
    assert operation.calls == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_exponential_delays(fake_sleep, sleeps):
    operation = FlakyOperation(failures=2)
    assert await retry_with_backoff(operation, base_delay=0.5, sleep=fake_sleep) == "ok"
    assert operation.calls == 3
    assert sleeps == [0.5, 1.0]


@pytest.mark.asyncio
async def test_exhausted_after_max_attempts(fake_sleep, sleeps):
    operation = FlakyOperation(failures=10)

    with pytest.raises(RetryExhaustedError) as exc_info:
        await retry_with_backoff(operation, max_attempts=4, sleep=fake_sleep)

    assert operation.calls == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert exc_info.value.attempts == 4
    assert isinstance(exc_info.value.__cause__, ConnectionError)
    assert str(exc_info.value.last_error) == "failure 4"


@pytest.mark.asyncio
async def test_invalid_max_attempts(fake_sleep):
    with pytest.raises(ValueError):
        await retry_with_backoff(FlakyOperation(0), max_attempts=0, sleep=fake_sleep)
