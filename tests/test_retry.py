import pytest
from physio_booking.errors import (
    CalendarAuthError,
    CalendarConflict,
    CalendarError,
    NetworkError,
    ValidationFailed,
)
from physio_booking.retry import is_retryable, with_retry
from .support import SleepRecorder


class Flaky:
    """Fails with the given errors in order, then returns "ok"."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


@pytest.mark.parametrize(
    "error,expected",
    [
        (NetworkError("down"), True),
        (CalendarError("busy", status=503), True),
        (CalendarError("slow down", status=429), True),
        (CalendarError("forbidden", status=403), False),
        (CalendarConflict("taken"), False),
        (CalendarAuthError("expired"), False),
        (ValidationFailed("bad"), False),
    ],
)
def test_is_retryable(error, expected):
    assert is_retryable(error) is expected


@pytest.mark.asyncio
async def test_recovers_after_transient_failures():
    sleeps = SleepRecorder()
    op = Flaky(NetworkError("down"), CalendarError("busy", status=502))
    assert await with_retry(op, max_attempts=3, delay=1.0, sleep=sleeps) == "ok"
    assert op.calls == 3
    assert len(sleeps.waits) == 2
    # 1s then 2s, each with at most 10% jitter
    assert 1.0 <= sleeps.waits[0] <= 1.1
    assert 2.0 <= sleeps.waits[1] <= 2.2


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    sleeps = SleepRecorder()
    op = Flaky(*[NetworkError("down")] * 5)
    with pytest.raises(NetworkError):
        await with_retry(op, max_attempts=3, delay=0.5, sleep=sleeps)
    assert op.calls == 3
    assert len(sleeps.waits) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_raises_immediately():
    sleeps = SleepRecorder()
    op = Flaky(CalendarConflict("taken"))
    with pytest.raises(CalendarConflict):
        await with_retry(op, sleep=sleeps)
    assert op.calls == 1
    assert sleeps.waits == []


@pytest.mark.asyncio
async def test_constant_delay_without_backoff():
    sleeps = SleepRecorder()
    op = Flaky(NetworkError("a"), NetworkError("b"))
    await with_retry(op, max_attempts=3, delay=1.0, backoff=False, sleep=sleeps)
    assert all(1.0 <= w <= 1.1 for w in sleeps.waits)


@pytest.mark.asyncio
async def test_custom_retry_condition():
    sleeps = SleepRecorder()
    op = Flaky(CalendarConflict("taken"))
    result = await with_retry(op, retry_condition=lambda e: True, sleep=sleeps)
    assert result == "ok"
    assert op.calls == 2


@pytest.mark.asyncio
async def test_unexpected_exceptions_are_not_retried():
    sleeps = SleepRecorder()
    op = Flaky(RuntimeError("bug"))
    with pytest.raises(RuntimeError):
        await with_retry(op, retry_condition=lambda e: True, sleep=sleeps)
    assert op.calls == 1
