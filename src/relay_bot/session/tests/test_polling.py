"""
Tests for poll_until().

These tests verify:
- The first accepted reading is returned without sleeping
- Each rejected reading ticks once and sleeps one interval
- Bounded polls raise PollTimeoutError
- Cancelling the awaiting task stops polling
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from relay_bot.session.polling import PollTimeoutError, poll_until


def _readings(*values):
    return AsyncMock(side_effect=list(values))


class TestPollUntil:
    """Tests for the polling loop."""

    @pytest.mark.asyncio
    async def test_accepted_first_reading(self):
        fetch = _readings(5)

        with patch("relay_bot.session.polling.asyncio.sleep", new=AsyncMock()) as sleep:
            value = await poll_until(fetch, lambda v: v > 0, interval=3.0)

        assert value == 5
        sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_sleeps_between_rejected_readings(self):
        fetch = _readings(0, 0, 0, 1)
        on_tick = MagicMock()

        with patch("relay_bot.session.polling.asyncio.sleep", new=AsyncMock()) as sleep:
            value = await poll_until(fetch, lambda v: v > 0, interval=3.0, on_tick=on_tick)

        assert value == 1
        assert fetch.await_count == 4
        assert sleep.await_count == 3
        sleep.assert_awaited_with(3.0)
        assert [c.args for c in on_tick.call_args_list] == [(1, 0), (2, 0), (3, 0)]

    @pytest.mark.asyncio
    async def test_bounded_poll_times_out(self):
        fetch = _readings(0, 0, 0)

        with patch("relay_bot.session.polling.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(PollTimeoutError) as exc_info:
                await poll_until(fetch, lambda v: v > 0, interval=1.0, max_attempts=3)

        assert exc_info.value.attempts == 3
        assert exc_info.value.last_value == 0
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_errors_propagate(self):
        fetch = AsyncMock(side_effect=ConnectionError("rpc down"))

        with pytest.raises(ConnectionError):
            await poll_until(fetch, lambda v: True, interval=1.0)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [{"interval": -1}, {"interval": 1, "max_attempts": 0}])
    async def test_rejects_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            await poll_until(_readings(1), lambda v: True, **kwargs)


class TestCancellation:
    """Cancelling the waiter must stop the loop."""

    @pytest.mark.asyncio
    async def test_cancel_interrupts_sleep(self):
        fetch = AsyncMock(return_value=0)
        task = asyncio.create_task(poll_until(fetch, lambda v: v > 0, interval=60.0))

        # Let the first fetch run and the sleep start
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        reads = fetch.await_count
        await asyncio.sleep(0)
        assert fetch.await_count == reads
        assert task.cancelled()
