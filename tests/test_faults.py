"""Tests for the fault channel."""

import asyncio

import pytest

from p4_controller.faults import FaultChannel


class TestFaultChannel:
    """Test single-slot fault delivery."""

    def test_first_fault_wins(self):
        """A second report while one is pending is dropped."""
        channel = FaultChannel()

        assert channel.report(RuntimeError("first")) is True
        assert channel.report(RuntimeError("second")) is False
        assert channel.pending

    @pytest.mark.asyncio
    async def test_wait_returns_pending_fault(self):
        """wait() delivers the first fault and frees the slot."""
        channel = FaultChannel()
        first = RuntimeError("first")
        channel.report(first)
        channel.report(RuntimeError("second"))

        assert await channel.wait() is first
        assert not channel.pending
        assert channel.report(RuntimeError("third")) is True

    @pytest.mark.asyncio
    async def test_wait_blocks_until_report(self):
        """wait() suspends until a fault is reported."""
        channel = FaultChannel()
        waiter = asyncio.create_task(channel.wait())

        await asyncio.sleep(0)
        assert not waiter.done()

        error = RuntimeError("stream broke")
        channel.report(error)

        assert await asyncio.wait_for(waiter, timeout=1.0) is error

    def test_take_empties_slot(self):
        channel = FaultChannel()
        error = RuntimeError("insert failed")
        channel.report(error)

        assert channel.take() is error
        assert channel.take() is None
        assert not channel.pending
