"""Tests for packet counter sampling."""

from unittest.mock import MagicMock, call

import pytest

from p4_controller.errors import P4RuntimeClientError
from p4_controller.sampler import PacketCounterSampler

COUNTER = "MyIngress.port_packets_in"


class TestPacketCounterSampler:
    """Test cases for PacketCounterSampler."""

    @pytest.fixture
    def log(self):
        return MagicMock()

    @pytest.fixture
    def sampler(self, fake_client, faults, log):
        return PacketCounterSampler(fake_client, faults, log, port_count=3)

    @pytest.mark.asyncio
    async def test_reads_and_resets_every_port(self, sampler, fake_client, faults):
        """Ports 1..N are read and reset to zero."""
        await sampler.sample()

        assert fake_client.read_counter.await_args_list == [
            call(COUNTER, 1),
            call(COUNTER, 2),
            call(COUNTER, 3),
        ]
        assert fake_client.write_counter.await_args_list == [
            call(COUNTER, 1, 0),
            call(COUNTER, 2, 0),
            call(COUNTER, 3, 0),
        ]
        assert not faults.pending

    @pytest.mark.asyncio
    async def test_warns_above_threshold(self, sampler, fake_client, log):
        """Counts above the threshold are logged as warnings."""
        fake_client.read_counter.side_effect = [5, 21, 20]

        await sampler.sample()

        assert log.warning.call_count == 1
        assert "Port 2" in log.warning.call_args.args[0]

    @pytest.mark.asyncio
    async def test_read_failure_aborts_tick(self, sampler, fake_client, faults):
        """A failed read is reported and the remaining ports are skipped."""
        error = P4RuntimeClientError("UNAVAILABLE")
        fake_client.read_counter.side_effect = [0, error, 0]

        await sampler.sample()

        assert fake_client.read_counter.await_count == 2
        assert fake_client.write_counter.await_count == 1
        assert await faults.wait() is error

    @pytest.mark.asyncio
    async def test_write_failure_aborts_tick(self, sampler, fake_client, faults):
        """A failed reset is reported and the remaining ports are skipped."""
        fake_client.write_counter.side_effect = P4RuntimeClientError("PERMISSION_DENIED")

        await sampler.sample()

        assert fake_client.read_counter.await_count == 1
        assert faults.pending
