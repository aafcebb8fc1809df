"""Pytest configuration and fixtures for controller tests."""

import asyncio
import logging
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

# The p4runtime wheel ships legacy generated _pb2 modules that only load under
# the pure-Python protobuf backend.
os.environ.setdefault("PROTOCOL_BUFFERS_PYTHON_IMPLEMENTATION", "python")

from p4_controller.config import Settings
from p4_controller.faults import FaultChannel
from p4_controller.routes import LinkConfig


class FakeP4RuntimeClient:
    """In-memory stand-in for a P4Runtime client."""

    def __init__(self, channel=None, device_id=1, election_id=(0, 1), primary=True):
        self.channel = channel
        self.device_id = device_id
        self.election_id = election_id
        self.primary = primary
        self.running = False
        self.inbound: asyncio.Queue = asyncio.Queue()

        self.capabilities = AsyncMock(return_value="1.3.0")
        self.set_forwarding_pipeline = AsyncMock()
        self.enable_digest = AsyncMock()
        self.insert_table_entry = AsyncMock()
        self.modify_table_entry = AsyncMock()
        self.ack_digest_list = AsyncMock()
        self.read_counter = AsyncMock(return_value=0)
        self.write_counter = AsyncMock()
        self.build_direct_action = MagicMock(
            side_effect=lambda name, params: {"action": name, "params": params}
        )
        self.build_table_entry = MagicMock(
            side_effect=lambda table, matches, action: {
                "table": table,
                "matches": matches,
                "action": action,
            }
        )

    async def run(self, arbitration, messages):
        self.running = True
        arbitration.put_nowait(self.primary)
        try:
            while True:
                messages.put_nowait(await self.inbound.get())
        finally:
            self.running = False
            messages.put_nowait(None)


class FakeClientFactory:
    """Records every client a session creates."""

    def __init__(self, primary=True):
        self.primary = primary
        self.clients: list[FakeP4RuntimeClient] = []

    def __call__(self, channel, device_id, election_id):
        client = FakeP4RuntimeClient(channel, device_id, election_id, primary=self.primary)
        self.clients.append(client)
        return client


class StaticRouteSource:
    """Route source with links held in memory."""

    def __init__(self, links=None):
        self.links = links or {}

    def get_links(self, device_id):
        return list(self.links.get(device_id, []))


@pytest.fixture
def settings():
    """Settings with delays shortened for tests."""
    return Settings(
        max_retries=3,
        settle_delay_seconds=0,
        grace_period_seconds=0,
        reconnect_delay_seconds=0,
        counter_check_interval_seconds=0.01,
        arbitration_timeout_seconds=1.0,
    )


@pytest.fixture
def log():
    """Logger adapter for session components."""
    return logging.LoggerAdapter(logging.getLogger("tests"), {"device_id": 1})


@pytest.fixture
def faults():
    return FaultChannel()


@pytest.fixture
def fake_client():
    return FakeP4RuntimeClient()


@pytest.fixture
def client_factory():
    return FakeClientFactory()


@pytest.fixture
def sample_links():
    """Three links of device 1."""
    return [
        LinkConfig(ip="10.0.1.1", mac="08:00:00:00:01:11", port=1),
        LinkConfig(ip="10.0.2.2", mac="08:00:00:00:02:22", port=2),
        LinkConfig(ip="10.0.3.3", mac="08:00:00:00:03:33", port=3),
    ]


@pytest.fixture
def routes(sample_links):
    return StaticRouteSource({1: sample_links})


@pytest.fixture
def secure_channel():
    """Patch channel creation so no TLS material or network is needed."""
    with patch("p4_controller.session.open_secure_channel") as mock_open:
        mock_open.return_value.close = AsyncMock()
        yield mock_open


@pytest.fixture
def eventually():
    """Poll a condition until it holds or the timeout expires."""

    async def _eventually(predicate, timeout=2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.005)

    return _eventually
