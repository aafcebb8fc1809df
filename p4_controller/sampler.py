"""Periodic per-port packet counter sampling."""

import logging

from .errors import P4RuntimeClientError
from .faults import FaultChannel
from .p4runtime_client import ProtocolClient


class PacketCounterSampler:
    """Reads, logs and resets the packet counter of every port."""

    def __init__(
        self,
        client: ProtocolClient,
        faults: FaultChannel,
        log: logging.LoggerAdapter,
        port_count: int,
        counter_name: str = "MyIngress.port_packets_in",
        warn_threshold: int = 20,
    ):
        self.client = client
        self.faults = faults
        self.log = log
        self.port_count = port_count
        self.counter_name = counter_name
        self.warn_threshold = warn_threshold

    async def sample(self) -> None:
        """
        Sample ports 1..port_count once.

        The first read or write failure is reported to the fault channel and
        ends the tick.
        """
        self.log.debug("Reading counter")
        for port in range(1, self.port_count + 1):
            try:
                count = await self.client.read_counter(self.counter_name, port)
            except P4RuntimeClientError as e:
                self.faults.report(e)
                return

            if count > self.warn_threshold:
                self.log.warning(f"Port {port}: packet count {count}")
            else:
                self.log.debug(f"Port {port}: packet count {count}")

            try:
                await self.client.write_counter(self.counter_name, port, 0)
            except P4RuntimeClientError as e:
                self.faults.report(e)
                return
