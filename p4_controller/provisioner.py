"""Installation of static forwarding rules."""

import logging

from .errors import P4RuntimeClientError, RouteConfigError
from .faults import FaultChannel
from .p4runtime_client import LpmMatch, ProtocolClient
from .routes import RouteSource

IPV4_PREFIX_LEN = 32


class ConfigProvisioner:
    """Installs one LPM forwarding entry per configured link."""

    def __init__(
        self,
        client: ProtocolClient,
        faults: FaultChannel,
        log: logging.LoggerAdapter,
        table_name: str = "MyIngress.ipv4_lpm",
        action_name: str = "MyIngress.ipv4_forward",
    ):
        self.client = client
        self.faults = faults
        self.log = log
        self.table_name = table_name
        self.action_name = action_name

    async def provision(
        self, device_id: int, routes: RouteSource, modify: bool = False
    ) -> int:
        """
        Install the forwarding entries of a device, in route order.

        The first failure is reported to the fault channel and the remaining
        links are skipped.

        Args:
            device_id: Device whose links are installed
            routes: Source of the device's links
            modify: Modify existing entries instead of inserting new ones

        Returns:
            Number of entries written
        """
        try:
            links = routes.get_links(device_id)
        except RouteConfigError as e:
            self.faults.report(e)
            return 0

        write = (
            self.client.modify_table_entry if modify else self.client.insert_table_entry
        )

        installed = 0
        for link in links:
            try:
                entry = self.client.build_table_entry(
                    self.table_name,
                    [LpmMatch(value=link.ip, prefix_len=IPV4_PREFIX_LEN)],
                    self.client.build_direct_action(
                        self.action_name, [link.mac, link.port]
                    ),
                )
                await write(entry)
            except P4RuntimeClientError as e:
                self.faults.report(e)
                return installed

            installed += 1
            self.log.debug(f"Added table entry for {link.ip.hex()}")

        self.log.info(f"Installed {installed} forwarding entries")
        return installed
