"""Static forwarding routes, read from JSON route files.

A route file maps device ids to the links of that device::

    {
        "1": [
            {"ip": "10.0.1.1", "mac": "08:00:00:00:01:11", "port": 1},
            {"ip": "10.0.2.2", "mac": "08:00:00:00:02:22", "port": 2}
        ]
    }
"""

import ipaddress
import json
import logging
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator

from .errors import RouteConfigError

logger = logging.getLogger(__name__)

PORT_WIDTH_BYTES = 2


class LinkConfig(BaseModel):
    """One forwarding link, in the byte encodings the switch expects."""

    model_config = {"frozen": True}

    ip: bytes
    mac: bytes
    port: bytes

    @field_validator("ip", mode="before")
    @classmethod
    def _parse_ip(cls, value):
        if isinstance(value, str):
            return ipaddress.IPv4Address(value).packed
        return value

    @field_validator("mac", mode="before")
    @classmethod
    def _parse_mac(cls, value):
        if isinstance(value, str):
            octets = value.split(":")
            if len(octets) != 6:
                raise ValueError(f"Invalid MAC address: {value}")
            return bytes(int(octet, 16) for octet in octets)
        return value

    @field_validator("port", mode="before")
    @classmethod
    def _parse_port(cls, value):
        if isinstance(value, int):
            if not 0 <= value < 1 << (8 * PORT_WIDTH_BYTES):
                raise ValueError(f"Port out of range: {value}")
            return value.to_bytes(PORT_WIDTH_BYTES, "big")
        return value


class RouteSource(Protocol):
    """Supplies the ordered links of a device."""

    def get_links(self, device_id: int) -> list[LinkConfig]: ...


_ROUTE_FILE = TypeAdapter(dict[int, list[LinkConfig]])


class JsonRouteSource:
    """Route source backed by a JSON route file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._routes: dict[int, list[LinkConfig]] | None = None

    def load(self) -> dict[int, list[LinkConfig]]:
        """
        Read and validate the route file.

        Raises:
            RouteConfigError: If the file is missing or malformed
        """
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            routes = _ROUTE_FILE.validate_python(data)
        except (OSError, json.JSONDecodeError, ValidationError, ValueError) as e:
            raise RouteConfigError(f"Cannot load routes from {self.path}: {e}") from e

        logger.info(f"Loaded routes for {len(routes)} devices from {self.path}")
        return routes

    def get_links(self, device_id: int) -> list[LinkConfig]:
        if self._routes is None:
            self._routes = self.load()
        return list(self._routes.get(device_id, []))
