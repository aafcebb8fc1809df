"""P4Runtime Session Controller - Supervised control-plane sessions for P4 switches."""

from .config import Settings, get_settings
from .digest import DigestRecord, decode_digest_entry, decode_threshold
from .dispatcher import StreamDispatcher
from .errors import (
    ArbitrationLostError,
    ControllerError,
    DigestDecodeError,
    P4RuntimeClientError,
    RouteConfigError,
    SetupError,
)
from .events import DigestConfig, DigestEntry, DigestList, EventKind, InboundEvent
from .faults import FaultChannel
from .p4runtime_client import LpmMatch, P4RuntimeClient, ProtocolClient
from .provisioner import ConfigProvisioner
from .routes import JsonRouteSource, LinkConfig, RouteSource
from .sampler import PacketCounterSampler
from .session import SessionState, SwitchSession, resolve_address

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Session supervision
    "SwitchSession",
    "SessionState",
    "resolve_address",
    # Session components
    "StreamDispatcher",
    "ConfigProvisioner",
    "PacketCounterSampler",
    "FaultChannel",
    # Protocol client
    "P4RuntimeClient",
    "ProtocolClient",
    "LpmMatch",
    # Events and digests
    "EventKind",
    "InboundEvent",
    "DigestEntry",
    "DigestList",
    "DigestConfig",
    "DigestRecord",
    "decode_digest_entry",
    "decode_threshold",
    # Routes
    "LinkConfig",
    "RouteSource",
    "JsonRouteSource",
    # Errors
    "ControllerError",
    "SetupError",
    "ArbitrationLostError",
    "P4RuntimeClientError",
    "DigestDecodeError",
    "RouteConfigError",
]
