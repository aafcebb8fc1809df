"""Inbound stream events delivered by the P4Runtime client.

The client translates every ``StreamMessageResponse`` (other than arbitration
updates) into an :class:`InboundEvent`. The dispatcher matches on
:class:`EventKind`; payload fields that do not apply to a kind stay ``None``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

__all__ = [
    "EventKind",
    "DigestEntry",
    "DigestList",
    "DigestConfig",
    "InboundEvent",
]


class EventKind(str, Enum):
    """Kinds of inbound stream messages."""

    PACKET_IN = "packet_in"
    DIGEST_LIST = "digest_list"
    IDLE_TIMEOUT = "idle_timeout"
    STREAM_ERROR = "stream_error"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class DigestEntry:
    """Raw struct members of a single digest."""

    members: tuple[bytes, ...] = ()


@dataclass(frozen=True)
class DigestList:
    """Batch of digests pushed by the switch."""

    digest_id: int = 0
    list_id: int = 0
    entries: list[DigestEntry] = field(default_factory=list)


@dataclass(frozen=True)
class DigestConfig:
    """Delivery settings sent when enabling a digest."""

    max_timeout_ns: int = 0
    max_list_size: int = 1
    ack_timeout_ns: int = 0


@dataclass(frozen=True)
class InboundEvent:
    """Single message received on the stream channel."""

    kind: EventKind
    payload: Any = None
    digest: DigestList | None = None
    error: Exception | None = None

    @classmethod
    def packet_in(cls, payload: Any = None) -> "InboundEvent":
        return cls(kind=EventKind.PACKET_IN, payload=payload)

    @classmethod
    def digest_list(cls, digest: DigestList) -> "InboundEvent":
        return cls(kind=EventKind.DIGEST_LIST, digest=digest)

    @classmethod
    def idle_timeout(cls, payload: Any = None) -> "InboundEvent":
        return cls(kind=EventKind.IDLE_TIMEOUT, payload=payload)

    @classmethod
    def stream_error(cls, error: Exception) -> "InboundEvent":
        return cls(kind=EventKind.STREAM_ERROR, error=error)

    @classmethod
    def unknown(cls, payload: Any = None) -> "InboundEvent":
        return cls(kind=EventKind.UNKNOWN, payload=payload)
