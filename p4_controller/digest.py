"""Decoding of digest payloads pushed by the switch."""

import struct
from dataclasses import dataclass

from .errors import DigestDecodeError
from .events import DigestEntry

FLOW_MEMBER = 0
OPPOSITE_FLOW_MEMBER = 1
THRESHOLD_MEMBER = 2


@dataclass(frozen=True)
class DigestRecord:
    """Decoded digest entry."""

    flow_id: bytes
    opposite_flow_id: bytes
    threshold: int


def decode_threshold(raw: bytes) -> int:
    """
    Decode a threshold field as an unsigned 16-bit big-endian integer.

    P4Runtime strips leading zero bytes from bitstrings, so a value below 256
    arrives as a single byte.

    Args:
        raw: Bitstring of length 1 or 2

    Returns:
        Threshold value

    Raises:
        DigestDecodeError: If the field is not 1 or 2 bytes long
    """
    if len(raw) == 1:
        raw = b"\x00" + raw
    elif len(raw) != 2:
        raise DigestDecodeError(
            f"Threshold must be 1 or 2 bytes, got {len(raw)}"
        )
    (value,) = struct.unpack(">H", raw)
    return value


def decode_digest_entry(entry: DigestEntry) -> DigestRecord:
    """
    Decode one digest entry.

    Args:
        entry: Raw digest entry

    Returns:
        Decoded record with flow ids passed through unchanged

    Raises:
        DigestDecodeError: If the entry has fewer than three members or a
            malformed threshold
    """
    if len(entry.members) <= THRESHOLD_MEMBER:
        raise DigestDecodeError(
            f"Digest entry has {len(entry.members)} members, expected 3"
        )

    return DigestRecord(
        flow_id=entry.members[FLOW_MEMBER],
        opposite_flow_id=entry.members[OPPOSITE_FLOW_MEMBER],
        threshold=decode_threshold(entry.members[THRESHOLD_MEMBER]),
    )
