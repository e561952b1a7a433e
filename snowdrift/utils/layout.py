"""Packs and unpacks 63-bit identifiers.

This module provides:
- IdParts: a named tuple of decoded identifier fields
- pack: a function that builds an identifier from its fields
- unpack: a function that splits an identifier into its fields
- to_datetime: a function that recovers the UTC issue time of an identifier
"""

from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from ..constants import (
    DATACENTER_ID_SHIFT,
    MAX_DATACENTER_ID,
    MAX_IDENTIFIER,
    MAX_SEQUENCE,
    MAX_TIMESTAMP,
    MAX_WORKER_ID,
    TIMESTAMP_SHIFT,
    WORKER_ID_SHIFT,
)


class IdParts(NamedTuple):
    """Fields of an identifier, ``timestamp`` being milliseconds since the epoch."""

    timestamp: int
    datacenter_id: int
    worker_id: int
    sequence: int


def _check_field(name: str, value: int, maximum: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an integer")
    if not 0 <= value <= maximum:
        raise ValueError(f"{name} must be inside [0;{maximum}]")


def pack(timestamp: int, datacenter_id: int, worker_id: int, sequence: int) -> int:
    """Builds an identifier.

    Args:
        timestamp (int): Milliseconds elapsed since the custom epoch
        datacenter_id (int): Datacenter ID in [0;31]
        worker_id (int): Worker ID in [0;31]
        sequence (int): Per-millisecond sequence in [0;4095]

    Returns:
        int: The identifier, always non-negative and below 2**63

    Raises:
        TypeError: If any field is not an integer
        ValueError: If any field does not fit its bits
    """
    _check_field("timestamp", timestamp, MAX_TIMESTAMP)
    _check_field("datacenter_id", datacenter_id, MAX_DATACENTER_ID)
    _check_field("worker_id", worker_id, MAX_WORKER_ID)
    _check_field("sequence", sequence, MAX_SEQUENCE)
    return (
        (timestamp << TIMESTAMP_SHIFT)
        | (datacenter_id << DATACENTER_ID_SHIFT)
        | (worker_id << WORKER_ID_SHIFT)
        | sequence
    )


def unpack(identifier: int) -> IdParts:
    """Splits an identifier into its fields.

    Raises:
        TypeError: If identifier is not an integer
        ValueError: If identifier is negative or wider than 63 bits
    """
    _check_field("identifier", identifier, MAX_IDENTIFIER)
    return IdParts(
        timestamp=identifier >> TIMESTAMP_SHIFT,
        datacenter_id=(identifier >> DATACENTER_ID_SHIFT) & MAX_DATACENTER_ID,
        worker_id=(identifier >> WORKER_ID_SHIFT) & MAX_WORKER_ID,
        sequence=identifier & MAX_SEQUENCE,
    )


def to_datetime(identifier: int, epoch: int) -> datetime:
    """Returns the UTC time an identifier was issued at."""
    parts = unpack(identifier)
    return datetime.fromtimestamp(0, tz=timezone.utc) + timedelta(
        milliseconds=epoch + parts.timestamp
    )
