"""Helpers for deriving the deterministic seed of a raffle drawing."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterable

from ..exceptions import InvalidTimestampError

if TYPE_CHECKING:
    from .lottery import Packet

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
SEED_LENGTH = 128


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Parameters
    ----------
    value : str
        Timestamp such as ``"2024-01-01T00:00:00Z"`` or
        ``"2024-01-01T01:00:00+01:00"``. A trailing ``Z`` is accepted, a value
        without offset is read as UTC, and a bare date means midnight UTC.
        Basic forms (``"20240101T000000Z"``) and ``+HHMM`` offsets parse too.

    Raises
    ------
    InvalidTimestampError
        If ``value`` is not a string or cannot be parsed.
    """

    if not isinstance(value, str):
        raise InvalidTimestampError(value)
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidTimestampError(value) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_seconds(value: str) -> int:
    """Return whole seconds since the epoch, discarding sub-second precision."""

    return (parse_timestamp(value) - EPOCH) // timedelta(seconds=1)


def _utf16_key(name: str) -> bytes:
    # Big-endian UTF-16 bytes compare like JavaScript's default string sort.
    return name.encode("utf-16-be", "surrogatepass")


def sort_names(names: Iterable[str]) -> list[str]:
    """Return ``names`` sorted ascending by UTF-16 code units."""

    return sorted(names, key=_utf16_key)


def derive_seed(timestamp: str, packets: Iterable["Packet"]) -> str:
    """Calculate the seed of a drawing.

    The hashed byte string is the decimal epoch-seconds of ``timestamp``
    followed, packet by packet in the given order, by each packet's
    weight-expanded participant names sorted ascending. Names are UTF-8
    encoded and concatenated without delimiters.

    Parameters
    ----------
    timestamp : str
        ISO-8601 timestamp of the raffle.
    packets : Iterable[Packet]
        Packets taking part in the drawing, in drawing order.

    Returns
    -------
    str
        Lowercase hex SHA-512 digest (128 characters).
    """

    digest = hashlib.sha512(str(timestamp_seconds(timestamp)).encode("ascii"))
    for packet in packets:
        for name in sort_names(packet.ticket_names()):
            digest.update(name.encode("utf-8"))
    seed = digest.hexdigest()
    logger.debug(f"Derived drawing seed {seed[:16]}... for timestamp {timestamp}")
    return seed


__all__ = [
    "SEED_LENGTH",
    "derive_seed",
    "parse_timestamp",
    "sort_names",
    "timestamp_seconds",
]
