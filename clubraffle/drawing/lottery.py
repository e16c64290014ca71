"""Winner selection and orchestration of a complete raffle drawing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence, Union

from .prng import SeededRandom
from .seed import derive_seed, sort_names

logger = logging.getLogger(__name__)

PacketId = Union[int, str, None]


@dataclass(frozen=True)
class Participant:
    """A ticket holder's aggregated stake in one packet."""

    name: str
    tickets: int

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError("participant name must be a string")
        if isinstance(self.tickets, bool) or not isinstance(self.tickets, int):
            raise TypeError("participant tickets must be an integer")
        if self.tickets < 0:
            raise ValueError("participant tickets must not be negative")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "tickets": self.tickets}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Participant":
        return cls(name=data["name"], tickets=data["tickets"])


@dataclass(frozen=True)
class Packet:
    """One prize slot taking part in a drawing.

    Attributes
    ----------
    id : int | str | None
        Stable identifier of the packet (database id on the server).
    title : str
        Display text; echoed as ``Drawing.text``.
    participants : tuple[Participant, ...]
        Weighted participants in their reported order.
    quantity : int
        Number of winner instances the packet owes.
    """

    id: PacketId
    title: str
    participants: tuple[Participant, ...] = ()
    quantity: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, "participants", tuple(self.participants))
        if self.quantity < 1:
            raise ValueError("packet quantity must be at least 1")

    def ticket_names(self) -> list[str]:
        """Return one name entry per ticket, in participant order."""
        names: list[str] = []
        for participant in self.participants:
            names.extend([participant.name] * participant.tickets)
        return names

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "participants": [p.to_dict() for p in self.participants],
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Packet":
        return cls(
            id=data.get("id"),
            title=data["title"],
            participants=tuple(
                Participant.from_dict(p) for p in data.get("participants") or ()
            ),
            # a missing or zero quantity means a single winner
            quantity=data.get("quantity") or 1,
        )


@dataclass(frozen=True)
class DrawInput:
    """Authoritative snapshot a drawing is computed from."""

    title: str
    timestamp: str
    packets: tuple[Packet, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "packets", tuple(self.packets))

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "timestamp": self.timestamp,
            "packets": [p.to_dict() for p in self.packets],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DrawInput":
        return cls(
            title=data.get("title", ""),
            timestamp=data["timestamp"],
            packets=tuple(Packet.from_dict(p) for p in data.get("packets") or ()),
        )


@dataclass(frozen=True)
class Drawing:
    """Outcome of drawing a single packet."""

    text: str
    quantity: int
    participants: tuple[Participant, ...]
    winners: tuple[str, ...]

    @property
    def winner(self) -> Optional[str]:
        """First winner, or ``None`` when nobody held a ticket."""
        return self.winners[0] if self.winners else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "quantity": self.quantity,
            "participants": [p.to_dict() for p in self.participants],
            "winners": list(self.winners),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Drawing":
        return cls(
            text=data["text"],
            quantity=data.get("quantity") or 1,
            participants=tuple(
                Participant.from_dict(p) for p in data.get("participants") or ()
            ),
            winners=tuple(data.get("winners") or ()),
        )


@dataclass(frozen=True)
class DrawResult:
    """Canonical record of a drawing, persisted for later audit."""

    title: str
    timestamp: str
    drawing_timestamp: str
    seed: str
    packets: tuple[Packet, ...]
    drawings: tuple[Drawing, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "timestamp": self.timestamp,
            "drawingTimestamp": self.drawing_timestamp,
            "rngSeed": self.seed,
            "packets": [p.to_dict() for p in self.packets],
            "drawings": [d.to_dict() for d in self.drawings],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DrawResult":
        return cls(
            title=data.get("title", ""),
            timestamp=data["timestamp"],
            drawing_timestamp=data.get("drawingTimestamp", ""),
            seed=data["rngSeed"],
            packets=tuple(Packet.from_dict(p) for p in data.get("packets") or ()),
            drawings=tuple(Drawing.from_dict(d) for d in data.get("drawings") or ()),
        )


def draw_winners(
    rng: SeededRandom,
    text: str,
    names: Sequence[str],
    quantity: int = 1,
) -> Drawing:
    """Draw the winners of one packet from its weight-expanded ticket list.

    Parameters
    ----------
    rng : SeededRandom
        Generator shared by every packet of the drawing; it is advanced once
        per winner drawn.
    text : str
        Packet text echoed on the result.
    names : Sequence[str]
        One entry per ticket. Order does not matter; the list is sorted first.
    quantity : int, default: 1
        Number of winner instances owed by the packet.

    Returns
    -------
    Drawing
        Tally sorted by name and up to ``min(quantity, unique participants)``
        distinct winners in the order they were drawn.

    Notes
    -----
    Winners are drawn without replacement: every ticket of a chosen winner is
    removed from the pool before the next pick, so nobody wins one packet
    twice. With ``quantity == 1`` this is a single ``choice`` over the pool.
    """

    if not names:
        return Drawing(text=text, quantity=quantity, participants=(), winners=())

    pool = sort_names(names)

    counts: dict[str, int] = {}
    for name in pool:
        counts[name] = counts.get(name, 0) + 1
    participants = tuple(Participant(name, tickets) for name, tickets in counts.items())

    winners: list[str] = []
    for _ in range(min(quantity, len(counts))):
        winner = rng.choice(pool)
        if winner is None:
            break
        winners.append(winner)
        pool = [name for name in pool if name != winner]

    return Drawing(
        text=text,
        quantity=quantity,
        participants=participants,
        winners=tuple(winners),
    )


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Render ``now`` (default: the wall clock) like JavaScript's ``toISOString``."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def run_lottery(draw_input: DrawInput, *, now: Optional[datetime] = None) -> DrawResult:
    """Run a complete drawing over ``draw_input``.

    The seed is derived from the timestamp and participants, a single
    :class:`SeededRandom` is created from it and each packet is drawn in input
    order from that one stream. Apart from ``drawing_timestamp`` (taken from
    ``now`` or the wall clock) the result depends only on ``draw_input``.

    Raises
    ------
    InvalidTimestampError
        If ``draw_input.timestamp`` is not valid ISO-8601.
    """

    seed = derive_seed(draw_input.timestamp, draw_input.packets)
    rng = SeededRandom(seed)

    drawings = tuple(
        draw_winners(rng, packet.title, packet.ticket_names(), packet.quantity)
        for packet in draw_input.packets
    )
    logger.debug(
        f"Drew {len(drawings)} packets for '{draw_input.title}' with seed {seed[:16]}..."
    )
    return DrawResult(
        title=draw_input.title,
        timestamp=draw_input.timestamp,
        drawing_timestamp=utc_timestamp(now),
        seed=seed,
        packets=draw_input.packets,
        drawings=drawings,
    )


__all__ = [
    "DrawInput",
    "DrawResult",
    "Drawing",
    "Packet",
    "Participant",
    "draw_winners",
    "run_lottery",
    "utc_timestamp",
]
