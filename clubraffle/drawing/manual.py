"""Validation of manually chosen raffle winners."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Mapping, Sequence

from ..exceptions import ManualSelectionError


@dataclass(frozen=True)
class ManualPacket:
    """Packet as seen by the manual validator.

    Attributes
    ----------
    id : Hashable
        Packet identifier used as the key of the selection mapping.
    title : str
        Display title, used in error messages.
    quantity : int
        Number of winner instances the packet owes.
    participant_ids : tuple
        Identifiers of everyone holding at least one ticket.
    """

    id: Hashable
    title: str
    quantity: int
    participant_ids: tuple = ()


def _key(value: Any) -> str:
    # JSON payloads turn integer ids into strings; compare both the same way.
    return str(value)


def validate_manual_selection(
    packets: Iterable[ManualPacket],
    selections: Mapping[Any, Sequence[Any]],
) -> dict[Hashable, list]:
    """Validate a manual winner assignment for every packet.

    Parameters
    ----------
    packets : Iterable[ManualPacket]
        Drawable (non-reserved) packets of the raffle.
    selections : Mapping[Any, Sequence[Any]]
        Packet identifier to the ordered list of chosen winner identifiers.

    Returns
    -------
    dict[Hashable, list]
        Packet id to the validated winner ids, in the order given. Packets
        without participants map to an empty list.

    Raises
    ------
    ManualSelectionError
        For the first packet whose selection is missing or not a list, has
        the wrong number of winners, names a non-participant or repeats a
        winner, and for selections that reference an unknown packet.
    """

    packets = list(packets)
    by_key = {_key(k): v for k, v in selections.items()}
    known = {_key(packet.id) for packet in packets}

    for key in by_key:
        if key not in known:
            raise ManualSelectionError(
                key, "unknown_packet", f"Packet {key} is not part of this lottery"
            )

    validated: dict[Hashable, list] = {}
    for packet in packets:
        participants = {_key(pid): pid for pid in packet.participant_ids}
        selected = by_key.get(_key(packet.id))

        if not participants:
            if selected:
                raise ManualSelectionError(
                    packet.id,
                    "not_a_participant",
                    f"Packet '{packet.title}' has no participants and cannot have winners",
                )
            validated[packet.id] = []
            continue

        if selected is None or (isinstance(selected, (list, tuple)) and not selected):
            raise ManualSelectionError(
                packet.id,
                "missing_selection",
                f"No winner selected for packet '{packet.title}'",
            )
        if not isinstance(selected, (list, tuple)):
            raise ManualSelectionError(
                packet.id,
                "invalid_selection",
                f"Winners for packet '{packet.title}' must be given as a list",
            )

        expected = min(packet.quantity, len(participants))
        if len(selected) != expected:
            raise ManualSelectionError(
                packet.id,
                "wrong_count",
                f"Packet '{packet.title}' needs exactly {expected} winner(s), "
                f"got {len(selected)}",
            )

        winners: list = []
        seen: set[str] = set()
        for candidate in selected:
            key = _key(candidate)
            if key not in participants:
                raise ManualSelectionError(
                    packet.id,
                    "not_a_participant",
                    f"Selected winner {candidate} holds no ticket for packet '{packet.title}'",
                )
            if key in seen:
                raise ManualSelectionError(
                    packet.id,
                    "duplicate_winner",
                    f"Winner {candidate} was selected twice for packet '{packet.title}'",
                )
            seen.add(key)
            winners.append(participants[key])
        validated[packet.id] = winners

    return validated


__all__ = ["ManualPacket", "validate_manual_selection"]
