"""Exceptions raised by the raffle drawing subsystem."""

from __future__ import annotations

from typing import Optional


class RaffleError(Exception):
    """Base class for raffle errors.

    Attributes
    ----------
    message : str
        Human-readable description suitable for showing to the caller.
    code : str
        Stable machine-readable identifier (used for localisation lookups).
    """

    code = "raffle_error"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class InvalidTimestampError(RaffleError, ValueError):
    """The draw timestamp could not be parsed as ISO-8601."""

    code = "invalid_timestamp"

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(
            f"Invalid timestamp format {value!r}. Use ISO-8601 with timezone offset"
        )


class AlreadyDrawnError(RaffleError):
    """The raffle already has a persisted drawing result."""

    code = "already_drawn"

    def __init__(self, raffle_id: Optional[int]) -> None:
        self.raffle_id = raffle_id
        super().__init__("Lottery has already been drawn")


class NotDrawnError(RaffleError):
    """Results were requested for a raffle that has not been drawn."""

    code = "not_drawn"

    def __init__(self, raffle_id: Optional[int]) -> None:
        self.raffle_id = raffle_id
        super().__init__("Lottery has not been drawn yet")


class PermissionDeniedError(RaffleError, PermissionError):
    """The acting user may not draw this raffle."""

    code = "forbidden"

    def __init__(self, message: str = "You don't have permission to draw this lottery") -> None:
        super().__init__(message)


class RaffleNotEndedError(RaffleError):
    """An automatic draw was attempted before the raffle's end time."""

    code = "not_ended"

    def __init__(self, raffle_id: Optional[int]) -> None:
        self.raffle_id = raffle_id
        super().__init__("Lottery has not ended yet")


class DrawingModeError(RaffleError):
    """The requested draw path does not match the raffle's drawing mode."""

    code = "wrong_drawing_mode"

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Lottery uses {actual} drawing; {expected} drawing is not available"
        )


class VerificationFailedError(RaffleError):
    """The proposed result does not match the authoritative recomputation.

    The message is the same for every kind of mismatch.
    """

    code = "verification_failed"

    def __init__(self) -> None:
        super().__init__(
            "Lottery results verification failed. Please try drawing again."
        )


class ManualSelectionError(RaffleError, ValueError):
    """A manual winner selection was rejected for a specific packet.

    Attributes
    ----------
    packet_id : object
        Identifier of the offending packet.
    reason : str
        One of ``"missing_selection"``, ``"invalid_selection"``, ``"wrong_count"``,
        ``"not_a_participant"``, ``"duplicate_winner"`` or ``"unknown_packet"``.
    """

    code = "invalid_manual_selection"

    def __init__(self, packet_id: object, reason: str, message: str) -> None:
        self.packet_id = packet_id
        self.reason = reason
        super().__init__(message)


class TicketError(RaffleError, ValueError):
    """A ticket could not be bought or returned."""

    code = "ticket_error"


__all__ = [
    "AlreadyDrawnError",
    "DrawingModeError",
    "InvalidTimestampError",
    "ManualSelectionError",
    "NotDrawnError",
    "PermissionDeniedError",
    "RaffleError",
    "RaffleNotEndedError",
    "TicketError",
    "VerificationFailedError",
]
