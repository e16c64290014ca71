from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .config import default_duration_days
from .db.utils import as_utc
from .drawing.engine import RaffleDrawEngine
from .exceptions import NotDrawnError, PermissionDeniedError, TicketError
from .models import Raffle, RaffleDrawResult, RafflePacket, RaffleTicket, User

PacketSpec = Union[str, Mapping[str, Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_raffle(
    session: Session,
    owner: User,
    title: str,
    *,
    packets: Iterable[PacketSpec] = (),
    drawing_mode: str = "automatic",
    duration_days: Optional[int] = None,
) -> Raffle:
    """Create a raffle owned by ``owner`` together with its packets.

    Parameters
    ----------
    session : Session
        Active SQLAlchemy session.
    owner : User
        Persisted user who will be allowed to draw the raffle.
    title : str
        Raffle title.
    packets : Iterable[str | Mapping[str, Any]]
        Packet titles, or mappings with ``title`` and optional ``quantity``
        and ``reserved`` keys. Ordinals follow the iteration order.
    drawing_mode : str, default: "automatic"
        ``"automatic"`` or ``"manual"``.
    duration_days : Optional[int]
        Run time between 7 and 28 days; the configured default applies when
        omitted.

    Returns
    -------
    Raffle
        The flushed raffle. It is not published yet (``ends_at`` is unset).
    """

    if owner.id is None:
        raise ValueError("Owner must be persisted before creating a raffle")

    raffle = Raffle(
        title=title,
        owner_user_id=owner.id,
        drawing_mode=drawing_mode,
        duration_days=duration_days,
    )
    session.add(raffle)
    session.flush()

    for entry in packets:
        if isinstance(entry, str):
            add_packet(session, raffle, entry)
        else:
            add_packet(
                session,
                raffle,
                entry["title"],
                quantity=entry.get("quantity", 1),
                reserved=entry.get("reserved", False),
            )
    return raffle


def add_packet(
    session: Session,
    raffle: Raffle,
    title: str,
    *,
    quantity: int = 1,
    reserved: bool = False,
) -> RafflePacket:
    """Append a packet to ``raffle`` using the next free ordinal."""

    if raffle.id is None:
        raise ValueError("Raffle must be persisted before adding packets")
    if raffle.is_drawn:
        raise ValueError("Cannot add packets to a raffle that has been drawn")

    next_ordinal = session.scalar(
        select(func.coalesce(func.max(RafflePacket.ordinal) + 1, 0)).where(
            RafflePacket.raffle_id == raffle.id
        )
    )
    packet = RafflePacket(
        raffle_id=raffle.id,
        title=title,
        ordinal=int(next_ordinal or 0),
        quantity=quantity,
        reserved=reserved,
    )
    session.add(packet)
    session.flush()
    return packet


def publish_raffle(
    session: Session, raffle: Raffle, *, now: Optional[datetime] = None
) -> Raffle:
    """Open ``raffle`` for tickets and fix its drawing timestamp.

    ``published_at`` becomes ``now`` and ``ends_at`` follows from the
    raffle's duration. A raffle can only be published once.
    """

    if raffle.published_at is not None:
        raise ValueError("Raffle has already been published")

    moment = as_utc(now) if now else _utcnow()
    days = raffle.duration_days or default_duration_days()
    raffle.published_at = moment
    raffle.ends_at = moment + timedelta(days=days)
    raffle.state = "active"
    session.flush()
    return raffle


def end_raffle_early(
    session: Session,
    raffle: Raffle,
    user: User,
    *,
    now: Optional[datetime] = None,
) -> Raffle:
    """Close ticket sales immediately so the raffle becomes drawable."""

    if not raffle.can_be_drawn_by(user):
        raise PermissionDeniedError("You don't have permission to end this lottery")
    if not raffle.is_active or raffle.is_drawn:
        raise ValueError("Only active, undrawn raffles can be ended early")

    raffle.ends_at = as_utc(now) if now else _utcnow()
    session.flush()
    return raffle


def _check_ticket_window(packet: RafflePacket, now: Optional[datetime]) -> None:
    raffle = packet.raffle
    if packet.reserved:
        raise TicketError("Reserved packets cannot receive tickets", code="packet_reserved")
    if not raffle.is_active or raffle.is_drawn:
        raise TicketError("Lottery is not active", code="lottery_inactive")
    if raffle.published_at is None:
        raise TicketError("Lottery has not been published", code="lottery_unpublished")
    if raffle.is_ended(now):
        raise TicketError("Lottery has ended", code="lottery_ended")


def buy_ticket(
    session: Session,
    packet: RafflePacket,
    user: User,
    *,
    now: Optional[datetime] = None,
) -> RaffleTicket:
    """Give ``user`` a ticket for ``packet``.

    Raises
    ------
    TicketError
        If the packet is reserved, the raffle is not open, or the user
        already holds a ticket for this packet.
    """

    if packet.id is None or user.id is None:
        raise ValueError("Packet and user must be persisted before buying a ticket")
    _check_ticket_window(packet, now)

    existing = session.scalar(
        select(RaffleTicket).where(
            RaffleTicket.packet_id == packet.id, RaffleTicket.user_id == user.id
        )
    )
    if existing is not None:
        raise TicketError("You already have a ticket for this packet", code="duplicate_ticket")

    ticket = RaffleTicket(packet_id=packet.id, user_id=user.id)
    session.add(ticket)
    session.flush()
    return ticket


def return_ticket(
    session: Session,
    packet: RafflePacket,
    user: User,
    *,
    now: Optional[datetime] = None,
) -> None:
    """Withdraw ``user``'s ticket for ``packet`` while the raffle is open."""

    _check_ticket_window(packet, now)
    ticket = session.scalar(
        select(RaffleTicket).where(
            RaffleTicket.packet_id == packet.id, RaffleTicket.user_id == user.id
        )
    )
    if ticket is None:
        raise TicketError("No ticket to return", code="ticket_not_found")
    session.delete(ticket)
    session.flush()


def fetch_drawing_data(
    session: Session,
    raffle: Raffle,
    user: Optional[User],
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> dict[str, Any]:
    """Return the drawing data (title, timestamp, packets) for the proposer."""

    return RaffleDrawEngine(session, clock=clock).drawing_data(raffle, user)


def submit_draw(
    session: Session,
    raffle: Raffle,
    user: Optional[User],
    results: Mapping[str, Any],
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RaffleDrawResult:
    """Verify a proposer's drawing result and store the server's recomputation.

    This function wraps :meth:`RaffleDrawEngine.submit_automatic`.

    Parameters
    ----------
    session : Session
        Active session used for the snapshot and persistence.
    raffle : Raffle
        Raffle in automatic drawing mode whose end time has passed.
    user : Optional[User]
        Acting user (raffle owner or staff).
    results : Mapping[str, Any]
        Result object as produced by the proposer's lottery run.
    clock : Optional[Callable[[], datetime]], default: None
        Clock override, mainly for tests.

    Returns
    -------
    RaffleDrawResult
        Persisted record; its ``payload`` is the verifier's own result.

    Raises
    ------
    VerificationFailedError
        If ``results`` does not match the recomputation.
    AlreadyDrawnError
        If the raffle has been drawn already.
    """

    engine = RaffleDrawEngine(session, clock=clock)
    return engine.submit_automatic(raffle, user, results)


def submit_manual_draw(
    session: Session,
    raffle: Raffle,
    user: Optional[User],
    selections: Mapping[Any, Sequence[Any]],
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RaffleDrawResult:
    """Store hand-picked winners for a raffle in manual drawing mode.

    ``selections`` maps packet ids to lists of winning user ids.
    """

    engine = RaffleDrawEngine(session, clock=clock)
    return engine.submit_manual(raffle, user, selections)


def finish_without_participants(
    session: Session,
    raffle: Raffle,
    user: Optional[User] = None,
    *,
    clock: Optional[Callable[[], datetime]] = None,
) -> RaffleDrawResult:
    """Close a raffle that ended without any drawable tickets."""

    engine = RaffleDrawEngine(session, clock=clock)
    return engine.finish_without_participants(raffle, user)


def get_draw_results(session: Session, raffle: Raffle) -> dict[str, Any]:
    """Return the persisted result record of ``raffle`` for audit or export.

    Raises
    ------
    NotDrawnError
        If the raffle has not been drawn.
    """

    record = session.scalar(
        select(RaffleDrawResult).where(RaffleDrawResult.raffle_id == raffle.id)
    )
    if record is None:
        raise NotDrawnError(raffle.id)
    return record.to_json()["results"]


def list_ready_to_draw(
    session: Session, *, now: Optional[datetime] = None
) -> list[Raffle]:
    """Return active raffles whose end time passed and that are not drawn yet."""

    return Raffle.get_ready_to_draw(session, now=now)
