"""Engine that snapshots raffle state, verifies drawings, and persists results."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import (
    AlreadyDrawnError,
    DrawingModeError,
    PermissionDeniedError,
    RaffleError,
    RaffleNotEndedError,
    VerificationFailedError,
)
from ..models import PacketWinner, Raffle, RaffleDrawResult, RafflePacket, User
from .lottery import DrawInput, Packet, Participant, utc_timestamp
from .manual import ManualPacket, validate_manual_selection
from .verification import verify_proposed_result

logger = logging.getLogger(__name__)


@dataclass
class RaffleSnapshot:
    """Authoritative state of a raffle read for one drawing.

    Attributes
    ----------
    draw_input : DrawInput
        Engine input built from the database.
    packets : list[RafflePacket]
        Drawable packet rows, in the same order as ``draw_input.packets``.
    users_by_name : dict[str, User]
        Ticket holders keyed by username.
    """

    draw_input: DrawInput
    packets: list[RafflePacket]
    users_by_name: dict[str, User]


class RaffleDrawEngine:
    """Run and persist raffle drawings against a SQLAlchemy session."""

    def __init__(
        self,
        session: Session,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Create an engine bound to ``session``.

        Parameters
        ----------
        session : Session
            Active SQLAlchemy session used for lookups and persistence.
        clock : Optional[Callable[[], datetime]], default: None
            Source of the current time. Defaults to the UTC wall clock.
        """

        self._session = session
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _now(self) -> datetime:
        return self._clock()

    # -------- snapshot --------
    def _drawable_packets(self, raffle: Raffle) -> list[RafflePacket]:
        stmt = (
            select(RafflePacket)
            .where(RafflePacket.raffle_id == raffle.id, RafflePacket.reserved.is_(False))
            .order_by(RafflePacket.ordinal.asc(), RafflePacket.id.asc())
        )
        return list(self._session.scalars(stmt).all())

    def snapshot(self, raffle: Raffle) -> RaffleSnapshot:
        """Read the raffle's packets and ticket tallies from the database.

        Reserved packets are skipped. Each remaining packet becomes a
        :class:`Packet` whose participants are ``(username, ticket count)``
        pairs ordered by username.
        """

        if raffle.id is None:
            raise ValueError("Raffle must be persisted before it can be drawn")

        rows = self._drawable_packets(raffle)
        users_by_name: dict[str, User] = {}
        packets: list[Packet] = []
        for row in rows:
            participants = []
            for user, count in row.ticket_counts(self._session):
                users_by_name[user.username] = user
                participants.append(Participant(user.username, count))
            packets.append(
                Packet(
                    id=row.id,
                    title=row.title,
                    participants=tuple(participants),
                    quantity=row.quantity,
                )
            )

        draw_input = DrawInput(
            title=raffle.title,
            timestamp=raffle.draw_timestamp(),
            packets=tuple(packets),
        )
        return RaffleSnapshot(draw_input=draw_input, packets=rows, users_by_name=users_by_name)

    def build_draw_input(self, raffle: Raffle) -> DrawInput:
        """Return the authoritative :class:`DrawInput` for ``raffle``."""
        return self.snapshot(raffle).draw_input

    # -------- preconditions --------
    def _require_drawer(self, raffle: Raffle, user: Optional[User]) -> None:
        if not raffle.can_be_drawn_by(user):
            raise PermissionDeniedError()
        if raffle.is_drawn:
            raise AlreadyDrawnError(raffle.id)

    def _require_automatic(self, raffle: Raffle) -> None:
        if not raffle.is_automatic_drawing:
            raise DrawingModeError("automatic", raffle.drawing_mode)
        if not raffle.is_ended(self._now()):
            raise RaffleNotEndedError(raffle.id)

    # -------- public operations --------
    def drawing_data(self, raffle: Raffle, user: Optional[User]) -> dict[str, Any]:
        """Return the drawing data a proposer runs the lottery on.

        Raises
        ------
        PermissionDeniedError, AlreadyDrawnError, DrawingModeError, RaffleNotEndedError
            When ``user`` may not draw ``raffle`` right now.
        """

        self._require_drawer(raffle, user)
        self._require_automatic(raffle)
        return self.build_draw_input(raffle).to_dict()

    def submit_automatic(
        self,
        raffle: Raffle,
        user: Optional[User],
        proposed: Mapping[str, Any],
    ) -> RaffleDrawResult:
        """Verify a proposed automatic drawing and persist the server's result.

        Parameters
        ----------
        raffle : Raffle
            Raffle being drawn.
        user : Optional[User]
            Acting user; must own the raffle or be staff.
        proposed : Mapping[str, Any]
            Result computed by the proposer. Packet and participant data in it
            is never trusted; only ``rngSeed`` and ``drawings`` are compared.

        Returns
        -------
        RaffleDrawResult
            The persisted record, built from the server's own recomputation.

        Raises
        ------
        VerificationFailedError
            If the proposal differs from the recomputation in any field.
        AlreadyDrawnError
            If the raffle was drawn before or concurrently.
        """

        self._require_drawer(raffle, user)
        self._require_automatic(raffle)

        snapshot = self.snapshot(raffle)
        try:
            server_result = verify_proposed_result(
                proposed, snapshot.draw_input, now=self._now()
            )
        except VerificationFailedError:
            logger.warning(
                f"Lottery drawing verification failed for raffle {raffle.id}. "
                "Client and server results do not match."
            )
            raise

        winners_by_packet: dict[int, list[User]] = {}
        for row, drawing in zip(snapshot.packets, server_result.drawings):
            winners_by_packet[row.id] = [
                snapshot.users_by_name[name] for name in drawing.winners
            ]

        return self._persist(
            raffle,
            user,
            mode="automatic",
            seed=server_result.seed,
            payload=server_result.to_dict(),
            packets=snapshot.packets,
            winners_by_packet=winners_by_packet,
        )

    def submit_manual(
        self,
        raffle: Raffle,
        user: Optional[User],
        selections: Mapping[Any, Sequence[Any]],
    ) -> RaffleDrawResult:
        """Validate and persist a manual winner assignment.

        ``selections`` maps packet ids to the ordered user ids chosen as
        winners. Winners receive instance numbers in the given order. No
        randomness is involved, so no verification takes place.

        Raises
        ------
        ManualSelectionError
            If any packet's selection is invalid; nothing is persisted.
        """

        self._require_drawer(raffle, user)
        if not raffle.is_manual_drawing:
            raise DrawingModeError("manual", raffle.drawing_mode)

        snapshot = self.snapshot(raffle)
        manual_packets = []
        for row, packet in zip(snapshot.packets, snapshot.draw_input.packets):
            manual_packets.append(
                ManualPacket(
                    id=row.id,
                    title=row.title,
                    quantity=row.quantity,
                    participant_ids=tuple(
                        snapshot.users_by_name[p.name].id for p in packet.participants
                    ),
                )
            )
        validated = validate_manual_selection(manual_packets, selections)

        users_by_id = {u.id: u for u in snapshot.users_by_name.values()}
        winners_by_packet = {
            packet_id: [users_by_id[uid] for uid in winner_ids]
            for packet_id, winner_ids in validated.items()
        }

        now = self._now()
        payload = {
            "title": raffle.title,
            "timestamp": snapshot.draw_input.timestamp,
            "drawingTimestamp": utc_timestamp(now),
            "manual": True,
            "drawings": [
                {
                    "packetId": packet.id,
                    "text": packet.title,
                    "quantity": packet.quantity,
                    "participants": [p.to_dict() for p in packet.participants],
                    "winners": [u.username for u in winners_by_packet[packet.id]],
                }
                for packet in snapshot.draw_input.packets
            ],
        }
        return self._persist(
            raffle,
            user,
            mode="manual",
            seed=None,
            payload=payload,
            packets=snapshot.packets,
            winners_by_packet=winners_by_packet,
        )

    def finish_without_participants(
        self, raffle: Raffle, user: Optional[User] = None
    ) -> RaffleDrawResult:
        """Close an ended raffle nobody bought tickets for.

        Every drawable packet is marked ``"no_tickets"`` and a
        ``"no_participants"`` record takes the place of a drawing result.
        When ``user`` is omitted the call is treated as a system action.
        """

        if user is not None and not raffle.can_be_drawn_by(user):
            raise PermissionDeniedError()
        if raffle.is_drawn:
            raise AlreadyDrawnError(raffle.id)
        if not raffle.is_ended(self._now()):
            raise RaffleNotEndedError(raffle.id)
        if raffle.has_drawable_tickets(self._session):
            raise RaffleError(
                "Lottery has participants and must be drawn", code="has_participants"
            )

        now = self._now()
        packets = self._drawable_packets(raffle)
        return self._persist(
            raffle,
            user,
            mode="no_participants",
            seed=None,
            payload={
                "no_participants": True,
                "finished_at": utc_timestamp(now),
            },
            packets=packets,
            winners_by_packet={},
        )

    # -------- persistence --------
    def _persist(
        self,
        raffle: Raffle,
        user: Optional[User],
        *,
        mode: str,
        seed: Optional[str],
        payload: dict[str, Any],
        packets: Sequence[RafflePacket],
        winners_by_packet: Mapping[int, Sequence[User]],
    ) -> RaffleDrawResult:
        """Atomically claim the raffle and write the result and winners.

        The claim is a conditional ``UPDATE`` that only matches while
        ``drawn_at`` is still NULL; the unique ``raffle_id`` of
        :class:`RaffleDrawResult` backs it up. Everything happens inside a
        SAVEPOINT so a rejected attempt leaves no partial rows.
        """

        now = self._now()
        try:
            with self._session.begin_nested():
                claimed = self._session.execute(
                    update(Raffle)
                    .where(Raffle.id == raffle.id, Raffle.drawn_at.is_(None))
                    .values(drawn_at=now, state="finished", updated_at=now)
                    .execution_options(synchronize_session=False)
                ).rowcount
                if claimed != 1:
                    raise AlreadyDrawnError(raffle.id)

                record = RaffleDrawResult(
                    raffle_id=raffle.id,
                    mode=mode,
                    seed=seed,
                    payload=payload,
                    drawn_by_user_id=user.id if user is not None else None,
                    created_at=now,
                )
                self._session.add(record)

                for packet in packets:
                    winners = list(winners_by_packet.get(packet.id, ()))
                    if len(winners) > packet.quantity:
                        raise ValueError(
                            f"Packet {packet.id} cannot have more winners than its quantity"
                        )
                    packet.state = "drawn" if winners else "no_tickets"
                    for instance_number, winner in enumerate(winners, start=1):
                        self._session.add(
                            PacketWinner(
                                packet_id=packet.id,
                                winner_user_id=winner.id,
                                instance_number=instance_number,
                                won_at=now,
                            )
                        )
                self._session.flush()
        except AlreadyDrawnError:
            logger.warning(f"Rejected duplicate drawing for raffle {raffle.id}")
            raise
        except IntegrityError as exc:
            logger.warning(f"Rejected concurrent drawing for raffle {raffle.id}: {exc.orig}")
            raise AlreadyDrawnError(raffle.id) from exc

        self._session.refresh(raffle)
        logger.info(f"Persisted {mode} drawing result for raffle {raffle.id}")
        return record


__all__ = ["RaffleDrawEngine", "RaffleSnapshot"]
