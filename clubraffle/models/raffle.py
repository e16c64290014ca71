"""Database models for raffles, their packets, tickets, and drawing results."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    select,
    text,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from ..config import MAX_DURATION_DAYS, MIN_DURATION_DAYS, default_duration_days
from ..db.utils import as_utc, dt_iso
from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .user import User


RAFFLE_STATES = ("active", "finished")
DRAWING_MODES = ("automatic", "manual")
PACKET_STATES = ("pending", "no_tickets", "drawn")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Raffle(Base):
    """A raffle topic offering one or more prize packets."""

    __tablename__ = "raffles"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    """Primary key."""

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    """Raffle title; part of the drawing data but not of the seed."""

    owner_user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    """User who created the raffle and is allowed to draw it."""

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    """``"active"`` while tickets can be drawn, ``"finished"`` once drawn."""

    drawing_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default="automatic"
    )
    """``"automatic"`` (verified random drawing) or ``"manual"`` (owner picks)."""

    duration_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Configured run time in days (7 to 28)."""

    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """When the raffle went live; the drawing timestamp baseline."""

    ends_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Ticket sales close at this time; automatic drawing is possible afterwards."""

    drawn_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    """Set exactly once, when a drawing result is persisted."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    owner: Mapped["User"] = relationship(back_populates="raffles")
    packets: Mapped[list["RafflePacket"]] = relationship(
        back_populates="raffle",
        cascade="all, delete-orphan",
        order_by="RafflePacket.ordinal",
    )
    draw_result: Mapped[Optional["RaffleDrawResult"]] = relationship(
        back_populates="raffle", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("state IN ('active','finished')", name="state_enum"),
        CheckConstraint(
            "drawing_mode IN ('automatic','manual')", name="drawing_mode_enum"
        ),
        Index("ix_raffles_state_ends_at", "state", "ends_at"),
    )

    def __init__(
        self,
        *,
        title: str,
        owner: Optional["User"] = None,
        owner_user_id: Optional[int] = None,
        drawing_mode: str = "automatic",
        state: str = "active",
        duration_days: Optional[int] = None,
        published_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.title = title
        if owner is not None:
            self.owner = owner
        if owner_user_id is not None:
            self.owner_user_id = owner_user_id
        self.drawing_mode = drawing_mode
        self.state = state
        self.duration_days = duration_days
        self.published_at = published_at
        self.ends_at = ends_at
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<Raffle(id={id}, title={title!r}, state={state}, mode={mode})>".format(
            id=self.id,
            title=self.title,
            state=self.state,
            mode=self.drawing_mode,
        )

    @validates("drawing_mode")
    def _validate_drawing_mode(self, _key: str, value: str) -> str:
        if value not in DRAWING_MODES:
            raise ValueError(f"drawing_mode must be one of {DRAWING_MODES}")
        return value

    @validates("state")
    def _validate_state(self, _key: str, value: str) -> str:
        if value not in RAFFLE_STATES:
            raise ValueError(f"state must be one of {RAFFLE_STATES}")
        return value

    @validates("duration_days")
    def _validate_duration(self, _key: str, value: Optional[int]) -> Optional[int]:
        if value is not None and not MIN_DURATION_DAYS <= value <= MAX_DURATION_DAYS:
            raise ValueError(
                f"duration_days must be between {MIN_DURATION_DAYS} and {MAX_DURATION_DAYS}"
            )
        return value

    @property
    def is_active(self) -> bool:
        return self.state == "active"

    @property
    def is_finished(self) -> bool:
        return self.state == "finished"

    @property
    def is_drawn(self) -> bool:
        return self.drawn_at is not None

    @property
    def is_automatic_drawing(self) -> bool:
        return self.drawing_mode == "automatic"

    @property
    def is_manual_drawing(self) -> bool:
        return self.drawing_mode == "manual"

    @property
    def drawable_packets(self) -> list["RafflePacket"]:
        """Packets taking part in the drawing, in ordinal order."""
        return [packet for packet in self.packets if not packet.reserved]

    def is_ended(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` once ``ends_at`` has passed."""
        if self.ends_at is None:
            return False
        return as_utc(self.ends_at) <= (as_utc(now) if now else _utcnow())

    def can_be_drawn_by(self, user: Optional["User"]) -> bool:
        """Owners and staff may draw a raffle."""
        if user is None:
            return False
        return bool(user.is_staff) or (
            user.id is not None and user.id == self.owner_user_id
        )

    def draw_timestamp(self) -> str:
        """Return the ISO-8601 timestamp that seeds this raffle's drawing.

        This is ``published_at`` when known. Otherwise it is reconstructed as
        ``ends_at`` minus the raffle duration, and finally ``created_at``.
        """

        if self.published_at is not None:
            baseline = self.published_at
        elif self.ends_at is not None:
            days = self.duration_days or default_duration_days()
            baseline = as_utc(self.ends_at) - timedelta(days=days)
        else:
            baseline = self.created_at
        return as_utc(baseline).isoformat()

    def has_drawable_tickets(self, session: Session) -> bool:
        """Return ``True`` if any non-reserved packet has at least one ticket."""

        stmt = (
            select(RaffleTicket.id)
            .join(RafflePacket, RafflePacket.id == RaffleTicket.packet_id)
            .where(
                RafflePacket.raffle_id == self.id,
                RafflePacket.reserved.is_(False),
            )
            .limit(1)
        )
        return session.scalar(stmt) is not None

    def completion_status(self, now: Optional[datetime] = None) -> str:
        """Return ``"active"``, ``"ready_to_draw"``, ``"no_tickets"`` or ``"drawn"``."""

        if self.is_active and not self.is_ended(now):
            return "active"
        if not self.is_drawn:
            return "ready_to_draw" if self.is_active else "active"
        drawable = self.drawable_packets
        if drawable and all(packet.state == "no_tickets" for packet in drawable):
            return "no_tickets"
        return "drawn"

    @classmethod
    def get_ready_to_draw(
        cls, session: Session, now: Optional[datetime] = None
    ) -> list["Raffle"]:
        """Return active, ended, undrawn raffles ordered by end time."""

        stmt = (
            select(cls)
            .where(
                cls.state == "active",
                cls.drawn_at.is_(None),
                cls.ends_at.isnot(None),
                cls.ends_at <= (as_utc(now) if now else _utcnow()),
            )
            .order_by(cls.ends_at.asc(), cls.id.asc())
        )
        return list(session.scalars(stmt).all())


class RafflePacket(Base):
    """One prize slot of a raffle."""

    __tablename__ = "raffle_packets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)

    raffle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False, index=True
    )

    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    """Position of the packet in the raffle; fixes the drawing order."""

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    quantity: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1, server_default=text("1")
    )
    """Number of identical prizes, i.e. winner instances owed."""

    reserved: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    """Pre-assigned to a fixed recipient; never drawn."""

    state: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    """``"pending"`` until drawn, then ``"drawn"`` or ``"no_tickets"``."""

    raffle: Mapped["Raffle"] = relationship(back_populates="packets")
    tickets: Mapped[list["RaffleTicket"]] = relationship(
        back_populates="packet",
        cascade="all, delete-orphan",
        order_by="RaffleTicket.id",
    )
    winners: Mapped[list["PacketWinner"]] = relationship(
        back_populates="packet",
        cascade="all, delete-orphan",
        order_by="PacketWinner.instance_number",
    )

    __table_args__ = (
        UniqueConstraint("raffle_id", "ordinal", name="uq_raffle_packet_ordinal"),
        CheckConstraint("quantity >= 1", name="quantity_positive"),
        CheckConstraint("ordinal >= 0", name="ordinal_non_negative"),
        Index("ix_raffle_packets_state", "state"),
    )

    def __init__(
        self,
        *,
        title: str,
        ordinal: int,
        quantity: int = 1,
        reserved: bool = False,
        raffle: Optional["Raffle"] = None,
        raffle_id: Optional[int] = None,
        state: str = "pending",
    ) -> None:
        self.title = title
        self.ordinal = ordinal
        self.quantity = quantity
        self.reserved = reserved
        self.state = state
        if raffle is not None:
            self.raffle = raffle
        if raffle_id is not None:
            self.raffle_id = raffle_id

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return "<RafflePacket(id={id}, raffle_id={raffle}, ordinal={ordinal}, title={title!r})>".format(
            id=self.id,
            raffle=self.raffle_id,
            ordinal=self.ordinal,
            title=self.title,
        )

    @validates("quantity")
    def _validate_quantity(self, _key: str, value: int) -> int:
        if value is None or value < 1:
            raise ValueError("quantity must be at least 1")
        return value

    @validates("state")
    def _validate_state(self, _key: str, value: str) -> str:
        if value not in PACKET_STATES:
            raise ValueError(f"state must be one of {PACKET_STATES}")
        return value

    def ticket_counts(self, session: Session) -> list[tuple["User", int]]:
        """Return ``(user, ticket_count)`` pairs ordered by username."""

        from .user import User

        stmt = (
            select(User, func.count(RaffleTicket.id))
            .join(RaffleTicket, RaffleTicket.user_id == User.id)
            .where(RaffleTicket.packet_id == self.id)
            .group_by(User.id)
            .order_by(User.username.asc())
        )
        return [(user, int(count)) for user, count in session.execute(stmt).all()]


class RaffleTicket(Base):
    """A user's ticket for one packet."""

    __tablename__ = "raffle_tickets"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    packet_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("raffle_packets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    packet: Mapped["RafflePacket"] = relationship(back_populates="tickets")
    user: Mapped["User"] = relationship(back_populates="tickets")

    __table_args__ = (
        UniqueConstraint("packet_id", "user_id", name="uq_raffle_ticket_per_user"),
    )

    def __init__(
        self,
        *,
        packet: Optional["RafflePacket"] = None,
        packet_id: Optional[int] = None,
        user: Optional["User"] = None,
        user_id: Optional[int] = None,
    ) -> None:
        if packet is not None:
            self.packet = packet
        if packet_id is not None:
            self.packet_id = packet_id
        if user is not None:
            self.user = user
        if user_id is not None:
            self.user_id = user_id


class PacketWinner(Base):
    """One winner instance of a packet."""

    __tablename__ = "packet_winners"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    packet_id: Mapped[int] = mapped_column(
        ID_TYPE,
        ForeignKey("raffle_packets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    winner_user_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    instance_number: Mapped[int] = mapped_column(Integer, nullable=False)
    """1-based instance of the packet this winner receives."""

    won_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    fulfillment_state: Mapped[str] = mapped_column(
        String(20), nullable=False, default="won"
    )

    packet: Mapped["RafflePacket"] = relationship(back_populates="winners")
    winner: Mapped["User"] = relationship(back_populates="packets_won")

    __table_args__ = (
        UniqueConstraint("packet_id", "instance_number", name="uq_packet_winner_instance"),
        UniqueConstraint("packet_id", "winner_user_id", name="uq_packet_winner_user"),
        CheckConstraint("instance_number > 0", name="instance_number_positive"),
    )

    def __init__(
        self,
        *,
        packet: Optional["RafflePacket"] = None,
        packet_id: Optional[int] = None,
        winner: Optional["User"] = None,
        winner_user_id: Optional[int] = None,
        instance_number: int,
        won_at: Optional[datetime] = None,
    ) -> None:
        if packet is not None:
            self.packet = packet
        if packet_id is not None:
            self.packet_id = packet_id
        if winner is not None:
            self.winner = winner
        if winner_user_id is not None:
            self.winner_user_id = winner_user_id
        self.instance_number = instance_number
        if won_at is not None:
            self.won_at = won_at


class RaffleDrawResult(Base):
    """Immutable record of how a raffle was drawn.

    At most one row exists per raffle; the unique ``raffle_id`` is what
    rejects a second, concurrent drawing.
    """

    __tablename__ = "raffle_draw_results"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("raffles.id", ondelete="CASCADE"), nullable=False
    )
    mode: Mapped[str] = mapped_column(String(20), nullable=False)
    """``"automatic"``, ``"manual"`` or ``"no_participants"``."""

    seed: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    """Hex seed of an automatic drawing; ``None`` otherwise."""

    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    """Full result record as exported for audit."""

    drawn_by_user_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    raffle: Mapped["Raffle"] = relationship(back_populates="draw_result")

    __table_args__ = (
        UniqueConstraint("raffle_id", name="uq_raffle_draw_result_raffle"),
        CheckConstraint(
            "mode IN ('automatic','manual','no_participants')", name="mode_enum"
        ),
    )

    def __init__(
        self,
        *,
        raffle_id: int,
        mode: str,
        payload: dict[str, Any],
        seed: Optional[str] = None,
        drawn_by_user_id: Optional[int] = None,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.raffle_id = raffle_id
        self.mode = mode
        self.payload = payload
        self.seed = seed
        self.drawn_by_user_id = drawn_by_user_id
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:  # pragma: no cover - repr is trivial
        return f"<RaffleDrawResult(id={self.id}, raffle_id={self.raffle_id}, mode={self.mode})>"

    def to_json(self) -> dict[str, Any]:
        """Return the stored record together with its persistence metadata."""

        return {
            "raffle_id": self.raffle_id,
            "mode": self.mode,
            "seed": self.seed,
            "drawn_by_user_id": self.drawn_by_user_id,
            "created_at": dt_iso(self.created_at),
            "results": json.loads(json.dumps(self.payload)),
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_json(), ensure_ascii=False)


__all__ = [
    "DRAWING_MODES",
    "PacketWinner",
    "Raffle",
    "RaffleDrawResult",
    "RafflePacket",
    "RaffleTicket",
]
