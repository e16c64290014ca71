from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, String, select, text
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship, validates

from .base import Base
from .id_type import ID_TYPE

if TYPE_CHECKING:
    from .raffle import Raffle, RaffleTicket, PacketWinner


class User(Base):
    """A forum member who owns raffles or holds tickets."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(60), unique=True, nullable=False)
    """Public name; this is the participant name fed into drawings."""

    is_staff: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=text("false"), nullable=False
    )
    """Staff members may draw any raffle."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    raffles: Mapped[list["Raffle"]] = relationship(back_populates="owner")
    tickets: Mapped[list["RaffleTicket"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    packets_won: Mapped[list["PacketWinner"]] = relationship(back_populates="winner")

    def __init__(
        self,
        username: str,
        is_staff: bool = False,
        created_at: Optional[datetime] = None,
    ) -> None:
        self.username = username
        self.is_staff = is_staff
        if created_at is not None:
            self.created_at = created_at

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}', is_staff={self.is_staff})>"

    @validates("username")
    def _normalize_username(self, _key: str, value: str) -> str:
        normalized = value.strip() if isinstance(value, str) else value
        if not normalized:
            raise ValueError("username must not be empty")
        return normalized

    @classmethod
    def get_by_username(cls, session: Session, username: str) -> Optional["User"]:
        """Retrieve a user by username."""

        return session.scalar(select(cls).where(cls.username == username))
