from .base import Base

# import models so Alembic/autoloaders can discover mappers
from .user import User  # noqa: F401
from .raffle import (  # noqa: F401
    PacketWinner,
    Raffle,
    RaffleDrawResult,
    RafflePacket,
    RaffleTicket,
)

__all__ = [
    "Base",
    "User",
    "Raffle",
    "RafflePacket",
    "RaffleTicket",
    "PacketWinner",
    "RaffleDrawResult",
]
