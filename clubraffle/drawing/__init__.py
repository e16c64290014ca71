"""Deterministic, verifiable raffle drawing."""

from .engine import RaffleDrawEngine, RaffleSnapshot
from .lottery import (
    DrawInput,
    DrawResult,
    Drawing,
    Packet,
    Participant,
    draw_winners,
    run_lottery,
)
from .manual import ManualPacket, validate_manual_selection
from .prng import SeededRandom
from .seed import derive_seed, parse_timestamp
from .verification import audit_result, results_match, verify_proposed_result

__all__ = [
    "DrawInput",
    "DrawResult",
    "Drawing",
    "ManualPacket",
    "Packet",
    "Participant",
    "RaffleDrawEngine",
    "RaffleSnapshot",
    "SeededRandom",
    "audit_result",
    "derive_seed",
    "draw_winners",
    "parse_timestamp",
    "results_match",
    "run_lottery",
    "validate_manual_selection",
    "verify_proposed_result",
]
