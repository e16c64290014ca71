"""Verifiable deterministic raffle drawing for a club forum."""

__version__ = "0.1.0"
