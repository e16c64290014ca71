"""Environment-driven settings shared by the models and workflows."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_DURATION_DAYS = 14
MIN_DURATION_DAYS = 7
MAX_DURATION_DAYS = 28


def default_duration_days() -> int:
    """Return the raffle duration used when none is configured on the raffle.

    Reads ``RAFFLE_DEFAULT_DURATION_DAYS`` from the environment (``.env`` is
    loaded on import) and falls back to two weeks.
    """

    raw = os.getenv("RAFFLE_DEFAULT_DURATION_DAYS")
    if not raw:
        return DEFAULT_DURATION_DAYS
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(
            f"RAFFLE_DEFAULT_DURATION_DAYS must be an integer, got {raw!r}"
        ) from exc
    if not MIN_DURATION_DAYS <= value <= MAX_DURATION_DAYS:
        raise ValueError(
            "RAFFLE_DEFAULT_DURATION_DAYS must be between "
            f"{MIN_DURATION_DAYS} and {MAX_DURATION_DAYS}"
        )
    return value
