"""Comparison of proposed drawing results against authoritative recomputation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..exceptions import VerificationFailedError
from .lottery import DrawInput, DrawResult, run_lottery

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> Optional[list]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return None


def _proposed_winners(drawing: Mapping[str, Any]) -> Optional[list]:
    if "winners" in drawing:
        return _as_list(drawing["winners"])
    # older clients reported a single ``winner`` per packet
    if "winner" in drawing:
        winner = drawing["winner"]
        return [] if winner is None else [winner]
    return None


def results_match(proposed: Any, server_result: DrawResult) -> bool:
    """Return ``True`` when ``proposed`` agrees with ``server_result``.

    The seed must be identical, both sides must report the same number of
    drawings and, index by index, the packet text and the ordered winner list
    must be equal. Anything that is not shaped like a result compares as a
    mismatch rather than raising.
    """

    if not isinstance(proposed, Mapping):
        return False
    if proposed.get("rngSeed") != server_result.seed:
        return False

    proposed_drawings: Optional[Sequence[Any]] = _as_list(proposed.get("drawings"))
    if proposed_drawings is None:
        return False
    if len(proposed_drawings) != len(server_result.drawings):
        return False

    for proposed_drawing, server_drawing in zip(proposed_drawings, server_result.drawings):
        if not isinstance(proposed_drawing, Mapping):
            return False
        if proposed_drawing.get("text") != server_drawing.text:
            return False
        if _proposed_winners(proposed_drawing) != list(server_drawing.winners):
            return False
    return True


def verify_proposed_result(
    proposed: Any,
    authoritative_input: DrawInput,
    *,
    now: Optional[datetime] = None,
) -> DrawResult:
    """Recompute the drawing from trusted input and check the proposal.

    Parameters
    ----------
    proposed : Any
        Result submitted by the proposer. Only its ``rngSeed`` and
        ``drawings`` are looked at, and only for comparison.
    authoritative_input : DrawInput
        Snapshot reconstructed from the verifier's own persisted state.
    now : Optional[datetime], default: None
        Clock override for the drawing timestamp of the recomputation.

    Returns
    -------
    DrawResult
        The verifier's own result. Callers persist this, never ``proposed``.

    Raises
    ------
    VerificationFailedError
        On any mismatch. The error does not say which field differed.
    InvalidTimestampError
        If the authoritative timestamp is unparseable.
    """

    server_result = run_lottery(authoritative_input, now=now)
    if not results_match(proposed, server_result):
        raise VerificationFailedError()
    return server_result


def audit_result(record: Mapping[str, Any]) -> bool:
    """Check that an exported result record reproduces itself.

    The drawing is rerun from the record's own ``title``, ``timestamp`` and
    ``packets``; the recomputed seed and drawings must match the record.
    Records that cannot be parsed fail the audit.
    """

    try:
        draw_input = DrawInput.from_dict(record)
        recomputed = run_lottery(draw_input)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning(f"Drawing result could not be audited: {exc}")
        return False
    matched = results_match(record, recomputed)
    if not matched:
        logger.warning(
            f"Drawing result for '{draw_input.title}' does not reproduce from its inputs"
        )
    return matched


__all__ = ["audit_result", "results_match", "verify_proposed_result"]
