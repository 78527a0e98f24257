# island_tracker/domain/ledger.py
"""
Missed-day ledger: FIFO queue of unresolved missed day ids, plus the
missed-day -> make-up-day compensation map.
"""
from __future__ import annotations

from typing import Dict, Optional, Tuple

from island_tracker.domain.errors import InvalidTransition

Ledger = Tuple[str, ...]


def enqueue(ledger: Ledger, day_id: str) -> Ledger:
    if day_id in ledger:
        return ledger
    return ledger + (day_id,)


def head(ledger: Ledger) -> Optional[str]:
    return ledger[0] if ledger else None


def resolve_head(
    ledger: Ledger,
    compensations: Dict[str, str],
    makeup_day_id: str,
) -> Tuple[Ledger, Dict[str, str], str]:
    """
    Pops the oldest missed day and pairs it with `makeup_day_id`.
    Returns (remaining ledger, new compensation map, resolved missed day id).
    """
    if not ledger:
        raise InvalidTransition("no missed days awaiting compensation")
    if makeup_day_id in compensations.values():
        raise InvalidTransition(f"day {makeup_day_id} already compensates another day")

    missed_id = ledger[0]
    if makeup_day_id == missed_id:
        raise InvalidTransition("a missed day cannot compensate itself")

    updated = dict(compensations)
    updated[missed_id] = makeup_day_id
    return ledger[1:], updated, missed_id
