"""
Partner assignment for blind-date events.

Males are the primary side, females the secondary side. Every male gets
one female; surplus females are dealt out round-robin starting from the
first male, so the spread is as even as possible.
"""

from __future__ import annotations

import random
from typing import Any, Dict, Iterable, List, Sequence, Tuple, TypeVar

from models import GENDER_FEMALE, GENDER_MALE

T = TypeVar("T")


def _norm_gender(value: str) -> str:
    return (value or "").strip().upper()


def split_roster(students: Iterable[T]) -> Tuple[List[T], List[T]]:
    """Returns (males, females); anything else is not eligible for pairing."""
    males: List[T] = []
    females: List[T] = []
    for s in students:
        gender = _norm_gender(getattr(s, "gender", ""))
        if gender == GENDER_MALE:
            males.append(s)
        elif gender == GENDER_FEMALE:
            females.append(s)
    return males, females


def assign_partners(
    primaries: Sequence[T],
    secondaries: Sequence[T],
    rng: random.Random | None = None,
) -> List[Tuple[T, List[T]]]:
    """
    Assigns every primary at least one secondary.

    Requires len(secondaries) >= len(primaries) > 0. The result keeps the
    primaries' order; the leftover secondaries land on indices 0, 1, 2, ...
    """
    if not primaries:
        raise ValueError("at least one primary is required")
    if len(secondaries) < len(primaries):
        raise ValueError("not enough secondaries for every primary")

    rng = rng or random.Random()
    shuffled = list(secondaries)
    rng.shuffle(shuffled)

    pairs: List[Tuple[T, List[T]]] = [(p, [shuffled[i]]) for i, p in enumerate(primaries)]

    idx = 0
    for extra in shuffled[len(primaries):]:
        pairs[idx][1].append(extra)
        idx = (idx + 1) % len(primaries)
    return pairs


def group_by_event(partnerings: Iterable[Any]) -> Dict[Any, List[Any]]:
    groups: Dict[Any, List[Any]] = {}
    for p in partnerings:
        event_id = p["event_id"] if isinstance(p, dict) else p.event_id
        groups.setdefault(event_id, []).append(p)
    return groups
