"""Seat rotation helpers shared by dealing, blinds and turn order."""

from __future__ import annotations

from typing import Callable, Iterable, List, Optional


def order_from(occupied: Iterable[int], start: int) -> List[int]:
    """Occupied seats ascending, rotated so ``start`` comes first.

    When ``start`` is not occupied the plain ascending list is returned;
    callers that depend on the rotation must check ``order[0] == start``.
    """
    ordered = sorted(occupied)
    if start not in ordered:
        return ordered
    idx = ordered.index(start)
    return ordered[idx:] + ordered[:idx]


def next_occupied(order: List[int], current: Optional[int]) -> Optional[int]:
    if not order:
        return None
    if current not in order:
        return order[0]
    return order[(order.index(current) + 1) % len(order)]


def next_after(occupied: Iterable[int], current: int) -> Optional[int]:
    """First occupied seat clockwise of ``current``, which need not be occupied."""
    ordered = sorted(occupied)
    if not ordered:
        return None
    for number in ordered:
        if number > current:
            return number
    return ordered[0]


def next_eligible(order: List[int], current: Optional[int], eligible: Callable[[int], bool]) -> Optional[int]:
    """Walk ``order`` after ``current`` until ``eligible`` accepts a seat.

    Bounded by ``len(order)`` steps; ``None`` means nobody can act.
    """
    candidate = next_occupied(order, current)
    for _ in range(len(order)):
        if candidate is None:
            return None
        if eligible(candidate):
            return candidate
        candidate = next_occupied(order, candidate)
    return None
