from __future__ import annotations

import random
from typing import List, Optional, Sequence

from holdem.cards import Card, full_deck, parse_cards
from holdem.game import HandEngine
from holdem.models import ActionType, TableConfig, TableState, Variant


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def create_engine(
    *,
    players: int = 2,
    seats: Optional[int] = None,
    stack: int = 1_000,
    sb: int = 5,
    bb: int = 10,
    variant: Variant = Variant.HOLDEM,
    clock: Optional[FakeClock] = None,
) -> HandEngine:
    """Engine over a fresh table with seats 1..players occupied by p1..pN."""
    config = TableConfig(seats=seats or max(players, 2), sb=sb, bb=bb, variant=variant)
    engine = HandEngine(TableState.create("T-1", config), clock or FakeClock())
    for number in range(1, players + 1):
        engine.join_seat(number, f"p{number}", f"Player{number}", stack)
    return engine


def stacked_deck(labels: Sequence[str]) -> List[Card]:
    """Deck that deals ``labels`` first, followed by every other card."""
    top = parse_cards(labels)
    return top + [card for card in full_deck() if card not in top]


def stack_deck(monkeypatch, labels: Sequence[str]) -> None:
    deck = stacked_deck(labels)
    monkeypatch.setattr("holdem.game.build_deck", lambda seed=None: list(deck))


def act(engine: HandEngine, action: ActionType, amount: Optional[int] = None):
    seat = engine.table.current_seat
    assert seat is not None, "no seat to act"
    return engine.apply_action(seat, action, amount)


def check_down(engine: HandEngine) -> None:
    """Check or call until the current hand is over."""
    while engine.table.in_hand:
        seat = engine.table.current_seat
        assert seat is not None
        legal, *_ = engine.legal_actions(seat)
        if ActionType.CHECK in legal:
            engine.apply_action(seat, ActionType.CHECK)
        else:
            engine.apply_action(seat, ActionType.CALL)


def random_action(engine: HandEngine, rng: random.Random):
    seat = engine.table.current_seat
    assert seat is not None
    legal, _, min_to, max_to = engine.legal_actions(seat)
    action = rng.choice(legal)
    amount = None
    if action in (ActionType.BET, ActionType.RAISE):
        assert min_to is not None and max_to is not None
        amount = rng.choice([min_to, max_to, rng.randint(min_to, max_to)])
    return engine.apply_action(seat, action, amount)


def total_chips(engine: HandEngine) -> int:
    return sum(seat.stack for seat in engine.table.seats.values()) + engine.table.pot
