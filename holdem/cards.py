from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

RANKS = "AKQJT98765432"
SUITS = "cdhs"

# Production decks come from the OS entropy pool; seeded decks exist for
# replays and tests only.
_SECURE_RNG = random.SystemRandom()


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"

    def __str__(self) -> str:
        return self.label


def full_deck() -> List[Card]:
    return [Card(rank, suit) for rank in RANKS[::-1] for suit in SUITS]


def build_deck(seed: Optional[int] = None) -> List[Card]:
    """Return a freshly shuffled 52-card deck (Fisher-Yates via ``shuffle``)."""
    rng = _SECURE_RNG if seed is None else random.Random(seed)
    deck = full_deck()
    rng.shuffle(deck)
    return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if count < 0:
        raise ValueError("Cannot deal a negative number of cards")
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) != 2:
        raise ValueError(f"Invalid card label: {label}")
    return Card(label[0].upper(), label[1].lower())


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
