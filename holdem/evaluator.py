from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .cards import Card
from .models import Variant

RANK_ORDER = "23456789TJQKA"
RANK_VALUE = {rank: idx for idx, rank in enumerate(RANK_ORDER, start=2)}
WHEEL = (14, 5, 4, 3, 2)


class HandCategory(IntEnum):
    HIGH_CARD = 0
    PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    FOUR_OF_A_KIND = 7
    STRAIGHT_FLUSH = 8

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass(frozen=True)
class Evaluation:
    """Category, tie-break ranks (2..14) and the five cards that made the hand."""

    category: HandCategory
    tiebreak: Tuple[int, ...]
    cards: Tuple[Card, ...]

    def describe(self) -> str:
        return self.category.label


def compare(a: Evaluation, b: Evaluation) -> int:
    """Return 1 if ``a`` beats ``b``, -1 if it loses and 0 for a split."""
    if a.category != b.category:
        return 1 if a.category > b.category else -1
    # Missing positions count as lower than any real rank.
    for left, right in itertools.zip_longest(a.tiebreak, b.tiebreak, fillvalue=-1):
        if left != right:
            return 1 if left > right else -1
    return 0


def evaluate_five(cards: Sequence[Card]) -> Evaluation:
    if len(cards) != 5:
        raise ValueError(f"Expected 5 cards, got {len(cards)}")
    if len(set(cards)) != 5:
        raise ValueError("Duplicate cards in hand")

    hand = tuple(cards)
    ranks = sorted((RANK_VALUE[card.rank] for card in hand), reverse=True)

    suit_counts = Counter(card.suit for card in hand)
    flush_suit, flush_size = suit_counts.most_common(1)[0]
    is_flush = flush_size == 5

    if is_flush:
        suited = [RANK_VALUE[card.rank] for card in hand if card.suit == flush_suit]
        straight_flush_high = _straight_high(suited)
        if straight_flush_high is not None:
            return Evaluation(HandCategory.STRAIGHT_FLUSH, (straight_flush_high,), hand)

    # Larger groups first; equal sizes break toward the higher rank.
    groups = sorted(Counter(ranks).items(), key=lambda item: (item[1], item[0]), reverse=True)
    sizes = [size for _, size in groups]
    singles = [rank for rank, size in groups if size == 1]

    if sizes[0] == 4:
        return Evaluation(HandCategory.FOUR_OF_A_KIND, (groups[0][0], groups[1][0]), hand)
    if sizes[0] == 3 and sizes[1] == 2:
        return Evaluation(HandCategory.FULL_HOUSE, (groups[0][0], groups[1][0]), hand)
    if is_flush:
        return Evaluation(HandCategory.FLUSH, tuple(ranks), hand)

    straight_high = _straight_high(ranks)
    if straight_high is not None:
        return Evaluation(HandCategory.STRAIGHT, (straight_high,), hand)

    if sizes[0] == 3:
        return Evaluation(HandCategory.THREE_OF_A_KIND, (groups[0][0], *singles[:2]), hand)
    if sizes[0] == 2 and sizes[1] == 2:
        return Evaluation(HandCategory.TWO_PAIR, (groups[0][0], groups[1][0], singles[0]), hand)
    if sizes[0] == 2:
        return Evaluation(HandCategory.PAIR, (groups[0][0], *singles[:3]), hand)
    return Evaluation(HandCategory.HIGH_CARD, tuple(ranks), hand)


def _straight_high(values: Sequence[int]) -> Optional[int]:
    distinct = sorted(set(values), reverse=True)
    if len(distinct) < 5:
        return None
    for idx in range(len(distinct) - 4):
        window = distinct[idx : idx + 5]
        if window[0] - window[4] == 4:
            return window[0]
    if set(WHEEL).issubset(distinct):
        return 5
    return None


def best_of(cards: Sequence[Card]) -> Evaluation:
    """Best five-card hand from any 5..7 cards by exhaustive enumeration."""
    if len(cards) < 5:
        raise ValueError("Need at least 5 cards to evaluate")
    best: Optional[Evaluation] = None
    for combo in itertools.combinations(cards, 5):
        current = evaluate_five(combo)
        if best is None or compare(current, best) > 0:
            best = current
    assert best is not None
    return best


def best_of_seven(cards: Sequence[Card]) -> Evaluation:
    if len(cards) != 7:
        raise ValueError(f"Expected 7 cards, got {len(cards)}")
    return best_of(cards)


# Showdown evaluators take (hole cards, board) and return the hand that
# competes for the pot. Omaha plugs in here with the same contract.
ShowdownEvaluator = Callable[[Sequence[Card], Sequence[Card]], Evaluation]


def evaluate_holdem(hole: Sequence[Card], board: Sequence[Card]) -> Evaluation:
    return best_of_seven(list(hole) + list(board))


def evaluate_omaha_hi(hole: Sequence[Card], board: Sequence[Card]) -> Evaluation:
    # TODO: best of exactly two hole cards plus three board cards.
    raise NotImplementedError("Omaha high evaluation is not available yet")


def evaluate_omaha_hilo(hole: Sequence[Card], board: Sequence[Card]) -> Evaluation:
    # TODO: high hand plus a qualifying eight-or-better low for the split.
    raise NotImplementedError("Omaha hi/lo evaluation is not available yet")


EVALUATORS: Dict[Variant, ShowdownEvaluator] = {
    Variant.HOLDEM: evaluate_holdem,
    Variant.OMAHA_HI: evaluate_omaha_hi,
    Variant.OMAHA_HILO: evaluate_omaha_hilo,
}


def winners(evaluations: Dict[int, Evaluation]) -> List[int]:
    """Keys whose hand is equal-or-better than every other hand."""
    best: Optional[Evaluation] = None
    leaders: List[int] = []
    for key, evaluation in evaluations.items():
        if best is None:
            best, leaders = evaluation, [key]
            continue
        result = compare(evaluation, best)
        if result > 0:
            best, leaders = evaluation, [key]
        elif result == 0:
            leaders.append(key)
    return leaders
