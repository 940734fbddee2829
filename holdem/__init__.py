"""Hold'em table engine: rules, evaluation and per-table transactions."""

from .cards import Card, RANKS, SUITS, build_deck, deal, parse_cards
from .errors import (
    AuthorizationError,
    PreconditionError,
    ResourceError,
    StaleStateError,
    TableError,
    ValidationError,
)
from .evaluator import Evaluation, HandCategory, best_of_seven, compare, evaluate_five
from .game import HandEngine
from .models import ActionType, SeatState, Stage, TableConfig, TableState, Variant
from .service import TableService
from .store import TableStore
from .sweeper import SweeperConfig, TimeoutSweeper

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "build_deck",
    "deal",
    "parse_cards",
    "AuthorizationError",
    "PreconditionError",
    "ResourceError",
    "StaleStateError",
    "TableError",
    "ValidationError",
    "Evaluation",
    "HandCategory",
    "best_of_seven",
    "compare",
    "evaluate_five",
    "HandEngine",
    "ActionType",
    "SeatState",
    "Stage",
    "TableConfig",
    "TableState",
    "Variant",
    "TableService",
    "TableStore",
    "SweeperConfig",
    "TimeoutSweeper",
]
