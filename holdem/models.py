from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from .cards import Card


class Stage(str, Enum):
    IDLE = "idle"
    PRE_FLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"

    @property
    def is_betting(self) -> bool:
        return self in BETTING_STAGES


BETTING_STAGES = (Stage.PRE_FLOP, Stage.FLOP, Stage.TURN, Stage.RIVER)


class Variant(str, Enum):
    HOLDEM = "holdem"
    OMAHA_HI = "omaha_hi"
    OMAHA_HILO = "omaha_hilo"

    @property
    def hole_card_count(self) -> int:
        return 2 if self is Variant.HOLDEM else 4


class ActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    BET = "bet"
    RAISE = "raise"


@dataclass
class TableConfig:
    seats: int = 9
    sb: int = 5
    bb: int = 10
    variant: Variant = Variant.HOLDEM
    min_players: int = 2


@dataclass
class SeatState:
    seat: int
    player_id: Optional[str] = None
    display_name: Optional[str] = None
    stack: int = 0
    committed: int = 0
    total_in_pot: int = 0
    has_folded: bool = False
    is_all_in: bool = False
    in_hand: bool = False
    hole_cards: List[Card] = field(default_factory=list)
    revealed: List[Card] = field(default_factory=list)
    last_action_at: Optional[float] = None

    @property
    def occupied(self) -> bool:
        return self.player_id is not None

    @property
    def contesting(self) -> bool:
        """Dealt into the current hand and still holding cards."""
        return self.occupied and self.in_hand and not self.has_folded

    @property
    def can_act(self) -> bool:
        return self.contesting and not self.is_all_in

    def reset_for_hand(self) -> None:
        self.committed = 0
        self.total_in_pot = 0
        self.has_folded = False
        self.is_all_in = False
        self.in_hand = False
        self.hole_cards.clear()
        self.revealed.clear()

    def reset_for_round(self) -> None:
        self.committed = 0

    def vacate(self) -> None:
        self.reset_for_hand()
        self.player_id = None
        self.display_name = None
        self.stack = 0


@dataclass
class HandState:
    # Private to the engine: the undealt deck never leaves the table record.
    deck: List[Card]
    sb_seat: int
    bb_seat: int
    current_bet: int = 0
    # Seats that have acted since the last full bet or raise on this street.
    acted: Set[int] = field(default_factory=set)


@dataclass
class PotAward:
    seat: int
    amount: int
    eligible: List[int] = field(default_factory=list)


@dataclass
class HandResult:
    hand_id: int
    board: List[Card]
    awards: List[PotAward] = field(default_factory=list)
    ranks: Dict[int, str] = field(default_factory=dict)
    uncontested: bool = False

    def total_for(self, seat: int) -> int:
        return sum(award.amount for award in self.awards if award.seat == seat)


@dataclass
class TableState:
    table_id: str
    config: TableConfig
    seats: Dict[int, SeatState]
    stage: Stage = Stage.IDLE
    dealer_seat: Optional[int] = None
    current_seat: Optional[int] = None
    pot: int = 0
    community: List[Card] = field(default_factory=list)
    hand_id: int = 0
    acting_since: Optional[float] = None
    hand: Optional[HandState] = None
    last_result: Optional[HandResult] = None

    @classmethod
    def create(cls, table_id: str, config: TableConfig) -> "TableState":
        seats = {number: SeatState(seat=number) for number in range(1, config.seats + 1)}
        return cls(table_id=table_id, config=config, seats=seats)

    @property
    def in_hand(self) -> bool:
        return self.stage.is_betting

    def occupied_seats(self) -> List[int]:
        return sorted(number for number, seat in self.seats.items() if seat.occupied)

    def contesting_seats(self) -> List[int]:
        return sorted(number for number, seat in self.seats.items() if seat.contesting)

    def seat_of(self, player_id: str) -> Optional[SeatState]:
        for seat in self.seats.values():
            if seat.player_id == player_id:
                return seat
        return None
