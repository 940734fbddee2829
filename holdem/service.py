from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from .errors import AuthorizationError, PreconditionError, ValidationError
from .game import Events, HandEngine
from .models import ActionType, TableConfig, TableState, Variant
from .store import TableStore

LOGGER = logging.getLogger(__name__)

MAX_SEATS = 10


class TableService:
    """Operations offered to the auth, wallet and UI layers.

    Callers are identified by an opaque ``player_id`` that an outer layer has
    already authenticated. Every mutating call runs as one store transaction.
    """

    def __init__(self, store: Optional[TableStore] = None, clock: Callable[[], float] = time.time) -> None:
        self.store = store or TableStore()
        self.clock = clock

    async def create_table(
        self,
        table_id: str,
        sb: int = 5,
        bb: int = 10,
        variant: str = Variant.HOLDEM.value,
        seats: int = 9,
        min_players: int = 2,
    ) -> TableState:
        _require_id(table_id, "table id")
        config = build_config(sb=sb, bb=bb, variant=variant, seats=seats, min_players=min_players)
        table = TableState.create(table_id, config)
        self.store.create(table)
        return self.store.get(table_id)

    async def join_seat(self, table_id: str, seat: int, player_id: str, buy_in: int, display_name: str = "") -> Dict[str, object]:
        _require_id(table_id, "table id")
        async with self.store.transaction(table_id) as table:
            engine = self._engine(table)
            engine.join_seat(seat, player_id, display_name, buy_in)
            return engine.public_view()

    async def leave_seat(self, table_id: str, seat: int, player_id: str) -> int:
        _require_id(table_id, "table id")
        async with self.store.transaction(table_id) as table:
            return self._engine(table).leave_seat(seat, player_id)

    async def start_hand(self, table_id: str, seed: Optional[int] = None) -> Events:
        _require_id(table_id, "table id")
        async with self.store.transaction(table_id) as table:
            return self._engine(table).start_hand(seed=seed)

    async def player_action(
        self,
        table_id: str,
        player_id: str,
        action: str,
        amount: Optional[int] = None,
    ) -> Events:
        _require_id(table_id, "table id")
        _require_id(player_id, "player id")
        action_type = parse_action(action)
        async with self.store.transaction(table_id) as table:
            if not table.in_hand or table.current_seat is None:
                raise PreconditionError("NO_ACTIVE_HAND", "No active betting round")
            acting = table.seats[table.current_seat]
            if acting.player_id != player_id:
                LOGGER.debug("Table %s: %s acted out of turn (seat %s to act)", table_id, player_id, table.current_seat)
                raise AuthorizationError("NOT_YOUR_TURN", "Not your turn")
            return self._engine(table).apply_action(table.current_seat, action_type, amount)

    async def reveal_request(self, table_id: str, seat: int, player_id: str) -> Dict[str, object]:
        _require_id(table_id, "table id")
        async with self.store.transaction(table_id) as table:
            engine = self._engine(table)
            engine.reveal(seat, player_id)
            return engine.public_view()

    def view(self, table_id: str, player_id: Optional[str] = None) -> Dict[str, object]:
        """Public table state, plus the caller's own cards when seated."""
        table = self.store.get(table_id)
        engine = self._engine(table)
        if player_id is not None:
            seat = table.seat_of(player_id)
            if seat is not None:
                return engine.private_view(seat.seat)
        return engine.public_view()

    def _engine(self, table: TableState) -> HandEngine:
        return HandEngine(table, self.clock)


def build_config(*, sb: int, bb: int, variant: str, seats: int, min_players: int) -> TableConfig:
    for name, value in (("sb", sb), ("bb", bb), ("seats", seats), ("min_players", min_players)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValidationError("BAD_CONFIG", f"{name} must be an integer")
    if not 2 <= seats <= MAX_SEATS:
        raise ValidationError("BAD_CONFIG", f"seats must be between 2 and {MAX_SEATS}")
    if sb <= 0 or bb < sb:
        raise ValidationError("BAD_CONFIG", "blinds must satisfy 0 < sb <= bb")
    if not 2 <= min_players <= seats:
        raise ValidationError("BAD_CONFIG", "min_players must be between 2 and the seat count")
    try:
        parsed_variant = Variant(variant)
    except ValueError:
        raise ValidationError("BAD_CONFIG", f"Unknown variant {variant!r}") from None
    return TableConfig(seats=seats, sb=sb, bb=bb, variant=parsed_variant, min_players=min_players)


def parse_action(action: object) -> ActionType:
    if isinstance(action, ActionType):
        return action
    if not isinstance(action, str):
        raise ValidationError("BAD_ACTION", "action required")
    try:
        return ActionType(action.strip().lower())
    except ValueError:
        raise ValidationError("BAD_ACTION", f"Unknown action {action!r}") from None


def _require_id(value: object, label: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("BAD_IDENTITY", f"{label} required")
