from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Tuple

from .errors import StaleStateError, TableError
from .game import Events, HandEngine
from .store import TableStore

LOGGER = logging.getLogger(__name__)

EventSink = Callable[[str, Events], Awaitable[None]]


@dataclass
class SweeperConfig:
    period_s: float = 60.0
    timeout_s: float = 20.0


class TimeoutSweeper:
    """Folds the seat to act on any table whose turn clock has expired."""

    def __init__(
        self,
        store: TableStore,
        config: Optional[SweeperConfig] = None,
        clock: Callable[[], float] = time.time,
        on_events: Optional[EventSink] = None,
    ) -> None:
        self.store = store
        self.config = config or SweeperConfig()
        self.clock = clock
        self.on_events = on_events

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        LOGGER.info(
            "Timeout sweeper running every %ss (turn limit %ss)", self.config.period_s, self.config.timeout_s
        )
        while stop is None or not stop.is_set():
            await self.sweep()
            if stop is None:
                await asyncio.sleep(self.config.period_s)
                continue
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.config.period_s)
            except asyncio.TimeoutError:
                pass

    async def sweep(self) -> List[Tuple[str, int]]:
        """One pass over every table; returns the (table, seat) pairs folded."""
        now = self.clock()
        folded: List[Tuple[str, int]] = []
        for table_id in self.store.table_ids():
            table = self.store.get(table_id)
            if not table.in_hand or table.acting_since is None or table.current_seat is None:
                continue
            if now - table.acting_since < self.config.timeout_s:
                continue
            try:
                events = await self._expire(table_id, table.hand_id, table.current_seat, table.acting_since)
            except StaleStateError:
                LOGGER.debug("Table %s moved on before its timeout could apply", table_id)
                continue
            except TableError as exc:
                LOGGER.warning("Timeout on table %s not applied: %s (%s)", table_id, exc.code, exc.msg)
                continue
            except Exception:
                # One broken table must not stop the sweep for the others.
                LOGGER.exception("Timeout on table %s failed", table_id)
                continue
            folded.append((table_id, table.current_seat))
            if self.on_events is not None:
                await self.on_events(table_id, events)
        return folded

    async def _expire(self, table_id: str, hand_id: int, seat: int, acting_since: float) -> Events:
        async with self.store.transaction(table_id) as table:
            # Re-check under the lock: the player may have acted meanwhile.
            if (
                not table.in_hand
                or table.hand_id != hand_id
                or table.current_seat != seat
                or table.acting_since != acting_since
            ):
                raise StaleStateError()
            return HandEngine(table, self.clock).force_fold(seat)
