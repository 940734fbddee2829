"""In-memory table records with one serialized write path per table."""

from __future__ import annotations

import asyncio
import copy
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List

from .errors import ResourceError
from .models import TableState

LOGGER = logging.getLogger(__name__)


@dataclass
class TableRecord:
    table: TableState
    version: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class TableStore:
    """Atomic read-modify-write over each table's aggregate.

    ``transaction`` hands out a private copy of the table while holding that
    table's lock. The copy replaces the stored record only when the block
    exits cleanly, so a rejected request never leaves partial writes behind.
    Different tables never contend.
    """

    def __init__(self) -> None:
        self._records: Dict[str, TableRecord] = {}

    def create(self, table: TableState) -> None:
        if table.table_id in self._records:
            raise ResourceError("TABLE_EXISTS", f"Table {table.table_id} already exists")
        self._records[table.table_id] = TableRecord(table=copy.deepcopy(table))
        LOGGER.info("Created table %s", table.table_id)

    def table_ids(self) -> List[str]:
        return list(self._records)

    def get(self, table_id: str) -> TableState:
        """Committed state as of now; mutating the result has no effect."""
        return copy.deepcopy(self._record(table_id).table)

    def version(self, table_id: str) -> int:
        return self._record(table_id).version

    @asynccontextmanager
    async def transaction(self, table_id: str) -> AsyncIterator[TableState]:
        record = self._record(table_id)
        async with record.lock:
            working = copy.deepcopy(record.table)
            yield working
            record.table = working
            record.version += 1

    def _record(self, table_id: str) -> TableRecord:
        record = self._records.get(table_id)
        if record is None:
            raise ResourceError("TABLE_NOT_FOUND", f"Table {table_id} not found")
        return record
