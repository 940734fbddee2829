from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Set

import websockets
from websockets.asyncio.server import ServerConnection

from holdem.errors import TableError, ValidationError
from holdem.game import Events
from holdem.service import TableService
from holdem.sweeper import SweeperConfig, TimeoutSweeper

LOGGER = logging.getLogger("table_host")

# HostServer glues the table service to WebSocket clients. Identity comes
# from the hello message; verifying it belongs to the auth layer in front.

Handler = Callable[["ClientSession", Dict[str, object]], Awaitable[Dict[str, object]]]


@dataclass
class ClientSession:
    player_id: str
    name: str
    websocket: ServerConnection
    tables: Set[str] = field(default_factory=set)


class HostServer:
    def __init__(
        self,
        service: Optional[TableService] = None,
        sweeper_config: Optional[SweeperConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.service = service or TableService(clock=clock)
        self.sweeper = TimeoutSweeper(
            self.service.store,
            sweeper_config,
            clock=clock,
            on_events=self._publish_events,
        )
        self.sessions: Dict[str, ClientSession] = {}
        self.handlers: Dict[str, Handler] = {
            "create_table": self._on_create_table,
            "join_seat": self._on_join_seat,
            "leave_seat": self._on_leave_seat,
            "start_hand": self._on_start_hand,
            "action": self._on_action,
            "reveal": self._on_reveal,
            "watch": self._on_watch,
            "view": self._on_view,
        }

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> None:
        stop = asyncio.Event()
        sweeper_task = asyncio.create_task(self.sweeper.run(stop))
        try:
            async with websockets.serve(self._handle_connection, host, port):
                LOGGER.info("Table host listening on %s:%s", host, port)
                await asyncio.Future()
        finally:
            stop.set()
            await sweeper_task

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        # First message must be "hello" so we know who we are talking to.
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        player_raw = hello.get("player_id")
        if not isinstance(player_raw, str) or not player_raw.strip():
            await self._send_error(websocket, code="BAD_IDENTITY", msg="player_id required")
            await websocket.close()
            return
        player_id = player_raw.strip()
        name_raw = hello.get("name")
        name = name_raw.strip() if isinstance(name_raw, str) else player_id

        previous = self.sessions.get(player_id)
        if previous:
            await previous.websocket.close(code=4000, reason="Replaced by new connection")

        session = ClientSession(player_id=player_id, name=name, websocket=websocket)
        if previous:
            session.tables = set(previous.tables)
        self.sessions[player_id] = session
        LOGGER.info("Player %s connected", player_id)
        await self._send_json(websocket, "welcome", {"player_id": player_id})

        try:
            async for raw in websocket:
                await self._dispatch(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            if self.sessions.get(player_id) is session:
                self.sessions.pop(player_id, None)
            LOGGER.info("Player %s disconnected", player_id)

    async def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> None:
        msg_type = message.get("type")
        handler = self.handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
            return
        try:
            reply = await handler(session, message)
        except TableError as exc:
            LOGGER.warning(
                "Rejected %s from %s: %s (%s)",
                msg_type,
                session.player_id,
                exc.code,
                exc.msg,
            )
            await self._send_error(session.websocket, code=exc.code, msg=exc.msg, kind=exc.kind)
            return
        await self._send_json(session.websocket, "ok", {"req": msg_type, **reply})

    # Handlers --------------------------------------------------------

    async def _on_create_table(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        options = {key: message[key] for key in ("sb", "bb", "variant", "seats", "min_players") if key in message}
        await self.service.create_table(table_id, **options)
        session.tables.add(table_id)
        return {"table_id": table_id}

    async def _on_join_seat(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        seat = message.get("seat")
        await self.service.join_seat(table_id, seat, session.player_id, message.get("buy_in"), session.name)
        session.tables.add(table_id)
        await self._publish_state(table_id)
        return {"table_id": table_id, "seat": seat}

    async def _on_leave_seat(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        cash_out = await self.service.leave_seat(table_id, message.get("seat"), session.player_id)
        await self._publish_state(table_id)
        return {"table_id": table_id, "cash_out": cash_out}

    async def _on_start_hand(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        events = await self.service.start_hand(table_id)
        await self._publish_events(table_id, events)
        return {"table_id": table_id}

    async def _on_action(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        events = await self.service.player_action(
            table_id,
            session.player_id,
            message.get("action"),
            message.get("amount"),
        )
        LOGGER.debug("Applied action table=%s player=%s %s", table_id, session.player_id, message.get("action"))
        await self._publish_events(table_id, events)
        return {"table_id": table_id}

    async def _on_reveal(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        await self.service.reveal_request(table_id, message.get("seat"), session.player_id)
        await self._publish_state(table_id)
        return {"table_id": table_id}

    async def _on_watch(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        state = self.service.view(table_id, session.player_id)
        session.tables.add(table_id)
        return {"table_id": table_id, "state": state}

    async def _on_view(self, session: ClientSession, message: Dict[str, object]) -> Dict[str, object]:
        table_id = _table_id(message)
        return {"table_id": table_id, "state": self.service.view(table_id, session.player_id)}

    # Broadcasting ----------------------------------------------------

    async def _publish_events(self, table_id: str, events: Events) -> None:
        targets = self._subscribers(table_id)
        for event in events:
            message = self._envelope("event", {"table_id": table_id, **event})
            await asyncio.gather(*(s.websocket.send(message) for s in targets), return_exceptions=True)
        await self._publish_state(table_id)

    async def _publish_state(self, table_id: str) -> None:
        # Each subscriber gets its own view so hole cards stay private.
        sends = []
        for session in self._subscribers(table_id):
            state = self.service.view(table_id, session.player_id)
            sends.append(session.websocket.send(self._envelope("state", {"table_id": table_id, "state": state})))
        if sends:
            await asyncio.gather(*sends, return_exceptions=True)

    def _subscribers(self, table_id: str) -> List[ClientSession]:
        return [session for session in self.sessions.values() if table_id in session.tables]

    # Wire helpers ----------------------------------------------------

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str, kind: str = "protocol") -> None:
        await self._send_json(websocket, "error", {"kind": kind, "code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    async def _read_message(self, websocket: ServerConnection) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        return self._decode(raw)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}


def _table_id(message: Dict[str, object]) -> str:
    table_id = message.get("table_id")
    if not isinstance(table_id, str) or not table_id.strip():
        raise ValidationError("BAD_IDENTITY", "table_id required")
    return table_id
