from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from http import HTTPStatus
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.server import WebSocketServerProtocol

from cardcore.bspoker import BSAction
from cardcore.models import CreateRoomRequest, HoldemAction, RoomError, RoomStatus
from cardcore.rooms import BSRoomManager, HoldemRoomManager, RoomManager

LOGGER = logging.getLogger("cardserver")

# CardRoomServer glues both room managers to WebSocket clients.
# Sockets, timers and fan-out live here; the rooms stay synchronous.

Reply = Optional[Tuple[Optional[str], Dict[str, object]]]


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3001
    holdem_start_delay: float = 3.0
    next_hand_delay: float = 5.0
    reveal_delay: float = 1.0
    cleanup_interval: float = 60 * 60
    room_max_age: float = 4 * 60 * 60


@dataclass
class ClientSession:
    player_id: str
    websocket: WebSocketServerProtocol
    holdem_room: Optional[str] = None
    bs_room: Optional[str] = None


class CardRoomServer:
    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        holdem: Optional[HoldemRoomManager] = None,
        bspoker: Optional[BSRoomManager] = None,
    ) -> None:
        self.config = config or ServerConfig()
        self.holdem = holdem or HoldemRoomManager()
        self.bspoker = bspoker or BSRoomManager()
        self.sessions: Dict[str, ClientSession] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._started_at = time.monotonic()
        self._handlers: Dict[str, Callable[[ClientSession, Dict[str, object]], Awaitable[Reply]]] = {
            "poker:create-room": self._poker_create_room,
            "poker:join-room": self._poker_join_room,
            "poker:list-rooms": self._poker_list_rooms,
            "poker:room-info": self._poker_room_info,
            "poker:leave-room": self._poker_leave_room,
            "poker:action": self._poker_action,
            "bspoker:create-room": self._bs_create_room,
            "bspoker:join-room": self._bs_join_room,
            "bspoker:list-rooms": self._bs_list_rooms,
            "bspoker:start-game": self._bs_start_game,
            "bspoker:leave-room": self._bs_leave_room,
            "bspoker:action": self._bs_action,
            "bspoker:next-round": self._bs_next_round,
        }

    async def start(self) -> None:
        async with websockets.serve(
            self._handle_connection,
            self.config.host,
            self.config.port,
            process_request=self._process_request,
        ):
            LOGGER.info("Card room server listening on %s:%s", self.config.host, self.config.port)
            cleanup = asyncio.create_task(self._cleanup_loop())
            try:
                await asyncio.Future()
            finally:
                cleanup.cancel()

    async def _handle_connection(self, websocket: WebSocketServerProtocol) -> None:
        session = ClientSession(player_id=uuid.uuid4().hex, websocket=websocket)
        self.sessions[session.player_id] = session
        LOGGER.info("Player %s connected", session.player_id)
        await self._send_json(websocket, "welcome", {"player_id": session.player_id})

        try:
            async for raw in websocket:
                await self._dispatch(session, self._decode(raw))
        except websockets.ConnectionClosed:
            pass
        finally:
            await self._disconnect(session)

    async def _disconnect(self, session: ClientSession) -> None:
        await self._leave_holdem(session)
        await self._leave_bs(session)
        self.sessions.pop(session.player_id, None)
        LOGGER.info("Player %s disconnected", session.player_id)

    async def _dispatch(self, session: ClientSession, message: Dict[str, object]) -> None:
        msg_type = message.get("type")
        handler = self._handlers.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            await self._send_error(session.websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
            return

        req_id = message.get("req_id")
        try:
            reply = await handler(session, message)
        except RoomError as exc:
            LOGGER.warning("Rejected %s from %s: %s", msg_type, session.player_id, exc)
            await self._reply_error(session, msg_type, req_id, str(exc))
            return
        except ValueError as exc:
            LOGGER.warning("Bad %s payload from %s: %s", msg_type, session.player_id, exc)
            await self._reply_error(session, msg_type, req_id, str(exc))
            return

        reply_type, payload = reply if reply is not None else (None, {})
        if req_id is not None:
            await self._send_json(session.websocket, "ack", {"req_id": req_id, "success": True, **payload})
        elif reply_type is not None:
            await self._send_json(session.websocket, reply_type, payload)

    async def _reply_error(self, session: ClientSession, msg_type: str, req_id: object, error: str) -> None:
        # Errors only ever go back to the client that caused them.
        if req_id is not None:
            await self._send_json(session.websocket, "ack", {"req_id": req_id, "success": False, "error": error})
            return
        prefix = msg_type.split(":", 1)[0]
        await self._send_json(session.websocket, f"{prefix}:error", {"error": error})

    # Hold'em handlers ------------------------------------------------

    async def _poker_create_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        request = CreateRoomRequest.from_dict(message)
        await self._leave_holdem(session)
        room = self.holdem.create_room(session.player_id, request)
        session.holdem_room = room.config.room_id
        with room.lock:
            snapshot = room.get_room(session.player_id)
        return "poker:room-joined", {"room": snapshot}

    async def _poker_join_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = self._room_id(message)
        if session.holdem_room and session.holdem_room != room_id:
            await self._leave_holdem(session)
        room = self.holdem.join_room(session.player_id, room_id, message.get("password"), self._player_name(session, message))
        session.holdem_room = room_id
        await self._broadcast_room("poker", room_id)
        if self.holdem.can_start(room_id):
            self._schedule(f"poker-start:{room_id}", self.config.holdem_start_delay, lambda: self._auto_start_holdem(room_id))
        with room.lock:
            snapshot = room.get_room(session.player_id)
        return "poker:room-joined", {"room": snapshot}

    async def _poker_list_rooms(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        return "poker:room-list", {"rooms": [item.to_dict() for item in self.holdem.get_public_rooms()]}

    async def _poker_room_info(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        info = self.holdem.get_room_info(self._room_id(message))
        return "poker:room-info", {"room": info.to_dict() if info else None}

    async def _poker_leave_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = session.holdem_room
        await self._leave_holdem(session)
        return "poker:room-left", {"room_id": room_id}

    async def _poker_action(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = session.holdem_room
        if room_id is None:
            raise RoomError("Not in a room")
        raw_action = message.get("action")
        action = HoldemAction.from_dict(raw_action if isinstance(raw_action, dict) else message)
        result = self.holdem.handle_action(room_id, session.player_id, action)
        if not result.success:
            raise RoomError(result.error or "Invalid action")

        await self._broadcast(
            "poker",
            room_id,
            "poker:player-action",
            {"player_id": session.player_id, "action": action.to_dict()},
        )
        await self._broadcast_state("poker", room_id)
        room = self.holdem.get_room(room_id)
        if result.phase_complete and room is not None and room.game_state is not None:
            await self._broadcast("poker", room_id, "poker:round-start", {"phase": room.game_state.phase.value})
        if result.round_complete:
            await self._finish_hand(room_id)
        return "poker:action-result", result.to_dict()

    async def _finish_hand(self, room_id: str) -> None:
        winners = self.holdem.evaluate_winner(room_id)
        await self._broadcast("poker", room_id, "poker:round-end", {"winners": [w.to_dict() for w in winners]})
        await self._broadcast_state("poker", room_id)
        self._schedule(f"poker-next:{room_id}", self.config.next_hand_delay, lambda: self._next_hand(room_id))

    async def _auto_start_holdem(self, room_id: str) -> None:
        if not self.holdem.can_start(room_id):
            return
        self.holdem.start_game(room_id)
        await self._broadcast_room("poker", room_id)
        await self._broadcast_state("poker", room_id)

    async def _next_hand(self, room_id: str) -> None:
        try:
            self.holdem.start_next_hand(room_id)
        except RoomError as exc:
            LOGGER.warning("Next hand in %s not started: %s", room_id, exc)
            return
        room = self.holdem.get_room(room_id)
        if room is not None and room.status == RoomStatus.FINISHED:
            await self._broadcast("poker", room_id, "poker:game-finished", {"room_id": room_id})
        await self._broadcast_room("poker", room_id)
        await self._broadcast_state("poker", room_id)

    async def _leave_holdem(self, session: ClientSession) -> None:
        room_id = session.holdem_room
        if room_id is None:
            return
        session.holdem_room = None
        room = self.holdem.get_room(room_id)
        hand = None
        if room is not None:
            with room.lock:
                if room.game_state is not None and room.game_state.winners is None:
                    hand = room.game_state
        self.holdem.remove_player(room_id, session.player_id)
        await self._broadcast("poker", room_id, "poker:player-left", {"player_id": session.player_id})

        if room is not None and hand is not None:
            with room.lock:
                forfeited = hand.winners is not None
                still_dealt = room.game_state is hand
                showdown_reached = still_dealt and not forfeited and room.is_hand_complete()
            if forfeited:
                await self._broadcast("poker", room_id, "poker:round-end", {"winners": [w.to_dict() for w in hand.winners]})
                if still_dealt:
                    self._schedule(f"poker-next:{room_id}", self.config.next_hand_delay, lambda: self._next_hand(room_id))
            elif showdown_reached:
                await self._finish_hand(room_id)

        await self._broadcast_room("poker", room_id)
        await self._broadcast_state("poker", room_id)
        if self.holdem.can_start(room_id):
            self._schedule(f"poker-start:{room_id}", self.config.holdem_start_delay, lambda: self._auto_start_holdem(room_id))

    # BS Poker handlers -----------------------------------------------

    async def _bs_create_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        request = CreateRoomRequest.from_dict(message)
        await self._leave_bs(session)
        room = self.bspoker.create_room(session.player_id, request)
        session.bs_room = room.config.room_id
        with room.lock:
            snapshot = room.get_room(session.player_id)
        return "bspoker:room-joined", {"room": snapshot}

    async def _bs_join_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = self._room_id(message)
        if session.bs_room and session.bs_room != room_id:
            await self._leave_bs(session)
        room = self.bspoker.join_room(session.player_id, room_id, message.get("password"), self._player_name(session, message))
        session.bs_room = room_id
        await self._broadcast_room("bspoker", room_id)
        with room.lock:
            snapshot = room.get_room(session.player_id)
        return "bspoker:room-joined", {"room": snapshot}

    async def _bs_list_rooms(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        return "bspoker:room-list", {"rooms": [item.to_dict() for item in self.bspoker.get_public_rooms()]}

    async def _bs_start_game(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = self._require_bs_room(session)
        self.bspoker.start_game(room_id)
        await self._broadcast_room("bspoker", room_id)
        await self._broadcast_state("bspoker", room_id)
        return None

    async def _bs_leave_room(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = session.bs_room
        await self._leave_bs(session)
        return "bspoker:room-left", {"room_id": room_id}

    async def _bs_action(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = self._require_bs_room(session)
        raw_action = message.get("action")
        action = BSAction.from_dict(raw_action if isinstance(raw_action, dict) else message)
        result = self.bspoker.handle_action(room_id, session.player_id, action)

        action_payload: Dict[str, object] = {"type": action.type.value}
        if action.guess is not None:
            action_payload["guess"] = action.guess.to_dict()
        await self._broadcast(
            "bspoker",
            room_id,
            "bspoker:player-action",
            {"player_id": session.player_id, "action": action_payload},
        )
        await self._broadcast_state("bspoker", room_id)
        if result is not None:
            payload = result.to_dict()
            self._schedule(
                f"bspoker-reveal:{room_id}",
                self.config.reveal_delay,
                lambda: self._announce_round_end(room_id, payload),
            )
        return None

    async def _announce_round_end(self, room_id: str, result: Dict[str, object]) -> None:
        await self._broadcast("bspoker", room_id, "bspoker:round-end", {"result": result})
        room = self.bspoker.get_room(room_id)
        if room is None or room.status != RoomStatus.FINISHED:
            return
        with room.lock:
            winner = room.get_winner()
        await self._broadcast(
            "bspoker",
            room_id,
            "bspoker:game-finished",
            {"winner": winner.to_dict(show_cards=False) if winner else None},
        )

    async def _bs_next_round(self, session: ClientSession, message: Dict[str, object]) -> Reply:
        room_id = self._require_bs_room(session)
        self.bspoker.continue_to_next_round(room_id)
        await self._broadcast_room("bspoker", room_id)
        await self._broadcast_state("bspoker", room_id)
        return None

    async def _leave_bs(self, session: ClientSession) -> None:
        room_id = session.bs_room
        if room_id is None:
            return
        session.bs_room = None
        self.bspoker.remove_player(room_id, session.player_id)
        await self._broadcast("bspoker", room_id, "bspoker:player-left", {"player_id": session.player_id})
        await self._broadcast_room("bspoker", room_id)
        await self._broadcast_state("bspoker", room_id)

    def _require_bs_room(self, session: ClientSession) -> str:
        if session.bs_room is None:
            raise RoomError("Not in a room")
        return session.bs_room

    # Fan-out ---------------------------------------------------------

    def _manager(self, prefix: str) -> RoomManager:
        return self.holdem if prefix == "poker" else self.bspoker

    def _members(self, prefix: str, room_id: str) -> List[ClientSession]:
        attr = "holdem_room" if prefix == "poker" else "bs_room"
        return [s for s in list(self.sessions.values()) if getattr(s, attr) == room_id]

    async def _broadcast(self, prefix: str, room_id: str, msg_type: str, payload: Dict[str, object]) -> None:
        for session in self._members(prefix, room_id):
            await self._send_json(session.websocket, msg_type, payload)

    async def _broadcast_room(self, prefix: str, room_id: str) -> None:
        room = self._manager(prefix).get_room(room_id)
        if room is None:
            return
        for session in self._members(prefix, room_id):
            with room.lock:
                snapshot = room.get_room(session.player_id)
            await self._send_json(session.websocket, f"{prefix}:room-updated", {"room": snapshot})

    async def _broadcast_state(self, prefix: str, room_id: str) -> None:
        # Every seat gets its own projection so hidden cards never leak.
        manager = self._manager(prefix)
        for session in self._members(prefix, room_id):
            state = manager.get_game_state_for_player(room_id, session.player_id)
            await self._send_json(session.websocket, f"{prefix}:game-state", {"state": state})

    # Timers ----------------------------------------------------------

    def _schedule(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        existing = self._timers.get(key)
        if existing is not None and not existing.done():
            return
        self._timers[key] = asyncio.create_task(self._run_later(key, delay, callback))

    async def _run_later(self, key: str, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(delay)
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Timer %s failed", key)
        finally:
            if self._timers.get(key) is asyncio.current_task():
                self._timers.pop(key, None)

    async def drain_timers(self) -> None:
        """Wait until every scheduled timer, including ones they schedule, has run."""
        while self._timers:
            await asyncio.gather(*list(self._timers.values()), return_exceptions=True)

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            self.cleanup_rooms()

    def cleanup_rooms(self, now: Optional[datetime] = None) -> List[str]:
        LOGGER.info("Running room cleanup")
        max_age = timedelta(seconds=self.config.room_max_age)
        now = now or datetime.now(timezone.utc)
        return self.holdem.cleanup_old_rooms(now, max_age) + self.bspoker.cleanup_old_rooms(now, max_age)

    # HTTP health -----------------------------------------------------

    async def _process_request(self, path, request_headers):
        """Answer plain HTTP health checks; let WebSocket upgrades through."""
        upgrade_header = request_headers.get("Upgrade", "").lower()
        if upgrade_header == "websocket":
            return None

        if path in {"/", "/health", "/healthz"}:
            body = json.dumps(self.health_payload()).encode("utf-8")
            status = HTTPStatus.OK
        else:
            body = json.dumps({"error": "not found"}).encode("utf-8")
            status = HTTPStatus.NOT_FOUND
        headers = [
            ("Content-Type", "application/json"),
            ("Content-Length", str(len(body))),
        ]
        return status, headers, body

    def health_payload(self) -> Dict[str, object]:
        return {
            "status": "ok",
            "poker_rooms": self.holdem.room_count(),
            "poker_players": self.holdem.total_players(),
            "bspoker_rooms": self.bspoker.room_count(),
            "bspoker_players": self.bspoker.total_players(),
            "connections": len(self.sessions),
            "uptime": round(time.monotonic() - self._started_at, 3),
        }

    # Wire helpers ----------------------------------------------------

    def _room_id(self, message: Dict[str, object]) -> str:
        room_id = message.get("room_id")
        if not isinstance(room_id, str) or not room_id.strip():
            raise RoomError("Room not found")
        return room_id.strip().upper()

    def _player_name(self, session: ClientSession, message: Dict[str, object]) -> str:
        name = message.get("player_name")
        if isinstance(name, str) and name.strip():
            return name.strip()
        return f"Player{session.player_id[:4]}"

    async def _send_json(self, websocket: WebSocketServerProtocol, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: WebSocketServerProtocol, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    def _decode(self, raw: str) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}
