"""In-memory room stores for both game variants.

Each manager owns a map of room id to room. The map is guarded by a plain
lock; every call that touches a room's state holds that room's own lock, so
two requests for the same room are serialized while separate rooms proceed
independently.
"""
from __future__ import annotations

import logging
import random
import string
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union

from .bspoker import BSAction, BSPokerRoom, BSRoundResult
from .holdem import HoldemRoom
from .models import (
    ActionResult,
    CreateRoomRequest,
    HoldemAction,
    HoldemSettings,
    RoomConfig,
    RoomError,
    RoomListItem,
    RoomStatus,
    Winner,
)

LOGGER = logging.getLogger("cardcore.rooms")

ROOM_MAX_AGE = timedelta(hours=4)
MIN_PLAYERS = 2
_ID_ALPHABET = string.ascii_uppercase + string.digits
_ID_LENGTH = 4

Room = Union[HoldemRoom, BSPokerRoom]


class RoomManager:
    """Shared bookkeeping; subclasses decide which room type gets built."""

    label = "Room"
    public_prefix = "PUB"
    max_players = 6

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        self._rng = rng or random.Random()

    # Room lifecycle ----------------------------------------------------

    def create_room(self, creator_id: str, request: CreateRoomRequest) -> Room:
        capacity = min(max(request.max_players, MIN_PLAYERS), self.max_players)
        with self._lock:
            room_id = self._generate_room_id(request)
            config = RoomConfig(
                room_id=room_id,
                room_name=request.room_name,
                password=request.password or None,
                max_players=capacity,
                is_public=request.is_public,
                created_by=creator_id,
            )
            room = self._build_room(config, request)
            room.add_player(creator_id, request.player_name or f"Player{creator_id[:4]}")
            self._rooms[room_id] = room
        LOGGER.info("%s %s created by %s", self.label, room_id, creator_id)
        return room

    def join_room(
        self,
        player_id: str,
        room_id: str,
        password: Optional[str],
        player_name: str,
    ) -> Room:
        room = self._require(room_id)
        with room.lock:
            if room.config.password and room.config.password != password:
                raise RoomError("Invalid password")
            if len(room.players) >= room.config.max_players:
                raise RoomError("Room is full")
            if any(p.id == player_id for p in room.players):
                raise RoomError("Already in room")
            if room.add_player(player_id, player_name) is None:
                raise RoomError("Failed to join room")
        LOGGER.info("Player %s joined %s", player_name, room_id)
        return room

    def remove_player(self, room_id: str, player_id: str) -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        with room.lock:
            removed = room.remove_player(player_id)
        if removed:
            LOGGER.info("Player %s left %s", player_id, room_id)

        with self._lock, room.lock:
            if not room.players and self._rooms.get(room_id) is room:
                del self._rooms[room_id]
                LOGGER.info("%s %s deleted (empty)", self.label, room_id)
        return removed

    def cleanup_old_rooms(
        self,
        now: Optional[datetime] = None,
        max_age: timedelta = ROOM_MAX_AGE,
    ) -> List[str]:
        now = now or datetime.now(timezone.utc)
        removed: List[str] = []
        with self._lock:
            for room_id, room in list(self._rooms.items()):
                with room.lock:
                    stale = not room.players and now - room.config.created_at > max_age
                if stale:
                    del self._rooms[room_id]
                    removed.append(room_id)
        for room_id in removed:
            LOGGER.info("Cleaned up old room %s", room_id)
        return removed

    # Game control ------------------------------------------------------

    def start_game(self, room_id: str) -> None:
        room = self._require(room_id)
        with room.lock:
            room.start_game()
        LOGGER.info("Game started in %s", room_id)

    def can_start(self, room_id: str) -> bool:
        room = self.get_room(room_id)
        if room is None:
            return False
        with room.lock:
            return room.can_start()

    def get_game_state_for_player(self, room_id: str, player_id: Optional[str]) -> Optional[Dict[str, object]]:
        room = self.get_room(room_id)
        if room is None:
            return None
        with room.lock:
            return room.get_game_state_for_player(player_id)

    # Queries -----------------------------------------------------------

    def get_room(self, room_id: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(room_id)

    def get_room_info(self, room_id: str) -> Optional[RoomListItem]:
        room = self.get_room(room_id)
        if room is None:
            return None
        with room.lock:
            return self._list_item(room)

    def get_public_rooms(self) -> List[RoomListItem]:
        with self._lock:
            rooms = [room for room in self._rooms.values() if room.config.is_public]
        items = []
        for room in rooms:
            with room.lock:
                items.append(self._list_item(room))
        items.sort(key=lambda item: (item.status != RoomStatus.WAITING, -item.current_players))
        return items

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def total_players(self) -> int:
        with self._lock:
            return sum(len(room.players) for room in self._rooms.values())

    # Hooks and helpers -------------------------------------------------

    def _build_room(self, config: RoomConfig, request: CreateRoomRequest) -> Room:
        raise NotImplementedError

    def _list_item(self, room: Room) -> RoomListItem:
        return RoomListItem(
            room_id=room.config.room_id,
            room_name=room.config.room_name,
            current_players=len(room.players),
            max_players=room.config.max_players,
            status=room.status,
            is_public=room.config.is_public,
            has_password=bool(room.config.password),
        )

    def _require(self, room_id: str) -> Room:
        room = self.get_room(room_id)
        if room is None:
            raise RoomError("Room not found")
        return room

    def _generate_room_id(self, request: CreateRoomRequest) -> str:
        # Caller holds self._lock.
        prefix = self.public_prefix if request.is_public else request.room_name[:3].upper()
        while True:
            suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(_ID_LENGTH))
            room_id = f"{prefix}-{suffix}"
            if room_id not in self._rooms:
                return room_id

    def _room_rng(self) -> random.Random:
        return random.Random(self._rng.getrandbits(64))


class HoldemRoomManager(RoomManager):
    label = "Poker room"
    public_prefix = "PUB"
    max_players = 6

    def _build_room(self, config: RoomConfig, request: CreateRoomRequest) -> HoldemRoom:
        settings = HoldemSettings(
            buy_in=request.buy_in,
            small_blind=request.small_blind,
            big_blind=request.big_blind,
        )
        return HoldemRoom(config, settings, rng=self._room_rng())

    def _list_item(self, room: Room) -> RoomListItem:
        item = super()._list_item(room)
        item.buy_in = room.settings.buy_in
        return item

    def handle_action(self, room_id: str, player_id: str, action: HoldemAction) -> ActionResult:
        room = self._require(room_id)
        with room.lock:
            return room.handle_action(player_id, action)

    def evaluate_winner(self, room_id: str) -> List[Winner]:
        room = self._require(room_id)
        with room.lock:
            winners = room.evaluate_winner()
        LOGGER.info("Winners in %s: %s", room_id, ", ".join(w.player_name for w in winners))
        return winners

    def start_next_hand(self, room_id: str) -> None:
        room = self._require(room_id)
        with room.lock:
            room.start_next_hand()


class BSRoomManager(RoomManager):
    label = "BS Poker room"
    public_prefix = "BSP"
    max_players = 8

    def _build_room(self, config: RoomConfig, request: CreateRoomRequest) -> BSPokerRoom:
        return BSPokerRoom(config, rng=self._room_rng())

    def handle_action(self, room_id: str, player_id: str, action: BSAction) -> Optional[BSRoundResult]:
        room = self._require(room_id)
        with room.lock:
            result = room.handle_action(player_id, action)
        if result is not None:
            LOGGER.info(
                "Round over in %s: %s takes an extra card%s",
                room_id,
                result.loser_name,
                " and is eliminated" if result.eliminated else "",
            )
        return result

    def continue_to_next_round(self, room_id: str) -> None:
        room = self._require(room_id)
        with room.lock:
            room.continue_to_next_round()
