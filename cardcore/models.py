from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .cards import Card
from .evaluator import HandRanking


class RoomError(ValueError):
    """Caller-correctable failure; the message is meant for the originating client."""


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class HoldemPhase(str, Enum):
    WAITING = "waiting"
    PREFLOP = "preflop"
    FLOP = "flop"
    TURN = "turn"
    RIVER = "river"
    SHOWDOWN = "showdown"


class BSPhase(str, Enum):
    WAITING = "waiting"
    DEALING = "dealing"
    BIDDING = "bidding"
    REVEAL = "reveal"
    ROUND_END = "round-end"


class Position(str, Enum):
    DEALER = "dealer"
    SMALL_BLIND = "small-blind"
    BIG_BLIND = "big-blind"
    PLAYER = "player"


class HoldemActionType(str, Enum):
    FOLD = "fold"
    CHECK = "check"
    CALL = "call"
    RAISE = "raise"
    ALL_IN = "all-in"


class BSActionType(str, Enum):
    GUESS = "guess"
    BULLSHIT = "bullshit"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RoomConfig:
    room_id: str
    room_name: str
    password: Optional[str]
    max_players: int
    is_public: bool
    created_by: str
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, object]:
        # The password itself never leaves the server.
        return {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "has_password": bool(self.password),
            "max_players": self.max_players,
            "is_public": self.is_public,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class HoldemSettings:
    buy_in: int = 1_000
    small_blind: int = 10
    big_blind: int = 20

    def to_dict(self) -> Dict[str, object]:
        return {"buy_in": self.buy_in, "small_blind": self.small_blind, "big_blind": self.big_blind}


@dataclass
class CreateRoomRequest:
    room_name: str
    max_players: int
    is_public: bool
    password: Optional[str] = None
    buy_in: int = 1_000
    small_blind: int = 10
    big_blind: int = 20
    player_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CreateRoomRequest":
        room_name = data.get("room_name")
        if not isinstance(room_name, str) or not room_name.strip():
            raise RoomError("Room name required")
        try:
            return cls(
                room_name=room_name.strip(),
                max_players=int(data.get("max_players", 6)),
                is_public=bool(data.get("is_public", True)),
                password=data.get("password") or None,
                buy_in=int(data.get("buy_in", 1_000)),
                small_blind=int(data.get("small_blind", 10)),
                big_blind=int(data.get("big_blind", 20)),
                player_name=data.get("player_name") or None,
            )
        except (TypeError, ValueError) as exc:
            raise RoomError("Invalid room configuration") from exc


# Hold'em ---------------------------------------------------------------


@dataclass
class HoldemPlayer:
    id: str
    name: str
    chips: int
    current_bet: int = 0
    hole_cards: List[Card] = field(default_factory=list)
    folded: bool = False
    all_in: bool = False
    position: Position = Position.PLAYER
    last_action: Optional[str] = None

    def reset_for_hand(self) -> None:
        self.hole_cards = []
        self.current_bet = 0
        self.folded = False
        self.all_in = False
        self.last_action = None

    def to_dict(self, show_cards: bool = True) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "chips": self.chips,
            "current_bet": self.current_bet,
            "hole_cards": [card.to_dict() for card in self.hole_cards] if show_cards else [],
            "card_count": len(self.hole_cards),
            "folded": self.folded,
            "all_in": self.all_in,
            "position": self.position.value,
            "last_action": self.last_action,
        }


@dataclass
class HoldemAction:
    type: HoldemActionType
    amount: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HoldemAction":
        try:
            action_type = HoldemActionType(data.get("type"))
            amount = int(data.get("amount") or 0)
        except (TypeError, ValueError) as exc:
            raise RoomError("Invalid action") from exc
        return cls(type=action_type, amount=amount)

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.type.value, "amount": self.amount}


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    round_complete: bool = False
    phase_complete: bool = False

    @classmethod
    def failure(cls, error: str) -> "ActionResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"success": self.success}
        if self.error:
            payload["error"] = self.error
        if self.round_complete:
            payload["round_complete"] = True
        if self.phase_complete:
            payload["phase_complete"] = True
        return payload


@dataclass
class Winner:
    player_id: str
    player_name: str
    amount: int
    hand: HandRanking

    def to_dict(self) -> Dict[str, object]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "amount": self.amount,
            "hand": self.hand.to_dict(),
        }


# BS Poker --------------------------------------------------------------


@dataclass
class BSPlayer:
    id: str
    name: str
    position: int
    cards: List[Card] = field(default_factory=list)
    card_count: int = 2
    has_lost: bool = False
    sitting_out: bool = False
    last_action: Optional[str] = None

    def to_dict(self, show_cards: bool = True) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "cards": [card.to_dict() for card in self.cards] if show_cards else [],
            "card_count": self.card_count,
            "has_lost": self.has_lost,
            "sitting_out": self.sitting_out,
            "last_action": self.last_action,
        }


@dataclass
class RoomListItem:
    room_id: str
    room_name: str
    current_players: int
    max_players: int
    status: RoomStatus
    is_public: bool
    has_password: bool
    buy_in: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "room_id": self.room_id,
            "room_name": self.room_name,
            "current_players": self.current_players,
            "max_players": self.max_players,
            "status": self.status.value,
            "is_public": self.is_public,
            "has_password": self.has_password,
        }
        if self.buy_in is not None:
            payload["buy_in"] = self.buy_in
        return payload
