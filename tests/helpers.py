from __future__ import annotations

import random
from typing import Iterable, Optional, Sequence, Tuple

from cardcore.bspoker import BSAction, BSPokerRoom
from cardcore.cards import Card, parse_cards
from cardcore.holdem import HoldemRoom
from cardcore.models import (
    ActionResult,
    BSActionType,
    HoldemAction,
    HoldemActionType,
    HoldemSettings,
    RoomConfig,
)
from cardcore.bluff import HandGuess, HandType


def make_config(room_id: str = "TST-0001", max_players: int = 6, password: Optional[str] = None) -> RoomConfig:
    return RoomConfig(
        room_id=room_id,
        room_name="Test Room",
        password=password,
        max_players=max_players,
        is_public=True,
        created_by="p0",
    )


def create_holdem_room(
    *,
    players: int = 2,
    buy_in: int = 1_000,
    small_blind: int = 10,
    big_blind: int = 20,
    seed: int = 7,
) -> HoldemRoom:
    """Hold'em room with ``players`` seated as p0, p1, ... (not started)."""
    room = HoldemRoom(
        make_config(),
        HoldemSettings(buy_in=buy_in, small_blind=small_blind, big_blind=big_blind),
        rng=random.Random(seed),
    )
    for idx in range(players):
        room.add_player(f"p{idx}", f"Player{idx}")
    return room


def create_bs_room(*, players: int = 3, seed: int = 7) -> BSPokerRoom:
    room = BSPokerRoom(make_config(max_players=8), rng=random.Random(seed))
    for idx in range(players):
        room.add_player(f"p{idx}", f"Player{idx}")
    return room


def act(room: HoldemRoom, action: HoldemActionType, amount: int = 0) -> ActionResult:
    """Apply ``action`` for whoever is currently on the clock."""
    actor = room.current_player()
    assert actor is not None
    return room.handle_action(actor.id, HoldemAction(action, amount))


def perform_actions(room: HoldemRoom, actions: Iterable[Tuple[HoldemActionType, int]]) -> None:
    for action, amount in actions:
        result = act(room, action, amount)
        assert result.success, result.error


def check_down(room: HoldemRoom) -> None:
    """Call or check every decision until the hand reaches showdown."""
    while not room.is_hand_complete():
        actor = room.current_player()
        assert actor is not None
        state = room.game_state
        assert state is not None
        action = HoldemActionType.CHECK if actor.current_bet >= state.current_bet else HoldemActionType.CALL
        result = room.handle_action(actor.id, HoldemAction(action))
        assert result.success, result.error


def cards(labels: Sequence[str]) -> list[Card]:
    return parse_cards(labels)


def guess(hand_type: HandType, rank: Optional[str] = None) -> BSAction:
    return BSAction(BSActionType.GUESS, HandGuess.from_dict({"type": hand_type.value, "rank": rank}))


def bullshit() -> BSAction:
    return BSAction(BSActionType.BULLSHIT)
