from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .cards import Card, create_shuffled_deck, deal_cards
from .evaluator import compare_hands, default_win, evaluate_hand
from .models import (
    ActionResult,
    HoldemAction,
    HoldemActionType,
    HoldemPhase,
    HoldemPlayer,
    HoldemSettings,
    Position,
    RoomConfig,
    RoomError,
    RoomStatus,
    Winner,
)

# HoldemRoom keeps one table's state in memory. Timers, sockets and broadcast
# live in the transport; every method here is an immediate state transition.

_STREETS = {
    HoldemPhase.PREFLOP: (HoldemPhase.FLOP, 3),
    HoldemPhase.FLOP: (HoldemPhase.TURN, 1),
    HoldemPhase.TURN: (HoldemPhase.RIVER, 1),
    HoldemPhase.RIVER: (HoldemPhase.SHOWDOWN, 0),
}


@dataclass
class HoldemGameState:
    # Everything about the hand in progress; replaced wholesale each hand.
    deck: List[Card]
    dealer_index: int
    current_player_index: int
    community_cards: List[Card] = field(default_factory=list)
    pot: int = 0
    current_bet: int = 0
    phase: HoldemPhase = HoldemPhase.PREFLOP
    pending: Set[str] = field(default_factory=set)
    winners: Optional[List[Winner]] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "community_cards": [card.to_dict() for card in self.community_cards],
            "pot": self.pot,
            "current_bet": self.current_bet,
            "current_player_index": self.current_player_index,
            "dealer_index": self.dealer_index,
            "phase": self.phase.value,
            "deck_remaining": len(self.deck),
        }


class HoldemRoom:
    """Texas Hold'em state machine for a single room."""

    def __init__(
        self,
        config: RoomConfig,
        settings: HoldemSettings,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.players: List[HoldemPlayer] = []
        self.game_state: Optional[HoldemGameState] = None
        self.status = RoomStatus.WAITING
        self.lock = threading.RLock()
        self._rng = rng or random.Random()
        self._button = 0

    # Seat management -------------------------------------------------

    def add_player(self, player_id: str, player_name: str) -> Optional[HoldemPlayer]:
        if len(self.players) >= self.config.max_players:
            return None
        if self._find(player_id) is not None:
            return None

        player = HoldemPlayer(id=player_id, name=player_name, chips=self.settings.buy_in)
        state = self.game_state
        if state is not None and state.winners is None:
            # No hole cards this hand; dealt in from the next one.
            player.folded = True
            player.last_action = "Sitting out"
        self.players.append(player)
        if len(self.players) == 1:
            player.position = Position.DEALER
        return player

    def remove_player(self, player_id: str) -> bool:
        idx = self._index_of(player_id)
        if idx is None:
            return False

        leaving = self.players[idx]
        self._drop_seat(idx)

        state = self.game_state
        if self.status != RoomStatus.PLAYING or state is None:
            return True

        if state.winners is not None:
            # Between hands: the settled hand needs no forfeiture.
            if len(self.players) < 2:
                self.status = RoomStatus.WAITING
                self.game_state = None
            return True

        remaining = [p for p in self.players if not p.folded]
        if len(remaining) <= 1:
            # Hand abandoned: whoever is still holding cards takes what is in the middle.
            if not self.evaluate_winner():
                state.pot = 0
                state.pending.clear()
                state.winners = []
            if len(self.players) < 2:
                self.status = RoomStatus.WAITING
                self.game_state = None
            return True

        n = len(self.players)
        state.pending.discard(leaving.id)
        state.dealer_index = self._button
        was_current = idx == state.current_player_index
        if idx < state.current_player_index:
            state.current_player_index -= 1
        state.current_player_index %= n

        if state.phase == HoldemPhase.SHOWDOWN:
            return True
        if not state.pending:
            self._advance_phase(state)
        elif was_current:
            state.current_player_index = self._next_index((idx - 1) % n, lambda p: p.id in state.pending)
        return True

    def _drop_seat(self, idx: int) -> None:
        del self.players[idx]
        if idx <= self._button:
            self._button -= 1
        if self.players:
            self._button %= len(self.players)
        else:
            self._button = 0

    # Hand lifecycle --------------------------------------------------

    def can_start(self) -> bool:
        return len(self.players) >= 2 and self.status == RoomStatus.WAITING

    def start_game(self) -> None:
        if self.status == RoomStatus.PLAYING:
            raise RoomError("Game already in progress")
        if len(self.players) < 2:
            raise RoomError("Need at least 2 players to start")
        self.status = RoomStatus.PLAYING
        self.start_new_hand()

    def start_next_hand(self) -> None:
        if self.status != RoomStatus.PLAYING:
            raise RoomError("Game not started")
        state = self.game_state
        if state is not None and state.winners is None:
            raise RoomError("Hand still in progress")
        self.start_new_hand()

    def start_new_hand(self) -> None:
        for player in self.players:
            player.reset_for_hand()
            player.position = Position.PLAYER

        for idx in reversed(range(len(self.players))):
            if self.players[idx].chips <= 0:
                self._drop_seat(idx)

        if len(self.players) < 2:
            self.status = RoomStatus.FINISHED
            self.game_state = None
            return

        n = len(self.players)
        self._button = (self._button + 1) % n
        dealer = self._button
        if n == 2:
            # Heads-up: the button posts the small blind.
            sb_idx, bb_idx = dealer, (dealer + 1) % n
        else:
            sb_idx, bb_idx = (dealer + 1) % n, (dealer + 2) % n
        self.players[dealer].position = Position.DEALER
        self.players[sb_idx].position = Position.SMALL_BLIND
        self.players[bb_idx].position = Position.BIG_BLIND

        deck = create_shuffled_deck(self._rng)
        for player in self.players:
            player.hole_cards, deck = deal_cards(deck, 2)

        state = HoldemGameState(
            deck=deck,
            dealer_index=dealer,
            current_player_index=(bb_idx + 1) % n,
            current_bet=self.settings.big_blind,
        )
        self._commit_chips(self.players[sb_idx], self.settings.small_blind, state)
        self._commit_chips(self.players[bb_idx], self.settings.big_blind, state)
        state.pending = {p.id for p in self.players if self._can_act(p)}
        self.game_state = state
        self.status = RoomStatus.PLAYING

        if len(state.pending) < 2 and all(
            p.current_bet >= state.current_bet for p in self.players if self._can_act(p)
        ):
            # Blinds put everyone but at most one player all-in with nothing to call.
            state.pending.clear()
            self._advance_phase(state)
            return
        state.current_player_index = self._next_index(bb_idx, lambda p: p.id in state.pending)

    def _commit_chips(self, player: HoldemPlayer, amount: int, state: HoldemGameState) -> int:
        amount = max(0, min(amount, player.chips))
        player.chips -= amount
        player.current_bet += amount
        state.pot += amount
        if player.chips == 0:
            player.all_in = True
        return amount

    # Action handling -------------------------------------------------

    def handle_action(self, player_id: str, action: HoldemAction) -> ActionResult:
        state = self.game_state
        if state is None:
            return ActionResult.failure("Game not started")

        player = self._find(player_id)
        if player is None:
            return ActionResult.failure("Player not found")

        if self.is_hand_complete():
            return ActionResult.failure("Hand is complete")

        if self.players[state.current_player_index].id != player_id:
            return ActionResult.failure("Not your turn")

        if player.folded:
            return ActionResult.failure("Already folded")

        # Each branch validates before touching any chips.
        if action.type == HoldemActionType.FOLD:
            player.folded = True
            player.last_action = "Fold"
        elif action.type == HoldemActionType.CHECK:
            if player.current_bet < state.current_bet:
                return ActionResult.failure("Cannot check, must call or raise")
            player.last_action = "Check"
        elif action.type == HoldemActionType.CALL:
            call_amount = max(state.current_bet - player.current_bet, 0)
            if call_amount > player.chips:
                return ActionResult.failure("Not enough chips")
            self._commit_chips(player, call_amount, state)
            player.last_action = f"Call ${call_amount}"
        elif action.type == HoldemActionType.RAISE:
            minimum = max(state.current_bet * 2, self.settings.big_blind)
            if action.amount < minimum:
                return ActionResult.failure("Raise must be at least 2x current bet")
            raise_amount = action.amount - player.current_bet
            if raise_amount > player.chips:
                return ActionResult.failure("Not enough chips")
            self._commit_chips(player, raise_amount, state)
            state.current_bet = action.amount
            player.last_action = f"Raise to ${action.amount}"
            self._reopen_betting(player, state)
        elif action.type == HoldemActionType.ALL_IN:
            if player.chips <= 0:
                return ActionResult.failure("Not enough chips")
            all_in_amount = self._commit_chips(player, player.chips, state)
            if player.current_bet > state.current_bet:
                state.current_bet = player.current_bet
                self._reopen_betting(player, state)
            player.last_action = f"All-in ${all_in_amount}"
        else:
            return ActionResult.failure("Invalid action")

        state.pending.discard(player.id)
        return self._advance_after_action(state)

    def _reopen_betting(self, aggressor: HoldemPlayer, state: HoldemGameState) -> None:
        state.pending = {p.id for p in self.players if p is not aggressor and self._can_act(p)}

    def _advance_after_action(self, state: HoldemGameState) -> ActionResult:
        if len(self.get_active_players()) <= 1:
            state.pending.clear()
            return ActionResult(success=True, round_complete=True)

        state.pending &= {p.id for p in self.players if self._can_act(p)}
        if not state.pending and not self.is_betting_round_complete():
            state.pending = {
                p.id for p in self.players if self._can_act(p) and p.current_bet < state.current_bet
            }
        if self.is_betting_round_complete():
            self._advance_phase(state)
            return ActionResult(
                success=True,
                phase_complete=True,
                round_complete=state.phase == HoldemPhase.SHOWDOWN,
            )

        state.current_player_index = self._next_index(
            state.current_player_index, lambda p: p.id in state.pending
        )
        return ActionResult(success=True)

    def is_betting_round_complete(self) -> bool:
        state = self.game_state
        if state is None:
            return False
        if state.pending:
            return False
        contenders = [p for p in self.players if self._can_act(p)]
        if len(contenders) <= 1:
            return True
        return all(p.current_bet == state.current_bet for p in contenders)

    def _advance_phase(self, state: HoldemGameState) -> None:
        while state.phase != HoldemPhase.SHOWDOWN:
            for player in self.players:
                player.current_bet = 0
                player.last_action = None
            state.current_bet = 0

            next_phase, count = _STREETS[state.phase]
            if count:
                dealt, state.deck = deal_cards(state.deck, count)
                state.community_cards.extend(dealt)
            state.phase = next_phase

            state.current_player_index = self._next_index(state.dealer_index, lambda p: not p.folded)
            contenders = [p for p in self.players if self._can_act(p)]
            if state.phase != HoldemPhase.SHOWDOWN and len(contenders) >= 2:
                state.pending = {p.id for p in contenders}
                state.current_player_index = self._next_index(state.dealer_index, self._can_act)
                return
            # Fewer than two players can still bet: keep dealing to showdown.
            state.pending.clear()

    def is_hand_complete(self) -> bool:
        state = self.game_state
        if state is None:
            return False
        return (
            state.winners is not None
            or state.phase == HoldemPhase.SHOWDOWN
            or len(self.get_active_players()) <= 1
        )

    # Showdown --------------------------------------------------------

    def evaluate_winner(self) -> List[Winner]:
        state = self.game_state
        if state is None:
            return []
        if state.winners is not None:
            return list(state.winners)

        active = self.get_active_players()
        if not active:
            return []

        if len(active) == 1:
            winner = active[0]
            amount = state.pot
            winner.chips += amount
            winners = [Winner(player_id=winner.id, player_name=winner.name, amount=amount, hand=default_win())]
        else:
            if state.phase != HoldemPhase.SHOWDOWN:
                raise RoomError("Hand is not at showdown")
            winners = self._split_pot(state)

        state.pot = 0
        state.pending.clear()
        state.winners = winners
        return list(winners)

    def _split_pot(self, state: HoldemGameState) -> List[Winner]:
        n = len(self.players)
        ordered = [self.players[(state.dealer_index + 1 + offset) % n] for offset in range(n)]
        hands = [
            (player, evaluate_hand(player.hole_cards, state.community_cards))
            for player in ordered
            if not player.folded
        ]
        best = hands[0][1]
        for _, hand in hands[1:]:
            if compare_hands(hand, best) > 0:
                best = hand
        top = [(player, hand) for player, hand in hands if compare_hands(hand, best) == 0]

        # Odd chips go to the winners closest to the left of the button.
        share, remainder = divmod(state.pot, len(top))
        winners: List[Winner] = []
        for idx, (player, hand) in enumerate(top):
            payout = share + (1 if idx < remainder else 0)
            player.chips += payout
            winners.append(Winner(player_id=player.id, player_name=player.name, amount=payout, hand=hand))
        return winners

    # Queries ---------------------------------------------------------

    def get_active_players(self) -> List[HoldemPlayer]:
        return [p for p in self.players if not p.folded]

    def current_player(self) -> Optional[HoldemPlayer]:
        state = self.game_state
        if state is None or self.is_hand_complete():
            return None
        return self.players[state.current_player_index]

    def get_room(self, viewer_id: Optional[str] = None, reveal_all: bool = False) -> Dict[str, object]:
        """Room snapshot as seen by ``viewer_id``.

        Only the viewer's own hole cards (and live hands at showdown) are
        included unless ``reveal_all`` is set.
        """
        return {
            "config": self.config.to_dict(),
            "settings": self.settings.to_dict(),
            "status": self.status.value,
            "players": self._players_payload(viewer_id, reveal_all),
            "game_state": self._state_payload(viewer_id, reveal_all),
        }

    def get_game_state_for_player(self, player_id: str) -> Optional[Dict[str, object]]:
        return self._state_payload(player_id)

    def _state_payload(self, viewer_id: Optional[str], reveal_all: bool = False) -> Optional[Dict[str, object]]:
        state = self.game_state
        if state is None:
            return None
        payload = state.to_dict()
        payload["room_id"] = self.config.room_id
        payload["players"] = self._players_payload(viewer_id, reveal_all)
        payload["small_blind"] = self.settings.small_blind
        payload["big_blind"] = self.settings.big_blind
        payload["winners"] = [w.to_dict() for w in state.winners] if state.winners is not None else None
        return payload

    def _players_payload(self, viewer_id: Optional[str], reveal_all: bool = False) -> List[Dict[str, object]]:
        state = self.game_state
        showdown = state is not None and state.phase == HoldemPhase.SHOWDOWN
        return [
            p.to_dict(show_cards=reveal_all or p.id == viewer_id or (showdown and not p.folded))
            for p in self.players
        ]

    # Helpers ---------------------------------------------------------

    @staticmethod
    def _can_act(player: HoldemPlayer) -> bool:
        return not player.folded and not player.all_in

    def _next_index(self, start: int, predicate: Callable[[HoldemPlayer], bool]) -> int:
        n = len(self.players)
        for offset in range(1, n + 1):
            idx = (start + offset) % n
            if predicate(self.players[idx]):
                return idx
        return start % n

    def _find(self, player_id: str) -> Optional[HoldemPlayer]:
        idx = self._index_of(player_id)
        return self.players[idx] if idx is not None else None

    def _index_of(self, player_id: str) -> Optional[int]:
        for idx, player in enumerate(self.players):
            if player.id == player_id:
                return idx
        return None
