from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .bluff import HandGuess, is_higher_guess, verify_guess
from .cards import Card, create_shuffled_deck, deal_cards
from .models import BSActionType, BSPhase, BSPlayer, RoomConfig, RoomError, RoomStatus

STARTING_CARD_COUNT = 2
ELIMINATION_CARD_COUNT = 6


@dataclass
class GuessRecord:
    player_id: str
    player_name: str
    guess: HandGuess

    def to_dict(self) -> Dict[str, object]:
        return {"player_id": self.player_id, "player_name": self.player_name, "guess": self.guess.to_dict()}


@dataclass
class BSGameState:
    current_player_index: int
    dealer_index: int
    phase: BSPhase = BSPhase.BIDDING
    current_guess: Optional[HandGuess] = None
    guess_history: List[GuessRecord] = field(default_factory=list)
    all_cards: List[Card] = field(default_factory=list)
    round_number: int = 1

    def to_dict(self, show_cards: bool = True) -> Dict[str, object]:
        return {
            "current_player_index": self.current_player_index,
            "dealer_index": self.dealer_index,
            "phase": self.phase.value,
            "current_guess": self.current_guess.to_dict() if self.current_guess else None,
            "guess_history": [record.to_dict() for record in self.guess_history],
            "all_cards": [card.to_dict() for card in self.all_cards] if show_cards else [],
            "round_number": self.round_number,
        }


@dataclass
class BSAction:
    type: BSActionType
    guess: Optional[HandGuess] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BSAction":
        try:
            action_type = BSActionType(data.get("type"))
        except ValueError as exc:
            raise RoomError("Invalid action") from exc
        guess = None
        if action_type == BSActionType.GUESS:
            guess = HandGuess.from_dict(data.get("guess"))
        return cls(type=action_type, guess=guess)


@dataclass
class BSRoundResult:
    was_successful: bool
    caller_id: str
    caller_name: str
    guesser_id: str
    guesser_name: str
    loser_id: str
    loser_name: str
    guess: HandGuess
    all_cards: List[Card]
    found_hand: List[Card] = field(default_factory=list)
    eliminated: bool = False
    game_over: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            "was_successful": self.was_successful,
            "caller_id": self.caller_id,
            "caller_name": self.caller_name,
            "guesser_id": self.guesser_id,
            "guesser_name": self.guesser_name,
            "loser_id": self.loser_id,
            "loser_name": self.loser_name,
            "guess": self.guess.to_dict(),
            "all_cards": [card.to_dict() for card in self.all_cards],
            "found_hand": [card.to_dict() for card in self.found_hand],
            "eliminated": self.eliminated,
            "game_over": self.game_over,
        }


class BSPokerRoom:
    """Liar's Poker table: escalating claims about the pooled cards until someone calls bullshit."""

    def __init__(self, config: RoomConfig, rng: Optional[random.Random] = None) -> None:
        self.config = config
        self.players: List[BSPlayer] = []
        self.game_state: Optional[BSGameState] = None
        self.status = RoomStatus.WAITING
        self.lock = threading.RLock()
        self._rng = rng or random.Random()

    # Seat management -------------------------------------------------

    def add_player(self, player_id: str, player_name: str) -> Optional[BSPlayer]:
        if len(self.players) >= self.config.max_players:
            return None
        if self._find(player_id) is not None:
            return None
        player = BSPlayer(id=player_id, name=player_name, position=len(self.players))
        if self.status == RoomStatus.PLAYING and self.game_state is not None:
            # Joins the rotation when the next round is dealt.
            player.sitting_out = True
            player.last_action = "Sitting out"
        self.players.append(player)
        return player

    def remove_player(self, player_id: str) -> bool:
        idx = self._index_of(player_id)
        if idx is None:
            return False

        del self.players[idx]
        for position, player in enumerate(self.players):
            player.position = position

        if self.status == RoomStatus.PLAYING and len(self.get_active_players()) <= 1:
            self.status = RoomStatus.WAITING
            self.game_state = None
            return True

        state = self.game_state
        if state is None or not self.players:
            return True

        # Seats after the leaver shift down by one.
        n = len(self.players)
        if idx < state.dealer_index or (idx == state.dealer_index and idx > 0):
            state.dealer_index -= 1
        state.dealer_index %= n
        was_current = idx == state.current_player_index
        if idx < state.current_player_index:
            state.current_player_index -= 1
        state.current_player_index %= n
        if state.phase != BSPhase.BIDDING:
            return True
        if sum(1 for p in self.players if self._in_round(p)) < 2:
            # Nobody left to challenge; redeal with everyone still in the game.
            self.start_new_round()
        elif was_current:
            state.current_player_index = self._next_active_index((idx - 1) % n)
        return True

    # Round lifecycle -------------------------------------------------

    def can_start(self) -> bool:
        return len(self.players) >= 2 and self.status == RoomStatus.WAITING

    def start_game(self) -> None:
        if self.status == RoomStatus.PLAYING:
            raise RoomError("Game already in progress")
        if len(self.players) < 2:
            raise RoomError("Need at least 2 players to start")

        for player in self.players:
            player.card_count = STARTING_CARD_COUNT
            player.has_lost = False
            player.sitting_out = False
            player.cards = []
            player.last_action = None
        self.game_state = None
        self.status = RoomStatus.PLAYING
        self.start_new_round()

    def start_new_round(self) -> None:
        deck = create_shuffled_deck(self._rng)
        for player in self.players:
            player.cards = []
            player.last_action = None
            player.sitting_out = False
            if not player.has_lost:
                player.cards, deck = deal_cards(deck, player.card_count)

        previous = self.game_state
        dealer_index = (previous.dealer_index if previous else 0) % len(self.players)
        self.game_state = BSGameState(
            current_player_index=self._next_active_index(dealer_index),
            dealer_index=dealer_index,
            all_cards=[card for player in self.players for card in player.cards],
            round_number=previous.round_number + 1 if previous else 1,
        )

    def continue_to_next_round(self) -> None:
        state = self.game_state
        if state is None or state.phase != BSPhase.ROUND_END:
            raise RoomError("Cannot continue, not in round-end phase")
        if len(self.get_active_players()) <= 1:
            self.status = RoomStatus.FINISHED
            return
        self.start_new_round()

    # Action handling -------------------------------------------------

    def handle_action(self, player_id: str, action: BSAction) -> Optional[BSRoundResult]:
        state = self.game_state
        if state is None:
            raise RoomError("No game in progress")
        if state.phase != BSPhase.BIDDING:
            raise RoomError("Not in bidding phase")
        player = self._find(player_id)
        if player is None:
            raise RoomError("Player not found")
        if self.players[state.current_player_index].id != player_id:
            raise RoomError("Not your turn")

        if action.type == BSActionType.GUESS:
            self._handle_guess(player, action.guess, state)
            return None
        if action.type == BSActionType.BULLSHIT:
            return self._handle_bullshit(player_id, state)
        raise RoomError("Invalid action")

    def _handle_guess(self, player: BSPlayer, guess: Optional[HandGuess], state: BSGameState) -> None:
        if guess is None:
            raise RoomError("Invalid guess")
        if state.current_guess is not None and not is_higher_guess(guess, state.current_guess):
            raise RoomError("Guess must be higher than the current guess")

        state.current_guess = guess
        state.guess_history.append(GuessRecord(player_id=player.id, player_name=player.name, guess=guess))
        player.last_action = f"Guessed: {guess.description}"
        state.current_player_index = self._next_active_index(state.current_player_index)

    def _handle_bullshit(self, caller_id: str, state: BSGameState) -> BSRoundResult:
        guess = state.current_guess
        if guess is None or not state.guess_history:
            raise RoomError("No guess to call bullshit on")
        caller = self._find(caller_id)
        if caller is None:
            raise RoomError("Caller not found")
        guesser = self._find(state.guess_history[-1].player_id)
        if guesser is None:
            raise RoomError("Guesser not found")

        state.phase = BSPhase.REVEAL
        verification = verify_guess(state.all_cards, guess)

        # A true claim costs the challenger; a bluff costs the guesser.
        loser = caller if verification.exists else guesser
        loser.card_count += 1
        if loser.card_count >= ELIMINATION_CARD_COUNT:
            loser.has_lost = True
        caller.last_action = "Called bullshit"

        state.dealer_index = self.players.index(loser)
        state.phase = BSPhase.ROUND_END
        game_over = len(self.get_active_players()) <= 1
        if game_over:
            self.status = RoomStatus.FINISHED

        return BSRoundResult(
            was_successful=verification.exists,
            caller_id=caller.id,
            caller_name=caller.name,
            guesser_id=guesser.id,
            guesser_name=guesser.name,
            loser_id=loser.id,
            loser_name=loser.name,
            guess=guess,
            all_cards=list(state.all_cards),
            found_hand=list(verification.hand),
            eliminated=loser.has_lost,
            game_over=game_over,
        )

    # Queries ---------------------------------------------------------

    def get_active_players(self) -> List[BSPlayer]:
        return [p for p in self.players if not p.has_lost]

    def get_winner(self) -> Optional[BSPlayer]:
        if self.status != RoomStatus.FINISHED:
            return None
        active = self.get_active_players()
        return active[0] if len(active) == 1 else None

    def get_game_state_for_player(
        self,
        player_id: Optional[str],
        reveal_all: bool = False,
    ) -> Optional[Dict[str, object]]:
        """Per-viewer state: other hands and the pool stay hidden until the reveal."""
        state = self.game_state
        if state is None:
            return None
        revealed = reveal_all or state.phase in (BSPhase.REVEAL, BSPhase.ROUND_END)
        payload = state.to_dict(show_cards=revealed)
        payload["room_id"] = self.config.room_id
        payload["players"] = [p.to_dict(show_cards=revealed or p.id == player_id) for p in self.players]
        return payload

    def get_room(self, viewer_id: Optional[str] = None, reveal_all: bool = False) -> Dict[str, object]:
        return {
            "config": self.config.to_dict(),
            "status": self.status.value,
            "players": [p.to_dict(show_cards=reveal_all or p.id == viewer_id) for p in self.players],
            "game_state": self.get_game_state_for_player(viewer_id, reveal_all),
        }

    # Helpers ---------------------------------------------------------

    def _next_active_index(self, start: int) -> int:
        n = len(self.players)
        for offset in range(1, n + 1):
            idx = (start + offset) % n
            if self._in_round(self.players[idx]):
                return idx
        return start % n

    @staticmethod
    def _in_round(player: BSPlayer) -> bool:
        return not player.has_lost and not player.sitting_out

    def _find(self, player_id: str) -> Optional[BSPlayer]:
        idx = self._index_of(player_id)
        return self.players[idx] if idx is not None else None

    def _index_of(self, player_id: str) -> Optional[int]:
        for idx, player in enumerate(self.players):
            if player.id == player_id:
                return idx
        return None
