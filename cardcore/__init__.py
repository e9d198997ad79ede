"""Card room engine: decks, evaluators and the two room state machines."""

from .bluff import HandGuess, HandType, is_higher_guess, verify_guess
from .bspoker import BSAction, BSPokerRoom, BSRoundResult
from .cards import Card, RANKS, SUITS, create_deck, create_shuffled_deck, deal_cards, shuffle
from .evaluator import HandRanking, compare_hands, evaluate_hand
from .holdem import HoldemRoom
from .models import CreateRoomRequest, HoldemAction, RoomConfig, RoomError, RoomStatus
from .rooms import BSRoomManager, HoldemRoomManager

__all__ = [
    "Card",
    "RANKS",
    "SUITS",
    "create_deck",
    "create_shuffled_deck",
    "deal_cards",
    "shuffle",
    "HandRanking",
    "compare_hands",
    "evaluate_hand",
    "HandGuess",
    "HandType",
    "is_higher_guess",
    "verify_guess",
    "HoldemRoom",
    "HoldemAction",
    "BSPokerRoom",
    "BSAction",
    "BSRoundResult",
    "CreateRoomRequest",
    "RoomConfig",
    "RoomError",
    "RoomStatus",
    "HoldemRoomManager",
    "BSRoomManager",
]
