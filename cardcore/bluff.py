"""Existence checks for BS Poker claims.

A claim ("pair of Kings", "flush", ...) is true when the pattern can be built
from the pooled cards of every seated player. Every 2 is wild unless the claim
is about 2s itself. Checks spend natural cards first and only take as many
wilds as the pattern still needs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence

from .cards import RANK_VALUES, RANKS, SUITS, WILD_RANK, Card
from .models import RoomError


class HandType(str, Enum):
    HIGH_CARD = "high-card"
    PAIR = "pair"
    TWO_PAIR = "two-pair"
    THREE_OF_A_KIND = "three-of-a-kind"
    STRAIGHT = "straight"
    FLUSH = "flush"
    FULL_HOUSE = "full-house"
    FOUR_OF_A_KIND = "four-of-a-kind"
    STRAIGHT_FLUSH = "straight-flush"

    @property
    def strength(self) -> int:
        return HAND_TYPE_STRENGTH[self]

    @property
    def needs_rank(self) -> bool:
        return self in RANKED_TYPES


HAND_TYPE_STRENGTH = {hand_type: idx for idx, hand_type in enumerate(HandType, start=1)}

RANKED_TYPES = frozenset(
    {
        HandType.HIGH_CARD,
        HandType.PAIR,
        HandType.TWO_PAIR,
        HandType.THREE_OF_A_KIND,
        HandType.FOUR_OF_A_KIND,
    }
)


@dataclass(frozen=True)
class HandGuess:
    type: HandType
    rank: Optional[str] = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "HandGuess":
        if not isinstance(data, dict):
            raise RoomError("Invalid guess")
        try:
            hand_type = HandType(data.get("type"))
        except ValueError as exc:
            raise RoomError("Invalid guess") from exc
        rank = data.get("rank")
        if rank is not None:
            rank = str(rank).upper()
            if rank not in RANK_VALUES:
                raise RoomError("Invalid guess")
        if hand_type.needs_rank and rank is None:
            raise RoomError("Invalid guess")
        if not hand_type.needs_rank:
            rank = None
        description = data.get("description")
        if not isinstance(description, str) or not description.strip():
            description = describe_guess(hand_type, rank)
        return cls(type=hand_type, rank=rank, description=description.strip())

    @property
    def rank_value(self) -> Optional[int]:
        return RANK_VALUES[self.rank] if self.rank else None

    def to_dict(self) -> Dict[str, object]:
        return {"type": self.type.value, "rank": self.rank, "description": self.description}


def describe_guess(hand_type: HandType, rank: Optional[str]) -> str:
    if hand_type == HandType.HIGH_CARD:
        return f"{rank} high"
    if hand_type == HandType.PAIR:
        return f"Pair of {rank}s"
    if hand_type == HandType.TWO_PAIR:
        return f"Two pair, {rank}s high"
    if hand_type == HandType.THREE_OF_A_KIND:
        return f"Three {rank}s"
    if hand_type == HandType.FOUR_OF_A_KIND:
        return f"Four {rank}s"
    return hand_type.value.replace("-", " ").capitalize()


@dataclass
class GuessVerification:
    exists: bool
    hand: List[Card] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {"exists": self.exists, "hand": [card.to_dict() for card in self.hand]}


def _missing() -> GuessVerification:
    return GuessVerification(exists=False)


def verify_guess(all_cards: Sequence[Card], guess: HandGuess) -> GuessVerification:
    cards = list(all_cards)
    check = _CHECKS.get(guess.type)
    if check is None:
        return _missing()
    if guess.type.needs_rank and guess.rank is None:
        return _missing()
    return check(cards, guess.rank)


def is_higher_guess(guess: HandGuess, other: HandGuess) -> bool:
    """True when ``guess`` strictly outbids ``other``."""
    if guess.type.strength != other.type.strength:
        return guess.type.strength > other.type.strength
    if guess.rank_value is None or other.rank_value is None:
        return False
    return guess.rank_value > other.rank_value


# Pattern checks ----------------------------------------------------------


def _wilds(cards: Sequence[Card], allow: bool = True) -> List[Card]:
    if not allow:
        return []
    return [card for card in cards if card.is_wild]


def _of_a_kind(cards: Sequence[Card], rank: str, size: int, allow_wilds: bool) -> GuessVerification:
    naturals = [card for card in cards if card.rank == rank][:size]
    # Natural 2s are already counted above when the claim is about 2s.
    wilds = _wilds(cards, allow_wilds and rank != WILD_RANK)
    needed = size - len(naturals)
    if needed > len(wilds):
        return _missing()
    return GuessVerification(exists=True, hand=naturals + wilds[:needed])


def _check_group(size: int) -> Callable[[List[Card], Optional[str]], GuessVerification]:
    def check(cards: List[Card], rank: Optional[str]) -> GuessVerification:
        assert rank is not None
        return _of_a_kind(cards, rank, size, allow_wilds=True)

    return check


def _check_two_pair(cards: List[Card], rank: Optional[str]) -> GuessVerification:
    assert rank is not None
    allow_wilds = rank != WILD_RANK
    first = _of_a_kind(cards, rank, 2, allow_wilds)
    if not first.exists:
        return _missing()
    remaining = [card for card in cards if card not in first.hand]
    for second_rank in reversed(RANKS):
        if second_rank in (rank, WILD_RANK):
            continue
        second = _of_a_kind(remaining, second_rank, 2, allow_wilds)
        if second.exists:
            return GuessVerification(exists=True, hand=first.hand + second.hand)
    return _missing()


def _check_full_house(cards: List[Card], rank: Optional[str]) -> GuessVerification:
    for trips_rank in reversed(RANKS):
        if trips_rank == WILD_RANK:
            continue
        trips = _of_a_kind(cards, trips_rank, 3, allow_wilds=True)
        if not trips.exists:
            continue
        remaining = [card for card in cards if card not in trips.hand]
        for pair_rank in reversed(RANKS):
            if pair_rank in (trips_rank, WILD_RANK):
                continue
            pair = _of_a_kind(remaining, pair_rank, 2, allow_wilds=True)
            if pair.exists:
                return GuessVerification(exists=True, hand=trips.hand + pair.hand)
    return _missing()


def _runs() -> List[List[str]]:
    # Ace-high first down to 2-6, then the wheel. No wraparound.
    runs = [list(RANKS[start : start + 5]) for start in range(len(RANKS) - 5, -1, -1)]
    runs.append(["A", "2", "3", "4", "5"])
    return runs


_RUNS = _runs()


def _find_run(naturals: Sequence[Card], wilds: Sequence[Card]) -> Optional[List[Card]]:
    by_rank: Dict[str, Card] = {}
    for card in naturals:
        by_rank.setdefault(card.rank, card)
    for run in _RUNS:
        hand: List[Card] = []
        wilds_used = 0
        for rank in run:
            card = by_rank.get(rank)
            if card is not None:
                hand.append(card)
            elif wilds_used < len(wilds):
                hand.append(wilds[wilds_used])
                wilds_used += 1
            else:
                break
        if len(hand) == 5:
            return hand
    return None


def _check_straight(cards: List[Card], rank: Optional[str]) -> GuessVerification:
    naturals = [card for card in cards if not card.is_wild]
    hand = _find_run(naturals, _wilds(cards))
    return GuessVerification(exists=True, hand=hand) if hand else _missing()


def _check_flush(cards: List[Card], rank: Optional[str]) -> GuessVerification:
    wilds = _wilds(cards)
    for suit in SUITS:
        suited = [card for card in cards if card.suit == suit and not card.is_wild][:5]
        needed = 5 - len(suited)
        if needed <= len(wilds):
            return GuessVerification(exists=True, hand=suited + wilds[:needed])
    return _missing()


def _check_straight_flush(cards: List[Card], rank: Optional[str]) -> GuessVerification:
    wilds = _wilds(cards)
    for suit in SUITS:
        suited = [card for card in cards if card.suit == suit and not card.is_wild]
        hand = _find_run(suited, wilds)
        if hand:
            return GuessVerification(exists=True, hand=hand)
    return _missing()


_CHECKS: Dict[HandType, Callable[[List[Card], Optional[str]], GuessVerification]] = {
    HandType.HIGH_CARD: _check_group(1),
    HandType.PAIR: _check_group(2),
    HandType.TWO_PAIR: _check_two_pair,
    HandType.THREE_OF_A_KIND: _check_group(3),
    HandType.FOUR_OF_A_KIND: _check_group(4),
    HandType.STRAIGHT: _check_straight,
    HandType.FLUSH: _check_flush,
    HandType.FULL_HOUSE: _check_full_house,
    HandType.STRAIGHT_FLUSH: _check_straight_flush,
}
