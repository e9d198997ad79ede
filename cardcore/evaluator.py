from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .cards import Card

ROYAL_FLUSH = 10
STRAIGHT_FLUSH = 9
FOUR_OF_A_KIND = 8
FULL_HOUSE = 7
FLUSH = 6
STRAIGHT = 5
THREE_OF_A_KIND = 4
TWO_PAIR = 3
PAIR = 2
HIGH_CARD = 1

HAND_NAMES = {
    ROYAL_FLUSH: "Royal Flush",
    STRAIGHT_FLUSH: "Straight Flush",
    FOUR_OF_A_KIND: "Four of a Kind",
    FULL_HOUSE: "Full House",
    FLUSH: "Flush",
    STRAIGHT: "Straight",
    THREE_OF_A_KIND: "Three of a Kind",
    TWO_PAIR: "Two Pair",
    PAIR: "Pair",
    HIGH_CARD: "High Card",
}

_WHEEL = [14, 5, 4, 3, 2]


@dataclass
class HandRanking:
    rank: int
    name: str
    cards: List[Card] = field(default_factory=list)
    tiebreaker: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "rank": self.rank,
            "name": self.name,
            "cards": [card.to_dict() for card in self.cards],
            "tiebreaker": list(self.tiebreaker),
        }


def default_win() -> HandRanking:
    """Placeholder ranking for a pot won because everyone else folded."""
    return HandRanking(rank=0, name="Winner by default")


def evaluate_hand(hole_cards: Sequence[Card], community_cards: Sequence[Card]) -> HandRanking:
    """Return the best 5-card ranking from hole plus community cards (5-7 cards)."""
    cards = list(hole_cards) + list(community_cards)
    if len(cards) < 5:
        raise ValueError(f"Need at least 5 cards to evaluate, got {len(cards)}")
    if len(cards) == 5:
        return _evaluate_five(cards)

    best: Optional[HandRanking] = None
    for combo in itertools.combinations(cards, 5):
        ranking = _evaluate_five(combo)
        if best is None or compare_hands(ranking, best) > 0:
            best = ranking
    assert best is not None
    return best


def compare_hands(hand1: HandRanking, hand2: HandRanking) -> int:
    if hand1.rank != hand2.rank:
        return 1 if hand1.rank > hand2.rank else -1
    for idx in range(max(len(hand1.tiebreaker), len(hand2.tiebreaker))):
        val1 = hand1.tiebreaker[idx] if idx < len(hand1.tiebreaker) else 0
        val2 = hand2.tiebreaker[idx] if idx < len(hand2.tiebreaker) else 0
        if val1 != val2:
            return 1 if val1 > val2 else -1
    return 0


def format_hand(hand: HandRanking) -> str:
    if not hand.cards:
        return hand.name
    return f"{hand.name} ({' '.join(card.label for card in hand.cards)})"


def _evaluate_five(cards: Sequence[Card]) -> HandRanking:
    ordered = sorted(cards, key=lambda card: card.value, reverse=True)
    values = [card.value for card in ordered]
    is_flush = len({card.suit for card in ordered}) == 1
    straight_high = _straight_high(values)

    counts = Counter(values)
    # Groups ordered by size, then by value: [(value, count), ...]
    groups = sorted(counts.items(), key=lambda item: (item[1], item[0]), reverse=True)
    shape = [count for _, count in groups]

    def ranking(rank: int, tiebreaker: List[int]) -> HandRanking:
        return HandRanking(rank=rank, name=HAND_NAMES[rank], cards=ordered, tiebreaker=tiebreaker)

    if is_flush and straight_high == 14:
        return ranking(ROYAL_FLUSH, [10])
    if is_flush and straight_high:
        return ranking(STRAIGHT_FLUSH, [straight_high])
    if shape[0] == 4:
        quad = groups[0][0]
        return ranking(FOUR_OF_A_KIND, [quad, groups[1][0]])
    if shape == [3, 2]:
        return ranking(FULL_HOUSE, [groups[0][0], groups[1][0]])
    if is_flush:
        return ranking(FLUSH, values)
    if straight_high:
        return ranking(STRAIGHT, [straight_high])
    if shape[0] == 3:
        trips = groups[0][0]
        return ranking(THREE_OF_A_KIND, [trips] + [v for v in values if v != trips])
    if shape[:2] == [2, 2]:
        pairs = sorted((groups[0][0], groups[1][0]), reverse=True)
        kicker = max(v for v in values if v not in pairs)
        return ranking(TWO_PAIR, pairs + [kicker])
    if shape[0] == 2:
        pair = groups[0][0]
        return ranking(PAIR, [pair] + [v for v in values if v != pair])
    return ranking(HIGH_CARD, values)


def _straight_high(values: List[int]) -> Optional[int]:
    distinct = sorted(set(values), reverse=True)
    if len(distinct) != 5:
        return None
    if distinct == _WHEEL:
        return 5  # wheel plays as a 5-high straight
    if distinct[0] - distinct[4] == 4:
        return distinct[0]
    return None
