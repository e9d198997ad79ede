from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
SUITS = ("♠", "♥", "♦", "♣")
RANK_VALUES: Dict[str, int] = {rank: idx for idx, rank in enumerate(RANKS, start=2)}

WILD_RANK = "2"

# ASCII aliases accepted by parse_label ("Ts", "10h", "Ad").
_SUIT_ALIASES = {"s": "♠", "h": "♥", "d": "♦", "c": "♣"}
_RANK_ALIASES = {"T": "10"}

_RNG = random.Random()


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANK_VALUES:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def value(self) -> int:
        return RANK_VALUES[self.rank]

    @property
    def label(self) -> str:
        return f"{self.rank}{self.suit}"

    @property
    def is_wild(self) -> bool:
        return self.rank == WILD_RANK

    def to_dict(self) -> Dict[str, object]:
        return {"rank": self.rank, "suit": self.suit, "value": self.value}

    def __str__(self) -> str:
        return self.label


def create_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in RANKS]


def shuffle(deck: Sequence[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Fisher-Yates shuffle into a new list; the input is left untouched."""
    rng = rng or _RNG
    shuffled = list(deck)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def create_shuffled_deck(rng: Optional[random.Random] = None) -> List[Card]:
    return shuffle(create_deck(), rng)


def deal_cards(deck: Sequence[Card], count: int) -> Tuple[List[Card], List[Card]]:
    if count < 0:
        raise ValueError("Cannot deal a negative number of cards")
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    return list(deck[:count]), list(deck[count:])


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) < 2:
        raise ValueError(f"Invalid card label: {label}")
    rank, suit = label[:-1], label[-1]
    rank = _RANK_ALIASES.get(rank.upper(), rank.upper())
    suit = _SUIT_ALIASES.get(suit.lower(), suit)
    return Card(rank, suit)


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
