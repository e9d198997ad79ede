import pytest

from cardcore.bluff import HandGuess, HandType, describe_guess, is_higher_guess, verify_guess
from cardcore.models import RoomError

from .helpers import cards


def claim(hand_type, rank=None):
    return HandGuess.from_dict({"type": hand_type.value, "rank": rank})


def test_wild_twos_complete_a_pair():
    pool = cards(["2s", "2h", "7d", "9c"])
    result = verify_guess(pool, claim(HandType.PAIR, "9"))
    assert result.exists
    assert len(result.hand) == 2
    assert cards(["9c"])[0] in result.hand


def test_two_wilds_alone_make_any_pair():
    pool = cards(["2s", "2h", "7d", "9c"])
    assert verify_guess(pool, claim(HandType.PAIR, "K")).exists


def test_missing_rank_without_wilds_is_false():
    pool = cards(["3s", "5h", "7d", "9c", "Jd"])
    assert not verify_guess(pool, claim(HandType.PAIR, "K")).exists
    assert not verify_guess(pool, claim(HandType.HIGH_CARD, "K")).exists
    assert verify_guess(pool, claim(HandType.HIGH_CARD, "J")).exists


def test_claims_about_twos_use_only_natural_twos():
    pool = cards(["2s", "Kh", "Kd"])
    assert verify_guess(pool, claim(HandType.HIGH_CARD, "2")).exists
    assert not verify_guess(pool, claim(HandType.PAIR, "2")).exists
    assert verify_guess(cards(["2s", "2d"]), claim(HandType.PAIR, "2")).exists


def test_three_and_four_of_a_kind():
    pool = cards(["Qs", "Qh", "2d", "5c", "8h"])
    assert verify_guess(pool, claim(HandType.THREE_OF_A_KIND, "Q")).exists
    assert not verify_guess(pool, claim(HandType.FOUR_OF_A_KIND, "Q")).exists


def test_two_pair_needs_a_second_distinct_rank():
    pool = cards(["Ks", "Kh", "7d", "7c", "4h"])
    assert verify_guess(pool, claim(HandType.TWO_PAIR, "K")).exists
    assert not verify_guess(cards(["Ks", "Kh", "7d", "4h"]), claim(HandType.TWO_PAIR, "K")).exists


def test_two_pair_wilds_cannot_be_counted_twice():
    pool = cards(["Ks", "2h", "7d", "4c"])
    assert not verify_guess(pool, claim(HandType.TWO_PAIR, "K")).exists
    pool = cards(["Ks", "2h", "7d", "2c"])
    assert verify_guess(pool, claim(HandType.TWO_PAIR, "K")).exists


def test_full_house():
    assert verify_guess(cards(["9s", "9h", "9d", "4c", "4h"]), claim(HandType.FULL_HOUSE)).exists
    assert verify_guess(cards(["9s", "9h", "2d", "4c", "4h"]), claim(HandType.FULL_HOUSE)).exists
    assert not verify_guess(cards(["9s", "9h", "5d", "4c", "4h"]), claim(HandType.FULL_HOUSE)).exists


def test_straight_with_wild_gap_and_wheel():
    assert verify_guess(cards(["5s", "6h", "2d", "8c", "9h"]), claim(HandType.STRAIGHT)).exists
    assert verify_guess(cards(["As", "3h", "4d", "5c", "2h"]), claim(HandType.STRAIGHT)).exists
    # No wraparound through the ace.
    assert not verify_guess(cards(["Qs", "Kh", "Ad", "3c", "4h"]), claim(HandType.STRAIGHT)).exists


def test_flush_counts_wilds_of_any_suit():
    assert verify_guess(cards(["Ah", "9h", "6h", "4h", "2s"]), claim(HandType.FLUSH)).exists
    assert not verify_guess(cards(["Ah", "9h", "6h", "4h", "Ks"]), claim(HandType.FLUSH)).exists


def test_straight_flush_requires_one_suit():
    assert verify_guess(cards(["5h", "6h", "7h", "8h", "2c"]), claim(HandType.STRAIGHT_FLUSH)).exists
    assert not verify_guess(cards(["5h", "6h", "7h", "8d", "9h"]), claim(HandType.STRAIGHT_FLUSH)).exists


def test_is_higher_guess_orders_by_type_then_rank():
    assert is_higher_guess(claim(HandType.PAIR, "3"), claim(HandType.HIGH_CARD, "A"))
    assert is_higher_guess(claim(HandType.PAIR, "K"), claim(HandType.PAIR, "Q"))
    assert not is_higher_guess(claim(HandType.PAIR, "Q"), claim(HandType.PAIR, "Q"))
    assert not is_higher_guess(claim(HandType.PAIR, "J"), claim(HandType.PAIR, "Q"))
    assert not is_higher_guess(claim(HandType.STRAIGHT), claim(HandType.STRAIGHT))
    assert is_higher_guess(claim(HandType.STRAIGHT_FLUSH), claim(HandType.FOUR_OF_A_KIND, "A"))


def test_guess_parsing():
    parsed = HandGuess.from_dict({"type": "pair", "rank": "k"})
    assert parsed.rank == "K"
    assert parsed.description == "Pair of Ks"
    assert HandGuess.from_dict({"type": "flush", "rank": "A"}).rank is None
    assert describe_guess(HandType.FULL_HOUSE, None) == "Full house"
    with pytest.raises(RoomError, match="Invalid guess"):
        HandGuess.from_dict({"type": "pair"})
    with pytest.raises(RoomError, match="Invalid guess"):
        HandGuess.from_dict({"type": "five-of-a-kind", "rank": "A"})
