"""Five-card draw, Jacks or Better paytable."""
from collections import Counter
from decimal import Decimal
from enum import Enum
from typing import Iterable, List, Sequence

from casino_core.domain.cards import Deck
from casino_core.exceptions import InvalidRoundState
from casino_core.models.game_models import Card

HAND_SIZE = 5
RANK_ORDER = {rank: index for index, rank in enumerate(("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A"), start=2)}
WHEEL = [2, 3, 4, 5, 14]
ROYAL = [10, 11, 12, 13, 14]
HIGH_PAIRS = {"J", "Q", "K", "A"}


class HandRank(str, Enum):
    royal_flush = "Royal Flush"
    straight_flush = "Straight Flush"
    four_of_a_kind = "Four of a Kind"
    full_house = "Full House"
    flush = "Flush"
    straight = "Straight"
    three_of_a_kind = "Three of a Kind"
    two_pair = "Two Pair"
    jacks_or_better = "Jacks or Better"
    high_card = "High Card"


PAYTABLE = {
    HandRank.royal_flush: 800,
    HandRank.straight_flush: 50,
    HandRank.four_of_a_kind: 25,
    HandRank.full_house: 9,
    HandRank.flush: 6,
    HandRank.straight: 4,
    HandRank.three_of_a_kind: 3,
    HandRank.two_pair: 2,
    HandRank.jacks_or_better: 1,
    HandRank.high_card: 0,
}


class PokerStage(str, Enum):
    draw = "draw"  # dealt, waiting for the hold selection
    over = "over"


def is_flush(cards: Sequence[Card]) -> bool:
    return len({card.suit for card in cards}) == 1


def is_straight(ranks: List[int]) -> bool:
    """ranks must be sorted; A-2-3-4-5 counts as a straight."""
    if ranks == WHEEL:
        return True
    return len(set(ranks)) == HAND_SIZE and ranks[-1] - ranks[0] == HAND_SIZE - 1


def classify_hand(cards: Sequence[Card]) -> HandRank:
    if len(cards) != HAND_SIZE:
        raise ValueError(f"A poker hand has exactly {HAND_SIZE} cards")
    ranks = sorted(RANK_ORDER[card.rank] for card in cards)
    flush = is_flush(cards)
    straight = is_straight(ranks)
    counts = sorted(Counter(card.rank for card in cards).values(), reverse=True)

    if flush and straight:
        return HandRank.royal_flush if ranks == ROYAL else HandRank.straight_flush
    if counts[0] == 4:
        return HandRank.four_of_a_kind
    if counts[:2] == [3, 2]:
        return HandRank.full_house
    if flush:
        return HandRank.flush
    if straight:
        return HandRank.straight
    if counts[0] == 3:
        return HandRank.three_of_a_kind
    if counts[:2] == [2, 2]:
        return HandRank.two_pair
    if counts[0] == 2:
        pair_rank = next(rank for rank, n in Counter(card.rank for card in cards).items() if n == 2)
        if pair_rank in HIGH_PAIRS:
            return HandRank.jacks_or_better
    return HandRank.high_card


def payout_multiplier(rank: HandRank) -> int:
    return PAYTABLE[rank]


class PokerRound:
    """Deal five, hold any subset, draw once, score."""

    def __init__(
        self,
        deck: Deck,
        wager: Decimal,
        hand: List[Card] | None = None,
        stage: PokerStage = PokerStage.draw,
        held_indices: List[int] | None = None,
        hand_rank: HandRank | None = None,
    ):
        self.deck = deck
        self.wager = Decimal(wager)
        self.hand = hand or []
        self.stage = PokerStage(stage)
        self.held_indices = held_indices or []
        self.hand_rank = HandRank(hand_rank) if hand_rank else None

    @property
    def is_over(self) -> bool:
        return self.stage == PokerStage.over

    @property
    def payout_multiplier(self) -> int:
        return PAYTABLE[self.hand_rank] if self.hand_rank else 0

    @property
    def payout(self) -> Decimal:
        return self.wager * self.payout_multiplier

    def deal(self):
        if self.hand:
            raise InvalidRoundState("Cards have already been dealt")
        self.hand = [self.deck.draw() for _ in range(HAND_SIZE)]
        self.stage = PokerStage.draw

    def draw(self, held_indices: Iterable[int]):
        """Replace every position that is not held, then finish the round."""
        if self.stage != PokerStage.draw:
            raise InvalidRoundState(f"Cannot draw: round is {self.stage.value}")
        held = sorted(set(held_indices))
        if any(index < 0 or index >= HAND_SIZE for index in held):
            raise InvalidRoundState(f"Held positions must be between 0 and {HAND_SIZE - 1}")
        for position in range(HAND_SIZE):
            if position not in held:
                self.hand[position] = self.deck.draw()
        self.held_indices = held
        self.hand_rank = classify_hand(self.hand)
        self.stage = PokerStage.over

    def to_state(self) -> dict:
        return {
            "deck": [card.model_dump() for card in self.deck.cards],
            "hand": [card.model_dump() for card in self.hand],
            "stage": self.stage.value,
            "held_indices": self.held_indices,
            "hand_rank": self.hand_rank.value if self.hand_rank else None,
        }

    @classmethod
    def from_state(cls, state: dict, wager: Decimal) -> "PokerRound":
        return cls(
            deck=Deck([Card.model_validate(card) for card in state["deck"]]),
            wager=wager,
            hand=[Card.model_validate(card) for card in state["hand"]],
            stage=state["stage"],
            held_indices=state.get("held_indices") or [],
            hand_rank=state.get("hand_rank"),
        )
