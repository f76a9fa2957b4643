"""Deck construction and the Fisher-Yates shuffle shared by the card games."""
from typing import List, MutableSequence, TypeVar

from casino_core.exceptions import DeckDepleted
from casino_core.models.game_models import Card

SUITS = ("H", "D", "C", "S")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
DECK_SIZE = len(SUITS) * len(RANKS)

T = TypeVar("T")


def card_value(rank: str) -> int:
    """Blackjack value of a rank: faces are 10, the Ace is 11."""
    if rank in ("J", "Q", "K"):
        return 10
    if rank == "A":
        return 11
    return int(rank)


def build_deck() -> List[Card]:
    return [Card(suit=suit, rank=rank, value=card_value(rank)) for suit in SUITS for rank in RANKS]


def fisher_yates_shuffle(items: MutableSequence[T], rng) -> MutableSequence[T]:
    """Shuffle in place, walking from the last index down to 1."""
    for i in range(len(items) - 1, 0, -1):
        j = rng.random_int(0, i)
        items[i], items[j] = items[j], items[i]
    return items


class Deck:
    """A shuffled deck; cards are dealt from the end of the list."""

    def __init__(self, cards: List[Card]):
        self.cards = cards

    @classmethod
    def shuffled(cls, rng) -> "Deck":
        return cls(fisher_yates_shuffle(build_deck(), rng))

    def draw(self) -> Card:
        if not self.cards:
            raise DeckDepleted("No cards left in the deck")
        return self.cards.pop()

    def __len__(self) -> int:
        return len(self.cards)
