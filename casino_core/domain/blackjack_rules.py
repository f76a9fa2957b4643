"""Blackjack scoring and the round state machine.

active -> player_bust | dealer_bust | player_win | dealer_win | push
"""
from decimal import Decimal
from enum import Enum
from typing import List, Sequence

from casino_core.domain.cards import Deck
from casino_core.exceptions import InvalidRoundState
from casino_core.models.game_models import Card

BLACKJACK = 21
DEALER_STANDS_ON = 17
NATURAL_PAYOUT = 2.5


class BlackjackStatus(str, Enum):
    active = "active"
    player_bust = "player_bust"
    dealer_bust = "dealer_bust"
    player_win = "player_win"
    dealer_win = "dealer_win"
    push = "push"


PAYOUT_MULTIPLIERS = {
    BlackjackStatus.player_bust: 0.0,
    BlackjackStatus.dealer_bust: 2.0,
    BlackjackStatus.player_win: 2.0,
    BlackjackStatus.dealer_win: 0.0,
    BlackjackStatus.push: 1.0,
}


def score_hand(cards: Sequence[Card]) -> int:
    """Best total of a hand, reducing Aces from 11 to 1 one at a time."""
    return hand_total(cards)[0]


def hand_total(cards: Sequence[Card]) -> tuple[int, bool]:
    """Return the total and whether an Ace is still counted as 11."""
    total = sum(card.value for card in cards)
    aces = sum(1 for card in cards if card.rank == "A")
    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1
    return total, aces > 0


def is_natural(cards: Sequence[Card]) -> bool:
    return len(cards) == 2 and score_hand(cards) == BLACKJACK


class BlackjackRound:
    """One hand of blackjack against the dealer.

    The deck is consumed from the end; payout_multiplier applies to the
    (possibly doubled) wager once the round is terminal.
    """

    def __init__(
        self,
        deck: Deck,
        wager: Decimal,
        player_hand: List[Card] | None = None,
        dealer_hand: List[Card] | None = None,
        status: BlackjackStatus = BlackjackStatus.active,
        payout_multiplier: float = 0.0,
        doubled: bool = False,
        hit_soft_17: bool = False,
    ):
        self.deck = deck
        self.wager = Decimal(wager)
        self.player_hand = player_hand or []
        self.dealer_hand = dealer_hand or []
        self.status = BlackjackStatus(status)
        self.payout_multiplier = payout_multiplier
        self.doubled = doubled
        self.hit_soft_17 = hit_soft_17

    @property
    def player_score(self) -> int:
        return score_hand(self.player_hand)

    @property
    def dealer_score(self) -> int:
        return score_hand(self.dealer_hand)

    @property
    def is_over(self) -> bool:
        return self.status != BlackjackStatus.active

    @property
    def payout(self) -> Decimal:
        return self.wager * Decimal(str(self.payout_multiplier))

    def _require_active(self, action: str):
        if self.is_over:
            raise InvalidRoundState(f"Cannot {action}: round is {self.status.value}")

    def _finish(self, status: BlackjackStatus, multiplier: float | None = None):
        self.status = status
        self.payout_multiplier = PAYOUT_MULTIPLIERS[status] if multiplier is None else multiplier

    def deal(self):
        """Opening deal: player, dealer, player, dealer."""
        if self.player_hand or self.dealer_hand:
            raise InvalidRoundState("Cards have already been dealt")
        for _ in range(2):
            self.player_hand.append(self.deck.draw())
            self.dealer_hand.append(self.deck.draw())

        player_natural = is_natural(self.player_hand)
        dealer_natural = is_natural(self.dealer_hand)
        if player_natural and dealer_natural:
            self._finish(BlackjackStatus.push)
        elif player_natural:
            self._finish(BlackjackStatus.player_win, NATURAL_PAYOUT)

    def hit(self):
        self._require_active("hit")
        self.player_hand.append(self.deck.draw())
        if self.player_score > BLACKJACK:
            self._finish(BlackjackStatus.player_bust)

    def stand(self):
        self._require_active("stand")
        self._play_dealer()
        self._resolve()

    def can_double_down(self) -> bool:
        return not self.is_over and len(self.player_hand) == 2 and not self.doubled

    def double_down(self):
        """Double the wager, take exactly one card, then let the dealer play."""
        self._require_active("double down")
        if not self.can_double_down():
            raise InvalidRoundState("Double down is only allowed on the first two cards")
        self.wager *= 2
        self.doubled = True
        self.player_hand.append(self.deck.draw())
        if self.player_score > BLACKJACK:
            self._finish(BlackjackStatus.player_bust)
            return
        self._play_dealer()
        self._resolve()

    def _dealer_should_hit(self) -> bool:
        total, soft = hand_total(self.dealer_hand)
        if total < DEALER_STANDS_ON:
            return True
        return self.hit_soft_17 and soft and total == DEALER_STANDS_ON

    def _play_dealer(self):
        while self._dealer_should_hit():
            self.dealer_hand.append(self.deck.draw())

    def _resolve(self):
        player, dealer = self.player_score, self.dealer_score
        if dealer > BLACKJACK:
            self._finish(BlackjackStatus.dealer_bust)
        elif player > dealer:
            self._finish(BlackjackStatus.player_win)
        elif player < dealer:
            self._finish(BlackjackStatus.dealer_win)
        else:
            self._finish(BlackjackStatus.push)

    def to_state(self) -> dict:
        return {
            "deck": [card.model_dump() for card in self.deck.cards],
            "player_hand": [card.model_dump() for card in self.player_hand],
            "dealer_hand": [card.model_dump() for card in self.dealer_hand],
            "status": self.status.value,
            "payout_multiplier": self.payout_multiplier,
            "doubled": self.doubled,
            "hit_soft_17": self.hit_soft_17,
        }

    @classmethod
    def from_state(cls, state: dict, wager: Decimal) -> "BlackjackRound":
        return cls(
            deck=Deck([Card.model_validate(card) for card in state["deck"]]),
            wager=wager,
            player_hand=[Card.model_validate(card) for card in state["player_hand"]],
            dealer_hand=[Card.model_validate(card) for card in state["dealer_hand"]],
            status=state["status"],
            payout_multiplier=state["payout_multiplier"],
            doubled=state["doubled"],
            hit_soft_17=state.get("hit_soft_17", False),
        )
