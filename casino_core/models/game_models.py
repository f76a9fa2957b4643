from decimal import Decimal
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel


class Currency(str, Enum):
    GC = "GC"  # Gold Coin, play money
    SC = "SC"  # Sweeps Cash, redeemable


class Risk(str, Enum):
    low = "Low"
    medium = "Medium"
    high = "High"


class Card(BaseModel):
    suit: Literal["H", "D", "C", "S"]
    rank: str
    value: int

    class Config:
        frozen = True
        from_attributes = True


class OutcomeModel(BaseModel):
    game_id: str
    total_win: Decimal
    is_big_win: bool
    free_spins_won: int = 0
    audit_seed: str
    rng_source: Literal["secure", "demo"] = "secure"

    class Config:
        frozen = True


class WinningLineModel(BaseModel):
    line_index: int
    symbol: str
    amount: Decimal

    class Config:
        frozen = True


class SlotOutcome(OutcomeModel):
    kind: Literal["slot"] = "slot"
    stop_indices: List[int]
    grid: List[List[str]]  # grid[row][reel]
    winning_lines: List[WinningLineModel]
    scatter_count: int
    free_spins_remaining: int = 0
    bonus_text: str = ""


class PlinkoOutcome(OutcomeModel):
    kind: Literal["plinko"] = "plinko"
    path: List[int]  # 0 = left, 1 = right, one entry per row
    bucket_index: int
    multiplier: float
    rows: int
    risk: Risk


class ScratchOutcome(OutcomeModel):
    kind: Literal["scratch"] = "scratch"
    grid: List[str]  # 9 symbols, row-major, decorative only
    prize: Decimal
    cost: Decimal
    currency: Currency
    is_win: bool
    tier: Literal["jackpot", "high", "mid", "low", "loser"]


class BingoCardResult(BaseModel):
    grid: List[List[int]]  # 0 marks the free space
    lines: int
    win: Decimal

    class Config:
        frozen = True


class BingoOutcome(OutcomeModel):
    kind: Literal["bingo"] = "bingo"
    drawn_balls: List[int]
    cards: List[BingoCardResult]
    wager_per_card: Decimal


class CardRoundOutcome(OutcomeModel):
    """Final result of a blackjack or poker round."""

    kind: Literal["blackjack", "poker"]
    round_id: str
    status: str
    hand_name: Optional[str] = None
    payout_multiplier: float
    wager: Decimal
    final_state: dict = {}  # hands at settlement, without the remaining deck


class Wager(BaseModel):
    """A stake on one play. units > 1 stakes amount once per unit (bingo cards)."""

    amount: Decimal
    currency: Currency
    game_id: str
    idempotency_key: str
    units: int = 1

    class Config:
        frozen = True

    @property
    def total(self) -> Decimal:
        return self.amount * self.units
