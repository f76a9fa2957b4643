from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional, Union

from pydantic import BaseModel, Field

from casino_core.models.game_models import (
    BingoOutcome,
    Card,
    CardRoundOutcome,
    Currency,
    PlinkoOutcome,
    Risk,
    ScratchOutcome,
    SlotOutcome,
)
from casino_core.models.schema_models import HistoryResult, KycStatus

Outcome = Annotated[
    Union[SlotOutcome, PlinkoOutcome, ScratchOutcome, BingoOutcome, CardRoundOutcome],
    Field(discriminator="kind"),
]


class AccountModel(BaseModel):
    user_id: str
    is_guest: bool = False


class KycModel(BaseModel):
    kyc_status: KycStatus


class BalanceModel(BaseModel):
    user_id: str
    gc_balance: Decimal
    sc_balance: Decimal
    redeemable_sc: Decimal
    is_guest: bool
    kyc_status: KycStatus
    has_unlocked_redemption: bool

    class Config:
        from_attributes = True


class SpinModel(BaseModel):
    user_id: str
    game_id: str = "cosmic-cash"
    amount: Decimal
    currency: Currency
    idempotency_key: str
    free_spin: bool = False


class PlinkoModel(BaseModel):
    user_id: str
    amount: Decimal
    currency: Currency
    idempotency_key: str
    rows: int = 12
    risk: Risk = Risk.medium


class ScratchModel(BaseModel):
    user_id: str
    currency: Currency
    idempotency_key: str


class BingoModel(BaseModel):
    user_id: str
    amount: Decimal  # per card
    currency: Currency
    idempotency_key: str
    card_count: int = Field(default=4, ge=1, le=4)


class DealModel(BaseModel):
    user_id: str
    amount: Decimal
    currency: Currency
    idempotency_key: str


class RoundActionModel(BaseModel):
    user_id: str


class DrawModel(BaseModel):
    user_id: str
    held_indices: List[int] = []


class PurchaseModel(BaseModel):
    user_id: str
    payment_id: str
    package_id: int = Field(ge=0)


class RedeemModel(BaseModel):
    user_id: str
    amount: Decimal
    idempotency_key: str


class HistoryEntryModel(BaseModel):
    id: str
    activity_id: str
    timestamp: datetime
    debit: Decimal
    credit: Decimal
    currency: Currency
    result: HistoryResult
    audit_ref: str
    round_id: Optional[str] = None


class PlayResultModel(BaseModel):
    balance: BalanceModel
    outcome: Outcome
    replayed: bool = False


class BlackjackViewModel(BaseModel):
    round_id: str
    player_hand: List[Card]
    dealer_hand: List[Optional[Card]]  # None is the face-down hole card
    player_score: int
    dealer_score: Optional[int]
    status: str
    wager: Decimal
    payout: Decimal
    can_double_down: bool


class PokerViewModel(BaseModel):
    round_id: str
    hand: List[Card]
    stage: str
    held_indices: List[int]
    hand_name: Optional[str]
    wager: Decimal
    win_amount: Decimal


class RoundResultModel(BaseModel):
    balance: BalanceModel
    round: Union[BlackjackViewModel, PokerViewModel]
    outcome: Optional[CardRoundOutcome] = None
    replayed: bool = False


class LocationModel(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class PlinkoTableModel(BaseModel):
    rows: int
    risk: Risk
    multipliers: List[float]
    probabilities: List[float]
    expected_return: float
