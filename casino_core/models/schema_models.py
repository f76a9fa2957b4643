from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from casino_core.models.game_models import Currency

KycStatus = Literal["unverified", "pending", "verified", "rejected"]
HistoryResult = Literal["WIN", "LOSS", "PUSH", "STAKE", "REFUND", "PURCHASE", "REDEEM"]


class UserBalanceSchema(BaseModel):
    user_id: str
    gc_balance: Decimal
    sc_balance: Decimal
    redeemable_sc: Decimal
    is_guest: bool = False
    kyc_status: KycStatus = "unverified"
    has_unlocked_redemption: bool = False
    created_at: datetime
    last_activity_at: datetime

    class Config:
        from_attributes = True

    @model_validator(mode="after")
    def check_ledger_invariants(self):
        if self.gc_balance < 0 or self.sc_balance < 0:
            raise ValueError("balances must not be negative")
        if self.redeemable_sc < 0 or self.redeemable_sc > self.sc_balance:
            raise ValueError("redeemable_sc must be between 0 and sc_balance")
        return self

    def balance_of(self, currency: Currency) -> Decimal:
        return self.gc_balance if Currency(currency) == Currency.GC else self.sc_balance


class HistoryEntrySchema(BaseModel):
    id: UUID
    user_id: str
    activity_id: str
    idempotency_key: str
    round_id: Optional[str] = None
    debit: Decimal = Field(ge=0)
    credit: Decimal = Field(ge=0)
    currency: Currency
    result: HistoryResult
    audit_ref: str
    outcome: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True
        frozen = True


class RoundStateSchema(BaseModel):
    round_id: str
    user_id: str
    game: Literal["blackjack", "poker"]
    wager: Decimal = Field(gt=0)
    currency: Currency
    stage: str
    state: dict
    request_key: str
    audit_seed: str
    version: int = Field(ge=1)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class LedgerTransaction(BaseModel):
    """One atomic balance mutation plus the history entry that records it.

    free_spins_after / round_state / close_round_id are written in the same
    transaction as the balance so a crash cannot split them.
    """

    user_id: str
    currency: Currency
    debit: Decimal = Field(default=Decimal("0"), ge=0)
    credit: Decimal = Field(default=Decimal("0"), ge=0)
    redeemable_delta: Decimal = Decimal("0")
    activity_id: str
    idempotency_key: str
    result: HistoryResult
    audit_ref: str
    outcome: Optional[dict] = None
    round_id: Optional[str] = None
    unlock_redemption: bool = False
    bonus_game_id: Optional[str] = None
    consume_free_spin: bool = False
    free_spins_after: Optional[int] = Field(default=None, ge=0)
    round_state: Optional[RoundStateSchema] = None
    close_round_id: Optional[str] = None


class SettlementResult(BaseModel):
    balance: UserBalanceSchema
    entry: HistoryEntrySchema
    replayed: bool = False
