from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column, Index
from sqlalchemy.types import JSON, Boolean, DateTime, Integer, Numeric, String, Uuid
from uuid6 import uuid7


class Base(DeclarativeBase):
    pass


class UserBalance(Base):
    __tablename__ = "user_balance"
    user_id = Column(String(64), primary_key=True)
    gc_balance = Column(Numeric(18, 2), nullable=False, default=0)
    sc_balance = Column(Numeric(18, 2), nullable=False, default=0)
    redeemable_sc = Column(Numeric(18, 2), nullable=False, default=0)
    is_guest = Column(Boolean, nullable=False, default=False)
    kyc_status = Column(String(16), nullable=False, default="unverified")
    has_unlocked_redemption = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now)
    last_activity_at = Column(DateTime, default=datetime.now)


class HistoryEntry(Base):
    """Append-only settlement record; rows are never updated."""

    __tablename__ = "transaction_events"
    id = Column(Uuid, primary_key=True, default=uuid7)
    user_id = Column(String(64), nullable=False)
    activity_id = Column(String(64), nullable=False)
    idempotency_key = Column(String(128), nullable=False, unique=True)
    round_id = Column(String(64), nullable=True)
    debit = Column(Numeric(18, 2), nullable=False, default=0)
    credit = Column(Numeric(18, 2), nullable=False, default=0)
    currency = Column(String(2), nullable=False)
    result = Column(String(16), nullable=False)
    audit_ref = Column(String(64), nullable=False)
    outcome = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (Index("ix_transaction_events_user_created", "user_id", "created_at"),)


class GameRound(Base):
    """Open blackjack/poker round; deleted when the round settles."""

    __tablename__ = "game_round"
    round_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), nullable=False)
    game = Column(String(16), nullable=False)
    wager = Column(Numeric(18, 2), nullable=False)
    currency = Column(String(2), nullable=False)
    stage = Column(String(16), nullable=False)
    state = Column(JSON, nullable=False)
    request_key = Column(String(128), nullable=False)
    audit_seed = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now)

    # one open round per player per table
    __table_args__ = (UniqueConstraint("user_id", "game", name="uq_game_round_user_game"),)


class BonusState(Base):
    __tablename__ = "bonus_state"
    user_id = Column(String(64), primary_key=True)
    game_id = Column(String(64), primary_key=True)
    free_spins_remaining = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.now)
