"""Ledger interface and the in-memory implementation.

The settlement coordinator depends only on ``Ledger``; which store backs it
(SQL via ``SqlLedger`` or this module's ``InMemoryLedger``) is a deployment
choice.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from uuid6 import uuid7

from casino_core.converter import DataConverter
from casino_core.exceptions import (
    AccountNotFound,
    IdempotencyConflict,
    InsufficientFunds,
    InvalidRoundState,
)
from casino_core.models.game_models import Currency
from casino_core.models.schema_models import (
    HistoryEntrySchema,
    LedgerTransaction,
    RoundStateSchema,
    SettlementResult,
    UserBalanceSchema,
)

Precondition = Callable[[UserBalanceSchema], None]


def check_replay(existing: HistoryEntrySchema, tx: LedgerTransaction):
    """A reused key must belong to the same user and activity."""
    if existing.user_id != tx.user_id or existing.activity_id != tx.activity_id:
        raise IdempotencyConflict(f"Idempotency key {tx.idempotency_key} was used for another request")


def compute_posting(balance: UserBalanceSchema, tx: LedgerTransaction, free_spins: int) -> tuple[dict, Optional[int]]:
    """Work out the balance fields and free-spin count a transaction leads to.

    Raises the domain error instead of returning when the transaction may
    not be applied; nothing has been written at that point.

    Args:
        balance (UserBalanceSchema): Current, locked balance
        tx (LedgerTransaction): Transaction to apply
        free_spins (int): Current free-spin count for tx.bonus_game_id

    Returns:
        tuple[dict, Optional[int]]: Updated balance fields and the free-spin
            count to store, None when it is unchanged
    """
    if tx.consume_free_spin and free_spins <= 0:
        raise InvalidRoundState("No free spins remaining")

    current = balance.balance_of(tx.currency)
    if tx.debit > current:
        raise InsufficientFunds(f"{tx.currency.value} balance {current} is below {tx.debit}")

    fields = {
        "gc_balance": balance.gc_balance,
        "sc_balance": balance.sc_balance,
        "redeemable_sc": balance.redeemable_sc,
        "has_unlocked_redemption": balance.has_unlocked_redemption or tx.unlock_redemption,
        "last_activity_at": datetime.now(),
    }
    new_amount = current - tx.debit + tx.credit
    if tx.currency == Currency.GC:
        fields["gc_balance"] = new_amount
    else:
        fields["sc_balance"] = new_amount
        redeemable = balance.redeemable_sc + tx.redeemable_delta
        # redeemable is a sub-ledger of the SC balance
        fields["redeemable_sc"] = max(Decimal("0"), min(redeemable, new_amount))

    free_spins_after = tx.free_spins_after if tx.bonus_game_id else None
    return fields, free_spins_after


class Ledger(ABC):
    """Transactional store for balances, history, open rounds and free spins."""

    @abstractmethod
    async def create_account(self, user_id: str, *, is_guest: bool, gc_balance: Decimal, sc_balance: Decimal) -> UserBalanceSchema:
        """Create a balance record, or return the existing one unchanged."""

    @abstractmethod
    async def get_balance(self, user_id: str) -> UserBalanceSchema: ...

    @abstractmethod
    async def set_kyc_status(self, user_id: str, kyc_status: str) -> UserBalanceSchema: ...

    @abstractmethod
    async def apply_transaction(self, tx: LedgerTransaction, precondition: Precondition | None = None) -> SettlementResult:
        """Apply a transaction exactly once.

        A transaction whose idempotency key was already applied returns the
        stored entry with ``replayed=True`` and changes nothing.
        """

    @abstractmethod
    async def find_history(self, idempotency_key: str) -> HistoryEntrySchema | None: ...

    @abstractmethod
    async def list_history(
        self, user_id: str, since: datetime | None = None, until: datetime | None = None, limit: int = 50
    ) -> List[HistoryEntrySchema]: ...

    @abstractmethod
    async def get_free_spins(self, user_id: str, game_id: str) -> int: ...

    @abstractmethod
    async def get_round(self, round_id: str) -> RoundStateSchema | None: ...

    @abstractmethod
    async def find_active_round(self, user_id: str, game: str) -> RoundStateSchema | None: ...

    @abstractmethod
    async def save_round(self, round_state: RoundStateSchema) -> RoundStateSchema:
        """Store the next version of an open round without touching balances."""

    @abstractmethod
    async def reset_inactive_guests(self, cutoff: datetime, gc_grant: Decimal) -> int: ...


class InMemoryLedger(Ledger):
    """Process-local ledger for guests, demos and tests."""

    def __init__(self):
        self._balances: Dict[str, dict] = {}
        self._history: List[HistoryEntrySchema] = []
        self._history_by_key: Dict[str, HistoryEntrySchema] = {}
        self._rounds: Dict[str, RoundStateSchema] = {}
        self._free_spins: Dict[tuple, int] = {}
        self._lock = asyncio.Lock()

    def _balance(self, user_id: str) -> UserBalanceSchema:
        record = self._balances.get(user_id)
        if record is None:
            raise AccountNotFound(f"No balance for user {user_id}")
        return DataConverter.validate(UserBalanceSchema, record)

    async def create_account(self, user_id, *, is_guest, gc_balance, sc_balance):
        async with self._lock:
            if user_id not in self._balances:
                now = datetime.now()
                self._balances[user_id] = {
                    "user_id": user_id,
                    "gc_balance": Decimal(gc_balance),
                    "sc_balance": Decimal(sc_balance),
                    "redeemable_sc": Decimal("0"),
                    "is_guest": is_guest,
                    "kyc_status": "unverified",
                    "has_unlocked_redemption": False,
                    "created_at": now,
                    "last_activity_at": now,
                }
                logging.info(f"Created {'guest' if is_guest else 'player'} balance for {user_id}")
            return self._balance(user_id)

    async def get_balance(self, user_id):
        return self._balance(user_id)

    async def set_kyc_status(self, user_id, kyc_status):
        async with self._lock:
            balance = self._balance(user_id)
            record = {**self._balances[user_id], "kyc_status": kyc_status}
            DataConverter.validate(UserBalanceSchema, record)
            self._balances[balance.user_id] = record
            return self._balance(user_id)

    async def apply_transaction(self, tx, precondition=None):
        async with self._lock:
            existing = self._history_by_key.get(tx.idempotency_key)
            if existing is not None:
                check_replay(existing, tx)
                return SettlementResult(balance=self._balance(tx.user_id), entry=existing, replayed=True)

            balance = self._balance(tx.user_id)
            if precondition is not None:
                precondition(balance)

            if tx.round_state is not None:
                self._check_round_write(tx.round_state)
            if tx.close_round_id is not None and tx.close_round_id not in self._rounds:
                raise InvalidRoundState(f"Round {tx.close_round_id} is already closed")

            free_spins = self._free_spins.get((tx.user_id, tx.bonus_game_id), 0)
            fields, free_spins_after = compute_posting(balance, tx, free_spins)
            record = {**self._balances[tx.user_id], **fields}
            new_balance = DataConverter.validate(UserBalanceSchema, record)
            entry = DataConverter.validate(
                HistoryEntrySchema,
                {
                    "id": uuid7(),
                    "user_id": tx.user_id,
                    "activity_id": tx.activity_id,
                    "idempotency_key": tx.idempotency_key,
                    "round_id": tx.round_id,
                    "debit": tx.debit,
                    "credit": tx.credit,
                    "currency": tx.currency,
                    "result": tx.result,
                    "audit_ref": tx.audit_ref,
                    "outcome": tx.outcome,
                    "created_at": datetime.now(),
                },
            )

            # everything validated; commit
            self._balances[tx.user_id] = record
            if free_spins_after is not None:
                self._free_spins[(tx.user_id, tx.bonus_game_id)] = free_spins_after
            if tx.round_state is not None:
                self._rounds[tx.round_state.round_id] = tx.round_state
            if tx.close_round_id is not None:
                del self._rounds[tx.close_round_id]
            self._history.append(entry)
            self._history_by_key[entry.idempotency_key] = entry
            return SettlementResult(balance=new_balance, entry=entry)

    def _check_round_write(self, round_state: RoundStateSchema):
        stored = self._rounds.get(round_state.round_id)
        if stored is None:
            if round_state.version != 1:
                raise InvalidRoundState(f"Round {round_state.round_id} no longer exists")
            if any(r.user_id == round_state.user_id and r.game == round_state.game for r in self._rounds.values()):
                raise InvalidRoundState(f"A {round_state.game} round is already in progress")
        elif stored.version != round_state.version - 1:
            raise InvalidRoundState(f"Round {round_state.round_id} was modified concurrently")

    async def find_history(self, idempotency_key):
        return self._history_by_key.get(idempotency_key)

    async def list_history(self, user_id, since=None, until=None, limit=50):
        entries = [
            entry
            for entry in self._history
            if entry.user_id == user_id
            and (since is None or entry.created_at >= since)
            and (until is None or entry.created_at < until)
        ]
        return list(reversed(entries))[:limit]

    async def get_free_spins(self, user_id, game_id):
        return self._free_spins.get((user_id, game_id), 0)

    async def get_round(self, round_id):
        return self._rounds.get(round_id)

    async def find_active_round(self, user_id, game):
        return next((r for r in self._rounds.values() if r.user_id == user_id and r.game == game), None)

    async def save_round(self, round_state):
        async with self._lock:
            self._check_round_write(round_state)
            self._rounds[round_state.round_id] = round_state
            return round_state

    async def reset_inactive_guests(self, cutoff, gc_grant):
        async with self._lock:
            count = 0
            for user_id, record in self._balances.items():
                if record["is_guest"] and record["last_activity_at"] < cutoff:
                    self._balances[user_id] = {**record, "gc_balance": Decimal(gc_grant), "last_activity_at": datetime.now()}
                    count += 1
        logging.info(f"Reset {count} inactive guest balances")
        return count
