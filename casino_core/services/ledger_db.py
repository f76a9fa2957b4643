"""SQL-backed ledger.

- The settlement coordinator never touches DB sessions; it calls this module.
- This layer owns session/transaction boundaries.
- CRUD helpers used here do NOT commit inside session.begin().
"""
import asyncio
import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker

from casino_core.converter import DataConverter
from casino_core.crud import CreateData, DeleteData, ReadData, UpdateData
from casino_core.exceptions import AccountNotFound, InvalidRoundState
from casino_core.models.schema_models import (
    HistoryEntrySchema,
    LedgerTransaction,
    RoundStateSchema,
    SettlementResult,
    UserBalanceSchema,
)
from casino_core.services.ledger import Ledger, check_replay, compute_posting

MAX_ATTEMPTS = 3
RETRY_DELAY = 0.05


def is_transient(error: DBAPIError) -> bool:
    return isinstance(error, OperationalError) or error.connection_invalidated


class SqlLedger(Ledger):
    def __init__(self, Session: async_sessionmaker):
        self.Session = Session

    async def _with_retry(self, operation, *args):
        """Run an operation in a fresh transaction, retrying transient failures.

        Every operation re-reads its idempotency key inside the transaction,
        so a retry after an unknown commit outcome cannot apply twice.
        """
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                return await operation(*args)
            except IntegrityError:
                raise
            except DBAPIError as e:
                if not is_transient(e) or attempt == MAX_ATTEMPTS:
                    raise
                logging.warning(f"Transient database error on attempt {attempt}: {e}")
                await asyncio.sleep(RETRY_DELAY * attempt)

    async def create_account(self, user_id, *, is_guest, gc_balance, sc_balance):
        async with self.Session() as session:
            async with session.begin():
                row = await ReadData.read_user_balance(user_id, session)
                if row is None:
                    now = datetime.now()
                    row = CreateData.add_user_balance(
                        session,
                        user_id=user_id,
                        gc_balance=Decimal(gc_balance),
                        sc_balance=Decimal(sc_balance),
                        redeemable_sc=Decimal("0"),
                        is_guest=is_guest,
                        kyc_status="unverified",
                        has_unlocked_redemption=False,
                        created_at=now,
                        last_activity_at=now,
                    )
                    await session.flush()
                    logging.info(f"Created {'guest' if is_guest else 'player'} balance for {user_id}")
                return DataConverter.validate(UserBalanceSchema, row)

    async def get_balance(self, user_id):
        async with self.Session() as session:
            row = await ReadData.read_user_balance(user_id, session)
            if row is None:
                raise AccountNotFound(f"No balance for user {user_id}")
            return DataConverter.validate(UserBalanceSchema, row)

    async def set_kyc_status(self, user_id, kyc_status):
        async with self.Session() as session:
            async with session.begin():
                row = await ReadData.read_user_balance(user_id, session, for_update=True)
                if row is None:
                    raise AccountNotFound(f"No balance for user {user_id}")
                row.kyc_status = kyc_status
                await session.flush()
                return DataConverter.validate(UserBalanceSchema, row)

    async def apply_transaction(self, tx, precondition=None):
        try:
            return await self._with_retry(self._apply, tx, precondition)
        except IntegrityError as e:
            # a concurrent writer committed the same key, or opened a round on this table
            existing = await self.find_history(tx.idempotency_key)
            if existing is None:
                if tx.round_state is not None:
                    raise InvalidRoundState(f"A {tx.round_state.game} round is already in progress") from e
                raise
            check_replay(existing, tx)
            return SettlementResult(balance=await self.get_balance(tx.user_id), entry=existing, replayed=True)

    async def _apply(self, tx: LedgerTransaction, precondition) -> SettlementResult:
        async with self.Session() as session:
            async with session.begin():
                existing = await ReadData.read_history_by_key(tx.idempotency_key, session)
                if existing is not None:
                    entry = DataConverter.validate(HistoryEntrySchema, existing)
                    check_replay(entry, tx)
                    row = await ReadData.read_user_balance(tx.user_id, session)
                    return SettlementResult(
                        balance=DataConverter.validate(UserBalanceSchema, row), entry=entry, replayed=True
                    )

                row = await ReadData.read_user_balance(tx.user_id, session, for_update=True)
                if row is None:
                    raise AccountNotFound(f"No balance for user {tx.user_id}")
                balance = DataConverter.validate(UserBalanceSchema, row)
                if precondition is not None:
                    precondition(balance)

                free_spins = 0
                if tx.bonus_game_id:
                    bonus = await ReadData.read_bonus_state(tx.user_id, tx.bonus_game_id, session, for_update=True)
                    free_spins = bonus.free_spins_remaining if bonus else 0
                fields, free_spins_after = compute_posting(balance, tx, free_spins)
                new_balance = DataConverter.validate(UserBalanceSchema, {**balance.model_dump(), **fields})

                for name, value in fields.items():
                    setattr(row, name, value)
                if free_spins_after is not None:
                    await UpdateData.set_free_spins(tx.user_id, tx.bonus_game_id, free_spins_after, session)
                if tx.round_state is not None:
                    await self._write_round(tx.round_state, session)
                if tx.close_round_id is not None:
                    if not await DeleteData.delete_round(tx.close_round_id, session):
                        raise InvalidRoundState(f"Round {tx.close_round_id} is already closed")

                entry_row = CreateData.add_history_entry(tx, session)
                await session.flush()
                entry = DataConverter.validate(HistoryEntrySchema, entry_row)
            return SettlementResult(balance=new_balance, entry=entry)

    @staticmethod
    async def _write_round(round_state: RoundStateSchema, session):
        if round_state.version == 1:
            CreateData.add_round(round_state, session)
        elif not await UpdateData.update_round(round_state, session):
            raise InvalidRoundState(f"Round {round_state.round_id} was modified concurrently")

    async def find_history(self, idempotency_key):
        async with self.Session() as session:
            row = await ReadData.read_history_by_key(idempotency_key, session)
            return DataConverter.validate(HistoryEntrySchema, row) if row is not None else None

    async def list_history(self, user_id, since=None, until=None, limit=50):
        async with self.Session() as session:
            rows = await ReadData.read_history(user_id, session, since, until, limit)
            return [DataConverter.validate(HistoryEntrySchema, row) for row in rows]

    async def get_free_spins(self, user_id, game_id):
        async with self.Session() as session:
            row = await ReadData.read_bonus_state(user_id, game_id, session)
            return row.free_spins_remaining if row else 0

    async def get_round(self, round_id):
        async with self.Session() as session:
            row = await ReadData.read_round(round_id, session)
            return DataConverter.validate(RoundStateSchema, row) if row is not None else None

    async def find_active_round(self, user_id, game):
        async with self.Session() as session:
            row = await ReadData.read_active_round(user_id, game, session)
            return DataConverter.validate(RoundStateSchema, row) if row is not None else None

    async def save_round(self, round_state):
        try:
            async with self.Session() as session:
                async with session.begin():
                    await self._write_round(round_state, session)
        except IntegrityError as e:
            raise InvalidRoundState(f"A {round_state.game} round is already in progress") from e
        return round_state

    async def reset_inactive_guests(self, cutoff, gc_grant):
        async with self.Session() as session:
            async with session.begin():
                count = await UpdateData.reset_inactive_guests(cutoff, Decimal(gc_grant), session)
        logging.info(f"Reset {count} inactive guest balances")
        return count
