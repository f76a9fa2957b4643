"""SQL helpers for the ledger tables.

None of these helpers commit: the ledger service opens ``session.begin()``
and owns the transaction boundary.
"""
from datetime import datetime
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from casino_core.models.schema_models import LedgerTransaction, RoundStateSchema
from casino_core.models.schemas import BonusState, GameRound, HistoryEntry, UserBalance


class CreateData:
    @staticmethod
    def add_user_balance(session: AsyncSession, **fields) -> UserBalance:
        row = UserBalance(**fields)
        session.add(row)
        return row

    @staticmethod
    def add_history_entry(tx: LedgerTransaction, session: AsyncSession) -> HistoryEntry:
        """Stage the history row recording a ledger transaction

        Args:
            tx (LedgerTransaction): The transaction being applied
        """
        row = HistoryEntry(
            user_id=tx.user_id,
            activity_id=tx.activity_id,
            idempotency_key=tx.idempotency_key,
            round_id=tx.round_id,
            debit=tx.debit,
            credit=tx.credit,
            currency=tx.currency.value,
            result=tx.result,
            audit_ref=tx.audit_ref,
            outcome=tx.outcome,
            created_at=datetime.now(),
        )
        session.add(row)
        return row

    @staticmethod
    def add_round(round_state: RoundStateSchema, session: AsyncSession) -> GameRound:
        row = GameRound(**round_state.model_dump(mode="python"))
        row.currency = round_state.currency.value
        session.add(row)
        return row


class ReadData:
    @staticmethod
    async def read_user_balance(user_id: str, session: AsyncSession, for_update: bool = False) -> UserBalance | None:
        """Read a balance row, optionally locking it until the transaction ends

        Args:
            user_id (str): Owner of the balance
            for_update (bool): Take a row lock (SELECT ... FOR UPDATE)
        """
        stmt = select(UserBalance).where(UserBalance.user_id == user_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_history_by_key(idempotency_key: str, session: AsyncSession) -> HistoryEntry | None:
        stmt = select(HistoryEntry).where(HistoryEntry.idempotency_key == idempotency_key)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_history(
        user_id: str,
        session: AsyncSession,
        since: datetime | None = None,
        until: datetime | None = None,
        limit: int = 50,
    ) -> List[HistoryEntry]:
        """Newest-first history of a user within an optional time range

        Args:
            since (datetime | None): Inclusive lower bound
            until (datetime | None): Exclusive upper bound
        """
        stmt = select(HistoryEntry).where(HistoryEntry.user_id == user_id)
        if since is not None:
            stmt = stmt.where(HistoryEntry.created_at >= since)
        if until is not None:
            stmt = stmt.where(HistoryEntry.created_at < until)
        stmt = stmt.order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc()).limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def read_round(round_id: str, session: AsyncSession, for_update: bool = False) -> GameRound | None:
        stmt = select(GameRound).where(GameRound.round_id == round_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_active_round(user_id: str, game: str, session: AsyncSession) -> GameRound | None:
        stmt = select(GameRound).where(GameRound.user_id == user_id, GameRound.game == game)
        result = await session.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def read_bonus_state(user_id: str, game_id: str, session: AsyncSession, for_update: bool = False) -> BonusState | None:
        stmt = select(BonusState).where(BonusState.user_id == user_id, BonusState.game_id == game_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await session.execute(stmt)
        return result.scalars().first()


class UpdateData:
    @staticmethod
    async def update_round(round_state: RoundStateSchema, session: AsyncSession) -> bool:
        """Write a new round version if the stored one is its predecessor

        Returns:
            bool: False when another writer advanced the round first
        """
        stmt = (
            update(GameRound)
            .where(GameRound.round_id == round_state.round_id, GameRound.version == round_state.version - 1)
            .values(
                wager=round_state.wager,
                stage=round_state.stage,
                state=round_state.state,
                version=round_state.version,
                updated_at=round_state.updated_at,
            )
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def set_free_spins(user_id: str, game_id: str, remaining: int, session: AsyncSession):
        row = await ReadData.read_bonus_state(user_id, game_id, session, for_update=True)
        if row is None:
            session.add(BonusState(user_id=user_id, game_id=game_id, free_spins_remaining=remaining, updated_at=datetime.now()))
        else:
            row.free_spins_remaining = remaining
            row.updated_at = datetime.now()

    @staticmethod
    async def reset_inactive_guests(cutoff: datetime, gc_grant, session: AsyncSession) -> int:
        stmt = (
            update(UserBalance)
            .where(UserBalance.is_guest.is_(True), UserBalance.last_activity_at < cutoff)
            .values(gc_balance=gc_grant, last_activity_at=datetime.now())
        )
        result = await session.execute(stmt)
        return result.rowcount


class DeleteData:
    @staticmethod
    async def delete_round(round_id: str, session: AsyncSession) -> bool:
        result = await session.execute(delete(GameRound).where(GameRound.round_id == round_id))
        return result.rowcount == 1
