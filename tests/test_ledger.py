import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from casino_core.create_sqlite_engine import create_sqlite_engine
from casino_core.db import create_session_factory, create_tables
from casino_core.exceptions import (
    AccountNotFound,
    IdempotencyConflict,
    InsufficientFunds,
    InvalidRoundState,
    RedemptionRefused,
)
from casino_core.models.game_models import Currency
from casino_core.models.schema_models import LedgerTransaction, RoundStateSchema
from casino_core.services.ledger import InMemoryLedger
from casino_core.services.ledger_db import SqlLedger


def make_tx(key, **fields):
    values = {
        "user_id": "alice",
        "currency": Currency.GC,
        "activity_id": "cosmic-cash",
        "idempotency_key": key,
        "result": "LOSS",
        "audit_ref": "seed",
    }
    values.update(fields)
    return LedgerTransaction(**values)


def make_round(round_id="r1", version=1, user_id="alice"):
    now = datetime.now()
    return RoundStateSchema(
        round_id=round_id,
        user_id=user_id,
        game="poker",
        wager=Decimal("100"),
        currency=Currency.GC,
        stage="draw",
        state={"deck": [], "hand": [], "stage": "draw"},
        request_key=f"deal-{round_id}",
        audit_seed="seed",
        version=version,
        created_at=now,
        updated_at=now,
    )


class LedgerContract:
    """Behaviour every ledger implementation must share."""

    async def make_ledger(self):
        raise NotImplementedError

    async def asyncSetUp(self):
        self.ledger = await self.make_ledger()
        await self.ledger.create_account("alice", is_guest=False, gc_balance=Decimal("1000"), sc_balance=Decimal("10.00"))
        await self.ledger.create_account("bob", is_guest=True, gc_balance=Decimal("500"), sc_balance=Decimal("0"))

    async def test_debit_and_credit(self):
        result = await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("100"), credit=Decimal("80"), result="WIN"))
        self.assertFalse(result.replayed)
        self.assertEqual(result.balance.gc_balance, Decimal("980"))
        self.assertEqual(result.entry.debit, Decimal("100"))
        self.assertEqual(result.entry.credit, Decimal("80"))
        self.assertEqual((await self.ledger.get_balance("alice")).gc_balance, Decimal("980"))

    async def test_duplicate_key_applies_once(self):
        first = await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("100")))
        second = await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("100")))
        self.assertTrue(second.replayed)
        self.assertEqual(second.entry.id, first.entry.id)
        self.assertEqual(second.balance.gc_balance, Decimal("900"))
        self.assertEqual(len(await self.ledger.list_history("alice")), 1)

    async def test_key_reused_by_another_user(self):
        await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("100")))
        with self.assertRaises(IdempotencyConflict):
            await self.ledger.apply_transaction(make_tx("k1", user_id="bob", debit=Decimal("100")))

    async def test_insufficient_funds_changes_nothing(self):
        with self.assertRaises(InsufficientFunds):
            await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("1000.01")))
        self.assertEqual((await self.ledger.get_balance("alice")).gc_balance, Decimal("1000"))
        self.assertIsNone(await self.ledger.find_history("k1"))

    async def test_exact_balance_can_be_wagered(self):
        result = await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("1000")))
        self.assertEqual(result.balance.gc_balance, Decimal("0"))

    async def test_redeemable_stays_within_sc_balance(self):
        won = await self.ledger.apply_transaction(
            make_tx("k1", currency=Currency.SC, credit=Decimal("5.00"), redeemable_delta=Decimal("5.00"), result="WIN")
        )
        self.assertEqual(won.balance.sc_balance, Decimal("15.00"))
        self.assertEqual(won.balance.redeemable_sc, Decimal("5.00"))
        spent = await self.ledger.apply_transaction(make_tx("k2", currency=Currency.SC, debit=Decimal("14.00")))
        self.assertEqual(spent.balance.sc_balance, Decimal("1.00"))
        self.assertEqual(spent.balance.redeemable_sc, Decimal("1.00"))

    async def test_failed_precondition_changes_nothing(self):
        def refuse(balance):
            raise RedemptionRefused("not eligible")

        with self.assertRaises(RedemptionRefused):
            await self.ledger.apply_transaction(make_tx("k1", debit=Decimal("10")), refuse)
        self.assertIsNone(await self.ledger.find_history("k1"))

    async def test_free_spins_are_tracked_per_game(self):
        await self.ledger.apply_transaction(
            make_tx("k1", debit=Decimal("100"), bonus_game_id="cosmic-cash", free_spins_after=10)
        )
        self.assertEqual(await self.ledger.get_free_spins("alice", "cosmic-cash"), 10)
        self.assertEqual(await self.ledger.get_free_spins("alice", "pyramid-riches"), 0)
        with self.assertRaises(InvalidRoundState):
            await self.ledger.apply_transaction(
                make_tx("k2", activity_id="pyramid-riches", bonus_game_id="pyramid-riches", consume_free_spin=True, free_spins_after=0)
            )

    async def test_round_lifecycle(self):
        await self.ledger.apply_transaction(
            make_tx("deal-r1", activity_id="poker", debit=Decimal("100"), result="STAKE", round_id="r1", round_state=make_round())
        )
        self.assertEqual((await self.ledger.get_round("r1")).version, 1)
        self.assertEqual((await self.ledger.find_active_round("alice", "poker")).round_id, "r1")

        await self.ledger.save_round(make_round(version=2))
        with self.assertRaises(InvalidRoundState):
            await self.ledger.save_round(make_round(version=2))
        self.assertEqual((await self.ledger.get_round("r1")).version, 2)

        await self.ledger.apply_transaction(
            make_tx("r1:settle", activity_id="poker", credit=Decimal("200"), result="WIN", round_id="r1", close_round_id="r1")
        )
        self.assertIsNone(await self.ledger.get_round("r1"))
        self.assertIsNone(await self.ledger.find_active_round("alice", "poker"))
        with self.assertRaises(InvalidRoundState):
            await self.ledger.apply_transaction(
                make_tx("r1:again", activity_id="poker", credit=Decimal("200"), close_round_id="r1")
            )
        self.assertEqual((await self.ledger.get_balance("alice")).gc_balance, Decimal("1100"))

    async def test_one_round_per_table(self):
        await self.ledger.apply_transaction(
            make_tx("deal-r1", activity_id="poker", debit=Decimal("100"), result="STAKE", round_state=make_round("r1"))
        )
        with self.assertRaises(InvalidRoundState):
            await self.ledger.apply_transaction(
                make_tx("deal-r2", activity_id="poker", debit=Decimal("100"), result="STAKE", round_state=make_round("r2"))
            )
        self.assertEqual((await self.ledger.get_balance("alice")).gc_balance, Decimal("900"))

    async def test_history_is_newest_first(self):
        for index in range(3):
            await self.ledger.apply_transaction(make_tx(f"k{index}", debit=Decimal("100")))
        history = await self.ledger.list_history("alice")
        self.assertEqual([entry.idempotency_key for entry in history], ["k2", "k1", "k0"])
        self.assertEqual(len(await self.ledger.list_history("alice", limit=2)), 2)
        self.assertEqual(await self.ledger.list_history("alice", since=datetime.now() + timedelta(minutes=1)), [])
        self.assertEqual(await self.ledger.list_history("bob"), [])

    async def test_create_account_is_idempotent(self):
        again = await self.ledger.create_account("alice", is_guest=True, gc_balance=Decimal("5"), sc_balance=Decimal("5"))
        self.assertEqual(again.gc_balance, Decimal("1000"))
        self.assertFalse(again.is_guest)

    async def test_unknown_account(self):
        with self.assertRaises(AccountNotFound):
            await self.ledger.get_balance("nobody")
        with self.assertRaises(AccountNotFound):
            await self.ledger.apply_transaction(make_tx("k1", user_id="nobody", credit=Decimal("1")))

    async def test_kyc_status(self):
        balance = await self.ledger.set_kyc_status("alice", "verified")
        self.assertEqual(balance.kyc_status, "verified")

    async def test_reset_inactive_guests(self):
        await self.ledger.apply_transaction(make_tx("k1", user_id="bob", debit=Decimal("500")))
        count = await self.ledger.reset_inactive_guests(datetime.now() + timedelta(hours=1), Decimal("50000"))
        self.assertEqual(count, 1)
        self.assertEqual((await self.ledger.get_balance("bob")).gc_balance, Decimal("50000"))
        self.assertEqual((await self.ledger.get_balance("alice")).gc_balance, Decimal("1000"))


class TestInMemoryLedger(LedgerContract, unittest.IsolatedAsyncioTestCase):
    async def make_ledger(self):
        return InMemoryLedger()


class TestSqlLedger(LedgerContract, unittest.IsolatedAsyncioTestCase):
    async def make_ledger(self):
        self.engine = create_sqlite_engine("sqlite+aiosqlite:///:memory:")
        await create_tables(self.engine)
        return SqlLedger(create_session_factory(self.engine))

    async def asyncTearDown(self):
        await self.engine.dispose()


if __name__ == "__main__":
    unittest.main()
