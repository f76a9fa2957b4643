import asyncio
import json
import unittest
from decimal import Decimal

from redis.exceptions import ConnectionError as RedisConnectionError

from casino_core.domain.plinko_rules import evaluate_drop
from casino_core.exceptions import (
    AccountNotFound,
    InsufficientFunds,
    InvalidRoundState,
    InvalidWager,
    RedemptionRefused,
    RNGUnavailable,
)
from casino_core.models.game_models import Currency, Risk, SlotOutcome, Wager
from casino_core.services.history_stream import HistoryPublisher
from casino_core.services.ledger import InMemoryLedger
from casino_core.services.settlement import SettlementCoordinator


def losing_spin(rng_source="secure"):
    return SlotOutcome(
        game_id="cosmic-cash",
        total_win=Decimal("0"),
        is_big_win=False,
        audit_seed="ab" * 16,
        rng_source=rng_source,
        stop_indices=[0, 0, 0],
        grid=[["A", "B", "C"]],
        winning_lines=[],
        scatter_count=0,
    )


class RecordingRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, payload):
        if self.fail:
            raise RedisConnectionError("redis is down")
        self.published.append((channel, json.loads(payload)))


class TestSettlement(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.redis = RecordingRedis()
        self.coordinator = SettlementCoordinator(InMemoryLedger(), publisher=HistoryPublisher(self.redis))
        await self.coordinator.open_account("alice", is_guest=False)

    async def test_account_grants(self):
        player = await self.coordinator.get_balance("alice")
        guest = await self.coordinator.open_account("guest-1", is_guest=True)
        self.assertEqual(player.gc_balance, Decimal("100000"))
        self.assertEqual(player.sc_balance, Decimal("2.00"))
        self.assertEqual(guest.gc_balance, Decimal("50000"))
        self.assertEqual(guest.sc_balance, Decimal("0"))

    async def test_purchase_credits_once(self):
        first = await self.coordinator.credit_purchase("alice", "pay-1", 4)
        second = await self.coordinator.credit_purchase("alice", "pay-1", 4)
        self.assertEqual(first.gc_balance, Decimal("220000"))
        self.assertEqual(second.sc_balance, Decimal("107.00"))
        self.assertTrue(second.has_unlocked_redemption)
        self.assertEqual(second.redeemable_sc, Decimal("0"))
        self.assertEqual(len(await self.coordinator.history("alice")), 2)

    async def test_small_purchase_keeps_redemption_locked(self):
        balance = await self.coordinator.credit_purchase("alice", "pay-1", 0)
        self.assertFalse(balance.has_unlocked_redemption)

    async def test_unknown_package(self):
        with self.assertRaises(InvalidWager):
            await self.coordinator.credit_purchase("alice", "pay-1", 9)

    async def test_win_then_redeem(self):
        await self.coordinator.credit_purchase("alice", "pay-1", 4)
        await self.coordinator.set_kyc_status("alice", "verified")
        outcome = evaluate_drop("plinko-galaxy", Decimal("100.00"), 8, Risk.low, [1] * 8, "ab" * 16)
        won = await self.coordinator.settle(
            "alice", Wager(amount=Decimal("100.00"), currency=Currency.SC, game_id="plinko-galaxy", idempotency_key="drop-1"), outcome
        )
        self.assertEqual(won.balance.sc_balance, Decimal("607.00"))
        self.assertEqual(won.balance.redeemable_sc, Decimal("600.00"))
        self.assertEqual(won.entry.result, "WIN")

        redeemed = await self.coordinator.redeem("alice", Decimal("50"), "redeem-1")
        self.assertEqual(redeemed.balance.sc_balance, Decimal("557.00"))
        self.assertEqual(redeemed.balance.redeemable_sc, Decimal("550.00"))
        self.assertEqual(redeemed.entry.result, "REDEEM")

    async def test_redemption_refusals(self):
        with self.assertRaises(RedemptionRefused):
            await self.coordinator.redeem("alice", Decimal("50"), "r1")
        await self.coordinator.set_kyc_status("alice", "verified")
        with self.assertRaises(RedemptionRefused):
            await self.coordinator.redeem("alice", Decimal("50"), "r2")
        await self.coordinator.credit_purchase("alice", "pay-1", 4)
        with self.assertRaises(RedemptionRefused):
            await self.coordinator.redeem("alice", Decimal("20"), "r3")
        with self.assertRaises(RedemptionRefused):
            # purchased Sweeps Cash is never redeemable
            await self.coordinator.redeem("alice", Decimal("60"), "r4")
        balance = await self.coordinator.get_balance("alice")
        self.assertEqual(balance.sc_balance, Decimal("107.00"))

    async def test_wager_off_ladder(self):
        wager = Wager(amount=Decimal("150"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="s1")
        with self.assertRaises(InvalidWager):
            await self.coordinator.settle("alice", wager, losing_spin())

    async def test_demo_outcome_cannot_settle_sweeps_cash(self):
        wager = Wager(amount=Decimal("1.00"), currency=Currency.SC, game_id="cosmic-cash", idempotency_key="s1")
        with self.assertRaises(RNGUnavailable):
            await self.coordinator.settle("alice", wager, losing_spin("demo"))
        gc_wager = Wager(amount=Decimal("100"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="s2")
        result = await self.coordinator.settle("alice", gc_wager, losing_spin("demo"))
        self.assertEqual(result.balance.gc_balance, Decimal("99900"))

    async def test_free_round_without_free_spins(self):
        wager = Wager(amount=Decimal("100"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="s1")
        with self.assertRaises(InvalidRoundState):
            await self.coordinator.settle("alice", wager, losing_spin(), free_round=True, free_spins_after=0)

    async def test_concurrent_wagers_never_overdraw(self):
        async def play(index):
            wager = Wager(amount=Decimal("10000"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key=f"s{index}")
            return await self.coordinator.settle("alice", wager, losing_spin())

        results = await asyncio.gather(*(play(i) for i in range(15)), return_exceptions=True)
        refused = [r for r in results if isinstance(r, InsufficientFunds)]
        self.assertEqual(len(refused), 5)
        self.assertEqual((await self.coordinator.get_balance("alice")).gc_balance, Decimal("0"))

    async def test_concurrent_duplicates_settle_once(self):
        wager = Wager(amount=Decimal("1000"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="same")
        results = await asyncio.gather(*(self.coordinator.settle("alice", wager, losing_spin()) for _ in range(5)))
        self.assertEqual(sum(not r.replayed for r in results), 1)
        self.assertEqual(len({r.entry.id for r in results}), 1)
        self.assertEqual((await self.coordinator.get_balance("alice")).gc_balance, Decimal("99000"))

    async def test_publishes_new_entries_only(self):
        wager = Wager(amount=Decimal("100"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="s1")
        await self.coordinator.settle("alice", wager, losing_spin())
        await self.coordinator.settle("alice", wager, losing_spin())
        self.assertEqual(len(self.redis.published), 1)
        channel, payload = self.redis.published[0]
        self.assertEqual(channel, "history:alice")
        self.assertEqual(payload["result"], "LOSS")

    async def test_redis_outage_does_not_block_settlement(self):
        self.redis.fail = True
        wager = Wager(amount=Decimal("100"), currency=Currency.GC, game_id="cosmic-cash", idempotency_key="s1")
        result = await self.coordinator.settle("alice", wager, losing_spin())
        self.assertEqual(result.balance.gc_balance, Decimal("99900"))

    async def test_history_of_unknown_account(self):
        with self.assertRaises(AccountNotFound):
            await self.coordinator.history("nobody")


if __name__ == "__main__":
    unittest.main()
