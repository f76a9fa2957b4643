"""Settlement coordinator: the only writer of balances.

Every mutation is one ledger transaction (balance change plus its immutable
history entry) applied under the owner's lock and keyed for idempotency.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal

from casino_core.domain.wagers import (
    COIN_PACKAGES,
    GUEST_GRANT,
    MIN_REDEMPTION,
    PLAYER_GRANT,
    REDEMPTION_UNLOCK_PRICE,
    to_money,
    validate_denomination,
)
from casino_core.exceptions import InvalidWager, RedemptionRefused, RNGUnavailable
from casino_core.models.game_models import CardRoundOutcome, Currency, Wager
from casino_core.models.schema_models import (
    LedgerTransaction,
    RoundStateSchema,
    SettlementResult,
    UserBalanceSchema,
)
from casino_core.services.history_stream import HistoryPublisher
from casino_core.services.ledger import Ledger
from casino_core.services.locks import LockRegistry


def result_for(outcome, credit: Decimal) -> str:
    if isinstance(outcome, CardRoundOutcome) and outcome.status == "push":
        return "PUSH"
    return "WIN" if credit > 0 else "LOSS"


def require_secure(currency: Currency, outcome):
    if currency == Currency.SC and outcome.rng_source != "secure":
        raise RNGUnavailable("Sweeps Cash outcomes require the secure RNG provider")


class SettlementCoordinator:
    def __init__(self, ledger: Ledger, locks: LockRegistry | None = None, publisher: HistoryPublisher | None = None):
        self.ledger = ledger
        self.locks = locks or LockRegistry()
        self.publisher = publisher or HistoryPublisher(None)

    async def _apply(self, tx: LedgerTransaction, precondition=None) -> SettlementResult:
        async with self.locks.hold(f"user:{tx.user_id}"):
            result = await self.ledger.apply_transaction(tx, precondition)
        if result.replayed:
            logging.info(f"Replayed {tx.idempotency_key} for {tx.user_id}")
        else:
            logging.info(
                f"Settled {tx.result} {tx.activity_id} for {tx.user_id}: "
                f"-{tx.debit} +{tx.credit} {tx.currency.value}"
            )
            await self.publisher.publish(result.entry)
        return result

    async def settle(
        self,
        user_id: str,
        wager: Wager,
        outcome,
        *,
        free_round: bool = False,
        free_spins_after: int | None = None,
    ) -> SettlementResult:
        """Debit the wager and credit the outcome's win in one step.

        Args:
            user_id (str): Owner of the balance
            wager (Wager): Stake; amount must sit on the currency's ladder
            outcome: Frozen outcome produced by an outcome engine
            free_round (bool): Consume a free spin instead of debiting
            free_spins_after (int | None): Free spins left for wager.game_id
                once this play is applied; None leaves the count untouched

        Raises:
            InvalidWager: Amount off the denomination ladder
            InsufficientFunds: Balance below the wager, nothing is changed
            RNGUnavailable: Sweeps Cash outcome from a non-secure provider
        """
        validate_denomination(wager.amount, wager.currency)
        require_secure(wager.currency, outcome)
        credit = to_money(outcome.total_win)
        tx = LedgerTransaction(
            user_id=user_id,
            currency=wager.currency,
            debit=Decimal("0") if free_round else to_money(wager.total),
            credit=credit,
            redeemable_delta=credit if wager.currency == Currency.SC else Decimal("0"),
            activity_id=wager.game_id,
            idempotency_key=wager.idempotency_key,
            result=result_for(outcome, credit),
            audit_ref=outcome.audit_seed,
            outcome=outcome.model_dump(mode="json"),
            round_id=getattr(outcome, "round_id", None),
            bonus_game_id=wager.game_id if free_round or free_spins_after is not None else None,
            consume_free_spin=free_round,
            free_spins_after=free_spins_after,
        )
        return await self._apply(tx)

    async def stake(self, round_state: RoundStateSchema, amount: Decimal, idempotency_key: str) -> SettlementResult:
        """Debit a round stake (deal or double down) and store the round state with it."""
        validate_denomination(amount, round_state.currency)
        tx = LedgerTransaction(
            user_id=round_state.user_id,
            currency=round_state.currency,
            debit=to_money(amount),
            activity_id=round_state.game,
            idempotency_key=idempotency_key,
            result="STAKE",
            audit_ref=round_state.audit_seed,
            round_id=round_state.round_id,
            round_state=round_state,
        )
        return await self._apply(tx)

    async def settle_round(self, round_state: RoundStateSchema, outcome: CardRoundOutcome) -> SettlementResult:
        """Credit a finished round's payout and close the round."""
        require_secure(round_state.currency, outcome)
        credit = to_money(outcome.total_win)
        tx = LedgerTransaction(
            user_id=round_state.user_id,
            currency=round_state.currency,
            credit=credit,
            redeemable_delta=credit if round_state.currency == Currency.SC else Decimal("0"),
            activity_id=round_state.game,
            idempotency_key=f"{round_state.round_id}:settle",
            result=result_for(outcome, credit),
            audit_ref=outcome.audit_seed,
            outcome=outcome.model_dump(mode="json"),
            round_id=round_state.round_id,
            close_round_id=round_state.round_id,
        )
        return await self._apply(tx)

    async def refund_round(self, round_state: RoundStateSchema) -> SettlementResult:
        """Return everything staked on an aborted round and close it."""
        tx = LedgerTransaction(
            user_id=round_state.user_id,
            currency=round_state.currency,
            credit=to_money(round_state.wager),
            activity_id=round_state.game,
            idempotency_key=f"{round_state.round_id}:refund",
            result="REFUND",
            audit_ref=round_state.audit_seed,
            round_id=round_state.round_id,
            close_round_id=round_state.round_id,
        )
        logging.warning(f"Refunding round {round_state.round_id} for {round_state.user_id}")
        return await self._apply(tx)

    async def credit_purchase(self, user_id: str, payment_id: str, package_id: int) -> UserBalanceSchema:
        """Credit a paid coin package. Each currency leg is keyed by the payment id,
        so a redelivered payment notification credits nothing twice.
        """
        if not 0 <= package_id < len(COIN_PACKAGES):
            raise InvalidWager(f"Unknown coin package {package_id}")
        package = COIN_PACKAGES[package_id]
        unlock = package.price >= REDEMPTION_UNLOCK_PRICE
        balance = None
        for currency, amount in ((Currency.GC, package.gc_amount), (Currency.SC, package.sc_amount)):
            tx = LedgerTransaction(
                user_id=user_id,
                currency=currency,
                credit=to_money(amount),
                activity_id=f"coin-package-{package_id}",
                idempotency_key=f"{payment_id}:{currency.value}",
                result="PURCHASE",
                audit_ref=payment_id,
                unlock_redemption=unlock,
            )
            balance = (await self._apply(tx)).balance
        return balance

    async def redeem(self, user_id: str, amount: Decimal, idempotency_key: str) -> SettlementResult:
        amount = to_money(amount)

        def check_eligible(balance: UserBalanceSchema):
            if balance.kyc_status != "verified":
                raise RedemptionRefused("Identity verification is required before redeeming")
            if not balance.has_unlocked_redemption:
                raise RedemptionRefused("Redemption unlocks after a qualifying purchase")
            if amount < MIN_REDEMPTION:
                raise RedemptionRefused(f"Minimum redemption is {MIN_REDEMPTION} SC")
            if amount > balance.redeemable_sc:
                raise RedemptionRefused(f"Only {balance.redeemable_sc} SC is redeemable")

        tx = LedgerTransaction(
            user_id=user_id,
            currency=Currency.SC,
            debit=amount,
            redeemable_delta=-amount,
            activity_id="redemption",
            idempotency_key=idempotency_key,
            result="REDEEM",
            audit_ref=idempotency_key,
        )
        return await self._apply(tx, check_eligible)

    async def open_account(self, user_id: str, is_guest: bool) -> UserBalanceSchema:
        gc_grant, sc_grant = GUEST_GRANT if is_guest else PLAYER_GRANT
        return await self.ledger.create_account(user_id, is_guest=is_guest, gc_balance=gc_grant, sc_balance=sc_grant)

    async def set_kyc_status(self, user_id: str, kyc_status: str) -> UserBalanceSchema:
        logging.info(f"KYC status of {user_id} set to {kyc_status}")
        return await self.ledger.set_kyc_status(user_id, kyc_status)

    async def get_balance(self, user_id: str) -> UserBalanceSchema:
        return await self.ledger.get_balance(user_id)

    async def history(self, user_id: str, since: datetime | None = None, until: datetime | None = None, limit: int = 50):
        await self.ledger.get_balance(user_id)
        return await self.ledger.list_history(user_id, since, until, limit)

    async def reset_inactive_guests(self, idle_hours: int) -> int:
        """Give guests idle for idle_hours their starting Gold Coin grant back."""
        cutoff = datetime.now() - timedelta(hours=idle_hours)
        return await self.ledger.reset_inactive_guests(cutoff, GUEST_GRANT[0])
