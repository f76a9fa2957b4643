"""Play orchestration: compliance, outcome generation, settlement.

Routers should not call outcome engines or the ledger directly; they call
this module, which also owns round ownership checks and idempotent replay.
"""
import logging
from datetime import datetime
from decimal import Decimal

from uuid6 import uuid7

from casino_core.converter import DataConverter
from casino_core.domain import bingo_rules, plinko_rules, scratch_rules, slot_rules
from casino_core.domain.blackjack_rules import BlackjackRound
from casino_core.domain.cards import Deck
from casino_core.domain.poker_rules import PokerRound
from casino_core.domain.rng import SecureRNG
from casino_core.domain.wagers import to_money, validate_denomination
from casino_core.exceptions import (
    DeckDepleted,
    IdempotencyConflict,
    InvalidRoundState,
    InvalidWager,
    RNGUnavailable,
    RoundNotFound,
)
from casino_core.models.dc_models import (
    BingoModel,
    DealModel,
    DrawModel,
    PlayResultModel,
    PlinkoModel,
    RoundResultModel,
    ScratchModel,
    SpinModel,
)
from casino_core.models.game_models import CardRoundOutcome, Currency, Wager
from casino_core.models.schema_models import HistoryEntrySchema, RoundStateSchema, SettlementResult
from casino_core.services.compliance import DemoLocationGate
from casino_core.services.settlement import SettlementCoordinator

BIG_WIN_FACTOR = 10

data_converter = DataConverter()


class GameService:
    def __init__(
        self,
        settlement: SettlementCoordinator,
        location_gate,
        rng=None,
        demo_rng=None,
        demo_gate: DemoLocationGate | None = None,
        hit_soft_17: bool = False,
    ):
        self.settlement = settlement
        self.ledger = settlement.ledger
        self.locks = settlement.locks
        self.location_gate = location_gate
        self.demo_gate = demo_gate or DemoLocationGate()
        self.rng = rng or SecureRNG()
        self.demo_rng = demo_rng  # Gold Coin fallback; None disables it
        self.hit_soft_17 = hit_soft_17

    async def _admit(self, currency: Currency, client_ip: str | None):
        if currency == Currency.SC:
            await self.location_gate.require_allowed(client_ip)
        else:
            await self.demo_gate.require_allowed(client_ip)

    def _generate(self, currency: Currency, build):
        """Run an outcome builder with the secure provider.

        Gold Coin play may fall back to the demo provider; the outcome is
        then labelled ``demo``. Sweeps Cash never falls back.
        """
        try:
            return build(self.rng)
        except RNGUnavailable:
            if currency == Currency.GC and self.demo_rng is not None:
                logging.warning("Secure RNG unavailable, using the demo provider for Gold Coin play")
                return build(self.demo_rng)
            raise

    @staticmethod
    def _check_owner(entry: HistoryEntrySchema, user_id: str, activity_id: str):
        if entry.user_id != user_id or entry.activity_id != activity_id:
            raise IdempotencyConflict(f"Idempotency key {entry.idempotency_key} was used for another request")

    async def _play_result(self, result: SettlementResult, outcome) -> PlayResultModel:
        if result.replayed:
            outcome = DataConverter.validate_outcome(result.entry.outcome)
        return PlayResultModel(
            balance=data_converter.convert_balance_to_model(result.balance),
            outcome=outcome,
            replayed=result.replayed,
        )

    async def _replay_play(self, user_id: str, activity_id: str, idempotency_key: str) -> PlayResultModel | None:
        entry = await self.ledger.find_history(idempotency_key)
        if entry is None:
            return None
        self._check_owner(entry, user_id, activity_id)
        balance = await self.ledger.get_balance(user_id)
        return PlayResultModel(
            balance=data_converter.convert_balance_to_model(balance),
            outcome=DataConverter.validate_outcome(entry.outcome),
            replayed=True,
        )

    async def spin(self, request: SpinModel, client_ip: str | None = None) -> PlayResultModel:
        replay = await self._replay_play(request.user_id, request.game_id, request.idempotency_key)
        if replay is not None:
            return replay
        amount = validate_denomination(request.amount, request.currency)
        await self._admit(request.currency, client_ip)
        wager = Wager(
            amount=amount, currency=request.currency, game_id=request.game_id, idempotency_key=request.idempotency_key
        )

        # free-spin count is read and written under one lock
        async with self.locks.hold(f"bonus:{request.user_id}:{request.game_id}"):
            remaining = await self.ledger.get_free_spins(request.user_id, request.game_id)
            if request.free_spin:
                if remaining <= 0:
                    raise InvalidRoundState("No free spins remaining")
                remaining -= 1
            outcome = self._generate(
                request.currency,
                lambda rng: slot_rules.spin(request.game_id, amount, rng, free_spins_remaining=remaining),
            )
            changed = request.free_spin or outcome.free_spins_won > 0
            result = await self.settlement.settle(
                request.user_id,
                wager,
                outcome,
                free_round=request.free_spin,
                free_spins_after=outcome.free_spins_remaining if changed else None,
            )
        return await self._play_result(result, outcome)

    async def drop(self, request: PlinkoModel, client_ip: str | None = None) -> PlayResultModel:
        replay = await self._replay_play(request.user_id, plinko_rules.GAME_ID, request.idempotency_key)
        if replay is not None:
            return replay
        amount = validate_denomination(request.amount, request.currency)
        try:
            plinko_rules.validate_rows(request.rows)
        except ValueError as e:
            raise InvalidWager(str(e)) from e
        await self._admit(request.currency, client_ip)
        outcome = self._generate(
            request.currency,
            lambda rng: plinko_rules.drop(plinko_rules.GAME_ID, amount, request.rows, request.risk, rng),
        )
        wager = Wager(
            amount=amount, currency=request.currency, game_id=plinko_rules.GAME_ID, idempotency_key=request.idempotency_key
        )
        result = await self.settlement.settle(request.user_id, wager, outcome)
        return await self._play_result(result, outcome)

    async def buy_ticket(self, request: ScratchModel, client_ip: str | None = None) -> PlayResultModel:
        replay = await self._replay_play(request.user_id, scratch_rules.GAME_ID, request.idempotency_key)
        if replay is not None:
            return replay
        await self._admit(request.currency, client_ip)
        outcome = self._generate(request.currency, lambda rng: scratch_rules.buy_ticket(request.currency, rng))
        wager = Wager(
            amount=scratch_rules.ticket_price(request.currency),
            currency=request.currency,
            game_id=scratch_rules.GAME_ID,
            idempotency_key=request.idempotency_key,
        )
        result = await self.settlement.settle(request.user_id, wager, outcome)
        return await self._play_result(result, outcome)

    async def play_bingo(self, request: BingoModel, client_ip: str | None = None) -> PlayResultModel:
        replay = await self._replay_play(request.user_id, bingo_rules.GAME_ID, request.idempotency_key)
        if replay is not None:
            return replay
        amount = validate_denomination(request.amount, request.currency)
        await self._admit(request.currency, client_ip)
        outcome = self._generate(
            request.currency, lambda rng: bingo_rules.play_round(amount, request.card_count, rng)
        )
        wager = Wager(
            amount=amount,
            currency=request.currency,
            game_id=bingo_rules.GAME_ID,
            idempotency_key=request.idempotency_key,
            units=request.card_count,
        )
        result = await self.settlement.settle(request.user_id, wager, outcome)
        return await self._play_result(result, outcome)

    # card rounds

    def _round_view(self, game: str, round_id: str, state: dict, wager: Decimal):
        if game == "blackjack":
            return data_converter.convert_blackjack_to_view(round_id, BlackjackRound.from_state(state, wager))
        return data_converter.convert_poker_to_view(round_id, PokerRound.from_state(state, wager))

    @staticmethod
    def _card_outcome(round_state: RoundStateSchema, game) -> CardRoundOutcome:
        """Final result of a finished round; the remaining deck is not kept."""
        total_win = to_money(game.payout)
        if isinstance(game, BlackjackRound):
            status, hand_name = game.status.value, None
        else:
            status, hand_name = game.stage.value, game.hand_rank.value
        return CardRoundOutcome(
            kind=round_state.game,
            game_id=round_state.game,
            total_win=total_win,
            is_big_win=total_win > game.wager * BIG_WIN_FACTOR,
            audit_seed=round_state.audit_seed,
            rng_source=round_state.state.get("rng_source", "secure"),
            round_id=round_state.round_id,
            status=status,
            hand_name=hand_name,
            payout_multiplier=float(game.payout_multiplier),
            wager=game.wager,
            final_state={**game.to_state(), "deck": []},
        )

    @staticmethod
    def _next_state(round_state: RoundStateSchema, game, stage: str) -> RoundStateSchema:
        return round_state.model_copy(
            update={
                "wager": game.wager,
                "stage": stage,
                "state": {**game.to_state(), "rng_source": round_state.state.get("rng_source", "secure")},
                "version": round_state.version + 1,
                "updated_at": datetime.now(),
            }
        )

    async def _round_result(self, game: str, result: SettlementResult | None, round_state: RoundStateSchema, game_round):
        if result is not None and result.replayed:
            return await self._replay_round(result.entry, round_state.user_id, game)
        balance = result.balance if result is not None else await self.ledger.get_balance(round_state.user_id)
        outcome = self._card_outcome(round_state, game_round) if game_round.is_over else None
        if game == "blackjack":
            view = data_converter.convert_blackjack_to_view(round_state.round_id, game_round)
        else:
            view = data_converter.convert_poker_to_view(round_state.round_id, game_round)
        return RoundResultModel(
            balance=data_converter.convert_balance_to_model(balance), round=view, outcome=outcome
        )

    async def _replay_round(self, entry: HistoryEntrySchema, user_id: str, game: str) -> RoundResultModel:
        """Rebuild the response of an already-applied deal or action from the ledger."""
        self._check_owner(entry, user_id, game)
        balance = await self.ledger.get_balance(user_id)
        round_state = await self.ledger.get_round(entry.round_id)
        outcome = None
        if round_state is not None:
            view = self._round_view(game, entry.round_id, round_state.state, round_state.wager)
        else:
            settled = entry if entry.outcome else await self.ledger.find_history(f"{entry.round_id}:settle")
            if settled is None or not settled.outcome:
                raise RoundNotFound(f"Round {entry.round_id} was closed without a result")
            outcome = DataConverter.validate(CardRoundOutcome, settled.outcome)
            view = self._round_view(game, entry.round_id, outcome.final_state, outcome.wager)
        return RoundResultModel(
            balance=data_converter.convert_balance_to_model(balance), round=view, outcome=outcome, replayed=True
        )

    async def _open_round(self, game: str, request: DealModel, client_ip: str | None) -> RoundResultModel:
        entry = await self.ledger.find_history(request.idempotency_key)
        if entry is not None:
            return await self._replay_round(entry, request.user_id, game)
        amount = validate_denomination(request.amount, request.currency)
        await self._admit(request.currency, client_ip)

        async with self.locks.hold(f"table:{request.user_id}:{game}"):
            if await self.ledger.find_active_round(request.user_id, game) is not None:
                raise InvalidRoundState(f"A {game} round is already in progress")

            deck, audit_seed, source = self._generate(
                request.currency, lambda rng: (Deck.shuffled(rng), rng.audit_seed(), rng.source)
            )
            if game == "blackjack":
                game_round = BlackjackRound(deck, amount, hit_soft_17=self.hit_soft_17)
                game_round.deal()
                stage = game_round.status.value
            else:
                game_round = PokerRound(deck, amount)
                game_round.deal()
                stage = game_round.stage.value

            now = datetime.now()
            round_state = RoundStateSchema(
                round_id=str(uuid7()),
                user_id=request.user_id,
                game=game,
                wager=amount,
                currency=request.currency,
                stage=stage,
                state={**game_round.to_state(), "rng_source": source},
                request_key=request.idempotency_key,
                audit_seed=audit_seed,
                version=1,
                created_at=now,
                updated_at=now,
            )
            if game_round.is_over:
                # natural blackjack: stake and payout settle together, no round is kept
                outcome = self._card_outcome(round_state, game_round)
                wager = Wager(
                    amount=amount, currency=request.currency, game_id=game, idempotency_key=request.idempotency_key
                )
                result = await self.settlement.settle(request.user_id, wager, outcome)
            else:
                result = await self.settlement.stake(round_state, amount, request.idempotency_key)
        logging.info(f"Opened {game} round {round_state.round_id} for {request.user_id}")
        return await self._round_result(game, result, round_state, game_round)

    async def _load_round(self, round_id: str, user_id: str, game: str):
        """Return the owned open round, or the replayed result of a settled one."""
        round_state = await self.ledger.get_round(round_id)
        if round_state is None or round_state.user_id != user_id or round_state.game != game:
            settled = await self.ledger.find_history(f"{round_id}:settle")
            if round_state is None and settled is not None and settled.user_id == user_id:
                return None, await self._replay_round(settled, user_id, game)
            raise RoundNotFound(f"No open {game} round {round_id}")
        return round_state, None

    async def _advance(self, round_state: RoundStateSchema, game: str, game_round, action) -> RoundResultModel:
        """Apply a player action, then persist the new state or settle the round."""
        if not game_round.is_over:
            try:
                action()
            except DeckDepleted:
                await self.settlement.refund_round(round_state)
                raise
        if game_round.is_over:
            final_state = self._next_state(round_state, game_round, "settled")
            result = await self.settlement.settle_round(final_state, self._card_outcome(final_state, game_round))
            return await self._round_result(game, result, final_state, game_round)
        stage = game_round.status.value if game == "blackjack" else game_round.stage.value
        next_state = self._next_state(round_state, game_round, stage)
        await self.ledger.save_round(next_state)
        return await self._round_result(game, None, next_state, game_round)

    async def deal_blackjack(self, request: DealModel, client_ip: str | None = None) -> RoundResultModel:
        return await self._open_round("blackjack", request, client_ip)

    async def blackjack_action(self, round_id: str, user_id: str, action: str, client_ip: str | None = None) -> RoundResultModel:
        """Advance a blackjack round with hit, stand or double_down."""
        if action not in ("hit", "stand", "double_down"):
            raise InvalidRoundState(f"Unknown blackjack action {action}")
        async with self.locks.hold(f"round:{round_id}"):
            round_state, replay = await self._load_round(round_id, user_id, "blackjack")
            if replay is not None:
                return replay
            game_round = BlackjackRound.from_state(round_state.state, round_state.wager)

            if action == "double_down" and not game_round.is_over:
                if not game_round.can_double_down():
                    raise InvalidRoundState("Double down is only allowed on the first two cards")
                await self._admit(round_state.currency, client_ip)
                extra = round_state.wager
                try:
                    game_round.double_down()
                except DeckDepleted:
                    await self.settlement.refund_round(round_state)
                    raise
                doubled = self._next_state(round_state, game_round, game_round.status.value)
                await self.settlement.stake(doubled, extra, f"{round_id}:double")
                return await self._advance(doubled, "blackjack", game_round, None)

            return await self._advance(round_state, "blackjack", game_round, getattr(game_round, action))

    async def deal_poker(self, request: DealModel, client_ip: str | None = None) -> RoundResultModel:
        return await self._open_round("poker", request, client_ip)

    async def draw_poker(self, round_id: str, request: DrawModel) -> RoundResultModel:
        async with self.locks.hold(f"round:{round_id}"):
            round_state, replay = await self._load_round(round_id, request.user_id, "poker")
            if replay is not None:
                return replay
            game_round = PokerRound.from_state(round_state.state, round_state.wager)
            return await self._advance(round_state, "poker", game_round, lambda: game_round.draw(request.held_indices))
