import logging
from decimal import Decimal
from typing import Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from casino_core.domain.blackjack_rules import BlackjackRound
from casino_core.domain.poker_rules import PokerRound
from casino_core.exceptions import DataIntegrityError
from casino_core.models.dc_models import (
    BalanceModel,
    BlackjackViewModel,
    HistoryEntryModel,
    Outcome,
    PokerViewModel,
)
from casino_core.models.schema_models import HistoryEntrySchema, UserBalanceSchema

SchemaT = TypeVar("SchemaT", bound=BaseModel)
outcome_adapter = TypeAdapter(Outcome)


class DataConverter:
    """Validation boundary and conversions between stored and client formats."""

    @staticmethod
    def validate(schema: Type[SchemaT], data) -> SchemaT:
        """Validate a record read from a store before the engine trusts it.

        Args:
            schema (Type[SchemaT]): Expected pydantic schema
            data: ORM row, dict or schema instance

        Raises:
            DataIntegrityError: The record does not match the schema

        Returns:
            SchemaT: The validated record
        """
        try:
            if isinstance(data, dict):
                return schema.model_validate(data)
            return schema.model_validate(data, from_attributes=True)
        except ValidationError as e:
            logging.error(f"{schema.__name__} failed validation: {e}")
            raise DataIntegrityError(f"{schema.__name__} failed validation") from e

    @staticmethod
    def validate_outcome(data: dict):
        try:
            return outcome_adapter.validate_python(data)
        except ValidationError as e:
            logging.error(f"Stored outcome failed validation: {e}")
            raise DataIntegrityError("Stored outcome failed validation") from e

    def convert_balance_to_model(self, balance: UserBalanceSchema) -> BalanceModel:
        return BalanceModel.model_validate(balance, from_attributes=True)

    def convert_entry_to_model(self, entry: HistoryEntrySchema) -> HistoryEntryModel:
        return HistoryEntryModel(
            id=str(entry.id),
            activity_id=entry.activity_id,
            timestamp=entry.created_at,
            debit=entry.debit,
            credit=entry.credit,
            currency=entry.currency,
            result=entry.result,
            audit_ref=entry.audit_ref,
            round_id=entry.round_id,
        )

    def convert_blackjack_to_view(self, round_id: str, game: BlackjackRound) -> BlackjackViewModel:
        """Client view of a blackjack round; the deck never leaves the server and
        the dealer's hole card stays hidden while the round is active.
        """
        if game.is_over:
            dealer_hand = list(game.dealer_hand)
            dealer_score = game.dealer_score
        else:
            dealer_hand = [None] + list(game.dealer_hand[1:])
            dealer_score = None
        return BlackjackViewModel(
            round_id=round_id,
            player_hand=list(game.player_hand),
            dealer_hand=dealer_hand,
            player_score=game.player_score,
            dealer_score=dealer_score,
            status=game.status.value,
            wager=game.wager,
            payout=game.payout if game.is_over else Decimal("0"),
            can_double_down=game.can_double_down(),
        )

    def convert_poker_to_view(self, round_id: str, game: PokerRound) -> PokerViewModel:
        return PokerViewModel(
            round_id=round_id,
            hand=list(game.hand),
            stage=game.stage.value,
            held_indices=game.held_indices,
            hand_name=game.hand_rank.value if game.hand_rank else None,
            wager=game.wager,
            win_amount=game.payout if game.is_over else Decimal("0"),
        )
