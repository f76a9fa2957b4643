"""Wager denominations and money arithmetic."""
from decimal import ROUND_DOWN, Decimal
from typing import NamedTuple

from casino_core.exceptions import InvalidWager
from casino_core.models.game_models import Currency

CENT = Decimal("0.01")

WAGER_LEVELS = {
    Currency.SC: tuple(
        Decimal(v) for v in ("0.10", "0.20", "0.50", "1.00", "2.00", "5.00", "10.00", "20.00", "50.00", "100.00")
    ),
    Currency.GC: tuple(
        Decimal(v) for v in ("100", "200", "500", "1000", "2000", "5000", "10000", "20000", "50000", "100000")
    ),
}


def to_money(value) -> Decimal:
    """Quantize an amount to cents, truncating fractions of a cent."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_DOWN)


def validate_denomination(amount: Decimal, currency: Currency) -> Decimal:
    """Return the amount as money if it sits on the currency's ladder.

    Raises:
        InvalidWager: The amount is not positive or not an allowed denomination.
    """
    amount = Decimal(str(amount))
    if amount <= 0:
        raise InvalidWager("Wager amount must be greater than zero")
    if amount not in WAGER_LEVELS[Currency(currency)]:
        raise InvalidWager(f"{amount} {Currency(currency).value} is not an allowed wager denomination")
    return to_money(amount)


class CoinPackage(NamedTuple):
    price: Decimal
    gc_amount: Decimal
    sc_amount: Decimal


COIN_PACKAGES = (
    CoinPackage(Decimal("2.99"), Decimal("3000"), Decimal("3.00")),
    CoinPackage(Decimal("9.99"), Decimal("10000"), Decimal("10.00")),
    CoinPackage(Decimal("19.99"), Decimal("22000"), Decimal("21.00")),
    CoinPackage(Decimal("49.99"), Decimal("55000"), Decimal("52.00")),
    CoinPackage(Decimal("99.99"), Decimal("120000"), Decimal("105.00")),
)
REDEMPTION_UNLOCK_PRICE = Decimal("9.99")
MIN_REDEMPTION = Decimal("50.00")

# starting grants as (GC, SC)
GUEST_GRANT = (Decimal("50000"), Decimal("0"))
PLAYER_GRANT = (Decimal("100000"), Decimal("2.00"))
