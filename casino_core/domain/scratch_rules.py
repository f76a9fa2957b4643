"""Scratch tickets: fixed price, fixed win rate, weighted prize tiers.

The 3x3 grid is drawn after the prize is decided and only mirrors it; the
prize amount is the authoritative value.
"""
from decimal import Decimal
from typing import List

from casino_core.domain.cards import fisher_yates_shuffle
from casino_core.domain.wagers import to_money
from casino_core.models.game_models import Currency, ScratchOutcome

GAME_ID = "scratch-cosmic"
GRID_SIZE = 9
WIN_PROBABILITY = 0.20
BIG_WIN_FACTOR = 10

TICKET_PRICES = {
    Currency.GC: Decimal("500"),
    Currency.SC: Decimal("1.00"),
}

# tier, weight (per 1000 winning tickets), multiple of the ticket price, symbol
PRIZE_TABLE = (
    ("jackpot", 1, 2000, "💎"),
    ("high", 20, 50, "⭐"),
    ("mid", 179, 10, "🔔"),
    ("low", 800, 2, "🍒"),
)
FILLER_SYMBOLS = ("🍋", "🍊", "🍉")
ALL_SYMBOLS = tuple(row[3] for row in PRIZE_TABLE) + FILLER_SYMBOLS


def ticket_price(currency: Currency | str) -> Decimal:
    return TICKET_PRICES[Currency(currency)]


def pick_tier(rng) -> tuple:
    total = sum(row[1] for row in PRIZE_TABLE)
    roll = rng.random_int(1, total)
    for row in PRIZE_TABLE:
        roll -= row[1]
        if roll <= 0:
            return row
    return PRIZE_TABLE[-1]


def build_grid(rng, winning_symbol: str | None = None) -> List[str]:
    """Build a 3x3 grid with a triple of winning_symbol and no other triple."""
    pool = [symbol for symbol in ALL_SYMBOLS if symbol != winning_symbol for _ in range(2)]
    fisher_yates_shuffle(pool, rng)
    if winning_symbol is None:
        cells = pool[:GRID_SIZE]
    else:
        cells = [winning_symbol] * 3 + pool[: GRID_SIZE - 3]
    return list(fisher_yates_shuffle(cells, rng))


def buy_ticket(currency: Currency | str, rng) -> ScratchOutcome:
    currency = Currency(currency)
    cost = ticket_price(currency)
    is_win = rng.random_unit() < WIN_PROBABILITY
    if is_win:
        tier, _, multiple, symbol = pick_tier(rng)
        prize = to_money(cost * multiple)
        grid = build_grid(rng, symbol)
    else:
        tier, prize = "loser", to_money(0)
        grid = build_grid(rng)
    return ScratchOutcome(
        game_id=GAME_ID,
        total_win=prize,
        is_big_win=prize >= cost * BIG_WIN_FACTOR,
        audit_seed=rng.audit_seed(),
        rng_source=rng.source,
        grid=grid,
        prize=prize,
        cost=cost,
        currency=currency,
        is_win=is_win,
        tier=tier,
    )
