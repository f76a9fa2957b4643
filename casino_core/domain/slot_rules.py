"""Slot machine rules: reel strips, paylines and spin evaluation.

Visible cell (row, reel) is always strip[(stop + row) % len(strip)], so the
stop indices alone are enough for a client to redraw the exact grid the
payout was computed from.
"""
from decimal import Decimal
from typing import Dict, List, Sequence

from casino_core.domain.wagers import to_money
from casino_core.models.game_models import SlotOutcome, WinningLineModel

SCATTER = "SCATTER"
ROWS = 3
SCATTER_TRIGGER_COUNT = 3
BONUS_FREE_SPINS = 10
BIG_WIN_FACTOR = 10

# (row, reel) coordinates: top, middle, bottom, diagonal TL-BR, diagonal BL-TR
PAYLINES = (
    ((0, 0), (0, 1), (0, 2)),
    ((1, 0), (1, 1), (1, 2)),
    ((2, 0), (2, 1), (2, 2)),
    ((0, 0), (1, 1), (2, 2)),
    ((2, 0), (1, 1), (0, 2)),
)

COSMIC_STRIPS = (
    ("💎", "SCATTER", "🍒", "🍊", "🍋", "🔔", "🍒", "⭐", "🍉", "🍒", "🍋", "🍊", "SCATTER", "🍒", "💎", "🍉", "🔔", "🍊", "🍋", "🍒", "⭐", "🍒", "🍋", "🍊", "SCATTER"),
    ("🍒", "🍊", "🍋", "🔔", "SCATTER", "🍒", "⭐", "🍉", "🍒", "🍋", "💎", "🍊", "SCATTER", "🍒", "💎", "🍉", "🔔", "🍊", "🍋", "🍒", "⭐", "🍒", "🍋", "🍊", "SCATTER"),
    ("💎", "SCATTER", "🍒", "🍊", "🍋", "🔔", "🍒", "⭐", "🍉", "🍒", "🍋", "🍊", "SCATTER", "🍒", "💎", "🍉", "🔔", "🍊", "🍋", "🍒", "⭐", "🍒", "🍋", "🍊", "SCATTER"),
)
COSMIC_PAYOUTS = {"🍒": 2, "🍋": 4, "🍊": 6, "🍉": 8, "🔔": 20, "⭐": 40, "💎": 80, SCATTER: 0}

PYRAMID_STRIPS = (
    ("PHARAOH", "SCATTER", "ANKH", "SCARAB", "EYE", "10", "J", "Q", "K", "A", "PHARAOH", "SCARAB", "SCATTER", "ANKH"),
    ("SCARAB", "EYE", "10", "J", "Q", "SCATTER", "K", "A", "PHARAOH", "ANKH", "SCARAB", "EYE", "SCATTER", "10"),
    ("EYE", "SCATTER", "10", "J", "Q", "K", "A", "PHARAOH", "ANKH", "SCARAB", "SCATTER", "EYE", "PHARAOH", "J"),
)
PYRAMID_PAYOUTS = {"10": 2, "J": 3, "Q": 4, "K": 5, "A": 6, "SCARAB": 15, "EYE": 25, "ANKH": 50, "PHARAOH": 100, SCATTER: 0}

VIKING_STRIPS = (
    ("ODIN", "SCATTER", "AXE", "SHIELD", "HELMET", "RUNE1", "RUNE2", "RUNE3", "ODIN", "AXE", "SCATTER", "SHIELD"),
    ("SHIELD", "HELMET", "RUNE1", "SCATTER", "RUNE2", "RUNE3", "ODIN", "AXE", "SHIELD", "HELMET", "SCATTER", "RUNE1"),
    ("AXE", "SCATTER", "SHIELD", "HELMET", "RUNE1", "RUNE2", "RUNE3", "ODIN", "SCATTER", "AXE", "HELMET", "RUNE2"),
)
VIKING_PAYOUTS = {"RUNE1": 2, "RUNE2": 3, "RUNE3": 4, "HELMET": 12, "SHIELD": 20, "AXE": 45, "ODIN": 90, SCATTER: 0}


class ReelSet:
    """Reel strips plus the symbol paytable of one slot game."""

    def __init__(self, strips: Sequence[Sequence[str]], payouts: Dict[str, float], paylines=PAYLINES):
        if not strips or any(len(strip) == 0 for strip in strips):
            raise ValueError("Every reel needs at least one symbol")
        self.strips = tuple(tuple(strip) for strip in strips)
        self.payouts = dict(payouts)
        self.paylines = tuple(paylines)

    @property
    def reel_count(self) -> int:
        return len(self.strips)


SLOT_GAMES = {
    "cosmic-cash": ReelSet(COSMIC_STRIPS, COSMIC_PAYOUTS),
    "pyramid-riches": ReelSet(PYRAMID_STRIPS, PYRAMID_PAYOUTS),
    "viking-victory": ReelSet(VIKING_STRIPS, VIKING_PAYOUTS),
    "ocean-fortune": ReelSet(COSMIC_STRIPS, COSMIC_PAYOUTS),
    "dragon-hoard": ReelSet(COSMIC_STRIPS, COSMIC_PAYOUTS),
}
DEFAULT_SLOT_GAME = "cosmic-cash"


def get_reel_set(game_id: str) -> ReelSet:
    """Return the reel set of a game; unknown ids play the cosmic strips."""
    return SLOT_GAMES.get(game_id, SLOT_GAMES[DEFAULT_SLOT_GAME])


def draw_stop_indices(reel_set: ReelSet, rng) -> List[int]:
    return [rng.random_int(0, len(strip) - 1) for strip in reel_set.strips]


def build_grid(reel_set: ReelSet, stop_indices: Sequence[int]) -> List[List[str]]:
    """Assemble the visible grid as grid[row][reel]."""
    if len(stop_indices) != reel_set.reel_count:
        raise ValueError("One stop index per reel is required")
    grid = [[None] * reel_set.reel_count for _ in range(ROWS)]
    for reel, (strip, stop) in enumerate(zip(reel_set.strips, stop_indices)):
        for row in range(ROWS):
            grid[row][reel] = strip[(stop + row) % len(strip)]
    return grid


def evaluate_paylines(grid: List[List[str]], wager: Decimal, reel_set: ReelSet) -> List[WinningLineModel]:
    """Return the winning lines of a grid.

    A line pays wager * multiplier / payline_count, so the total wager is
    the baseline split evenly across all configured lines.
    """
    line_count = len(reel_set.paylines)
    winning_lines = []
    for index, line in enumerate(reel_set.paylines):
        symbols = [grid[row][reel] for row, reel in line]
        first = symbols[0]
        if first == SCATTER or any(symbol != first for symbol in symbols[1:]):
            continue
        multiplier = Decimal(str(reel_set.payouts.get(first, 0)))
        amount = to_money(Decimal(wager) * multiplier / line_count)
        if amount > 0:
            winning_lines.append(WinningLineModel(line_index=index, symbol=first, amount=amount))
    return winning_lines


def count_scatters(grid: List[List[str]]) -> int:
    return sum(1 for row in grid for symbol in row if symbol == SCATTER)


def award_free_spins(scatter_count: int, free_spins_remaining: int) -> tuple[int, int]:
    """Apply the scatter trigger to the bonus counter.

    Args:
        scatter_count (int): Scatters visible on the grid
        free_spins_remaining (int): Free spins left after the current spin was consumed

    Returns:
        tuple[int, int]: Free spins won, free spins remaining afterwards. A
            trigger during a bonus extends the running count.
    """
    if scatter_count >= SCATTER_TRIGGER_COUNT:
        return BONUS_FREE_SPINS, free_spins_remaining + BONUS_FREE_SPINS
    return 0, free_spins_remaining


def evaluate_spin(
    game_id: str,
    wager: Decimal,
    stop_indices: Sequence[int],
    audit_seed: str,
    *,
    free_spins_remaining: int = 0,
    rng_source: str = "secure",
    reel_set: ReelSet | None = None,
) -> SlotOutcome:
    """Evaluate a spin for known stop indices."""
    reel_set = reel_set or get_reel_set(game_id)
    grid = build_grid(reel_set, stop_indices)
    winning_lines = evaluate_paylines(grid, wager, reel_set)
    total_win = to_money(sum((line.amount for line in winning_lines), Decimal("0")))
    scatter_count = count_scatters(grid)
    free_spins_won, remaining = award_free_spins(scatter_count, free_spins_remaining)

    bonus_text = ""
    if free_spins_won and free_spins_remaining:
        bonus_text = f"RETRIGGER! +{free_spins_won} FREE SPINS"
    elif free_spins_won:
        bonus_text = f"BONUS! {free_spins_won} FREE SPINS"

    return SlotOutcome(
        game_id=game_id,
        total_win=total_win,
        is_big_win=total_win > Decimal(wager) * BIG_WIN_FACTOR,
        free_spins_won=free_spins_won,
        audit_seed=audit_seed,
        rng_source=rng_source,
        stop_indices=list(stop_indices),
        grid=grid,
        winning_lines=winning_lines,
        scatter_count=scatter_count,
        free_spins_remaining=remaining,
        bonus_text=bonus_text,
    )


def spin(game_id: str, wager: Decimal, rng, *, free_spins_remaining: int = 0, reel_set: ReelSet | None = None) -> SlotOutcome:
    """Draw stop indices with the given provider and evaluate the spin."""
    reel_set = reel_set or get_reel_set(game_id)
    stop_indices = draw_stop_indices(reel_set, rng)
    return evaluate_spin(
        game_id,
        wager,
        stop_indices,
        rng.audit_seed(),
        free_spins_remaining=free_spins_remaining,
        rng_source=rng.source,
        reel_set=reel_set,
    )
