"""75-ball bingo: card generation, ball draw and line payouts."""
from decimal import Decimal
from typing import List

from casino_core.domain.cards import fisher_yates_shuffle
from casino_core.domain.wagers import to_money
from casino_core.models.game_models import BingoCardResult, BingoOutcome

GAME_ID = "bingo-blast"
CARD_SIZE = 5
BALL_COUNT = 75
DRAW_COUNT = 30
MAX_CARDS = 4
FREE_SPACE = 0
BIG_WIN_FACTOR = 10

# B I N G O columns
COLUMN_RANGES = ((1, 15), (16, 30), (31, 45), (46, 60), (61, 75))

# completed lines -> multiple of the per-card wager; 4 or more pay the top prize
LINE_PAYOUTS = {0: Decimal("0"), 1: Decimal("0.5"), 2: Decimal("2"), 3: Decimal("10"), 4: Decimal("100")}


def generate_card(rng) -> List[List[int]]:
    grid = [[0] * CARD_SIZE for _ in range(CARD_SIZE)]
    for col, (low, high) in enumerate(COLUMN_RANGES):
        numbers = fisher_yates_shuffle(list(range(low, high + 1)), rng)[:CARD_SIZE]
        for row in range(CARD_SIZE):
            grid[row][col] = numbers[row]
    grid[2][2] = FREE_SPACE
    return grid


def draw_balls(rng, count: int = DRAW_COUNT) -> List[int]:
    return list(fisher_yates_shuffle(list(range(1, BALL_COUNT + 1)), rng))[:count]


def count_lines(grid: List[List[int]], drawn: List[int]) -> int:
    """Completed rows, columns and both diagonals; the free space is always marked."""
    called = set(drawn)
    hits = [[cell == FREE_SPACE or cell in called for cell in row] for row in grid]
    lines = sum(1 for row in hits if all(row))
    lines += sum(1 for col in range(CARD_SIZE) if all(hits[row][col] for row in range(CARD_SIZE)))
    lines += int(all(hits[i][i] for i in range(CARD_SIZE)))
    lines += int(all(hits[i][CARD_SIZE - 1 - i] for i in range(CARD_SIZE)))
    return lines


def line_payout(lines: int, wager_per_card: Decimal) -> Decimal:
    return to_money(Decimal(wager_per_card) * LINE_PAYOUTS[min(lines, 4)])


def evaluate_round(
    wager_per_card: Decimal,
    cards: List[List[List[int]]],
    drawn: List[int],
    audit_seed: str,
    rng_source: str = "secure",
) -> BingoOutcome:
    results = []
    for grid in cards:
        lines = count_lines(grid, drawn)
        results.append(BingoCardResult(grid=grid, lines=lines, win=line_payout(lines, wager_per_card)))
    total_win = to_money(sum((card.win for card in results), Decimal("0")))
    return BingoOutcome(
        game_id=GAME_ID,
        total_win=total_win,
        is_big_win=total_win >= Decimal(wager_per_card) * len(cards) * BIG_WIN_FACTOR,
        audit_seed=audit_seed,
        rng_source=rng_source,
        drawn_balls=drawn,
        cards=results,
        wager_per_card=wager_per_card,
    )


def play_round(wager_per_card: Decimal, card_count: int, rng) -> BingoOutcome:
    if not 1 <= card_count <= MAX_CARDS:
        raise ValueError(f"card_count must be between 1 and {MAX_CARDS}")
    cards = [generate_card(rng) for _ in range(card_count)]
    drawn = draw_balls(rng)
    return evaluate_round(wager_per_card, cards, drawn, rng.audit_seed(), rng.source)
