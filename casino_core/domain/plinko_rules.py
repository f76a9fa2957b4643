"""Plinko rules: multiplier tables and the binomial drop."""
import math
from decimal import Decimal
from typing import List

import numpy as np

from casino_core.domain.wagers import to_money
from casino_core.models.game_models import PlinkoOutcome, Risk

GAME_ID = "plinko-galaxy"
MIN_ROWS = 8
MAX_ROWS = 16
DEFAULT_ROWS = 12
BIG_WIN_MULTIPLIER = 10

# floor + scale * d**exponent, d = distance from centre normalised to [0, 1].
# The two outermost buckets are then multiplied by edge_boost.
RISK_PROFILES = {
    Risk.low: {"floor": 0.5, "scale": 4.0, "exponent": 1, "edge_boost": 1.5},
    Risk.medium: {"floor": 0.4, "scale": 12.0, "exponent": 2, "edge_boost": 2.0},
    Risk.high: {"floor": 0.2, "scale": 25.0, "exponent": 3, "edge_boost": 4.0},
}


def validate_rows(rows: int) -> int:
    if not MIN_ROWS <= rows <= MAX_ROWS:
        raise ValueError(f"rows must be between {MIN_ROWS} and {MAX_ROWS}")
    return rows


def truncate_multiplier(values: np.ndarray) -> np.ndarray:
    """Values below 1 truncate to a tenth, values from 1 up to a whole number."""
    tenths = np.floor(np.round(values * 10, 9)) / 10
    wholes = np.floor(np.round(values, 9))
    return np.where(values < 1, tenths, wholes)


def get_multipliers(rows: int, risk: Risk | str) -> List[float]:
    """Derive the bucket multiplier table for a board.

    The table is a pure function of rows and risk. Multipliers never
    decrease moving away from the centre and the outermost buckets pay at
    least as much as every interior bucket.

    Args:
        rows (int): Peg rows on the board, bounded to [8, 16]
        risk (Risk | str): Low, Medium or High

    Returns:
        List[float]: rows + 1 multipliers, one per bucket
    """
    validate_rows(rows)
    profile = RISK_PROFILES[Risk(risk)]
    center = rows / 2
    distance = np.abs(np.arange(rows + 1) - center) / center
    base = profile["floor"] + profile["scale"] * np.power(distance, profile["exponent"])
    table = truncate_multiplier(base)
    table[0] *= profile["edge_boost"]
    table[-1] *= profile["edge_boost"]
    return [round(float(m), 1) for m in table]


def bucket_probabilities(rows: int) -> List[float]:
    """Binomial probability of landing in each bucket with fair flips."""
    validate_rows(rows)
    total = 2**rows
    return [math.comb(rows, k) / total for k in range(rows + 1)]


def expected_return(rows: int, risk: Risk | str) -> float:
    """Long-run return to player of a board, as a fraction of the wager."""
    probabilities = np.array(bucket_probabilities(rows))
    multipliers = np.array(get_multipliers(rows, risk))
    return float(np.dot(probabilities, multipliers))


def drop_path(rows: int, rng) -> List[int]:
    """One fair left/right decision per row: 1 is right, 0 is left."""
    return [1 if rng.random_unit() > 0.5 else 0 for _ in range(rows)]


def evaluate_drop(
    game_id: str,
    wager: Decimal,
    rows: int,
    risk: Risk | str,
    path: List[int],
    audit_seed: str,
    rng_source: str = "secure",
) -> PlinkoOutcome:
    """Settle a known path. The bucket is the number of right bounces."""
    validate_rows(rows)
    if len(path) != rows or any(step not in (0, 1) for step in path):
        raise ValueError("path needs one 0/1 step per row")
    bucket_index = sum(path)
    multiplier = get_multipliers(rows, risk)[bucket_index]
    total_win = to_money(Decimal(wager) * Decimal(str(multiplier)))
    return PlinkoOutcome(
        game_id=game_id,
        total_win=total_win,
        is_big_win=multiplier >= BIG_WIN_MULTIPLIER,
        audit_seed=audit_seed,
        rng_source=rng_source,
        path=path,
        bucket_index=bucket_index,
        multiplier=multiplier,
        rows=rows,
        risk=Risk(risk),
    )


def drop(game_id: str, wager: Decimal, rows: int, risk: Risk | str, rng) -> PlinkoOutcome:
    validate_rows(rows)
    path = drop_path(rows, rng)
    return evaluate_drop(game_id, wager, rows, risk, path, rng.audit_seed(), rng.source)
