import unittest
from decimal import Decimal

from casino_core.domain import plinko_rules
from casino_core.models.game_models import Risk

from helpers import ScriptedRNG


class TestPlinkoTable(unittest.TestCase):
    def test_monotonic_away_from_centre(self):
        for rows in range(plinko_rules.MIN_ROWS, plinko_rules.MAX_ROWS + 1):
            for risk in Risk:
                table = plinko_rules.get_multipliers(rows, risk)
                self.assertEqual(len(table), rows + 1)
                self.assertEqual(table, table[::-1], f"{rows} {risk} is not symmetric")
                centre = rows // 2
                right = table[centre:]
                self.assertEqual(right, sorted(right), f"{rows} {risk} decreases outward")
                self.assertGreaterEqual(table[0], max(table[1:-1]))

    def test_known_edges(self):
        self.assertEqual(plinko_rules.get_multipliers(12, Risk.high)[0], 100.0)
        self.assertEqual(plinko_rules.get_multipliers(8, Risk.low)[-1], 6.0)

    def test_sub_one_values_truncate_to_tenths(self):
        table = plinko_rules.get_multipliers(16, Risk.medium)
        self.assertEqual(table[8], 0.4)
        for value in table:
            if value < 1:
                self.assertAlmostEqual(value * 10, round(value * 10))

    def test_rows_are_bounded(self):
        with self.assertRaises(ValueError):
            plinko_rules.get_multipliers(7, Risk.low)
        with self.assertRaises(ValueError):
            plinko_rules.get_multipliers(17, Risk.low)

    def test_probabilities_sum_to_one(self):
        probabilities = plinko_rules.bucket_probabilities(12)
        self.assertAlmostEqual(sum(probabilities), 1.0)
        self.assertAlmostEqual(probabilities[0], 1 / 4096)

    def test_expected_return_is_weighted_table(self):
        rows, risk = 10, Risk.low
        expected = sum(
            p * m for p, m in zip(plinko_rules.bucket_probabilities(rows), plinko_rules.get_multipliers(rows, risk))
        )
        self.assertAlmostEqual(plinko_rules.expected_return(rows, risk), expected)


class TestPlinkoDrop(unittest.TestCase):
    def test_all_right_bounces_land_in_last_bucket(self):
        outcome = plinko_rules.drop("plinko-galaxy", Decimal("100"), 8, Risk.low, ScriptedRNG(unit=0.75))
        self.assertEqual(outcome.path, [1] * 8)
        self.assertEqual(outcome.bucket_index, 8)
        self.assertEqual(outcome.multiplier, 6.0)
        self.assertEqual(outcome.total_win, Decimal("600.00"))
        self.assertFalse(outcome.is_big_win)

    def test_half_goes_left(self):
        outcome = plinko_rules.drop("plinko-galaxy", Decimal("100"), 8, Risk.low, ScriptedRNG(unit=0.5))
        self.assertEqual(outcome.bucket_index, 0)

    def test_bucket_is_number_of_rights(self):
        outcome = plinko_rules.evaluate_drop("plinko-galaxy", Decimal("1.00"), 8, "Medium", [1, 0, 1, 1, 0, 0, 0, 1], "seed")
        self.assertEqual(outcome.bucket_index, 4)
        self.assertEqual(outcome.multiplier, plinko_rules.get_multipliers(8, Risk.medium)[4])

    def test_big_win_on_high_edge(self):
        outcome = plinko_rules.evaluate_drop("plinko-galaxy", Decimal("1.00"), 12, Risk.high, [0] * 12, "seed")
        self.assertTrue(outcome.is_big_win)
        self.assertEqual(outcome.total_win, Decimal("100.00"))

    def test_path_must_match_rows(self):
        with self.assertRaises(ValueError):
            plinko_rules.evaluate_drop("plinko-galaxy", Decimal("1.00"), 8, Risk.low, [1] * 7, "seed")


if __name__ == "__main__":
    unittest.main()
