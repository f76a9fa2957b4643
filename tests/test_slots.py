import unittest
from decimal import Decimal

from casino_core.domain import slot_rules
from casino_core.domain.rng import SecureRNG

from helpers import ScriptedRNG


class TestSlotEvaluation(unittest.TestCase):
    def test_grid_wraps_around_the_strip(self):
        reel_set = slot_rules.get_reel_set("cosmic-cash")
        last = len(reel_set.strips[0]) - 1
        grid = slot_rules.build_grid(reel_set, [last, 0, 0])
        self.assertEqual(grid[0][0], reel_set.strips[0][last])
        self.assertEqual(grid[1][0], reel_set.strips[0][0])
        self.assertEqual(grid[2][0], reel_set.strips[0][1])

    def test_top_row_lemons_pay_four_fifths_of_the_wager(self):
        outcome = slot_rules.evaluate_spin("cosmic-cash", Decimal("100"), [4, 9, 10], "seed")
        self.assertEqual(outcome.grid[0], ["🍋", "🍋", "🍋"])
        self.assertEqual(len(outcome.winning_lines), 1)
        self.assertEqual(outcome.winning_lines[0].line_index, 0)
        self.assertEqual(outcome.total_win, Decimal("80.00"))
        self.assertFalse(outcome.is_big_win)
        self.assertEqual(outcome.scatter_count, 1)
        self.assertEqual(outcome.free_spins_won, 0)

    def test_scatter_line_never_pays(self):
        grid = [["SCATTER"] * 3, ["🍒", "🍊", "🍋"], ["🍉", "🔔", "⭐"]]
        lines = slot_rules.evaluate_paylines(grid, Decimal("100"), slot_rules.get_reel_set("cosmic-cash"))
        self.assertEqual(lines, [])

    def test_diagonal_paylines(self):
        grid = [["💎", "🍒", "🍋"], ["🍊", "💎", "🍉"], ["🔔", "⭐", "💎"]]
        lines = slot_rules.evaluate_paylines(grid, Decimal("100"), slot_rules.get_reel_set("cosmic-cash"))
        self.assertEqual([(line.line_index, line.amount) for line in lines], [(3, Decimal("1600.00"))])

    def test_three_scatters_trigger_bonus(self):
        outcome = slot_rules.evaluate_spin("cosmic-cash", Decimal("100"), [1, 4, 1], "seed")
        self.assertEqual(outcome.scatter_count, 3)
        self.assertEqual(outcome.free_spins_won, 10)
        self.assertEqual(outcome.free_spins_remaining, 10)
        self.assertEqual(outcome.total_win, Decimal("40.00"))
        self.assertIn("BONUS", outcome.bonus_text)

    def test_retrigger_extends_free_spins(self):
        outcome = slot_rules.evaluate_spin("cosmic-cash", Decimal("100"), [1, 4, 1], "seed", free_spins_remaining=4)
        self.assertEqual(outcome.free_spins_remaining, 14)
        self.assertIn("RETRIGGER", outcome.bonus_text)

    def test_big_win_threshold(self):
        outcome = slot_rules.evaluate_spin("cosmic-cash", Decimal("100"), [0, 10, 0], "seed")
        # 💎 across the top pays 80 / 5 = 16x the wager
        self.assertEqual(outcome.total_win, Decimal("1600.00"))
        self.assertTrue(outcome.is_big_win)

    def test_spin_draws_one_stop_per_reel(self):
        rng = ScriptedRNG(ints=[4, 9, 10])
        outcome = slot_rules.spin("cosmic-cash", Decimal("100"), rng)
        self.assertEqual(outcome.stop_indices, [4, 9, 10])
        self.assertEqual(outcome.audit_seed, "ab" * 16)

    def test_unknown_game_plays_cosmic_strips(self):
        self.assertIs(slot_rules.get_reel_set("no-such-game"), slot_rules.get_reel_set("cosmic-cash"))

    def test_outcome_matches_its_stop_indices(self):
        rng = SecureRNG()
        for game_id in slot_rules.SLOT_GAMES:
            outcome = slot_rules.spin(game_id, Decimal("1.00"), rng)
            reel_set = slot_rules.get_reel_set(game_id)
            self.assertEqual(outcome.grid, slot_rules.build_grid(reel_set, outcome.stop_indices))
            self.assertEqual(outcome.total_win, sum((line.amount for line in outcome.winning_lines), Decimal("0")))


if __name__ == "__main__":
    unittest.main()
