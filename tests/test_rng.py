import itertools
import unittest
from collections import Counter

from casino_core.domain.cards import DECK_SIZE, Deck, build_deck, fisher_yates_shuffle
from casino_core.domain.rng import DemoRNG, SecureRNG
from casino_core.exceptions import DeckDepleted, RNGUnavailable

from helpers import ScriptedRNG

# chi-square critical value, 5 degrees of freedom, p = 0.001
CHI_SQUARE_CRITICAL_DF5 = 20.515
# chi-square critical value, 51 * 51 = 2601 degrees of freedom, p = 0.001
# (Wilson-Hilferty approximation)
CHI_SQUARE_CRITICAL_DF2601 = 2830.0


def scripted_entropy(*chunks):
    chunks = list(chunks)

    def entropy(size):
        return chunks.pop(0)

    return entropy


class TestSecureRNG(unittest.TestCase):
    def test_random_unit_range(self):
        rng = SecureRNG()
        for _ in range(1000):
            value = rng.random_unit()
            self.assertGreaterEqual(value, 0.0)
            self.assertLess(value, 1.0)

    def test_random_unit_extremes(self):
        self.assertEqual(SecureRNG(scripted_entropy(bytes(7))).random_unit(), 0.0)
        self.assertLess(SecureRNG(scripted_entropy(b"\xff" * 7)).random_unit(), 1.0)

    def test_random_int_is_inclusive(self):
        rng = SecureRNG()
        seen = {rng.random_int(1, 6) for _ in range(2000)}
        self.assertEqual(seen, {1, 2, 3, 4, 5, 6})

    def test_random_int_rejects_out_of_span_candidates(self):
        """Span 3 needs 2 bits; 0b11 is rejected instead of folded with a modulo."""
        rng = SecureRNG(scripted_entropy(b"\xff", b"\x40"))
        self.assertEqual(rng.random_int(0, 2), 1)

    def test_random_int_single_value(self):
        self.assertEqual(SecureRNG().random_int(7, 7), 7)

    def test_random_int_invalid_bounds(self):
        with self.assertRaises(ValueError):
            SecureRNG().random_int(5, 4)

    def test_entropy_failure_raises(self):
        def broken(size):
            raise OSError("no entropy")

        with self.assertRaises(RNGUnavailable):
            SecureRNG(broken).random_unit()

    def test_short_read_raises(self):
        with self.assertRaises(RNGUnavailable):
            SecureRNG(scripted_entropy(b"")).random_int(0, 10)

    def test_audit_seed_is_128_bit_hex(self):
        seed = SecureRNG().audit_seed()
        self.assertEqual(len(seed), 32)
        int(seed, 16)
        self.assertNotEqual(seed, SecureRNG().audit_seed())

    def test_demo_rng_is_labelled(self):
        rng = DemoRNG(seed=7)
        self.assertFalse(rng.secure)
        self.assertEqual(rng.source, "demo")
        self.assertTrue(rng.audit_seed().startswith("demo-"))
        self.assertEqual(DemoRNG(seed=7).random_int(1, 100), DemoRNG(seed=7).random_int(1, 100))


class TestShuffle(unittest.TestCase):
    def test_shuffle_is_a_permutation(self):
        deck = fisher_yates_shuffle(build_deck(), SecureRNG())
        self.assertEqual(len(deck), DECK_SIZE)
        self.assertEqual(len(set(deck)), DECK_SIZE)

    def test_shuffle_uniformity_chi_square(self):
        rng = SecureRNG()
        trials = 6000
        counts = Counter(tuple(fisher_yates_shuffle([0, 1, 2], rng)) for _ in range(trials))
        expected = trials / 6
        chi_square = sum(
            (counts.get(perm, 0) - expected) ** 2 / expected for perm in itertools.permutations([0, 1, 2])
        )
        self.assertLess(chi_square, CHI_SQUARE_CRITICAL_DF5)

    def test_card_position_uniformity_chi_square(self):
        """Every card lands in every position equally often.

        With both margins fixed the pooled statistic is (n / (n - 1)) times a
        chi-square with (n - 1) ** 2 degrees of freedom, so it is rescaled first.
        """
        rng = SecureRNG()
        trials = 20 * DECK_SIZE
        counts = [[0] * DECK_SIZE for _ in range(DECK_SIZE)]
        index = {card: i for i, card in enumerate(build_deck())}
        for _ in range(trials):
            for position, card in enumerate(Deck.shuffled(rng).cards):
                counts[index[card]][position] += 1
        expected = trials / DECK_SIZE
        statistic = sum((count - expected) ** 2 / expected for row in counts for count in row)
        self.assertLess(statistic * (DECK_SIZE - 1) / DECK_SIZE, CHI_SQUARE_CRITICAL_DF2601)

    def test_walks_from_last_index_down_to_one(self):
        calls = []

        class Recorder(ScriptedRNG):
            def random_int(self, min_value, max_value):
                calls.append((min_value, max_value))
                return max_value

        fisher_yates_shuffle(list(range(5)), Recorder())
        self.assertEqual(calls, [(0, 4), (0, 3), (0, 2), (0, 1)])


class TestDeck(unittest.TestCase):
    def test_draw_pops_from_the_end(self):
        deck = Deck.shuffled(ScriptedRNG(pick="max"))
        self.assertEqual(deck.draw().rank, "A")
        self.assertEqual(deck.draw().rank, "K")
        self.assertEqual(len(deck), DECK_SIZE - 2)

    def test_empty_deck_raises(self):
        deck = Deck([])
        with self.assertRaises(DeckDepleted):
            deck.draw()

    def test_face_and_ace_values(self):
        values = {card.rank: card.value for card in build_deck()}
        self.assertEqual(values["K"], 10)
        self.assertEqual(values["A"], 11)
        self.assertEqual(values["7"], 7)


if __name__ == "__main__":
    unittest.main()
