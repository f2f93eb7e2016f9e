import string
import unittest

from luckydraw.jackpot.rng import (
    MULTIPLIER,
    SeededRNG,
    generate_seed,
    seeded_shuffle,
)


class SeededRNGTestCase(unittest.TestCase):
    def test_initial_state_is_sum_of_code_points(self):
        self.assertEqual(SeededRNG("abc").state, 97 + 98 + 99)

    def test_astral_characters_fold_as_surrogate_pairs(self):
        # U+1F600 is 0xD83D 0xDE00 in UTF-16.
        self.assertEqual(SeededRNG("\U0001F600").state, 0xD83D + 0xDE00)
        self.assertEqual(SeededRNG("a\U0001F600").state, 97 + 0xD83D + 0xDE00)

    def test_known_stream(self):
        rng = SeededRNG("abc")
        self.assertEqual(rng.next_int(), 294 * MULTIPLIER)
        self.assertEqual(rng.next_int(), 1443344620)

    def test_floats_in_unit_interval(self):
        rng = SeededRNG(generate_seed())
        for _ in range(1000):
            value = rng.next_float()
            self.assertGreaterEqual(value, 0.0)
            self.assertLess(value, 1.0)

    def test_same_seed_same_stream(self):
        a = SeededRNG("replay-me")
        b = SeededRNG("replay-me")
        self.assertEqual([a.next_int() for _ in range(50)], [b.next_int() for _ in range(50)])

    def test_zero_state_is_lifted(self):
        rng = SeededRNG("\x00")
        self.assertEqual(rng.state, 1)
        self.assertNotEqual(rng.next_int(), 0)

    def test_empty_seed_rejected(self):
        with self.assertRaises(ValueError):
            SeededRNG("")
        with self.assertRaises(ValueError):
            SeededRNG(None)
        with self.assertRaises(TypeError):
            SeededRNG(123)

    def test_randbelow_bounds(self):
        rng = SeededRNG("bounds")
        for n in (1, 2, 7, 1000):
            for _ in range(200):
                self.assertIn(rng.randbelow(n), range(n))
        with self.assertRaises(ValueError):
            rng.randbelow(0)


class SeededShuffleTestCase(unittest.TestCase):
    def test_known_permutation(self):
        self.assertEqual(seeded_shuffle([0, 1, 2], "abc"), [2, 1, 0])
        self.assertEqual(
            seeded_shuffle(["t1", "t2", "t3", "t4", "t5"], "abc"),
            ["t4", "t2", "t5", "t3", "t1"],
        )

    def test_is_permutation_and_input_untouched(self):
        items = list(string.ascii_lowercase)
        original = list(items)
        shuffled = seeded_shuffle(items, generate_seed())
        self.assertEqual(items, original)
        self.assertEqual(sorted(shuffled), original)

    def test_deterministic(self):
        items = list(range(500))
        seed = generate_seed()
        self.assertEqual(seeded_shuffle(items, seed), seeded_shuffle(items, seed))

    def test_empty_and_single(self):
        self.assertEqual(seeded_shuffle([], "x"), [])
        self.assertEqual(seeded_shuffle(["only"], "x"), ["only"])


class GenerateSeedTestCase(unittest.TestCase):
    def test_hex_and_length(self):
        seed = generate_seed()
        self.assertEqual(len(seed), 64)
        int(seed, 16)
        self.assertNotEqual(seed, generate_seed())


if __name__ == "__main__":
    unittest.main()
