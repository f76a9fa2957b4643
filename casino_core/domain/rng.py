"""Random number providers.

Every outcome engine receives its provider as an argument; nothing in the
domain layer reaches for ambient randomness.
"""
import logging
import os
import random
from typing import Callable

from casino_core.exceptions import RNGUnavailable

AUDIT_SEED_BYTES = 16
UNIT_BITS = 53


class SecureRNG:
    """Cryptographically secure provider backed by the OS entropy pool."""

    source = "secure"
    secure = True

    def __init__(self, entropy: Callable[[int], bytes] = os.urandom):
        self._entropy = entropy

    def _read(self, size: int) -> bytes:
        try:
            data = self._entropy(size)
        except (NotImplementedError, OSError) as e:
            logging.error(f"Secure entropy source failed: {e}")
            raise RNGUnavailable("Secure entropy source is unavailable") from e
        if len(data) != size:
            raise RNGUnavailable("Secure entropy source returned a short read")
        return data

    def _bits(self, k: int) -> int:
        nbytes = (k + 7) // 8
        value = int.from_bytes(self._read(nbytes), "big")
        return value >> (nbytes * 8 - k)

    def random_unit(self) -> float:
        """Return a float in [0, 1) with 53 bits of resolution."""
        return self._bits(UNIT_BITS) / (1 << UNIT_BITS)

    def random_int(self, min_value: int, max_value: int) -> int:
        """Return an integer in [min_value, max_value], both inclusive.

        Candidates are drawn with just enough bits to cover the span and
        rejected when they fall outside it, so there is no modulo bias.
        """
        if min_value > max_value:
            raise ValueError("min_value must be less than or equal to max_value")
        span = max_value - min_value + 1
        if span == 1:
            return min_value
        k = span.bit_length()
        while True:
            candidate = self._bits(k)
            if candidate < span:
                return min_value + candidate

    def audit_seed(self) -> str:
        return self._read(AUDIT_SEED_BYTES).hex()


class DemoRNG:
    """Non-cryptographic provider for Gold Coin demo play.

    Outcomes produced with it are labelled ``demo`` and the settlement
    coordinator refuses them for Sweeps Cash.
    """

    source = "demo"
    secure = False

    def __init__(self, seed: int | None = None):
        self._random = random.Random(seed)

    def random_unit(self) -> float:
        return self._random.random()

    def random_int(self, min_value: int, max_value: int) -> int:
        if min_value > max_value:
            raise ValueError("min_value must be less than or equal to max_value")
        return self._random.randint(min_value, max_value)

    def audit_seed(self) -> str:
        return "demo-" + self._random.getrandbits(AUDIT_SEED_BYTES * 8).to_bytes(AUDIT_SEED_BYTES, "big").hex()
