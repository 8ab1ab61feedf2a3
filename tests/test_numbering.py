"""
Tests for account number generation
"""

import random
import re

from shxdw_bank.numbering import AccountNumberGenerator


class TestAccountNumberGenerator:

    def test_format(self):
        generator = AccountNumberGenerator()
        for _ in range(50):
            assert re.fullmatch(r"SHX-\d{5}-\d{3}", generator.generate())

    def test_custom_prefix(self):
        assert AccountNumberGenerator(prefix="TST").generate().startswith("TST-")

    def test_seeded_rng_is_reproducible(self):
        first = AccountNumberGenerator(rng=random.Random(42))
        second = AccountNumberGenerator(rng=random.Random(42))
        assert [first.generate() for _ in range(5)] == [second.generate() for _ in range(5)]

    def test_capacity(self):
        assert AccountNumberGenerator().capacity == 81_000_000
