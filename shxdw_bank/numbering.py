"""
Account number generation.

Numbers look like ``SHX-48213-907``. Generation only proposes candidates;
uniqueness is decided by the ledger engine (retry) and the account store
(unique constraint).
"""

import random
from typing import Optional


class AccountNumberGenerator:
    """Random candidate account numbers with a fixed prefix"""

    def __init__(self, prefix: str = "SHX", rng: Optional[random.Random] = None):
        self.prefix = prefix
        self._rng = rng or random.SystemRandom()

    def generate(self) -> str:
        branch = self._rng.randint(10000, 99999)
        serial = self._rng.randint(100, 999)
        return f"{self.prefix}-{branch}-{serial}"

    @property
    def capacity(self) -> int:
        """How many distinct numbers this generator can produce"""
        return 90000 * 900
