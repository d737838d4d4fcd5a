"""
Reading Source — simulated sensor and market values.

Real hardware and market feeds are out of scope, so every measurement a
processor takes goes through ReadingSource.reading(name, low, high). Names are
dotted (`soil_moisture.zone-b`, `market_price.maize`); an override set for the
full name wins, otherwise an override for any dotted prefix (`soil_moisture`),
otherwise a uniform draw from [low, high].
"""
from __future__ import annotations

import random
from typing import Mapping, Optional


class ReadingSource:

    def __init__(self, seed: Optional[int] = None, overrides: Optional[Mapping[str, float]] = None):
        self._rng = random.Random(seed)
        self._overrides: dict[str, float] = {k: float(v) for k, v in (overrides or {}).items()}

    def reading(self, name: str, low: float, high: float) -> float:
        fixed = self._lookup(name)
        if fixed is not None:
            return fixed
        return self._rng.uniform(low, high)

    def _lookup(self, name: str) -> Optional[float]:
        while True:
            if name in self._overrides:
                return self._overrides[name]
            if "." not in name:
                return None
            name = name.rsplit(".", 1)[0]

    def fix(self, name: str, value: float):
        """Pin a reading. Meant for tests and demos."""
        self._overrides[name] = float(value)
