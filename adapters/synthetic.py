from __future__ import annotations
"""Flux de démonstration : marche aléatoire avec tendance lente, derrière la même interface que Yahoo."""
import math
import random
import time
from typing import Callable, Dict, List, Optional

from interfaces.broker import Quote

# (prix de base, volatilité, volume de base)
PROFILES = {
    "BANKNIFTY": (45082.24, 500.0, 800_000),
    "NIFTY": (19448.87, 200.0, 700_000),
}
DEFAULT_PROFILE = (2500.0, 50.0, 500_000)

ALIASES = {"^NSEBANK": "BANKNIFTY", "BANKNIFTY.NS": "BANKNIFTY", "^NSEI": "NIFTY", "NIFTY.NS": "NIFTY"}


def profile(symbol: str):
    return PROFILES.get(ALIASES.get(symbol, symbol), DEFAULT_PROFILE)


class SyntheticQuoteSource:
    name = "synthetic"

    def __init__(self, seed: Optional[int] = None, clock: Callable[[], float] = time.time) -> None:
        self.rng = random.Random(seed)
        self.clock = clock
        self._last: Dict[str, float] = {}

    def next_price(self, symbol: str) -> float:
        base, volatility, _ = profile(symbol)
        last = self._last.get(symbol, base)
        trend = math.sin(self.clock() / 10) * 0.1
        noise = (self.rng.random() - 0.5) * 2
        momentum = 1 if self.rng.random() > 0.5 else -1
        change = (trend + noise * 0.3 + momentum * 0.1) * volatility
        # Plancher à -5% du prix de base
        price = max(last + change, base * 0.95)
        self._last[symbol] = price
        return price

    def next_volume(self, symbol: str) -> int:
        _, _, base_volume = profile(symbol)
        return int(base_volume * (self.rng.random() * 0.5 + 0.75))

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        base, _, _ = profile(symbol)
        price = self.next_price(symbol)
        change = price - base
        return Quote(
            symbol=symbol,
            price=price,
            volume=self.next_volume(symbol),
            change=change,
            changePercent=change / base * 100,
            timestamp=self.clock(),
        )

    async def fetch_history(self, symbol: str, length: int = 50) -> List[Quote]:
        """Historique initial : prix de base +/- 1%."""
        base, _, _ = profile(symbol)
        now = self.clock()
        out = []
        for i in range(length):
            price = base * (1 + (self.rng.random() - 0.5) * 0.02)
            out.append(Quote(symbol=symbol, price=price, volume=self.next_volume(symbol), timestamp=now - (length - i)))
        self._last[symbol] = out[-1].price if out else base
        return out


Adapter = SyntheticQuoteSource
