import logging
from collections import deque
from typing import Deque, Dict, List, Optional

from trader.models import Candle, PriceSample

logger = logging.getLogger("PriceHistory")

MAX_SAMPLES = 200
MAX_CANDLES = 60


class PriceHistoryStore:
    """
    Buffer borné par symbole des derniers ticks (FIFO, le plus ancien sort en premier).
    Un deque(maxlen) par clé : l'ajout et l'éviction sont une seule opération,
    deux symboles ne partagent jamais de curseur.
    """

    def __init__(self, maxlen: int = MAX_SAMPLES):
        self.maxlen = maxlen
        self._buffers: Dict[str, Deque[PriceSample]] = {}

    def _buffer(self, symbol: str) -> Deque[PriceSample]:
        if symbol not in self._buffers:
            self._buffers[symbol] = deque(maxlen=self.maxlen)
        return self._buffers[symbol]

    def append(self, symbol: str, price: float, volume: int = 0, timestamp: float = 0.0) -> PriceSample:
        sample = PriceSample(price=float(price), volume=int(volume or 0), timestamp=timestamp)
        self._buffer(symbol).append(sample)
        return sample

    def seed(self, symbol: str, prices: List[float], volumes: Optional[List[int]] = None, start: float = 0.0) -> None:
        """Pré-remplit l'historique (chauffe des indicateurs au démarrage)."""
        volumes = volumes or [0] * len(prices)
        for i, (p, v) in enumerate(zip(prices, volumes)):
            self.append(symbol, p, v, start + i)

    def samples(self, symbol: str) -> List[PriceSample]:
        return list(self._buffers.get(symbol, ()))

    def prices(self, symbol: str) -> List[float]:
        return [s.price for s in self._buffers.get(symbol, ())]

    def volumes(self, symbol: str) -> List[int]:
        return [s.volume for s in self._buffers.get(symbol, ())]

    def latest(self, symbol: str) -> Optional[PriceSample]:
        buf = self._buffers.get(symbol)
        return buf[-1] if buf else None

    def symbols(self) -> List[str]:
        return list(self._buffers)

    def __len__(self) -> int:
        return len(self._buffers)

    def size(self, symbol: str) -> int:
        return len(self._buffers.get(symbol, ()))

    def clear(self, symbol: Optional[str] = None) -> None:
        if symbol is None:
            self._buffers.clear()
        else:
            self._buffers.pop(symbol, None)


class CandleAggregator:
    """
    Agrégateur de ticks en bougies temporelles alignées sur l'intervalle.
    Un tick met à jour la dernière bougie si son début aligné correspond,
    sinon ouvre une nouvelle bougie. Les ticks en retard sont repliés dans
    la bougie courante pour que period_start ne recule jamais.
    """

    def __init__(self, interval: int = 60, maxlen: int = MAX_CANDLES):
        self.interval = interval
        self.maxlen = maxlen
        self._candles: Dict[str, Deque[Candle]] = {}

    def process_tick(self, symbol: str, price: float, timestamp: float, volume: int = 0) -> Candle:
        # Ex: 1699999999 // 60 * 60 = 1699999980
        candle_start = int(timestamp // self.interval) * self.interval
        candles = self._candles.setdefault(symbol, deque(maxlen=self.maxlen))

        if candles and candle_start <= candles[-1].period_start:
            current = candles[-1]
            current.high = max(current.high, price)
            current.low = min(current.low, price)
            current.close = price
            current.volume += int(volume or 0)
            return current

        candle = Candle(
            period_start=candle_start,
            open=price,
            high=price,
            low=price,
            close=price,
            volume=int(volume or 0),
        )
        candles.append(candle)
        return candle

    def candles(self, symbol: str) -> List[Candle]:
        return list(self._candles.get(symbol, ()))

    def closes(self, symbol: str) -> List[float]:
        return [c.close for c in self._candles.get(symbol, ())]
