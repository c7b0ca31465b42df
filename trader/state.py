import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Dict, List, Literal, Optional, Set, Tuple

from interfaces.broker import Quote
from trader.history import CandleAggregator, PriceHistoryStore
from trader.models import Position, Signal
from trader.registry import LastSignal, StrategyRegistry

LogLevel = Literal["info", "success", "warning", "error", "security"]

LOG_MARKERS = {
    "info": "📊",
    "success": "✅",
    "warning": "⚠️",
    "error": "❌",
    "security": "🔒",
}

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "security": logging.ERROR,
}


class SystemStatus:
    """État global stopped/running + journal borné affiché côté client."""

    def __init__(self, maxlen: int = 200, logger_name: str = "AutoTrader"):
        self.status: Literal["stopped", "running"] = "stopped"
        self.auto_trading_enabled = False
        self.logs: Deque[str] = deque(maxlen=maxlen)
        self._logger = logging.getLogger(logger_name)

    def add_log(self, message: str, level: LogLevel = "info") -> str:
        stamp = datetime.now().strftime("%H:%M:%S")
        entry = f"[{stamp}] {LOG_MARKERS[level]} {message}"
        self.logs.append(entry)
        self._logger.log(_LOG_LEVELS[level], f"{LOG_MARKERS[level]} {message}")
        return entry

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "autoTradingEnabled": self.auto_trading_enabled,
            "logs": list(self.logs),
        }


@dataclass
class TradingEngineState:
    """
    Tout l'état mutable du moteur, possédé par un seul contrôleur et passé
    par référence aux sous-systèmes (API, boucle, gateways).
    """
    registry: StrategyRegistry = field(default_factory=StrategyRegistry)
    history: PriceHistoryStore = field(default_factory=PriceHistoryStore)
    candles: CandleAggregator = field(default_factory=CandleAggregator)
    status: SystemStatus = field(default_factory=SystemStatus)
    positions: Dict[str, Position] = field(default_factory=dict)
    recent_signals: Deque[Signal] = field(default_factory=lambda: deque(maxlen=20))
    market_cache: Dict[str, Tuple[float, Quote]] = field(default_factory=dict)
    last_trade_at: Dict[str, float] = field(default_factory=dict)
    busy: Set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls, settings) -> "TradingEngineState":
        return cls(
            history=PriceHistoryStore(settings.HISTORY_MAXLEN),
            candles=CandleAggregator(settings.CANDLE_INTERVAL, settings.CANDLE_MAXLEN),
            status=SystemStatus(settings.LOG_MAXLEN),
            recent_signals=deque(maxlen=settings.SIGNALS_MAXLEN),
        )

    def record_signal(self, signal: Signal) -> None:
        """Signal non-HOLD : liste récente (plus récent en tête) + lastSignal de la stratégie."""
        self.recent_signals.appendleft(signal)
        if signal.strategy_id in self.registry:
            self.registry.get(signal.strategy_id).last_signal = LastSignal(
                action=signal.action.value,
                timestamp=signal.timestamp,
                price=signal.price,
                confidence=signal.confidence,
            )

    def positions_for(self, symbol: str, strategy_id: Optional[str] = None) -> List[Position]:
        return [
            p for p in self.positions.values()
            if p.symbol == symbol and (strategy_id is None or p.strategy_id == strategy_id)
        ]

    def cache_quote(self, quote: Quote, now: Optional[float] = None) -> None:
        self.market_cache[quote.symbol] = (now if now is not None else time.time(), quote)

    def cached_quote(self, symbol: str, ttl: float, now: Optional[float] = None) -> Optional[Quote]:
        entry = self.market_cache.get(symbol)
        if entry is None:
            return None
        stored_at, quote = entry
        now = now if now is not None else time.time()
        return quote if now - stored_at < ttl else None
