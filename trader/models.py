from dataclasses import dataclass, field
from enum import Enum
from typing import List, Literal, Optional
import uuid


class Action(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"

    @property
    def opposite(self) -> "Action":
        if self is Action.BUY:
            return Action.SELL
        if self is Action.SELL:
            return Action.BUY
        return Action.HOLD


@dataclass(frozen=True)
class PriceSample:
    """Un tick : prix/volume observés à un instant (secondes epoch)."""
    price: float
    volume: int
    timestamp: float


@dataclass
class Candle:
    """Bougie OHLC alignée sur le début de l'intervalle (secondes epoch)."""
    period_start: int
    open: float
    high: float
    low: float
    close: float
    volume: int = 0


@dataclass(frozen=True)
class Signal:
    """Décision produite par un évaluateur de stratégie (confiance 0-100)."""
    action: Action
    confidence: float
    price: float
    timestamp: float
    conditions: List[str] = field(default_factory=list)
    symbol: str = ""
    strategy_id: str = ""

    @property
    def actionable(self) -> bool:
        return self.action is not Action.HOLD

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "strategyId": self.strategy_id,
            "action": self.action.value,
            "confidence": self.confidence,
            "price": self.price,
            "timestamp": self.timestamp,
            "conditions": list(self.conditions),
        }


@dataclass
class Position:
    """Position ouverte suite à un ordre confirmé par le broker."""
    symbol: str
    side: Literal["BUY", "SELL"]
    quantity: int
    entry_price: float
    strategy_id: str
    timestamp: float
    current_price: float = 0.0
    pnl: float = 0.0
    order_id: Optional[str] = None
    id: str = field(default_factory=lambda: f"pos_{uuid.uuid4().hex[:12]}")

    def mark(self, price: float) -> float:
        """Met à jour le prix courant et recalcule le PnL (LONG = (mark - entry) * qty)."""
        self.current_price = price
        if self.side == "BUY":
            self.pnl = (price - self.entry_price) * self.quantity
        else:
            self.pnl = (self.entry_price - price) * self.quantity
        return self.pnl

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "side": self.side,
            "quantity": self.quantity,
            "entryPrice": self.entry_price,
            "currentPrice": self.current_price,
            "pnl": self.pnl,
            "timestamp": self.timestamp,
            "orderId": self.order_id,
            "strategyId": self.strategy_id,
        }
