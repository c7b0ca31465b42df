import logging
import math
from collections import OrderedDict
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger("StrategyRegistry")


class StrategyType(str, Enum):
    EMA_CROSSOVER = "ema_crossover"
    RSI_OVERSOLD = "rsi_oversold"
    SMA_TREND = "sma_trend"
    BOLLINGER_BANDS = "bollinger_bands"
    MULTI_INDICATOR = "multi_indicator"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# --- Paramètres typés par type de stratégie ---
class BaseParameters(_CamelModel):
    quantity: int = Field(default=1, ge=1)
    stop_loss: float = 2.0      # % pour les stratégies à seuils, montant absolu pour multi_indicator
    take_profit: float = 4.0
    order_type: str = "LIMIT"


class EmaCrossoverParameters(BaseParameters):
    fast_period: int = 9
    slow_period: int = 21
    trailing_stop: bool = False


class RsiOversoldParameters(BaseParameters):
    rsi_period: int = 14
    oversold_level: float = 30.0
    overbought_level: float = 70.0


class SmaTrendParameters(BaseParameters):
    short_period: int = 20
    long_period: int = 50
    trend_strength: float = 1.2  # en %, comparé à |sma_court - sma_long| / prix


class BollingerParameters(BaseParameters):
    period: int = 20
    std_dev: float = 2.0
    mean_reversion: bool = True


class MultiIndicatorParameters(BaseParameters):
    order_type: str = "MARKET"
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    ema_signal: bool = True
    volume_threshold: float = 1.5
    price_action: bool = True
    max_positions: int = 2
    cooldown_seconds: float = 30.0


StrategyParameters = Union[
    EmaCrossoverParameters,
    RsiOversoldParameters,
    SmaTrendParameters,
    BollingerParameters,
    MultiIndicatorParameters,
]

PARAMETERS_BY_TYPE: Dict[StrategyType, type] = {
    StrategyType.EMA_CROSSOVER: EmaCrossoverParameters,
    StrategyType.RSI_OVERSOLD: RsiOversoldParameters,
    StrategyType.SMA_TREND: SmaTrendParameters,
    StrategyType.BOLLINGER_BANDS: BollingerParameters,
    StrategyType.MULTI_INDICATOR: MultiIndicatorParameters,
}


class Performance(_CamelModel):
    total_trades: int = 0
    win_rate: float = 0.0
    total_pnl: float = Field(default=0.0, alias="totalPnL")
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0

    _closed: List[float] = PrivateAttr(default_factory=list)

    def record_execution(self) -> None:
        """Un ordre d'entrée confirmé par le broker."""
        self.total_trades += 1

    def record_close(self, pnl: float) -> None:
        """Une position clôturée : PnL cumulé, taux de réussite, drawdown, Sharpe par trade."""
        self._closed.append(pnl)
        self.total_pnl = sum(self._closed)
        wins = sum(1 for p in self._closed if p > 0)
        self.win_rate = wins / len(self._closed) * 100.0

        equity, peak, worst = 0.0, 0.0, 0.0
        for p in self._closed:
            equity += p
            peak = max(peak, equity)
            worst = min(worst, equity - peak)
        self.max_drawdown = worst

        if len(self._closed) >= 2:
            mean = self.total_pnl / len(self._closed)
            var = sum((p - mean) ** 2 for p in self._closed) / len(self._closed)
            std = math.sqrt(var)
            self.sharpe_ratio = mean / std * math.sqrt(len(self._closed)) if std > 0 else 0.0


class LastSignal(_CamelModel):
    action: str
    timestamp: float
    price: float
    confidence: float


class StrategyConfig(_CamelModel):
    id: str
    name: str
    symbol: str
    type: StrategyType
    enabled: bool = False
    parameters: StrategyParameters
    performance: Performance = Field(default_factory=Performance)
    last_signal: Optional[LastSignal] = None

    @model_validator(mode="before")
    @classmethod
    def _typed_parameters(cls, data: Any) -> Any:
        # Les paramètres sont validés avec le modèle propre au type
        if isinstance(data, dict):
            stype = StrategyType(data.get("type"))
            raw = data.get("parameters") or {}
            if isinstance(raw, BaseModel):
                raw = raw.model_dump(by_alias=True)
            data = {**data, "parameters": PARAMETERS_BY_TYPE[stype].model_validate(raw)}
        return data

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


def default_strategies() -> List[StrategyConfig]:
    """Catalogue chargé au démarrage (aucune persistance : tout repart de là au redémarrage)."""
    raw = [
        {
            "id": "ema_crossover_1", "name": "EMA Crossover NIFTY", "type": "ema_crossover",
            "symbol": "^NSEI", "enabled": False,
            "parameters": {"fastPeriod": 9, "slowPeriod": 21, "quantity": 25,
                           "stopLoss": 2.0, "takeProfit": 4.0, "trailingStop": True},
        },
        {
            "id": "rsi_oversold_1", "name": "RSI Oversold BANKNIFTY", "type": "rsi_oversold",
            "symbol": "^NSEBANK", "enabled": False,
            "parameters": {"rsiPeriod": 14, "oversoldLevel": 30, "overboughtLevel": 70,
                           "quantity": 15, "stopLoss": 1.5, "takeProfit": 3.0},
        },
        {
            "id": "sma_trend_1", "name": "SMA Trend RELIANCE", "type": "sma_trend",
            "symbol": "RELIANCE.NS", "enabled": False,
            "parameters": {"shortPeriod": 20, "longPeriod": 50, "trendStrength": 1.2,
                           "quantity": 10, "stopLoss": 2.5, "takeProfit": 5.0},
        },
        {
            "id": "bollinger_bands_1", "name": "Bollinger Bands TCS", "type": "bollinger_bands",
            "symbol": "TCS.NS", "enabled": False,
            "parameters": {"period": 20, "stdDev": 2.0, "quantity": 5,
                           "stopLoss": 1.8, "takeProfit": 3.5, "meanReversion": True},
        },
        {
            "id": "live_banknifty", "name": "Live Engine BANKNIFTY", "type": "multi_indicator",
            "symbol": "^NSEBANK", "enabled": True,
            "parameters": {"quantity": 15, "stopLoss": 50, "takeProfit": 100, "maxPositions": 2,
                           "rsiOverbought": 70, "rsiOversold": 30, "emaSignal": True,
                           "volumeThreshold": 1.5, "priceAction": True},
        },
        {
            "id": "live_nifty", "name": "Live Engine NIFTY", "type": "multi_indicator",
            "symbol": "^NSEI", "enabled": True,
            "parameters": {"quantity": 25, "stopLoss": 30, "takeProfit": 60, "maxPositions": 2,
                           "rsiOverbought": 75, "rsiOversold": 25, "emaSignal": True,
                           "volumeThreshold": 1.2, "priceAction": True},
        },
    ]
    return [StrategyConfig.model_validate(item) for item in raw]


class StrategyRegistry:
    """Catalogue en mémoire des stratégies nommées (ordre d'insertion conservé)."""

    def __init__(self, strategies: Optional[List[StrategyConfig]] = None):
        self._strategies: "OrderedDict[str, StrategyConfig]" = OrderedDict()
        for s in strategies if strategies is not None else default_strategies():
            self.add(s)

    def add(self, strategy: StrategyConfig) -> None:
        self._strategies[strategy.id] = strategy

    def get(self, strategy_id: str) -> StrategyConfig:
        return self._strategies[strategy_id]

    def list(self) -> List[StrategyConfig]:
        return list(self._strategies.values())

    def enabled(self) -> List[StrategyConfig]:
        return [s for s in self._strategies.values() if s.enabled]

    def enabled_by_symbol(self) -> Dict[str, List[StrategyConfig]]:
        grouped: Dict[str, List[StrategyConfig]] = OrderedDict()
        for s in self.enabled():
            grouped.setdefault(s.symbol, []).append(s)
        return grouped

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, strategy_id: str) -> bool:
        return strategy_id in self._strategies

    def update(self, strategy_id: str, updates: Dict[str, Any]) -> StrategyConfig:
        """
        Mise à jour partielle (fusion) : les champs absents gardent leur valeur.
        Les paramètres sont fusionnés clé par clé. Lève KeyError si l'id est inconnu,
        ValueError si l'id change, pydantic.ValidationError si le résultat est invalide.
        """
        current = self._strategies[strategy_id]
        if "id" in updates and updates["id"] != strategy_id:
            raise ValueError("Strategy id is immutable")

        merged = current.model_dump(by_alias=True)
        for key, value in updates.items():
            if key == "parameters" and isinstance(value, dict):
                merged["parameters"] = {**merged["parameters"], **value}
            elif key == "performance" and isinstance(value, dict):
                merged["performance"] = {**merged["performance"], **value}
            else:
                merged[key] = value

        updated = StrategyConfig.model_validate(merged)
        if "performance" not in updates:
            updated.performance = current.performance
        self._strategies[strategy_id] = updated
        logger.info(f"🛠️ Stratégie {updated.name} mise à jour ({', '.join(sorted(updates))})")
        return updated
