import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Tuple

from trader import indicators
from trader.models import Action, Signal
from trader.registry import (
    BollingerParameters,
    EmaCrossoverParameters,
    MultiIndicatorParameters,
    RsiOversoldParameters,
    SmaTrendParameters,
    StrategyConfig,
    StrategyType,
)

logger = logging.getLogger("SignalGenerator")

# Historique minimal commun à tous les types de stratégie
MIN_HISTORY = 20

Decision = Tuple[Action, float, List[str]]
HOLD: Decision = (Action.HOLD, 0.0, [])


def crossover(prev_fast: float, prev_slow: float, cur_fast: float, cur_slow: float) -> Action:
    """
    Croisement strict : la rapide doit être strictement sous (ou sur) la lente
    à t-1 puis strictement au-dessus (ou en dessous) à t. Égalité à t-1 => HOLD.
    """
    if prev_fast < prev_slow and cur_fast > cur_slow:
        return Action.BUY
    if prev_fast > prev_slow and cur_fast < cur_slow:
        return Action.SELL
    return Action.HOLD


class StrategyEvaluator(ABC):
    """Transforme un historique de prix + une configuration en décision (action, confiance 0-100)."""

    # Confiance minimale pour passer un ordre
    gate: float = 70.0

    @abstractmethod
    def lookback(self, strategy: StrategyConfig) -> int:
        ...

    @abstractmethod
    def evaluate(self, strategy: StrategyConfig, prices: Sequence[float], volumes: Sequence[float]) -> Decision:
        ...

    def required_history(self, strategy: StrategyConfig) -> int:
        return max(MIN_HISTORY, self.lookback(strategy))


class ThresholdRuleEvaluator(StrategyEvaluator):
    """
    Règles à seuils des stratégies planifiées :
    - ema_crossover : croisement EMA rapide/lente, confiance 85 ;
    - rsi_oversold : RSI <= survente => BUY max(60, 100-RSI), >= surachat => SELL max(60, RSI-50) ;
    - sma_trend : écart SMA court/long rapporté au prix, confiance min(90, 60 + force*1000) ;
    - bollinger_bands : retour à la moyenne (80) ou cassure (75).
    """

    gate = 70.0

    def lookback(self, strategy: StrategyConfig) -> int:
        p = strategy.parameters
        if isinstance(p, EmaCrossoverParameters):
            return p.slow_period
        if isinstance(p, RsiOversoldParameters):
            return p.rsi_period + 1
        if isinstance(p, SmaTrendParameters):
            return p.long_period
        if isinstance(p, BollingerParameters):
            return p.period
        return MIN_HISTORY

    def evaluate(self, strategy: StrategyConfig, prices: Sequence[float], volumes: Sequence[float]) -> Decision:
        p = strategy.parameters
        if isinstance(p, EmaCrossoverParameters):
            return self._ema_crossover(p, prices)
        if isinstance(p, RsiOversoldParameters):
            return self._rsi_oversold(p, prices)
        if isinstance(p, SmaTrendParameters):
            return self._sma_trend(p, prices)
        if isinstance(p, BollingerParameters):
            return self._bollinger(p, prices)
        logger.warning(f"⚠️ Paramètres inattendus pour {strategy.id} ({type(p).__name__})")
        return HOLD

    def _ema_crossover(self, p: EmaCrossoverParameters, prices: Sequence[float]) -> Decision:
        if p.fast_period <= 0 or p.slow_period <= 0 or len(prices) < 2:
            return HOLD
        fast = indicators.ema(prices, p.fast_period)
        slow = indicators.ema(prices, p.slow_period)
        action = crossover(fast[-2], slow[-2], fast[-1], slow[-1])
        if action is Action.BUY:
            return Action.BUY, 85.0, [f"EMA{p.fast_period} crossed above EMA{p.slow_period}"]
        if action is Action.SELL:
            return Action.SELL, 85.0, [f"EMA{p.fast_period} crossed below EMA{p.slow_period}"]
        return HOLD

    def _rsi_oversold(self, p: RsiOversoldParameters, prices: Sequence[float]) -> Decision:
        if p.rsi_period <= 0:
            return HOLD
        value = indicators.rsi(prices, p.rsi_period)
        if value <= p.oversold_level:
            return Action.BUY, max(60.0, 100.0 - value), [f"RSI oversold ({value:.1f})"]
        if value >= p.overbought_level:
            return Action.SELL, max(60.0, value - 50.0), [f"RSI overbought ({value:.1f})"]
        return HOLD

    def _sma_trend(self, p: SmaTrendParameters, prices: Sequence[float]) -> Decision:
        current = float(prices[-1])
        if p.short_period <= 0 or p.long_period <= 0 or current <= 0:
            return HOLD
        short = indicators.sma(prices, p.short_period)
        long = indicators.sma(prices, p.long_period)
        if not short or not long:
            return HOLD
        strength = abs(short[-1] - long[-1]) / current
        if strength <= p.trend_strength / 100.0:
            return HOLD
        confidence = min(90.0, 60.0 + strength * 1000.0)
        if short[-1] > long[-1]:
            return Action.BUY, confidence, [f"SMA{p.short_period} above SMA{p.long_period} ({strength * 100:.2f}%)"]
        if short[-1] < long[-1]:
            return Action.SELL, confidence, [f"SMA{p.short_period} below SMA{p.long_period} ({strength * 100:.2f}%)"]
        return HOLD

    def _bollinger(self, p: BollingerParameters, prices: Sequence[float]) -> Decision:
        if p.period <= 0:
            return HOLD
        bands = indicators.bollinger_bands(prices, p.period, p.std_dev)
        if not bands:
            return HOLD
        band = bands[-1]
        price = float(prices[-1])
        if p.mean_reversion:
            if price <= band.lower:
                return Action.BUY, 80.0, ["Price at/below lower Bollinger band"]
            if price >= band.upper:
                return Action.SELL, 80.0, ["Price at/above upper Bollinger band"]
        else:
            if price > band.upper:
                return Action.BUY, 75.0, ["Breakout above upper Bollinger band"]
            if price < band.lower:
                return Action.SELL, 75.0, ["Breakdown below lower Bollinger band"]
        return HOLD


class VoteCountingEvaluator(StrategyEvaluator):
    """
    Moteur "live" : votes indépendants (RSI extrême, direction EMA9/EMA21, volume,
    position Bollinger, MACD vs signal). BUY/SELL seulement avec au moins 3 votes
    et plus de votes que le camp opposé. Confiance = min(votes/5, 1) * 100.
    """

    gate = 60.0
    min_votes = 3

    def lookback(self, strategy: StrategyConfig) -> int:
        return indicators.SNAPSHOT_MIN_PRICES

    def evaluate(self, strategy: StrategyConfig, prices: Sequence[float], volumes: Sequence[float]) -> Decision:
        p = strategy.parameters
        if not isinstance(p, MultiIndicatorParameters):
            logger.warning(f"⚠️ Paramètres inattendus pour {strategy.id} ({type(p).__name__})")
            return HOLD

        snap = indicators.snapshot(prices, volumes)
        price = float(prices[-1])
        conditions: List[str] = []
        buy, sell = 0, 0

        if snap.rsi < p.rsi_oversold:
            buy += 1
            conditions.append(f"RSI oversold ({snap.rsi:.1f})")
        elif snap.rsi > p.rsi_overbought:
            sell += 1
            conditions.append(f"RSI overbought ({snap.rsi:.1f})")

        if p.ema_signal:
            if snap.ema9 > snap.ema21:
                buy += 1
                conditions.append("EMA bullish crossover")
            elif snap.ema9 < snap.ema21:
                sell += 1
                conditions.append("EMA bearish crossover")

        # Le volume confirme le camp déjà en tête
        if snap.volume_ratio > p.volume_threshold:
            conditions.append(f"High volume ({snap.volume_ratio:.1f}x)")
            if buy > sell:
                buy += 1
            elif sell > buy:
                sell += 1

        if p.price_action:
            if price < snap.bollinger_lower:
                buy += 1
                conditions.append("Price below lower Bollinger band")
            elif price > snap.bollinger_upper:
                sell += 1
                conditions.append("Price above upper Bollinger band")

        if snap.macd > snap.macd_signal:
            buy += 1
            conditions.append("MACD bullish")
        elif snap.macd < snap.macd_signal:
            sell += 1
            conditions.append("MACD bearish")

        if buy > sell and buy >= self.min_votes:
            return Action.BUY, min(buy / 5.0, 1.0) * 100.0, conditions
        if sell > buy and sell >= self.min_votes:
            return Action.SELL, min(sell / 5.0, 1.0) * 100.0, conditions
        return Action.HOLD, 0.0, conditions


_RULES = ThresholdRuleEvaluator()
_VOTES = VoteCountingEvaluator()

EVALUATORS: Dict[StrategyType, StrategyEvaluator] = {
    StrategyType.EMA_CROSSOVER: _RULES,
    StrategyType.RSI_OVERSOLD: _RULES,
    StrategyType.SMA_TREND: _RULES,
    StrategyType.BOLLINGER_BANDS: _RULES,
    StrategyType.MULTI_INDICATOR: _VOTES,
}


def evaluator_for(strategy_type: StrategyType) -> StrategyEvaluator:
    return EVALUATORS[StrategyType(strategy_type)]


def generate_signal(
    strategy: StrategyConfig,
    prices: Sequence[float],
    volumes: Sequence[float],
    now: float,
) -> Signal:
    """
    Décision pour une stratégie sur l'historique fourni. Pure hors horodatage
    (passé par l'appelant). Historique insuffisant ou paramètres invalides => HOLD, 0.
    """
    price = float(prices[-1]) if len(prices) else 0.0

    def hold(conditions: List[str] = None) -> Signal:
        return Signal(Action.HOLD, 0.0, price, now, conditions or [], strategy.symbol, strategy.id)

    evaluator = evaluator_for(strategy.type)
    try:
        if len(prices) < evaluator.required_history(strategy):
            return hold()
        action, confidence, conditions = evaluator.evaluate(strategy, prices, volumes)
    except (ArithmeticError, ValueError, IndexError) as e:
        logger.warning(f"⚠️ Évaluation impossible pour {strategy.id}: {e}")
        return hold()

    if action is Action.HOLD:
        return hold(conditions)
    return Signal(action, float(confidence), price, now, conditions, strategy.symbol, strategy.id)
