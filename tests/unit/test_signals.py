import pytest

from trader import indicators
from trader.models import Action
from trader.registry import StrategyConfig
from trader.signals import (
    ThresholdRuleEvaluator,
    VoteCountingEvaluator,
    crossover,
    evaluator_for,
    generate_signal,
)

NOW = 1_700_000_000.0


def make(type_: str, **params) -> StrategyConfig:
    return StrategyConfig.model_validate(
        {"id": f"{type_}_t", "name": type_, "symbol": "TEST.NS", "type": type_, "enabled": True, "parameters": params}
    )


def test_evaluator_selection_and_gates():
    assert isinstance(evaluator_for("rsi_oversold"), ThresholdRuleEvaluator)
    assert isinstance(evaluator_for("multi_indicator"), VoteCountingEvaluator)
    assert evaluator_for("ema_crossover").gate == 70
    assert evaluator_for("multi_indicator").gate == 60

@pytest.mark.parametrize("type_,params", [
    ("ema_crossover", {"fastPeriod": 9, "slowPeriod": 21}),
    ("rsi_oversold", {"rsiPeriod": 14}),
    ("sma_trend", {"shortPeriod": 5, "longPeriod": 20}),
    ("bollinger_bands", {"period": 20}),
    ("multi_indicator", {}),
])
def test_hold_on_19_samples(type_, params):
    prices = [100.0 - i for i in range(19)]
    signal = generate_signal(make(type_, **params), prices, [1000] * 19, NOW)
    assert signal.action is Action.HOLD
    assert signal.confidence == 0

def test_hold_on_empty_history():
    signal = generate_signal(make("sma_trend"), [], [], NOW)
    assert signal.action is Action.HOLD and signal.price == 0.0

def test_crossover_requires_strict_before_side():
    assert crossover(100.0, 100.0, 101.0, 100.5) is Action.HOLD
    assert crossover(100.0, 100.0, 99.0, 99.5) is Action.HOLD
    assert crossover(99.0, 100.0, 101.0, 100.5) is Action.BUY
    assert crossover(101.0, 100.0, 99.0, 99.5) is Action.SELL

def test_ema_equal_at_boundary_is_hold():
    # EMA d'une série constante = le prix exact : rapide == lente à t-1, rapide > lente à t
    prices = [100.0] * 25 + [101.0]
    fast = indicators.ema(prices, 3)
    slow = indicators.ema(prices, 7)
    assert fast[-2] == slow[-2]
    assert fast[-1] > slow[-1]
    signal = generate_signal(make("ema_crossover", fastPeriod=3, slowPeriod=7), prices, [], NOW)
    assert signal.action is Action.HOLD

def test_ema_crossover_buy():
    prices = [130.0 - i for i in range(30)] + [250.0]
    signal = generate_signal(make("ema_crossover", fastPeriod=9, slowPeriod=21), prices, [], NOW)
    assert signal.action is Action.BUY
    assert signal.confidence == 85

def test_rsi_oversold_buy(rsi_25_prices):
    signal = generate_signal(make("rsi_oversold", rsiPeriod=14, oversoldLevel=30), rsi_25_prices, [], NOW)
    assert signal.action is Action.BUY
    assert signal.confidence == pytest.approx(75.0)
    assert signal.price == rsi_25_prices[-1]

def test_rsi_overbought_sell():
    prices = [100.0 + i for i in range(20)]
    signal = generate_signal(make("rsi_oversold", rsiPeriod=14, overboughtLevel=70), prices, [], NOW)
    # RSI 100 => max(60, 100 - 50)
    assert signal.action is Action.SELL
    assert signal.confidence == 60

def test_sma_trend_buy_capped_confidence():
    prices = [100.0 + i for i in range(60)]
    signal = generate_signal(make("sma_trend", shortPeriod=20, longPeriod=50, trendStrength=1.2), prices, [], NOW)
    assert signal.action is Action.BUY
    assert signal.confidence == 90

def test_sma_trend_weak_trend_holds():
    prices = [100.0 + (i % 2) * 0.01 for i in range(60)]
    signal = generate_signal(make("sma_trend", shortPeriod=20, longPeriod=50, trendStrength=1.2), prices, [], NOW)
    assert signal.action is Action.HOLD

def test_bollinger_modes():
    prices = [100.0 + 2 * (i % 2) for i in range(24)] + [90.0]
    reversion = generate_signal(make("bollinger_bands", period=20, stdDev=2.0, meanReversion=True), prices, [], NOW)
    breakout = generate_signal(make("bollinger_bands", period=20, stdDev=2.0, meanReversion=False), prices, [], NOW)
    assert (reversion.action, reversion.confidence) == (Action.BUY, 80)
    assert (breakout.action, breakout.confidence) == (Action.SELL, 75)

def test_malformed_parameters_hold():
    prices = [100.0 + i for i in range(60)]
    assert generate_signal(make("sma_trend", shortPeriod=0, longPeriod=50), prices, [], NOW).action is Action.HOLD
    assert generate_signal(make("bollinger_bands", period=0), prices, [], NOW).action is Action.HOLD
    assert generate_signal(make("sma_trend"), [0.0] * 60, [], NOW).action is Action.HOLD

def test_signal_is_deterministic(rsi_25_prices):
    s = make("rsi_oversold")
    assert generate_signal(s, rsi_25_prices, [], NOW) == generate_signal(s, rsi_25_prices, [], NOW)

def _snapshot(**overrides):
    base = indicators.neutral_snapshot(100.0)
    fields = {**base.to_dict(), **overrides}
    return indicators.IndicatorSnapshot(**fields)

def test_vote_counting_buy_with_all_votes(monkeypatch):
    snap = _snapshot(rsi=20.0, ema9=101.0, ema21=100.0, volume_ratio=2.0, bollinger_lower=105.0,
                     bollinger_upper=110.0, macd=1.0, macd_signal=0.5)
    monkeypatch.setattr(indicators, "snapshot", lambda prices, volumes: snap)
    signal = generate_signal(make("multi_indicator"), [100.0] * 60, [1000] * 60, NOW)
    assert signal.action is Action.BUY
    assert signal.confidence == 100
    assert "MACD bullish" in signal.conditions

def test_vote_counting_needs_three_votes(monkeypatch):
    snap = _snapshot(rsi=80.0, ema9=99.0, ema21=100.0)
    monkeypatch.setattr(indicators, "snapshot", lambda prices, volumes: snap)
    signal = generate_signal(make("multi_indicator"), [100.0] * 60, [1000] * 60, NOW)
    assert signal.action is Action.HOLD
    assert signal.confidence == 0

def test_vote_counting_volume_confirms_leader(monkeypatch):
    snap = _snapshot(rsi=80.0, ema9=99.0, ema21=100.0, volume_ratio=3.0)
    monkeypatch.setattr(indicators, "snapshot", lambda prices, volumes: snap)
    signal = generate_signal(make("multi_indicator", volumeThreshold=1.5), [100.0] * 60, [1000] * 60, NOW)
    assert signal.action is Action.SELL
    assert signal.confidence == pytest.approx(60.0)

def test_vote_counting_respects_disabled_conditions(monkeypatch):
    snap = _snapshot(rsi=20.0, ema9=101.0, ema21=100.0, bollinger_lower=105.0, bollinger_upper=110.0)
    monkeypatch.setattr(indicators, "snapshot", lambda prices, volumes: snap)
    s = make("multi_indicator", emaSignal=False, priceAction=False)
    assert generate_signal(s, [100.0] * 60, [1000] * 60, NOW).action is Action.HOLD
