import pytest
from pydantic import ValidationError

from trader.registry import (
    MultiIndicatorParameters,
    Performance,
    RsiOversoldParameters,
    StrategyRegistry,
    StrategyType,
)


def test_default_catalogue():
    reg = StrategyRegistry()
    ids = [s.id for s in reg.list()]
    assert ids[:4] == ["ema_crossover_1", "rsi_oversold_1", "sma_trend_1", "bollinger_bands_1"]
    assert all(not reg.get(i).enabled for i in ids[:4])
    rsi = reg.get("rsi_oversold_1")
    assert isinstance(rsi.parameters, RsiOversoldParameters)
    assert rsi.parameters.quantity == 15
    live = [s for s in reg.list() if s.type is StrategyType.MULTI_INDICATOR]
    assert len(live) == 2
    assert all(isinstance(s.parameters, MultiIndicatorParameters) for s in live)
    assert all(s.parameters.order_type == "MARKET" for s in live)

def test_partial_update_merges_parameters():
    reg = StrategyRegistry()
    perf = reg.get("rsi_oversold_1").performance
    perf.record_execution()
    updated = reg.update("rsi_oversold_1", {"enabled": True, "parameters": {"oversoldLevel": 25}})
    assert updated.enabled is True
    assert updated.parameters.oversold_level == 25
    assert updated.parameters.rsi_period == 14
    assert updated.parameters.quantity == 15
    assert updated.performance.total_trades == 1
    assert reg.get("rsi_oversold_1") is updated

def test_update_rejects_unknown_and_invalid():
    reg = StrategyRegistry()
    with pytest.raises(KeyError):
        reg.update("nope", {"enabled": True})
    with pytest.raises(ValueError):
        reg.update("sma_trend_1", {"id": "other"})
    with pytest.raises(ValidationError):
        reg.update("sma_trend_1", {"parameters": {"quantity": 0}})
    # Une mise à jour invalide ne modifie rien
    assert reg.get("sma_trend_1").parameters.quantity == 10

def test_serialisation_uses_camel_case():
    data = StrategyRegistry().get("ema_crossover_1").to_dict()
    assert data["parameters"]["fastPeriod"] == 9
    assert data["parameters"]["stopLoss"] == 2.0
    assert data["performance"] == {
        "totalTrades": 0, "winRate": 0.0, "totalPnL": 0.0, "maxDrawdown": 0.0, "sharpeRatio": 0.0,
    }
    assert data["lastSignal"] is None
    assert data["type"] == "ema_crossover"

def test_enabled_by_symbol_groups():
    reg = StrategyRegistry()
    reg.update("rsi_oversold_1", {"enabled": True})
    grouped = reg.enabled_by_symbol()
    assert [s.id for s in grouped["^NSEBANK"]] == ["rsi_oversold_1", "live_banknifty"]
    assert "TCS.NS" not in grouped

def test_performance_on_closed_trades():
    perf = Performance()
    for pnl in (100.0, -50.0, 30.0):
        perf.record_close(pnl)
    assert perf.total_pnl == pytest.approx(80.0)
    assert perf.win_rate == pytest.approx(200 / 3)
    assert perf.max_drawdown == pytest.approx(-50.0)
    assert perf.sharpe_ratio > 0
