import pytest

from trader import indicators


def test_sma_reference_values():
    assert indicators.sma([1, 2, 3, 4, 5], 3) == pytest.approx([2.0, 3.0, 4.0])

def test_sma_short_input_is_empty():
    assert indicators.sma([1, 2], 3) == []
    assert indicators.sma([1, 2, 3], 0) == []

def test_ema_seeded_on_first_price():
    # k = 2/(3+1) = 0.5
    assert indicators.ema([1, 2, 3, 4, 5], 3) == pytest.approx([1.0, 1.5, 2.25, 3.125, 4.0625])

def test_ema_empty():
    assert indicators.ema([], 9) == []

def test_rsi_neutral_on_short_input():
    assert indicators.rsi([100.0] * 10, 14) == 50.0

def test_rsi_guards_zero_loss():
    assert indicators.rsi(list(range(1, 20)), 14) == 100.0
    assert indicators.rsi([100.0] * 20, 14) == 50.0

def test_rsi_balanced_moves_is_50():
    prices = [100.0 + (i % 2) for i in range(15)]
    assert indicators.rsi(prices, 14) == pytest.approx(50.0)

def test_rsi_only_reads_first_window(rsi_25_prices):
    # Le crash après la fenêtre initiale ne change rien
    assert indicators.rsi(rsi_25_prices, 14) == pytest.approx(25.0)
    assert indicators.rsi(rsi_25_prices + [10.0, 5.0], 14) == pytest.approx(25.0)

def test_bollinger_flat_prices_collapse():
    band = indicators.bollinger_bands([50.0] * 25, 20, 2.0)[-1]
    assert band.upper == band.middle == band.lower == 50.0

def test_bollinger_population_std():
    prices = [1.0, 3.0] * 10
    band = indicators.bollinger_bands(prices, 20, 2.0)[-1]
    # moyenne 2, écart-type population 1
    assert band.middle == pytest.approx(2.0)
    assert band.upper == pytest.approx(4.0)
    assert band.lower == pytest.approx(0.0)

def test_bollinger_short_input_single_band_at_price():
    bands = indicators.bollinger_bands([10.0, 11.0], 20)
    assert len(bands) == 1
    assert bands[0].upper == bands[0].lower == 11.0
    assert indicators.bollinger_bands([], 20) == []

def test_atr_mean_abs_change():
    assert indicators.atr([1.0, 2.0, 4.0], 14) == pytest.approx(1.5)
    assert indicators.atr([1.0], 14) == 0.0

def test_stochastic():
    assert indicators.stochastic([float(i) for i in range(1, 15)], 14) == (100.0, 100.0)
    assert indicators.stochastic([5.0] * 14, 14) == (50.0, 50.0)
    assert indicators.stochastic([1.0, 2.0], 14) == (50.0, 50.0)

def test_macd_short_input():
    assert indicators.macd([100.0] * 10) == (0.0, 0.0)

def test_macd_sign_follows_trend():
    rising = [100.0 + i for i in range(60)]
    line, signal = indicators.macd(rising)
    assert line > 0
    assert signal > 0

def test_volume_ratio():
    assert indicators.volume_ratio([100] * 19 + [300], 20) == pytest.approx(300 / 110)
    assert indicators.volume_ratio([], 20) == 1.0

def test_snapshot_neutral_below_50_prices():
    snap = indicators.snapshot([100.0] * 49, [1000] * 49)
    assert snap == indicators.neutral_snapshot(100.0)
    assert snap.rsi == 50.0 and snap.volume_ratio == 1.0

def test_snapshot_full():
    prices = [100.0 + (i % 5) for i in range(60)]
    snap = indicators.snapshot(prices, [1000] * 60)
    assert snap.bollinger_lower <= snap.sma20 <= snap.bollinger_upper
    assert 0.0 <= snap.rsi <= 100.0
    assert snap.stochastic_k == snap.stochastic_d

REFERENCE = [10, 11, 12, 11, 10, 9, 10, 11, 12, 13, 14, 13, 12, 11, 10] * 2

def test_sma3_reference_sequence():
    cycle = [11, 34 / 3, 11, 10, 29 / 3, 10, 11, 12, 13, 40 / 3, 13, 12, 11]
    expected = cycle + [31 / 3, 31 / 3] + cycle
    assert indicators.sma(REFERENCE, 3) == pytest.approx(expected, abs=1e-9)

def test_ema3_reference_sequence():
    # k = 0.5 : chaque valeur est la moyenne du prix et de l'EMA précédente
    expected = [
        10.0, 10.5, 11.25, 11.125, 10.5625, 9.78125, 9.890625, 10.4453125, 11.22265625,
        12.111328125, 13.0556640625, 13.02783203125, 12.513916015625, 11.7569580078125,
        10.87847900390625,
    ]
    values = indicators.ema(REFERENCE, 3)
    assert len(values) == len(REFERENCE)
    assert values[:15] == pytest.approx(expected, abs=1e-9)
