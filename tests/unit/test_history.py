from trader.history import CandleAggregator, PriceHistoryStore


def test_raw_samples_capped_oldest_first():
    store = PriceHistoryStore()
    for i in range(250):
        store.append("^NSEI", float(i), volume=i, timestamp=float(i))
    prices = store.prices("^NSEI")
    assert len(prices) == 200
    assert prices[0] == 50.0
    assert prices[-1] == 249.0
    assert store.latest("^NSEI").price == 249.0
    assert store.volumes("^NSEI")[0] == 50

def test_buffers_are_per_symbol():
    store = PriceHistoryStore(maxlen=3)
    for i in range(5):
        store.append("A", float(i))
    store.append("B", 42.0)
    assert store.prices("A") == [2.0, 3.0, 4.0]
    assert store.prices("B") == [42.0]
    assert store.prices("C") == []
    assert store.latest("C") is None

def test_candles_capped_at_60():
    agg = CandleAggregator(interval=60)
    for i in range(70):
        agg.process_tick("TCS.NS", 100.0 + i, timestamp=i * 60.0)
    candles = agg.candles("TCS.NS")
    assert len(candles) == 60
    assert candles[0].period_start == 600
    assert candles[-1].period_start == 69 * 60

def test_ticks_fold_into_aligned_candle():
    agg = CandleAggregator(interval=60)
    agg.process_tick("X", 100.0, timestamp=125.0, volume=5)
    agg.process_tick("X", 104.0, timestamp=130.0, volume=5)
    agg.process_tick("X", 98.0, timestamp=170.0, volume=5)
    agg.process_tick("X", 101.0, timestamp=179.0, volume=5)
    agg.process_tick("X", 102.0, timestamp=180.0)
    first, second = agg.candles("X")
    assert first.period_start == 120
    assert (first.open, first.high, first.low, first.close, first.volume) == (100.0, 104.0, 98.0, 101.0, 20)
    assert second.period_start == 180
    assert second.open == second.close == 102.0

def test_candle_invariants_hold_and_start_never_decreases():
    agg = CandleAggregator(interval=60)
    ticks = [(100.0, 0), (97.0, 30), (103.0, 61), (99.0, 10), (105.0, 200), (95.0, 230)]
    for price, ts in ticks:
        agg.process_tick("X", price, timestamp=float(ts))
    candles = agg.candles("X")
    starts = [c.period_start for c in candles]
    assert starts == sorted(starts)
    for c in candles:
        assert c.high >= max(c.open, c.close) >= min(c.open, c.close) >= c.low
