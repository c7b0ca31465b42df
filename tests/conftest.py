from typing import Callable, Dict, List, Optional, Sequence

import pytest

from core.config import Settings
from core.session import SessionGuard
from interfaces.broker import OrderRequest, OrderResult, Quote
from trader.autotrader import AutoTrader
from trader.registry import StrategyConfig, StrategyRegistry
from trader.scheduler import DelayedJobQueue
from trader.state import TradingEngineState


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    name = "fake"

    def __init__(self, reject: Optional[Callable[[OrderRequest], bool]] = None, valid: bool = True) -> None:
        self.orders: List[OrderRequest] = []
        self.reject = reject
        self.valid = valid

    async def place_order(self, order: OrderRequest) -> OrderResult:
        self.orders.append(order)
        if self.reject and self.reject(order):
            return OrderResult(success=False, error="rejected by broker")
        return OrderResult(success=True, order_id=f"ORD{len(self.orders)}")

    async def validate_token(self) -> bool:
        return self.valid


class FakeQuotes:
    """Prix fixe ou séquence de prix par symbole ; les symboles de `failing` lèvent."""

    def __init__(self, prices: Dict[str, object], clock: FakeClock, failing: Sequence[str] = ()) -> None:
        self.prices = dict(prices)
        self.clock = clock
        self.failing = set(failing)
        self.calls: List[str] = []

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        self.calls.append(symbol)
        if symbol in self.failing:
            raise RuntimeError("feed down")
        price = self.prices.get(symbol)
        if isinstance(price, list):
            price = price.pop(0) if price else None
        if price is None:
            return None
        return Quote(symbol=symbol, price=price, volume=1000, timestamp=self.clock())


@pytest.fixture
def rsi_25_prices() -> List[float]:
    """20 prix en baisse : les 14 premiers écarts (9 baisses, 3 hausses, 2 plats) donnent un RSI de 25."""
    deltas = [-1.0] * 9 + [1.0] * 3 + [0.0] * 2 + [-1.0] * 5
    prices = [100.0]
    for d in deltas:
        prices.append(prices[-1] + d)
    return prices


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, TRADING_MODE="paper", QUOTE_SOURCE="synthetic")


@pytest.fixture
def make_trader(clock, settings):
    def _make(
        strategies: List[StrategyConfig],
        prices: Optional[Dict[str, object]] = None,
        failing: Sequence[str] = (),
        reject: Optional[Callable[[OrderRequest], bool]] = None,
        session: Optional[SessionGuard] = None,
    ) -> AutoTrader:
        state = TradingEngineState.from_settings(settings)
        state.registry = StrategyRegistry(strategies)
        return AutoTrader(
            state=state,
            gateway=FakeGateway(reject),
            quotes=FakeQuotes(prices or {}, clock, failing),
            session=session or SessionGuard("test-token"),
            scheduler=DelayedJobQueue(clock=clock),
            settings=settings,
            clock=clock,
            notify=_no_push,
        )

    return _make


async def _no_push(event_type: str, data: dict) -> None:
    return None
