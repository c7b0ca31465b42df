import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from core.errors import (
    ApiError,
    InvalidStrategyUpdate,
    SessionExpired,
    StrategyNotFound,
    UnknownStrategyType,
)
from trader import indicators
from trader.autotrader import AutoTrader
from trader.engine import build_autotrader
from trader.registry import StrategyType
from trader.utils import LogManager

logger = logging.getLogger("API")
log_manager = LogManager()


# --- Modèles de Données ---
class AutoTradingRequest(BaseModel):
    enabled: bool

class MarketDataRequest(BaseModel):
    symbols: List[str]

class SessionRequest(BaseModel):
    access_token: str


def _series(candles, values, offset: int = 0) -> List[dict]:
    return [{"time": candles[i + offset].period_start, "value": v} for i, v in enumerate(values)]


def chart_indicators(candles, strategy_type: StrategyType) -> Dict[str, List[dict]]:
    """Séries d'indicateurs alignées sur les bougies (SMA/Bollinger décalées de period-1)."""
    closes = [c.close for c in candles]
    out: Dict[str, List[dict]] = {}
    if strategy_type in (StrategyType.EMA_CROSSOVER, StrategyType.MULTI_INDICATOR):
        out["ema9"] = _series(candles, indicators.ema(closes, 9))
        out["ema21"] = _series(candles, indicators.ema(closes, 21))
    elif strategy_type is StrategyType.SMA_TREND:
        out["sma20"] = _series(candles, indicators.sma(closes, 20), 19)
        out["sma50"] = _series(candles, indicators.sma(closes, 50), 49)
    elif strategy_type is StrategyType.BOLLINGER_BANDS and len(closes) >= 20:
        bands = indicators.bollinger_bands(closes, 20, 2.0)
        out["bbUpper"] = _series(candles, [b.upper for b in bands], 19)
        out["bbMiddle"] = _series(candles, [b.middle for b in bands], 19)
        out["bbLower"] = _series(candles, [b.lower for b in bands], 19)
    return out


def create_app(trader: Optional[AutoTrader] = None, run_loop: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.trader is None:
            app.state.trader = build_autotrader()
        current: AutoTrader = app.state.trader
        task = None
        if run_loop:
            await current.warm_up(current.settings.WARMUP_SYMBOLS)
            task = asyncio.create_task(current.run(), name="auto-trader")
        logger.info("🚀 API prête")
        yield
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        close = getattr(current.gateway, "close", None)
        if close is not None:
            await close()
        logger.info("👋 API arrêtée")

    app = FastAPI(title="NSE Auto-Trading API", version="0.1.0", lifespan=lifespan)
    app.state.trader = trader

    def engine() -> AutoTrader:
        return app.state.trader

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.get("/health")
    def health() -> dict:
        t = engine()
        return {
            "ok": True,
            "status": t.state.status.status,
            "autoTradingEnabled": t.enabled,
            "session": t.session.to_dict(),
            "gateway": getattr(t.gateway, "name", type(t.gateway).__name__),
        }

    # --- Stratégies ---
    @app.get("/strategies")
    def list_strategies() -> dict:
        return {"success": True, "strategies": [s.to_dict() for s in engine().state.registry.list()]}

    @app.put("/strategies/{strategy_id}")
    def update_strategy(strategy_id: str, updates: Dict[str, Any]) -> dict:
        state = engine().state
        if strategy_id not in state.registry:
            raise StrategyNotFound(strategy_id)
        try:
            strategy = state.registry.update(strategy_id, updates)
        except ValidationError as e:
            raise InvalidStrategyUpdate("Invalid strategy update", json.loads(e.json(include_url=False)))
        except ValueError as e:
            raise InvalidStrategyUpdate(str(e))
        state.status.add_log(f"Stratégie {strategy.name} mise à jour")
        return {"success": True, "strategy": strategy.to_dict()}

    @app.get("/strategies/system/status")
    def system_status() -> dict:
        state = engine().state
        return {
            "success": True,
            **state.status.to_dict(),
            "activeStrategies": len(state.registry.enabled()),
            "totalStrategies": len(state.registry),
        }

    @app.post("/strategies/system/auto-trading")
    def set_auto_trading(body: AutoTradingRequest) -> dict:
        t = engine()
        if body.enabled:
            t.enable()
        else:
            t.disable()
        return {"success": True, "autoTradingEnabled": t.enabled}

    @app.post("/strategies/market-data")
    async def market_data(body: MarketDataRequest) -> dict:
        data = await engine().market_data(body.symbols)
        return {symbol: quote for symbol, quote in data.items() if quote is not None}

    @app.get("/strategies/chart-data/{symbol}/{strategy_type}")
    def chart_data(symbol: str, strategy_type: str) -> dict:
        try:
            stype = StrategyType(strategy_type)
        except ValueError:
            raise UnknownStrategyType(strategy_type)
        state = engine().state
        candles = state.candles.candles(symbol)
        signals = [
            s.to_dict() for s in state.recent_signals
            if s.symbol == symbol and s.strategy_id in state.registry
            and state.registry.get(s.strategy_id).type is stype
        ]
        return {
            "candles": [
                {"time": c.period_start, "open": c.open, "high": c.high, "low": c.low, "close": c.close, "volume": c.volume}
                for c in candles
            ],
            "indicators": chart_indicators(candles, stype),
            "signals": signals,
        }

    # --- Signaux / Positions ---
    @app.get("/signals")
    def recent_signals() -> dict:
        return {"success": True, "signals": [s.to_dict() for s in engine().state.recent_signals]}

    @app.get("/positions")
    def open_positions() -> dict:
        return {"success": True, "positions": [p.to_dict() for p in engine().state.positions.values()]}

    # --- Session broker ---
    @app.get("/session")
    def session_status() -> dict:
        return engine().session.to_dict()

    @app.post("/session")
    async def renew_session(body: SessionRequest) -> dict:
        t = engine()
        t.session.renew(body.access_token)
        if not await t.session.check(t.gateway):
            raise SessionExpired()
        t.state.status.add_log("Session broker ré-authentifiée", "success")
        return t.session.to_dict()

    # --- Canal de diffusion ---
    @app.websocket("/ws/logs")
    async def websocket_endpoint(websocket: WebSocket):
        await log_manager.connect(websocket)
        try:
            while True:
                # Garder la connexion active
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_text("pong")
        except WebSocketDisconnect:
            log_manager.disconnect(websocket)
        except Exception as e:
            logger.warning(f"⚠️ Erreur WebSocket: {e}")
            log_manager.disconnect(websocket)

    return app


app = create_app()
