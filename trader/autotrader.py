import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from core.config import Settings, get_settings
from core.instruments import instrument_token, trading_symbol
from core.market_hours import MarketHours
from core.session import SessionGuard
from interfaces.broker import OrderGateway, OrderRequest, OrderResult, Quote, QuoteSource
from trader.models import Action, Position, Signal
from trader.registry import MultiIndicatorParameters, StrategyConfig, StrategyType
from trader.scheduler import DelayedJobQueue
from trader.signals import evaluator_for, generate_signal
from trader.state import TradingEngineState
from trader.utils import LogManager

logger = logging.getLogger("AutoTrader")

Notifier = Callable[[str, dict], Awaitable[None]]


def bracket_levels(strategy: StrategyConfig, side: str, entry: float) -> Tuple[float, float]:
    """(stop-loss, take-profit) en % du prix d'entrée, arrondis au centime."""
    params = strategy.parameters
    if side == Action.BUY.value:
        sl_price = entry * (1 - params.stop_loss / 100)
        tp_price = entry * (1 + params.take_profit / 100)
    else:
        sl_price = entry * (1 + params.stop_loss / 100)
        tp_price = entry * (1 - params.take_profit / 100)
    return round(sl_price, 2), round(tp_price, 2)


class AutoTrader:
    """
    Boucle d'auto-trading.
    - Un cycle : une cotation par symbole, mise à jour de l'historique, évaluation
      de chaque stratégie active, ordre si la confiance passe le seuil de l'évaluateur.
    - Stratégies à seuils : ordres stop-loss / take-profit différés après confirmation du parent.
    - Stratégies à votes : plafond de positions, cooldown, sortie sur PnL absolu.
    """

    def __init__(
        self,
        state: TradingEngineState,
        gateway: OrderGateway,
        quotes: QuoteSource,
        session: SessionGuard,
        scheduler: Optional[DelayedJobQueue] = None,
        settings: Optional[Settings] = None,
        market_hours: Optional[MarketHours] = None,
        clock: Callable[[], float] = time.time,
        notify: Optional[Notifier] = None,
    ):
        self.state = state
        self.gateway = gateway
        self.quotes = quotes
        self.session = session
        self.settings = settings if settings is not None else get_settings()
        self.scheduler = scheduler if scheduler is not None else DelayedJobQueue()
        self.market_hours = market_hours if market_hours is not None else MarketHours(
            self.settings.MARKET_TZ, self.settings.MARKET_OPEN, self.settings.MARKET_CLOSE
        )
        self.clock = clock
        self.notify = notify if notify is not None else LogManager().broadcast_event

    # -------------------- Contrôle -------------------- #
    @property
    def enabled(self) -> bool:
        return self.state.status.auto_trading_enabled

    def enable(self):
        status = self.state.status
        if status.auto_trading_enabled:
            return
        status.auto_trading_enabled = True
        status.status = "running"
        active = len(self.state.registry.enabled())
        status.add_log(f"🚀 Auto-trading activé ({active} stratégie(s) active(s))", "success")

    def disable(self):
        status = self.state.status
        if not status.auto_trading_enabled:
            return
        status.auto_trading_enabled = False
        status.status = "stopped"
        status.add_log("⏹️ Auto-trading désactivé", "warning")

    # -------------------- Cycle -------------------- #
    async def run_cycle(self) -> List[Signal]:
        """Un cycle complet. Les symboles sont traités en parallèle, une erreur reste locale à son symbole."""
        if not self.enabled:
            return []
        grouped = self.state.registry.enabled_by_symbol()
        if not grouped:
            return []
        results = await asyncio.gather(
            *(self._process_symbol(symbol, strategies) for symbol, strategies in grouped.items())
        )
        return [signal for signals in results for signal in signals]

    async def _process_symbol(self, symbol: str, strategies: List[StrategyConfig]) -> List[Signal]:
        if symbol in self.state.busy:
            logger.debug(f"Cycle déjà en cours pour {symbol}, ignoré")
            return []
        self.state.busy.add(symbol)
        signals: List[Signal] = []
        try:
            quote = await self.fetch_quote(symbol)
            if quote is None:
                self.state.status.add_log(f"Données indisponibles pour {symbol}, symbole ignoré", "warning")
                return signals
            self.ingest(quote)

            for strategy in strategies:
                try:
                    signal = await self._evaluate(strategy)
                    if signal is not None:
                        signals.append(signal)
                except Exception as e:
                    self.state.status.add_log(f"Erreur dans {strategy.name}: {e}", "error")

            await self.check_exits(symbol, quote.price)
        except Exception as e:
            self.state.status.add_log(f"Erreur de cycle pour {symbol}: {e}", "error")
        finally:
            self.state.busy.discard(symbol)
        return signals

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        try:
            return await asyncio.wait_for(self.quotes.fetch_quote(symbol), timeout=self.settings.CALL_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"⚠️ Timeout cotation {symbol}")
        except Exception as e:
            logger.warning(f"⚠️ Cotation {symbol} en échec: {e}")
        return None

    def ingest(self, quote: Quote):
        """Tick -> historique, bougies, cache et mark-to-market des positions du symbole."""
        ts = quote.timestamp or self.clock()
        self.state.history.append(quote.symbol, quote.price, quote.volume, ts)
        self.state.candles.process_tick(quote.symbol, quote.price, ts, quote.volume)
        self.state.cache_quote(quote, self.clock())
        for position in self.state.positions_for(quote.symbol):
            position.mark(quote.price)

    async def _evaluate(self, strategy: StrategyConfig) -> Optional[Signal]:
        history = self.state.history
        signal = generate_signal(
            strategy, history.prices(strategy.symbol), history.volumes(strategy.symbol), self.clock()
        )
        if not signal.actionable:
            return None

        self.state.record_signal(signal)
        self.state.status.add_log(
            f"🎯 {strategy.name}: {signal.action.value} à ₹{signal.price:.2f} "
            f"({signal.confidence:.0f}% confiance) {', '.join(signal.conditions)}",
        )
        await self._push("trading_signal", {
            "strategy": strategy.name,
            "symbol": strategy.symbol,
            "action": signal.action.value,
            "price": signal.price,
            "confidence": signal.confidence,
            "timestamp": signal.timestamp,
        })

        if signal.confidence >= evaluator_for(strategy.type).gate:
            await self.execute(strategy, signal)
        return signal

    # -------------------- Exécution -------------------- #
    def _order(self, strategy: StrategyConfig, side: str, price: float, order_type: str, tag: str, **extra) -> OrderRequest:
        return OrderRequest(
            trading_symbol=trading_symbol(strategy.symbol),
            instrument_token=instrument_token(strategy.symbol),
            quantity=strategy.parameters.quantity,
            price=round(price, 2),
            order_type=order_type,
            transaction_type=side,
            product="MIS",
            validity="DAY",
            tag=tag,
            **extra,
        )

    async def _place(self, order: OrderRequest) -> OrderResult:
        """Un seul essai : jamais de nouvelle tentative dans le même cycle."""
        if not self.session.can_trade:
            self.state.status.add_log(
                f"Ordre {order.transaction_type} {order.trading_symbol} bloqué: session broker expirée", "security"
            )
            return OrderResult(success=False, error="session expired")
        try:
            return await asyncio.wait_for(self.gateway.place_order(order), timeout=self.settings.CALL_TIMEOUT)
        except asyncio.TimeoutError:
            return OrderResult(success=False, error="order placement timed out")
        except Exception as e:
            return OrderResult(success=False, error=str(e))

    def _can_open(self, strategy: StrategyConfig) -> bool:
        params = strategy.parameters
        if not isinstance(params, MultiIndicatorParameters):
            return True
        symbol = strategy.symbol
        if len(self.state.positions_for(symbol, strategy.id)) >= params.max_positions:
            self.state.status.add_log(f"Positions max atteintes pour {symbol}", "warning")
            return False
        last = self.state.last_trade_at.get(symbol)
        if last is not None and self.clock() - last < params.cooldown_seconds:
            self.state.status.add_log(f"Trop tôt depuis le dernier trade sur {symbol}", "warning")
            return False
        return True

    async def execute(self, strategy: StrategyConfig, signal: Signal) -> Optional[Position]:
        if not self._can_open(strategy):
            return None

        now = self.clock()
        order = self._order(
            strategy,
            signal.action.value,
            signal.price,
            strategy.parameters.order_type,
            tag=f"algo_{strategy.type.value}_{int(now * 1000)}",
        )
        result = await self._place(order)
        if not result.success:
            self.state.status.add_log(f"TRADE FAILED: {strategy.name} - {result.error}", "error")
            return None

        position = Position(
            symbol=strategy.symbol,
            side=signal.action.value,
            quantity=order.quantity,
            entry_price=signal.price,
            strategy_id=strategy.id,
            timestamp=now,
            current_price=signal.price,
            order_id=result.order_id,
        )
        self.state.positions[position.id] = position
        if strategy.type is StrategyType.MULTI_INDICATOR:
            self.state.last_trade_at[strategy.symbol] = now
        strategy.performance.record_execution()

        self.state.status.add_log(
            f"TRADE EXECUTED: {signal.action.value} {order.quantity} {strategy.symbol} "
            f"à ₹{signal.price:.2f} - Order ID: {result.order_id}",
            "success",
        )
        await self._push("real_trade_executed", {
            "strategy": strategy.name,
            "symbol": strategy.symbol,
            "action": signal.action.value,
            "quantity": order.quantity,
            "price": signal.price,
            "orderId": result.order_id,
            "timestamp": signal.timestamp,
        })

        if strategy.type is not StrategyType.MULTI_INDICATOR:
            self.schedule_bracket(strategy, signal, result.order_id)
        return position

    def schedule_bracket(self, strategy: StrategyConfig, signal: Signal, parent_order_id: Optional[str]) -> List[str]:
        """
        Stop-loss (SL, déclenchement à stopLoss % défavorable) et take-profit (LIMIT à
        takeProfit % favorable), côté opposé, planifiés après l'acquittement du parent.
        Chaque ordre est envoyé indépendamment de l'autre.
        """
        sl_price, tp_price = bracket_levels(strategy, signal.action.value, signal.price)
        side = signal.action.opposite.value

        sl_order = self._order(
            strategy, side, sl_price, "SL", tag=f"sl_{parent_order_id}", trigger_price=round(sl_price, 2)
        )
        tp_order = self._order(strategy, side, tp_price, "LIMIT", tag=f"tp_{parent_order_id}")

        delay = self.settings.BRACKET_DELAY
        return [
            self.scheduler.schedule(delay, lambda: self._place_child(strategy, sl_order, "Stop Loss"), f"sl_{parent_order_id}"),
            self.scheduler.schedule(delay, lambda: self._place_child(strategy, tp_order, "Take Profit"), f"tp_{parent_order_id}"),
        ]

    async def _place_child(self, strategy: StrategyConfig, order: OrderRequest, label: str) -> OrderResult:
        result = await self._place(order)
        if result.success:
            self.state.status.add_log(
                f"🛡️ {label} placé pour {strategy.name} à ₹{order.price:.2f} (Order ID: {result.order_id})", "success"
            )
        else:
            self.state.status.add_log(f"Échec {label} pour {strategy.name}: {result.error}", "error")
        return result

    # -------------------- Sorties -------------------- #
    async def check_exits(self, symbol: str, price: float) -> List[Position]:
        """
        Stratégies à votes : PnL absolu (devise), sortie au marché si pnl <= -stopLoss
        ou pnl >= takeProfit. Stratégies à seuils : la position est soldée dès que le
        prix franchit un niveau du bracket (les ordres SL/TP sont déjà chez le broker).
        """
        closed: List[Position] = []
        for position in self.state.positions_for(symbol):
            if position.strategy_id not in self.state.registry:
                continue
            strategy = self.state.registry.get(position.strategy_id)
            if strategy.type is not StrategyType.MULTI_INDICATOR:
                if await self.settle_bracket(strategy, position, price):
                    closed.append(position)
                continue
            pnl = position.mark(price)
            params = strategy.parameters
            reason = None
            if pnl <= -params.stop_loss:
                reason = "Stop Loss"
            elif pnl >= params.take_profit:
                reason = "Take Profit"
            if reason and await self.exit_position(strategy, position, price, reason):
                closed.append(position)
        return closed

    async def settle_bracket(self, strategy: StrategyConfig, position: Position, price: float) -> bool:
        """Aucun ordre envoyé : le PnL est réalisé au niveau du bracket franchi."""
        sl_price, tp_price = bracket_levels(strategy, position.side, position.entry_price)
        long = position.side == Action.BUY.value
        if (price <= sl_price) if long else (price >= sl_price):
            reason, level = "Stop Loss", sl_price
        elif (price >= tp_price) if long else (price <= tp_price):
            reason, level = "Take Profit", tp_price
        else:
            return False

        pnl = position.mark(level)
        self.state.positions.pop(position.id, None)
        strategy.performance.record_close(pnl)
        sign = "+" if pnl > 0 else ""
        self.state.status.add_log(
            f"🛡️ {reason} atteint sur {position.symbol} (₹{level:.2f}), position soldée: {sign}₹{pnl:.2f}",
            "success" if pnl > 0 else "warning",
        )
        await self._push("position_closed", {**position.to_dict(), "reason": reason, "exitPrice": level})
        return True

    async def exit_position(self, strategy: StrategyConfig, position: Position, price: float, reason: str) -> bool:
        self.state.status.add_log(f"Sortie {position.side} {position.symbol} - {reason}")
        order = OrderRequest(
            trading_symbol=trading_symbol(position.symbol),
            instrument_token=instrument_token(position.symbol),
            quantity=position.quantity,
            price=round(price, 2),
            order_type="MARKET",
            transaction_type=Action(position.side).opposite.value,
            product="MIS",
            validity="DAY",
            tag=f"exit_{position.id}",
        )
        result = await self._place(order)
        if not result.success:
            self.state.status.add_log(f"Échec de sortie pour {position.symbol}: {result.error}", "error")
            return False

        pnl = position.mark(price)
        self.state.positions.pop(position.id, None)
        strategy.performance.record_close(pnl)
        sign = "+" if pnl > 0 else ""
        self.state.status.add_log(f"Position clôturée: {sign}₹{pnl:.2f}", "success" if pnl > 0 else "error")
        await self._push("position_closed", {**position.to_dict(), "reason": reason, "exitPrice": price})
        return True

    # -------------------- Données de marché -------------------- #
    async def market_data(self, symbols: List[str]) -> Dict[str, Optional[dict]]:
        """Cotations avec cache (TTL configurable, 60 s par défaut)."""
        out: Dict[str, Optional[dict]] = {}
        for symbol in symbols:
            quote = self.state.cached_quote(symbol, self.settings.QUOTE_CACHE_TTL, self.clock())
            if quote is None:
                quote = await self.fetch_quote(symbol)
                if quote is not None:
                    self.state.cache_quote(quote, self.clock())
            out[symbol] = quote.model_dump() if quote is not None else None
        return out

    async def warm_up(self, symbols: List[str]):
        """Pré-charge l'historique si la source de cotations sait fournir un historique."""
        fetch_history = getattr(self.quotes, "fetch_history", None)
        if fetch_history is None:
            return
        for symbol in symbols:
            try:
                ticks = await fetch_history(symbol)
            except Exception as e:
                logger.warning(f"⚠️ Historique {symbol} indisponible: {e}")
                continue
            for quote in ticks:
                self.state.history.append(symbol, quote.price, quote.volume, quote.timestamp)
                self.state.candles.process_tick(symbol, quote.price, quote.timestamp, quote.volume)
            if ticks:
                self.state.status.add_log(f"📈 {symbol} initialisé: {len(ticks)} prix, ₹{ticks[-1].price:.2f}", "success")

    # -------------------- Timers -------------------- #
    async def run_periodic(self, interval: float, market_hours_only: bool = False):
        name = "rapide" if market_hours_only else "principal"
        logger.info(f"⏱️ Cycle {name} toutes les {interval:.0f}s")
        while True:
            try:
                await asyncio.sleep(interval)
                if not self.enabled:
                    continue
                if market_hours_only and not self.market_hours.is_open():
                    continue
                await self.run_cycle()
            except asyncio.CancelledError:
                logger.info(f"⏹️ Cycle {name} arrêté")
                raise
            except Exception as e:
                logger.error(f"❌ Erreur boucle {name}: {e}")

    async def run(self):
        """Cycle principal (60 s), cycle rapide en séance (30 s) et file des ordres différés."""
        await self.session.check(self.gateway)
        tasks = [
            asyncio.create_task(self.run_periodic(self.settings.COARSE_INTERVAL)),
            asyncio.create_task(self.run_periodic(self.settings.FAST_INTERVAL, market_hours_only=True)),
            asyncio.create_task(self.scheduler.run_forever()),
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            for t in tasks:
                t.cancel()

    async def _push(self, event_type: str, data: dict):
        try:
            await self.notify(event_type, data)
        except Exception as e:
            logger.debug(f"Diffusion {event_type} ignorée: {e}")
