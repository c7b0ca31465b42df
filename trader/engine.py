import logging
from typing import Optional

from adapters.paper import PaperGateway
from adapters.synthetic import SyntheticQuoteSource
from adapters.upstox import UpstoxGateway
from adapters.yahoo import YahooQuoteSource
from core.config import Settings, get_settings
from core.session import SessionGuard
from trader.autotrader import AutoTrader
from trader.state import TradingEngineState

logger = logging.getLogger("TradingEngine")


def build_autotrader(settings: Optional[Settings] = None) -> AutoTrader:
    """Assemble l'état, le gateway (paper ou Upstox) et la source de cotations selon la configuration."""
    settings = settings or get_settings()

    if settings.TRADING_MODE == "live":
        session = SessionGuard(settings.UPSTOX_ACCESS_TOKEN)
        gateway = UpstoxGateway(session, env=settings.UPSTOX_ENV, timeout=settings.CALL_TIMEOUT)
        logger.info(f"🔌 Gateway Upstox ({settings.UPSTOX_ENV})")
    else:
        session = SessionGuard("paper")
        gateway = PaperGateway()
        logger.info("📝 Gateway PAPER (aucun ordre réel)")

    quotes = SyntheticQuoteSource() if settings.QUOTE_SOURCE == "synthetic" else YahooQuoteSource()
    logger.info(f"📡 Source de cotations: {quotes.name}")

    trader = AutoTrader(
        state=TradingEngineState.from_settings(settings),
        gateway=gateway,
        quotes=quotes,
        session=session,
        settings=settings,
    )
    if settings.AUTO_TRADING_ON_START:
        trader.enable()
    return trader
