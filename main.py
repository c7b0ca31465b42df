import argparse
import asyncio
import logging
import sys

import uvicorn
import uvloop

from core.config import get_settings
from trader.engine import build_autotrader
from trader.utils import BroadcastLogHandler

# Configuration du logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        BroadcastLogHandler()  # Diffusion vers les clients WebSocket
    ]
)
# Réduire le bruit des logs HTTP
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("TradingEngine")


async def main():
    """Moteur seul, sans API : la boucle démarre avec l'auto-trading activé."""
    logger.info("🚀 Démarrage du Trading Engine (headless)...")
    settings = get_settings()
    logging.getLogger().setLevel(settings.LOG_LEVEL)

    trader = build_autotrader(settings)
    await trader.warm_up(settings.WARMUP_SYMBOLS)
    trader.enable()

    task = asyncio.create_task(trader.run(), name="auto-trader")
    try:
        await task
    except asyncio.CancelledError:
        logger.info("🛑 Arrêt demandé...")
    except Exception:
        logger.exception("❌ Erreur critique, arrêt du moteur...")
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        close = getattr(trader.gateway, "close", None)
        if close is not None:
            await close()
        logger.info("👋 Fermeture propre...")


def serve():
    settings = get_settings()
    uvicorn.run("api.server:app", host=settings.API_HOST, port=settings.API_PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="NSE auto-trading engine")
    parser.add_argument("--headless", action="store_true", help="boucle de trading sans API HTTP")
    args = parser.parse_args()

    if sys.platform != "win32":
        uvloop.install()
    if args.headless:
        try:
            asyncio.run(main())
        except KeyboardInterrupt:
            pass
    else:
        serve()
