from __future__ import annotations
"""Source de cotations Yahoo Finance (yfinance, appels bloquants déportés dans un thread)."""
import asyncio
import logging
import time
from typing import List, Optional

import yfinance as yf
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from interfaces.broker import Quote

logger = logging.getLogger("YahooQuotes")


class NoData(Exception):
    """Yahoo n'a renvoyé aucune barre pour ce symbole."""


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5),
    retry=retry_if_not_exception_type(NoData),
    reraise=True,
)
def _download_quote(symbol: str) -> Quote:
    ticker = yf.Ticker(symbol)
    intraday = ticker.history(period="1d", interval="1m")
    if intraday.empty:
        raise NoData(symbol)
    daily = ticker.history(period="5d", interval="1d")

    price = float(intraday["Close"].iloc[-1])
    prev_close = float(daily["Close"].iloc[-2]) if len(daily) >= 2 else None
    change = price - prev_close if prev_close else None
    return Quote(
        symbol=symbol,
        price=price,
        open=float(intraday["Open"].iloc[0]),
        high=float(intraday["High"].max()),
        low=float(intraday["Low"].min()),
        volume=int(intraday["Volume"].iloc[-1]),
        change=change,
        changePercent=(change / prev_close * 100) if change is not None else None,
        timestamp=time.time(),
    )


@retry(
    stop=stop_after_attempt(2),
    wait=wait_exponential(multiplier=0.5),
    retry=retry_if_not_exception_type(NoData),
    reraise=True,
)
def _download_history(symbol: str, limit: int) -> List[Quote]:
    data = yf.Ticker(symbol).history(period="1d", interval="1m")
    if data.empty:
        raise NoData(symbol)
    data = data.tail(limit)
    return [
        Quote(
            symbol=symbol,
            price=float(row["Close"]),
            open=float(row["Open"]),
            high=float(row["High"]),
            low=float(row["Low"]),
            volume=int(row["Volume"]),
            timestamp=idx.timestamp(),
        )
        for idx, row in data.iterrows()
    ]


class YahooQuoteSource:
    name = "yahoo"

    def __init__(self, history_limit: int = 100) -> None:
        self.history_limit = history_limit

    async def fetch_quote(self, symbol: str) -> Optional[Quote]:
        try:
            return await asyncio.to_thread(_download_quote, symbol)
        except NoData:
            logger.warning(f"⚠️ Aucune donnée Yahoo pour {symbol}")
        except Exception as e:
            logger.warning(f"⚠️ Cotation Yahoo {symbol} en échec: {e}")
        return None

    async def fetch_history(self, symbol: str) -> List[Quote]:
        try:
            return await asyncio.to_thread(_download_history, symbol, self.history_limit)
        except NoData:
            logger.warning(f"⚠️ Aucun historique Yahoo pour {symbol}")
        except Exception as e:
            logger.warning(f"⚠️ Historique Yahoo {symbol} en échec: {e}")
        return []


Adapter = YahooQuoteSource
