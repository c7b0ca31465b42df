"""
Indicateurs techniques calculés sur une courte fenêtre glissante en mémoire.

Fonctions pures : aucune ne lève sur une entrée trop courte, elles renvoient
une valeur neutre (RSI 50, bandes = dernier prix, ...) pour que l'appelant
reste sûr pendant la phase de chauffe.
"""
import logging
from dataclasses import asdict, dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger("Indicators")

# En dessous de ce nombre de prix, l'instantané complet est neutre
SNAPSHOT_MIN_PRICES = 50


@dataclass(frozen=True)
class Band:
    upper: float
    middle: float
    lower: float


@dataclass(frozen=True)
class IndicatorSnapshot:
    rsi: float
    sma20: float
    sma50: float
    ema9: float
    ema21: float
    macd: float
    macd_signal: float
    bollinger_upper: float
    bollinger_lower: float
    stochastic_k: float
    stochastic_d: float
    atr: float
    volume_ratio: float

    def to_dict(self) -> dict:
        return asdict(self)


def _series(prices: Sequence[float]) -> pd.Series:
    return pd.Series(list(prices), dtype="float64")


def sma(prices: Sequence[float], period: int) -> List[float]:
    """Moyenne simple : une valeur par index >= period-1 (sortie plus courte de period-1)."""
    if period <= 0 or len(prices) < period:
        return []
    return _series(prices).rolling(window=period).mean().iloc[period - 1:].tolist()


def ema(prices: Sequence[float], period: int) -> List[float]:
    """
    Moyenne exponentielle amorcée sur le premier prix, k = 2/(period+1).
    Une valeur par prix (pas de troncature de chauffe, contrairement à sma) :
    les séries EMA restent alignées index par index avec les prix.
    """
    if period <= 0 or len(prices) == 0:
        return []
    # adjust=False => ema_t = (p_t - ema_{t-1}) * alpha + ema_{t-1}, ema_0 = p_0
    return _series(prices).ewm(span=period, adjust=False).mean().tolist()


def rsi(prices: Sequence[float], period: int = 14) -> float:
    """
    RSI sur les `period` PREMIERS écarts de la série (moyennes simples).

    Ce n'est pas le RSI de Wilder : il n'y a pas de lissage incrémental sur
    toute la série, seule la fenêtre initiale compte. Comportement conservé
    tel quel ; passer une fenêtre de fin (prices[-(period+1):]) pour obtenir
    un RSI "courant".
    avg_loss == 0 : 100 si des hausses existent, 50 si la fenêtre est plate.
    """
    if period <= 0 or len(prices) < period + 1:
        return 50.0
    deltas = np.diff(np.asarray(prices[: period + 1], dtype="float64"))
    avg_gain = float(np.clip(deltas, 0.0, None).sum()) / period
    avg_loss = float(np.clip(-deltas, 0.0, None).sum()) / period
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


def bollinger_bands(prices: Sequence[float], period: int = 20, std_dev: float = 2.0) -> List[Band]:
    """SMA(period) +/- std_dev * écart-type (population) de la fenêtre glissante."""
    if len(prices) == 0:
        return []
    if period <= 0 or len(prices) < period:
        last = float(prices[-1])
        return [Band(upper=last, middle=last, lower=last)]
    s = _series(prices)
    middle = s.rolling(window=period).mean().iloc[period - 1:]
    std = s.rolling(window=period).std(ddof=0).iloc[period - 1:]
    return [
        Band(upper=m + std_dev * d, middle=m, lower=m - std_dev * d)
        for m, d in zip(middle.tolist(), std.tolist())
    ]


def atr(prices: Sequence[float], period: int = 14) -> float:
    """Proxy de volatilité : moyenne des variations absolues close-à-close (pas un vrai True Range)."""
    window = list(prices[-(period + 1):]) if period > 0 else []
    if len(window) < 2:
        return 0.0
    return float(np.abs(np.diff(np.asarray(window, dtype="float64"))).mean())


def stochastic(prices: Sequence[float], period: int = 14) -> Tuple[float, float]:
    """%K sur la fenêtre de fin ; %D est volontairement identique à %K (pas de lissage)."""
    if period <= 0 or len(prices) < period:
        return 50.0, 50.0
    window = np.asarray(prices[-period:], dtype="float64")
    high, low = float(window.max()), float(window.min())
    if high == low:
        return 50.0, 50.0
    k = (float(prices[-1]) - low) / (high - low) * 100.0
    return k, k


def macd(prices: Sequence[float], fast: int = 12, slow: int = 26, signal: int = 9) -> Tuple[float, float]:
    """
    Delta EMA(fast) - EMA(slow), chaque EMA amorcée sur sa fenêtre de fin.
    La ligne de signal est une EMA(signal) de ce delta sur les dernières bougies.
    """
    if len(prices) < slow:
        return 0.0, 0.0
    deltas = []
    start = max(slow, len(prices) - signal + 1)
    for end in range(start, len(prices) + 1):
        window = prices[:end]
        deltas.append(ema(window[-fast:], fast)[-1] - ema(window[-slow:], slow)[-1])
    return deltas[-1], ema(deltas, signal)[-1]


def volume_ratio(volumes: Sequence[float], period: int = 20) -> float:
    if len(volumes) == 0:
        return 1.0
    window = list(volumes[-period:])
    avg = sum(window) / period if period > 0 else 0.0
    current = volumes[-1] or 1
    return float(current) / (avg or 1)


def neutral_snapshot(last_price: float) -> IndicatorSnapshot:
    return IndicatorSnapshot(
        rsi=50.0, sma20=last_price, sma50=last_price, ema9=last_price, ema21=last_price,
        macd=0.0, macd_signal=0.0, bollinger_upper=last_price, bollinger_lower=last_price,
        stochastic_k=50.0, stochastic_d=50.0, atr=0.0, volume_ratio=1.0,
    )


def snapshot(prices: Sequence[float], volumes: Sequence[float]) -> IndicatorSnapshot:
    """Instantané complet pour l'évaluateur par votes (fenêtres de fin)."""
    last_price = float(prices[-1]) if len(prices) else 0.0
    if len(prices) < SNAPSHOT_MIN_PRICES:
        return neutral_snapshot(last_price)

    sma20 = sma(prices[-20:], 20)[-1]
    band = bollinger_bands(prices[-20:], 20, 2.0)[-1]
    macd_line, macd_signal = macd(prices)
    k, d = stochastic(prices, 14)
    return IndicatorSnapshot(
        rsi=rsi(prices[-15:], 14),
        sma20=sma20,
        sma50=sma(prices[-50:], 50)[-1],
        ema9=ema(prices[-9:], 9)[-1],
        ema21=ema(prices[-21:], 21)[-1],
        macd=macd_line,
        macd_signal=macd_signal,
        bollinger_upper=band.upper,
        bollinger_lower=band.lower,
        stochastic_k=k,
        stochastic_d=d,
        atr=atr(prices, 14),
        volume_ratio=volume_ratio(volumes, 20),
    )
