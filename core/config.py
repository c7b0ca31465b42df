from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

# Chargement des variables d'environnement depuis le fichier .env
load_dotenv()


class Settings(BaseSettings):
    # Broker
    TRADING_MODE: Literal["paper", "live"] = "paper"
    UPSTOX_ENV: Literal["sandbox", "live"] = "sandbox"
    UPSTOX_ACCESS_TOKEN: Optional[str] = None

    # Données de marché
    QUOTE_SOURCE: Literal["yahoo", "synthetic"] = "yahoo"
    QUOTE_CACHE_TTL: float = 60.0
    WARMUP_SYMBOLS: List[str] = []

    # Boucle d'auto-trading
    COARSE_INTERVAL: float = 60.0
    FAST_INTERVAL: float = 30.0
    BRACKET_DELAY: float = 5.0
    CALL_TIMEOUT: float = 30.0
    AUTO_TRADING_ON_START: bool = False

    # Heures de marché NSE
    MARKET_TZ: str = "Asia/Kolkata"
    MARKET_OPEN: str = "09:15"
    MARKET_CLOSE: str = "15:30"

    # Buffers en mémoire
    HISTORY_MAXLEN: int = 200
    CANDLE_MAXLEN: int = 60
    CANDLE_INTERVAL: int = 60
    LOG_MAXLEN: int = 200
    SIGNALS_MAXLEN: int = 20

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    return Settings()
