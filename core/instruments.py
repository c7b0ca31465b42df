"""Correspondance symbole Yahoo Finance -> instrument Upstox."""

INSTRUMENT_TOKENS = {
    "^NSEI": "NSE_INDEX|Nifty 50",
    "^NSEBANK": "NSE_INDEX|Nifty Bank",
    "RELIANCE.NS": "NSE_EQ|INE002A01018",
    "TCS.NS": "NSE_EQ|INE467B01029",
    "INFY.NS": "NSE_EQ|INE009A01021",
    "HDFCBANK.NS": "NSE_EQ|INE040A01034",
    "ICICIBANK.NS": "NSE_EQ|INE090A01013",
}

TRADING_SYMBOLS = {
    "^NSEI": "NIFTY",
    "^NSEBANK": "BANKNIFTY",
    "RELIANCE.NS": "RELIANCE",
    "TCS.NS": "TCS",
    "INFY.NS": "INFY",
    "HDFCBANK.NS": "HDFCBANK",
    "ICICIBANK.NS": "ICICIBANK",
}


def _bare(symbol: str) -> str:
    return symbol.replace(".NS", "")


def instrument_token(symbol: str) -> str:
    return INSTRUMENT_TOKENS.get(symbol, f"NSE_EQ|{_bare(symbol)}")


def trading_symbol(symbol: str) -> str:
    return TRADING_SYMBOLS.get(symbol, _bare(symbol))
