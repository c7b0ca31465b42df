from __future__ import annotations
from typing import Protocol, Optional
from pydantic import BaseModel

class Quote(BaseModel):
    symbol: str; price: float
    open: Optional[float] = None; high: Optional[float] = None; low: Optional[float] = None
    volume: int = 0
    change: Optional[float] = None
    changePercent: Optional[float] = None
    timestamp: float

class OrderRequest(BaseModel):
    trading_symbol: str
    instrument_token: str
    quantity: int
    price: float = 0.0
    order_type: str = "LIMIT"   # 'MARKET'|'LIMIT'|'SL'|'SL-M'
    transaction_type: str       # 'BUY'|'SELL'
    product: str = "MIS"
    validity: str = "DAY"
    trigger_price: float = 0.0
    disclosed_quantity: int = 0
    is_amo: bool = False
    slice: bool = True
    tag: Optional[str] = None

class OrderResult(BaseModel):
    success: bool
    order_id: Optional[str] = None
    error: Optional[str] = None

class OrderGateway(Protocol):
    async def place_order(self, order: OrderRequest) -> OrderResult: ...
    async def validate_token(self) -> bool: ...

class QuoteSource(Protocol):
    async def fetch_quote(self, symbol: str) -> Optional[Quote]: ...
