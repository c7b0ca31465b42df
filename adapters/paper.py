from __future__ import annotations
"""Paper gateway : ordres simulés, aucun appel réseau."""
import logging
import time
from typing import List

from interfaces.broker import OrderRequest, OrderResult

logger = logging.getLogger("PaperGateway")


class PaperGateway:
    name = "paper"

    def __init__(self) -> None:
        self.orders: List[OrderRequest] = []
        self._seq = 0

    async def place_order(self, order: OrderRequest) -> OrderResult:
        self._seq += 1
        self.orders.append(order)
        order_id = f"SIM-{int(time.time() * 1000)}-{self._seq}"
        logger.info(
            f"📝 PAPER {order.order_type} {order.transaction_type} {order.quantity} "
            f"{order.trading_symbol} @ {order.price} [{order.tag}] -> {order_id}"
        )
        return OrderResult(success=True, order_id=order_id)

    async def validate_token(self) -> bool:
        return True

    async def close(self) -> None:
        return None


Adapter = PaperGateway
