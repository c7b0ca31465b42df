"""Upstox v3 order gateway (httpx).

Aucune exception ne remonte de place_order : erreurs réseau, timeouts et
réponses non-2xx deviennent OrderResult(success=False). Un 401 expire la session.
"""
from __future__ import annotations
import logging
from typing import Optional

import httpx

from core.session import SessionGuard
from interfaces.broker import OrderRequest, OrderResult

logger = logging.getLogger("UpstoxGateway")

UPSTOX_URLS = {
    "live": "https://api-hft.upstox.com/v3",
    "sandbox": "https://api-sandbox.upstox.com/v3",
}
# Le profil utilisateur n'existe qu'en v2
PROFILE_URL = "https://api.upstox.com/v2/user/profile"


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        if body.get("message"):
            return str(body["message"])
        errors = body.get("errors") or []
        if errors and isinstance(errors[0], dict) and errors[0].get("message"):
            return str(errors[0]["message"])
    return f"HTTP {resp.status_code}"


class UpstoxGateway:
    name = "upstox"

    def __init__(
        self,
        session: SessionGuard,
        env: str = "sandbox",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        profile_url: str = PROFILE_URL,
    ) -> None:
        self.session = session
        self.base_url = UPSTOX_URLS.get(env, UPSTOX_URLS["sandbox"])
        self.profile_url = profile_url
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.session.access_token or ''}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    async def place_order(self, order: OrderRequest) -> OrderResult:
        try:
            resp = await self.client.post(
                f"{self.base_url}/order/place",
                json=order.model_dump(exclude_none=True),
                headers=self._headers(),
            )
        except httpx.TimeoutException:
            logger.error(f"❌ Timeout Upstox pour {order.trading_symbol}")
            return OrderResult(success=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error(f"❌ Erreur réseau Upstox: {e}")
            return OrderResult(success=False, error=str(e))

        if resp.status_code == 401:
            self.session.mark_expired("401 from order/place")
            return OrderResult(success=False, error=_error_message(resp))
        if resp.status_code >= 400:
            error = _error_message(resp)
            logger.error(f"❌ Ordre rejeté par Upstox ({resp.status_code}): {error}")
            return OrderResult(success=False, error=error)

        try:
            data = resp.json().get("data") or {}
        except ValueError:
            return OrderResult(success=False, error="invalid JSON response")
        order_ids = data.get("order_ids") or [data.get("order_id")]
        order_id = order_ids[0] if order_ids else None
        if not order_id:
            return OrderResult(success=False, error="no order id in response")
        logger.info(f"✅ Ordre Upstox accepté {order.transaction_type} {order.trading_symbol} -> {order_id}")
        return OrderResult(success=True, order_id=str(order_id))

    async def validate_token(self) -> bool:
        if not self.session.access_token:
            return False
        try:
            resp = await self.client.get(self.profile_url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning(f"⚠️ Validation jeton Upstox impossible: {e}")
            raise
        if resp.status_code == 401:
            return False
        return resp.status_code < 400

    async def close(self) -> None:
        await self.client.aclose()


Adapter = UpstoxGateway
