import logging
import time
from typing import Optional

logger = logging.getLogger("Session")


class SessionGuard:
    """
    Validité du jeton broker. Une session expirée bloque l'envoi de nouveaux
    ordres jusqu'à ré-authentification ; les lectures restent possibles.
    """

    def __init__(self, access_token: Optional[str] = None):
        self.access_token = access_token
        self.expired = not access_token
        self.reason: Optional[str] = None if access_token else "no access token"
        self.checked_at: Optional[float] = None

    @property
    def can_trade(self) -> bool:
        return not self.expired

    def mark_expired(self, reason: str) -> None:
        if not self.expired:
            logger.error(f"🔒 Session broker expirée: {reason}")
        self.expired = True
        self.reason = reason

    def renew(self, access_token: str) -> None:
        self.access_token = access_token
        self.expired = False
        self.reason = None
        logger.info("✅ Nouveau jeton broker enregistré")

    async def check(self, gateway) -> bool:
        """Valide le jeton via le gateway (ex: GET /user/profile chez Upstox)."""
        self.checked_at = time.time()
        try:
            valid = await gateway.validate_token()
        except Exception as e:
            logger.warning(f"⚠️ Validation du jeton impossible: {e}")
            return not self.expired
        if valid:
            if self.expired and self.access_token:
                self.expired = False
                self.reason = None
        else:
            self.mark_expired("token validation failed")
        return valid

    def to_dict(self) -> dict:
        return {
            "valid": not self.expired,
            "reason": self.reason,
            "checkedAt": self.checked_at,
            "hasToken": bool(self.access_token),
        }
