from datetime import datetime, time
from typing import Optional
from zoneinfo import ZoneInfo


def _parse(hhmm: str) -> time:
    hours, minutes = hhmm.split(":")
    return time(int(hours), int(minutes))


class MarketHours:
    """Séance NSE : 09:15-15:30 heure de Kolkata, du lundi au vendredi (pas de calendrier des jours fériés)."""

    def __init__(self, tz: str = "Asia/Kolkata", open_: str = "09:15", close: str = "15:30"):
        self.tz = ZoneInfo(tz)
        self.open = _parse(open_)
        self.close = _parse(close)

    def is_open(self, now: Optional[datetime] = None) -> bool:
        local = (now or datetime.now(self.tz)).astimezone(self.tz)
        if local.weekday() >= 5:
            return False
        return self.open <= local.time() <= self.close
