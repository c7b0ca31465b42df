import asyncio
import json
import logging
import time
from typing import Any, List

logger = logging.getLogger("PushChannel")


class LogManager:
    """Canal de diffusion WebSocket (singleton) : lignes de log et événements JSON."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(LogManager, cls).__new__(cls)
            cls._instance.active_connections = []
        return cls._instance

    active_connections: List[Any]

    async def connect(self, websocket: Any):
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: Any):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        if not self.active_connections:
            return

        # Copie de la liste : un client peut être retiré pendant l'itération
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception as e:
                logger.debug(f"Client WebSocket retiré: {e}")
                self.disconnect(connection)

    async def broadcast_event(self, event_type: str, data: dict):
        """Événement structuré : {"type", "data", "timestamp" (ms)}."""
        payload = {"type": event_type, "data": data, "timestamp": int(time.time() * 1000)}
        await self.broadcast(json.dumps(payload, default=str))


class BroadcastLogHandler(logging.Handler):
    """
    Handler de logs qui pousse chaque ligne formatée vers les clients WebSocket.
    Fire and forget : sans boucle asyncio active, la ligne n'est que sur stdout.
    """

    def emit(self, record):
        try:
            log_entry = self.format(record)
            manager = LogManager()
            if not manager.active_connections:
                return
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
            loop.create_task(manager.broadcast(log_entry))
        except Exception:
            self.handleError(record)
