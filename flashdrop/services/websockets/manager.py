# flashdrop/services/websockets/manager.py
from typing import Any, Dict, List
from fastapi import WebSocket
import json
import logging

from flashdrop.core.enums import NotificationEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tracks live WebSocket clients and fans engine events out to them.

    Implements the ChangeNotifier protocol. One instance is created per app
    in the lifespan and handed to the services that need it.
    """

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Broadcast message to all connected clients"""
        json_message = json.dumps(message)
        disconnected = []

        for connection in list(self.active_connections):
            try:
                await connection.send_text(json_message)
            except Exception as e:
                logger.error(f"Error sending to WebSocket: {e}")
                disconnected.append(connection)

        # Clean up disconnected clients
        for connection in disconnected:
            self.disconnect(connection)

    async def stock_updated(self, drop_id: int, available_stock: int) -> None:
        await self.broadcast({
            "event": NotificationEvent.STOCK_UPDATED.value,
            "data": {"drop_id": drop_id, "available_stock": available_stock},
        })

    async def purchase_completed(
        self,
        drop_id: int,
        username: str,
        recent_purchasers: List[Dict[str, Any]],
    ) -> None:
        await self.broadcast({
            "event": NotificationEvent.PURCHASE_COMPLETED.value,
            "data": {
                "drop_id": drop_id,
                "username": username,
                "recent_purchasers": recent_purchasers,
            },
        })
