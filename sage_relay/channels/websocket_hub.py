"""
WebSocket 连接中心

维护 连接ID → WebSocket 与 房间 → 成员 两张表，
以 {"event": ..., "data": {...}} 的格式向客户端推送事件。
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from .base import OutboundEvent, RoomBroadcaster, TransportError

logger = logging.getLogger(__name__)


class WebSocketHub(RoomBroadcaster):
    """基于 FastAPI WebSocket 的房间广播实现"""

    def __init__(self, send_timeout: float = 5.0):
        super().__init__("websocket")
        self.send_timeout = send_timeout
        self._connections: Dict[str, WebSocket] = {}
        self._rooms: Dict[str, Set[str]] = {}

    def register(self, conn_id: str, websocket: WebSocket) -> None:
        """登记新连接"""
        if conn_id in self._connections:
            raise TransportError(f"Connection already registered: {conn_id}")
        self._connections[conn_id] = websocket
        logger.info(f"New client connected: {conn_id}")

    def unregister(self, conn_id: str) -> None:
        """注销连接并移出所有房间（可重复调用）"""
        self._connections.pop(conn_id, None)
        for room in list(self._rooms):
            self.leave_room(conn_id, room)
        logger.info(f"Client disconnected: {conn_id}")

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def join_room(self, conn_id: str, room: str) -> None:
        self._rooms.setdefault(room, set()).add(conn_id)

    def leave_room(self, conn_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if not members:
            return
        members.discard(conn_id)
        if not members:
            del self._rooms[room]

    def room_members(self, room: str) -> Set[str]:
        return set(self._rooms.get(room, ()))

    async def send_to_connection(
        self,
        conn_id: str,
        event: OutboundEvent,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        websocket = self._connections.get(conn_id)
        if websocket is None:
            logger.debug(f"Skip {event.value} to unknown connection {conn_id}")
            return False

        try:
            await asyncio.wait_for(
                websocket.send_json({"event": event.value, "data": data or {}}),
                timeout=self.send_timeout
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(f"Timed out sending {event.value} to {conn_id} after {self.send_timeout}s")
            return False
        except Exception as e:
            # 连接可能已关闭，断开流程会负责清理
            logger.warning(f"Failed to send {event.value} to {conn_id}: {type(e).__name__}: {e}")
            return False
