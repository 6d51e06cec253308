"""
传输层模块

提供统一的房间广播接口,屏蔽具体传输方式的差异。

使用方式:
    from sage_relay.channels import RoomBroadcaster, WebSocketHub
"""

from .base import OutboundEvent, RoomBroadcaster, TransportError
from .websocket_hub import WebSocketHub

__all__ = [
    "OutboundEvent",
    "RoomBroadcaster",
    "TransportError",
    "WebSocketHub",
]
