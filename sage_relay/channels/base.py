"""
传输层抽象基类

会话引擎只依赖"房间广播"能力：
- 发送事件给单个连接
- 发送事件给房间内所有成员
- 发送事件给房间内除发送者以外的成员

具体传输（WebSocket 等）继承 RoomBroadcaster 实现。
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from ..models.session import Message, SenderKind, Session

logger = logging.getLogger(__name__)


class OutboundEvent(str, Enum):
    """发往客户端的事件名"""
    SESSION_CREATED = "session-created"
    SESSION_JOINED = "session-joined"
    MESSAGE = "message"
    PARTICIPANT_COUNT_UPDATED = "participant-count-updated"
    USER_TYPING = "user-typing"
    ERROR = "error"
    SESSION_ENDED = "session-ended"


class RoomBroadcaster(ABC):
    """
    房间广播抽象基类

    房间名即会话码。发送失败只记录日志，不向调用方抛出。
    """

    def __init__(self, transport_name: str):
        self.transport_name = transport_name

    @abstractmethod
    def join_room(self, conn_id: str, room: str) -> None:
        """把连接加入房间"""
        pass

    @abstractmethod
    def leave_room(self, conn_id: str, room: str) -> None:
        """把连接移出房间（不在房间内时静默返回）"""
        pass

    @abstractmethod
    def room_members(self, room: str) -> Set[str]:
        """房间当前成员（副本）"""
        pass

    @abstractmethod
    async def send_to_connection(
        self,
        conn_id: str,
        event: OutboundEvent,
        data: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        发送事件给单个连接

        Returns:
            bool: 是否发送成功
        """
        pass

    async def send_to_room(
        self,
        room: str,
        event: OutboundEvent,
        data: Optional[Dict[str, Any]] = None,
        exclude: Optional[str] = None
    ) -> int:
        """
        发送事件给房间成员(默认实现:逐个发送)

        Args:
            room: 房间名（会话码）
            event: 事件名
            data: 事件数据
            exclude: 不接收此事件的连接ID（通常是发送者）

        Returns:
            int: 成功送达的连接数
        """
        delivered = 0
        for conn_id in sorted(self.room_members(room)):
            if conn_id == exclude:
                continue
            if await self.send_to_connection(conn_id, event, data):
                delivered += 1
        return delivered

    async def publish(
        self,
        session: Session,
        *,
        content: str,
        sender: str,
        sender_kind: SenderKind,
        sender_name: str,
        annotation: Optional[str] = None,
        exclude: Optional[str] = None,
        guard: Optional[Callable[[], None]] = None
    ) -> Message:
        """
        生成消息、写入会话日志并广播 message 事件

        消息ID分配、写入与广播都在 session.lock 内完成，
        保证客户端收到的顺序与日志顺序一致。

        Args:
            guard: 取得锁之后、分配ID之前调用；抛出异常则放弃发布

        Returns:
            Message: 已写入日志的消息
        """
        async with session.lock:
            # 等锁期间会话状态可能已变化（例如已结束）
            if guard is not None:
                guard()

            message = Message(
                id=session.log.next_id(),
                content=content,
                sender=sender,
                sender_kind=sender_kind,
                sender_name=sender_name,
                type=annotation,
            )
            session.log.append(message)
            await self.send_to_room(
                session.code,
                OutboundEvent.MESSAGE,
                message.to_wire(),
                exclude=exclude
            )
        return message

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} transport={self.transport_name}>"


class TransportError(Exception):
    """传输层异常基类"""
    pass


__all__ = [
    "OutboundEvent",
    "RoomBroadcaster",
    "TransportError",
]
