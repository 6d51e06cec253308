"""
入站事件路由器

负责:
1. 解析客户端事件信封 {"event": ..., "data": {...}}
2. 用 pydantic 模型校验各事件的数据
3. 分发给 SessionLifecycle
4. 把会话异常、校验失败转换为只发给该连接的 error 事件
"""

import logging
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError

from ..channels.base import OutboundEvent, RoomBroadcaster
from .session_lifecycle import SessionError, SessionLifecycle

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 50


class InboundEvent(str, Enum):
    """客户端发来的事件名"""
    CREATE_SESSION = "create-session"
    JOIN_SESSION = "join-session"
    SEND_MESSAGE = "send-message"
    TYPING = "typing"
    PAUSE_SESSION = "pause-session"
    END_SESSION = "end-session"


class _Payload(BaseModel):
    class Config:
        populate_by_name = True
        str_strip_whitespace = True


class CreateSessionPayload(_Payload):
    user_name: str = Field(..., alias="userName", min_length=1, max_length=MAX_NAME_LENGTH)


class JoinSessionPayload(_Payload):
    session_code: str = Field(..., alias="sessionCode", min_length=1, max_length=16)
    user_name: str = Field(..., alias="userName", min_length=1, max_length=MAX_NAME_LENGTH)


class SendMessagePayload(_Payload):
    content: str = Field(..., min_length=1)


class TypingPayload(_Payload):
    is_typing: bool = Field(False, alias="isTyping")


class InvalidEvent(Exception):
    """事件格式错误"""
    pass


class SessionEventRouter:
    """入站事件路由器"""

    def __init__(
        self,
        lifecycle: SessionLifecycle,
        broadcaster: RoomBroadcaster,
        max_message_length: int = 4000
    ):
        self.lifecycle = lifecycle
        self.broadcaster = broadcaster
        self.max_message_length = max_message_length

    async def handle(self, conn_id: str, envelope: Any) -> None:
        """
        处理一条入站事件

        任何失败都只以 error 事件通知该连接，不会向上抛出
        （除 asyncio 取消外）。
        """
        event_name = envelope.get("event") if isinstance(envelope, dict) else None

        try:
            event, data = self._parse_envelope(envelope)
            await self._dispatch(conn_id, event, data)
        except SessionError as e:
            logger.info(f"Session error for {conn_id} on {event_name}: {e.message}")
            await self._send_error(conn_id, e.message)
        except ValidationError as e:
            logger.info(f"Invalid payload from {conn_id} on {event_name}: {e.error_count()} error(s)")
            await self._send_error(conn_id, f"Invalid payload for {event_name}")
        except InvalidEvent as e:
            logger.info(f"Invalid event from {conn_id}: {e}")
            await self._send_error(conn_id, str(e))
        except Exception as e:
            logger.error(
                f"Unhandled error for {conn_id} on {event_name}: {type(e).__name__}: {e}",
                exc_info=True
            )
            await self._send_error(conn_id, "Internal server error")

    async def handle_disconnect(self, conn_id: str) -> None:
        await self.lifecycle.leave(conn_id)

    def _parse_envelope(self, envelope: Any):
        if not isinstance(envelope, dict):
            raise InvalidEvent("Event must be a JSON object")

        name = envelope.get("event")
        try:
            event = InboundEvent(name)
        except ValueError:
            raise InvalidEvent(f"Unknown event: {name}")

        data = envelope.get("data") or {}
        if not isinstance(data, dict):
            raise InvalidEvent(f"Event data for {name} must be a JSON object")
        return event, data

    async def _dispatch(self, conn_id: str, event: InboundEvent, data: Dict[str, Any]) -> None:
        if event == InboundEvent.CREATE_SESSION:
            payload = CreateSessionPayload.model_validate(data)
            await self.lifecycle.create_session(conn_id, payload.user_name)

        elif event == InboundEvent.JOIN_SESSION:
            payload = JoinSessionPayload.model_validate(data)
            await self.lifecycle.join_session(conn_id, payload.session_code, payload.user_name)

        elif event == InboundEvent.SEND_MESSAGE:
            payload = SendMessagePayload.model_validate(data)
            if len(payload.content) > self.max_message_length:
                raise InvalidEvent(
                    f"Message too long (max {self.max_message_length} characters)"
                )
            await self.lifecycle.send_message(conn_id, payload.content)

        elif event == InboundEvent.TYPING:
            payload = TypingPayload.model_validate(data)
            await self.lifecycle.typing(conn_id, payload.is_typing)

        elif event == InboundEvent.PAUSE_SESSION:
            await self.lifecycle.toggle_pause(conn_id)

        elif event == InboundEvent.END_SESSION:
            await self.lifecycle.end_session(conn_id)

    async def _send_error(self, conn_id: str, message: str) -> None:
        await self.broadcaster.send_to_connection(conn_id, OutboundEvent.ERROR, {"message": message})


__all__ = [
    "InboundEvent",
    "CreateSessionPayload",
    "JoinSessionPayload",
    "SendMessagePayload",
    "TypingPayload",
    "InvalidEvent",
    "SessionEventRouter",
]
