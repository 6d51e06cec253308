"""
WebSocket API - 实时会话通道

客户端连接 /ws 后以 JSON 文本帧通信：
    → {"event": "create-session", "data": {"userName": "Alex"}}
    ← {"event": "session-created", "data": {"sessionCode": "AB12CD", ...}}

每个连接分配一个唯一的连接ID；断开时自动离开所在会话。
非 JSON 文本帧与二进制帧都回复 error 事件，连接保持。
"""
import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


async def receive_envelope(websocket: WebSocket):
    """
    读取一帧并解析为 JSON

    Returns:
        解析结果；二进制帧或无法解析的文本返回 None

    Raises:
        WebSocketDisconnect: 客户端断开
    """
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))

    text = message.get("text")
    if text is None:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


@router.websocket("/ws")
async def session_socket(websocket: WebSocket):
    """双人会话的实时事件通道"""
    hub = websocket.app.state.hub
    event_router = websocket.app.state.event_router

    await websocket.accept()
    conn_id = uuid.uuid4().hex
    hub.register(conn_id, websocket)

    try:
        while True:
            envelope = await receive_envelope(websocket)
            await event_router.handle(conn_id, envelope)
    except WebSocketDisconnect as e:
        logger.info(f"WebSocket {conn_id} closed (code={e.code})")
    finally:
        hub.unregister(conn_id)
        await event_router.handle_disconnect(conn_id)
