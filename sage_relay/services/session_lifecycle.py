"""
Session Lifecycle - 会话生命周期管理

负责双人会话的创建、加入、离开、暂停/恢复、结束，以及参与者消息的接收：
消息写入日志并立即广播，随后更新对话追踪状态，交给触发引擎决定
Facilitator 是否发言。

所有会话状态的修改都在第一次 await 之前完成；
写入日志与广播由 RoomBroadcaster.publish 在会话锁内串行执行，
参与者消息在取得锁后再次确认会话仍接受消息。
"""

import logging
from datetime import datetime
from typing import Callable, Optional, Tuple

from ..channels.base import OutboundEvent, RoomBroadcaster
from ..config.settings import Settings
from ..models.session import (
    MAX_PARTICIPANTS,
    SYSTEM_SENDER_ID,
    SYSTEM_SENDER_NAME,
    Message,
    Participant,
    SenderKind,
    Session,
    SessionStatus,
)
from ..storage.base import SessionStore
from .facilitator_responder import FacilitatorResponder
from .trigger_engine import (
    DEFAULT_THRESHOLDS,
    WINDOW_SIZE,
    TriggerDecision,
    TriggerThresholds,
    evaluate_triggers,
)

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """会话操作异常基类（只通知发起操作的连接）"""
    default_message = "Session error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class SessionNotFound(SessionError):
    """会话不存在或已销毁"""
    default_message = "Session not found"


class SessionFull(SessionError):
    """会话已满（2人）"""
    default_message = "Session is full"


class NotAuthorized(SessionError):
    """连接不属于该会话"""
    default_message = "Not authorized for this session"


class SessionEnded(SessionError):
    """会话已结束"""
    default_message = "Session has ended"


class SessionPaused(SessionError):
    """会话暂停中（仅在 PAUSE_BLOCKS_MESSAGES 开启时）"""
    default_message = "Session is paused"


class AlreadyInSession(SessionError):
    """连接已加入其他会话"""
    default_message = "Already in a session"


class SessionLifecycle:
    """
    会话生命周期管理器

    职责：
    1. 创建/加入会话，强制 2 人上限
    2. 参与者离开与会话销毁（幂等，不抛异常）
    3. 暂停/恢复、结束会话
    4. 接收参与者消息并驱动对话追踪与触发引擎
    5. 转发输入状态（typing）
    """

    def __init__(
        self,
        store: SessionStore,
        broadcaster: RoomBroadcaster,
        responder: FacilitatorResponder,
        ready_delay: float = 1.5,
        pause_blocks_messages: bool = False,
        thresholds: TriggerThresholds = DEFAULT_THRESHOLDS,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        初始化会话生命周期管理器

        Args:
            store: 会话存储
            broadcaster: 房间广播
            responder: Facilitator 回复器
            ready_delay: 第二位参与者加入后，开场消息的延迟（秒）
            pause_blocks_messages: 暂停时是否拒绝参与者消息
            thresholds: 触发规则阈值
            clock: 当前时间函数（测试用）
        """
        self.store = store
        self.broadcaster = broadcaster
        self.responder = responder
        self.ready_delay = ready_delay
        self.pause_blocks_messages = pause_blocks_messages
        self.thresholds = thresholds
        self.clock = clock

        logger.info(
            f"SessionLifecycle initialized (pause_blocks_messages={pause_blocks_messages})"
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: SessionStore,
        broadcaster: RoomBroadcaster,
        responder: FacilitatorResponder
    ) -> "SessionLifecycle":
        return cls(
            store=store,
            broadcaster=broadcaster,
            responder=responder,
            ready_delay=settings.READY_MESSAGE_DELAY,
            pause_blocks_messages=settings.PAUSE_BLOCKS_MESSAGES,
        )

    # ===== 查询 =====

    def _require_participant(self, conn_id: str) -> Tuple[Session, Participant]:
        code = self.store.session_for(conn_id)
        session = self.store.get(code) if code else None
        if session is None:
            raise SessionNotFound()

        participant = session.get_participant(conn_id)
        if participant is None:
            raise NotAuthorized()
        return session, participant

    def _ensure_unbound(self, conn_id: str) -> None:
        code = self.store.session_for(conn_id)
        if code is None:
            return
        if self.store.get(code) is None:
            # 会话已销毁，清理残留索引
            self.store.unindex_participant(conn_id)
            return
        raise AlreadyInSession()

    def snapshot(self, code: str) -> dict:
        """
        会话只读快照

        Raises:
            SessionNotFound: 会话不存在
        """
        session = self.store.get(code.strip().upper())
        if session is None:
            raise SessionNotFound()
        return session.to_dict()

    # ===== 创建 / 加入 =====

    async def create_session(self, conn_id: str, user_name: str) -> Session:
        """
        创建会话，创建者成为第一位参与者

        Returns:
            新会话（状态 waiting）
        """
        self._ensure_unbound(conn_id)

        session = self.store.create()
        session.add_participant(Participant(id=conn_id, name=user_name))
        self.store.index_participant(conn_id, session.code)
        self.broadcaster.join_room(conn_id, session.code)

        logger.info(f"Session {session.code} created by {conn_id} ({user_name})")

        await self.broadcaster.send_to_connection(conn_id, OutboundEvent.SESSION_CREATED, {
            "sessionCode": session.code,
            "sessionId": session.id,
            "userName": user_name,
        })
        await self.responder.announce(
            session,
            self.responder.config.welcome_message(user_name, session.code)
        )
        return session

    async def join_session(self, conn_id: str, code: str, user_name: str) -> Session:
        """
        加入已有会话

        Raises:
            SessionNotFound: 会话码不存在
            SessionFull: 会话已有 2 位参与者
            SessionEnded: 会话已结束
            AlreadyInSession: 连接已在其他会话中
        """
        self._ensure_unbound(conn_id)

        code = code.strip().upper()
        session = self.store.get(code)
        if session is None:
            logger.info(f"Join rejected for {conn_id}: session {code} not found")
            raise SessionNotFound()
        if session.is_full():
            logger.info(f"Join rejected for {conn_id}: session {code} is full")
            raise SessionFull()
        if session.is_ended():
            raise SessionEnded()

        session.add_participant(Participant(id=conn_id, name=user_name))
        self.store.index_participant(conn_id, session.code)
        self.broadcaster.join_room(conn_id, session.code)

        both_present = session.participant_count == MAX_PARTICIPANTS
        if both_present and session.status == SessionStatus.WAITING:
            session.status = SessionStatus.ACTIVE
            logger.info(f"Session {session.code} is now active")

        announce_ready = both_present and not session.ready_announced
        if announce_ready:
            session.ready_announced = True

        logger.info(f"{user_name} ({conn_id}) joined session {session.code}")

        await self.broadcaster.send_to_connection(conn_id, OutboundEvent.SESSION_JOINED, {
            "sessionCode": session.code,
            "sessionId": session.id,
            "userName": user_name,
            "messages": [m.to_wire() for m in session.log],
        })
        await self._broadcast_roster(session)
        await self._system_message(session, f"{user_name} has joined the session.")

        if announce_ready:
            self.responder.announce_later(
                session,
                self.responder.config.ready_message(),
                self.ready_delay
            )
        return session

    # ===== 离开 =====

    async def leave(self, conn_id: str) -> None:
        """
        参与者离开（断开连接时调用）

        幂等：连接未加入会话、会话已销毁时静默返回；任何情况下都不抛异常。
        """
        code = self.store.session_for(conn_id)
        self.store.unindex_participant(conn_id)
        if code is None:
            return

        session = self.store.get(code)
        if session is None:
            return

        participant = session.remove_participant(conn_id)
        self.broadcaster.leave_room(conn_id, code)

        if not session.participants:
            self.responder.cancel_pending(code)
            self.store.delete(code)
            logger.info(f"Session {code} torn down (no participants left)")
            return

        name = participant.name if participant else "A participant"
        logger.info(f"{name} ({conn_id}) left session {code}")

        try:
            await self._broadcast_roster(session)
            await self._system_message(session, f"{name} has disconnected.")
        except Exception as e:
            logger.error(f"Failed to notify session {code} about departure: {e}", exc_info=True)

    # ===== 暂停 / 恢复 / 结束 =====

    async def pause(self, conn_id: str) -> Session:
        return await self._set_paused(conn_id, True)

    async def resume(self, conn_id: str) -> Session:
        return await self._set_paused(conn_id, False)

    async def toggle_pause(self, conn_id: str) -> Session:
        session, _ = self._require_participant(conn_id)
        return await self._set_paused(conn_id, not session.paused)

    async def _set_paused(self, conn_id: str, paused: bool) -> Session:
        session, participant = self._require_participant(conn_id)
        if session.is_ended():
            raise SessionEnded()
        if session.paused == paused:
            return session

        session.paused = paused
        if paused:
            session.status = SessionStatus.PAUSED
        elif session.participant_count == MAX_PARTICIPANTS or session.ready_announced:
            session.status = SessionStatus.ACTIVE
        else:
            session.status = SessionStatus.WAITING

        logger.info(
            f"Session {session.code} {'paused' if paused else 'resumed'} by {participant.name}"
        )
        await self.responder.announce(
            session,
            self.responder.config.pause_message(paused),
            interruption=True
        )
        return session

    async def end_session(self, conn_id: str) -> Session:
        """
        结束会话：状态置为 ended，取消待投递的 Facilitator 发言，
        发送结束语与 session-ended 事件。重复调用无副作用。
        """
        session, participant = self._require_participant(conn_id)
        if session.is_ended():
            return session

        session.status = SessionStatus.ENDED
        session.paused = False
        self.responder.cancel_pending(session.code)

        logger.info(f"Session {session.code} ended by {participant.name}")

        await self.responder.announce(
            session,
            self.responder.config.closing_message(),
            interruption=True
        )
        await self.broadcaster.send_to_room(session.code, OutboundEvent.SESSION_ENDED, {})
        return session

    # ===== 消息 =====

    async def send_message(
        self,
        conn_id: str,
        content: str
    ) -> Tuple[Message, Optional[TriggerDecision]]:
        """
        接收参与者消息

        流程:
        1. 校验会话与参与者
        2. 写入日志并广播给房间（含发送者）
        3. 更新对话追踪状态
        4. 触发引擎判断；命中则派发 Facilitator 发言

        Returns:
            (已写入的消息, 触发决策或 None)

        Raises:
            SessionNotFound / NotAuthorized / SessionEnded / SessionPaused
        """
        session, participant = self._require_participant(conn_id)

        def accepting():
            if session.is_ended():
                raise SessionEnded()
            if session.paused and self.pause_blocks_messages:
                raise SessionPaused()

        accepting()
        message = await self.broadcaster.publish(
            session,
            content=content,
            sender=conn_id,
            sender_kind=SenderKind.PARTICIPANT,
            sender_name=participant.name,
            guard=accepting,
        )

        tracker = session.get_or_create_tracker()
        tracker.record_participant_message(conn_id)

        now = self.clock()
        decision = evaluate_triggers(
            message,
            tracker,
            session.log.recent(WINDOW_SIZE),
            now=now,
            thresholds=self.thresholds,
        )

        if decision is None:
            logger.debug(f"No facilitator response for message {message.id} in {session.code}")
            return message, None

        logger.info(
            f"Trigger fired in session {session.code}: {decision.response_type.value} "
            f"({decision.reason})"
        )
        tracker.record_facilitator_turn(now)
        self.responder.dispatch_decision(session, decision, message)
        return message, decision

    async def typing(self, conn_id: str, is_typing: bool) -> None:
        """转发输入状态给房间内其他人；连接不在会话中时忽略"""
        code = self.store.session_for(conn_id)
        session = self.store.get(code) if code else None
        if session is None:
            return

        participant = session.get_participant(conn_id)
        if participant is None:
            return

        await self.broadcaster.send_to_room(
            session.code,
            OutboundEvent.USER_TYPING,
            {"userName": participant.name, "isTyping": is_typing},
            exclude=conn_id
        )

    # ===== 内部工具 =====

    async def _broadcast_roster(self, session: Session) -> None:
        await self.broadcaster.send_to_room(
            session.code,
            OutboundEvent.PARTICIPANT_COUNT_UPDATED,
            {"count": session.participant_count, "participants": session.roster()}
        )

    async def _system_message(self, session: Session, content: str) -> Message:
        return await self.broadcaster.publish(
            session,
            content=content,
            sender=SYSTEM_SENDER_ID,
            sender_kind=SenderKind.SYSTEM,
            sender_name=SYSTEM_SENDER_NAME,
        )


__all__ = [
    "SessionError",
    "SessionNotFound",
    "SessionFull",
    "NotAuthorized",
    "SessionEnded",
    "SessionPaused",
    "AlreadyInSession",
    "SessionLifecycle",
]
