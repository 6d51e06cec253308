"""
Session数据模型 - 双人会话 + Facilitator

数据结构设计：
- Participant: 会话参与者（一个连接对应一个参与者）
- Message: 不可变的消息记录（参与者 / Facilitator / 系统）
- Session: 完整会话数据（参与者、消息日志、状态、对话追踪）
- SessionStatus: 会话状态（等待 / 进行中 / 暂停 / 已结束）
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .conversation_state import ConversationTracker
from .message_log import MessageLog

MAX_PARTICIPANTS = 2

FACILITATOR_SENDER_ID = "facilitator"
SYSTEM_SENDER_ID = "system"
SYSTEM_SENDER_NAME = "System"

INTERRUPTION = "interruption"


class SessionStatus(str, Enum):
    """Session状态"""
    WAITING = "waiting"  # 等待第二位参与者
    ACTIVE = "active"  # 双方都已加入
    PAUSED = "paused"  # 暂停（提示状态）
    ENDED = "ended"  # 已结束（终态）


class SenderKind(str, Enum):
    """消息发送方类型"""
    PARTICIPANT = "participant"
    FACILITATOR = "facilitator"
    SYSTEM = "system"


class Participant(BaseModel):
    """会话参与者"""
    id: str = Field(..., description="连接ID（每个连接唯一）")
    name: str = Field(..., description="显示名称")
    joined_at: datetime = Field(default_factory=datetime.now, description="加入时间")


class Message(BaseModel):
    """
    会话消息

    一旦写入 MessageLog 即不可修改。序列化时使用 camelCase 键名，
    与前端约定的事件格式保持一致。
    """
    id: int = Field(..., description="会话内单调递增的消息ID")
    content: str = Field(..., description="消息内容")
    sender: str = Field(..., description="参与者连接ID，或保留ID facilitator / system")
    sender_kind: SenderKind = Field(..., alias="senderKind", description="发送方类型")
    sender_name: str = Field(..., alias="senderName", description="发送方显示名称")
    timestamp: datetime = Field(default_factory=datetime.now, description="消息时间")
    type: Optional[str] = Field(None, description="可选标注，如 interruption")

    class Config:
        frozen = True
        populate_by_name = True

    @property
    def is_participant(self) -> bool:
        return self.sender_kind == SenderKind.PARTICIPANT

    @property
    def is_interruption(self) -> bool:
        return self.type == INTERRUPTION

    def to_wire(self) -> Dict[str, Any]:
        """Serialize for an outbound ``message`` event."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class Session:
    """
    会话完整数据结构

    Attributes:
        code: 会话码（6位，便于口头/手动输入）
        participants: 按加入顺序排列的参与者（最多2人）
        log: 只追加的消息日志
        status: 会话状态
        created_at: 创建时间
        tracker: 对话追踪状态（首条参与者消息时创建）
        paused: 是否处于暂停状态
        ready_announced: Facilitator 的开场消息是否已安排
        lock: 串行化同一会话的 "写入日志 + 广播"
    """
    code: str
    participants: List[Participant] = field(default_factory=list)
    log: MessageLog = field(default_factory=MessageLog)
    status: SessionStatus = SessionStatus.WAITING
    created_at: datetime = field(default_factory=datetime.now)
    tracker: Optional[ConversationTracker] = None
    paused: bool = False
    ready_announced: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    @property
    def id(self) -> str:
        """Sessions are addressed by their code."""
        return self.code

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    def is_full(self) -> bool:
        return len(self.participants) >= MAX_PARTICIPANTS

    def is_ended(self) -> bool:
        return self.status == SessionStatus.ENDED

    def get_participant(self, conn_id: str) -> Optional[Participant]:
        for participant in self.participants:
            if participant.id == conn_id:
                return participant
        return None

    def add_participant(self, participant: Participant) -> None:
        if self.is_full():
            raise ValueError(f"Session {self.code} already has {MAX_PARTICIPANTS} participants")
        self.participants.append(participant)

    def remove_participant(self, conn_id: str) -> Optional[Participant]:
        participant = self.get_participant(conn_id)
        if participant:
            self.participants = [p for p in self.participants if p.id != conn_id]
        return participant

    def roster(self) -> List[str]:
        """Display names in join order."""
        return [p.name for p in self.participants]

    def get_or_create_tracker(self) -> ConversationTracker:
        if self.tracker is None:
            self.tracker = ConversationTracker()
        return self.tracker

    def duration_minutes(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        return int((now - self.created_at).total_seconds() // 60)

    def to_dict(self) -> Dict[str, Any]:
        """
        只读快照

        Returns:
            会话信息字典（含完整消息历史）
        """
        return {
            "sessionCode": self.code,
            "status": self.status.value,
            "paused": self.paused,
            "participants": self.roster(),
            "createdAt": self.created_at.isoformat(),
            "messages": [m.to_wire() for m in self.log],
        }


# 导出
__all__ = [
    "MAX_PARTICIPANTS",
    "FACILITATOR_SENDER_ID",
    "SYSTEM_SENDER_ID",
    "SYSTEM_SENDER_NAME",
    "INTERRUPTION",
    "SessionStatus",
    "SenderKind",
    "Participant",
    "Message",
    "Session",
]
