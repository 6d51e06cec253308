"""
Trigger Engine - 决定 Facilitator 何时发言、以何种方式发言

纯函数：输入（新消息、对话追踪状态、最近消息窗口、当前时间），
输出 None（不发言）或 TriggerDecision（回复类型 + 紧急程度）。

规则按优先级依次判断，命中第一条即返回：
1. 同一发送方连续 ≥2 条 + 最近窗口内出现激烈措辞 → intervention
2. 同一发送方连续 ≥3 条 → redirect
3. Facilitator 沉默期间参与者消息 ≥8 条 → checkin
4. 新消息包含激烈措辞 → deescalate
5. Facilitator 已沉默 ≥5 分钟 → checkin
6. 新消息包含情绪表达 且 消息数 ≥3 → support
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Sequence

from ..models.conversation_state import ConversationTracker, ResponseType
from ..models.session import Message, SenderKind

logger = logging.getLogger(__name__)

HEATED_WORDS = (
    "always", "never", "stupid", "ridiculous", "insane",
    "crazy", "hate", "angry", "furious", "sick of",
)

EMOTIONAL_WORDS = (
    "feel", "feeling", "hurt", "sad", "upset",
    "frustrated", "worried", "scared", "love", "miss",
)

INTERVENTION_MESSAGE = (
    "I want to pause here for a moment. I notice one person has been sharing "
    "quite a bit. Let's make sure both voices are being heard. How are you "
    "feeling about what's been shared so far?"
)

WINDOW_SIZE = 5


class Urgency(str, Enum):
    """How quickly the facilitator reply should land."""
    IMMEDIATE = "immediate"
    NORMAL = "normal"


@dataclass(frozen=True)
class TriggerThresholds:
    """Thresholds for the trigger rules."""
    intervention_streak: int = 2
    redirect_streak: int = 3
    checkin_messages: int = 8
    checkin_silence_seconds: float = 5 * 60
    support_messages: int = 3


DEFAULT_THRESHOLDS = TriggerThresholds()


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of a trigger evaluation that asks the facilitator to speak."""
    response_type: ResponseType
    urgency: Urgency
    reason: str
    fixed_content: Optional[str] = None


def contains_any(content: str, words: Iterable[str]) -> bool:
    """Case-insensitive substring match against a word list."""
    lowered = content.lower()
    return any(word in lowered for word in words)


def detect_heated_language(content: str) -> bool:
    return contains_any(content, HEATED_WORDS)


def detect_emotional_content(content: str) -> bool:
    return contains_any(content, EMOTIONAL_WORDS)


def sender_streak(window: Sequence[Message], sender: str) -> int:
    """
    Count how many entries at the tail of ``window`` come from ``sender``.

    Scans newest to oldest and stops at the first entry from anyone else;
    facilitator and system entries always end the streak.
    """
    streak = 0
    for message in reversed(window):
        if message.sender_kind != SenderKind.PARTICIPANT or message.sender != sender:
            break
        streak += 1
    return streak


def window_is_heated(window: Sequence[Message]) -> bool:
    """Whether any participant message in the window uses heated language."""
    return any(
        message.is_participant and detect_heated_language(message.content)
        for message in window
    )


def evaluate_triggers(
    message: Message,
    tracker: ConversationTracker,
    recent: Sequence[Message],
    now: Optional[datetime] = None,
    thresholds: TriggerThresholds = DEFAULT_THRESHOLDS
) -> Optional[TriggerDecision]:
    """
    Decide whether and how the facilitator responds to ``message``.

    Args:
        message: The participant message just appended to the log
        tracker: Conversation state, already updated for ``message``
        recent: The most recent log entries (``message`` included), oldest first
        now: Evaluation time (defaults to the current time)
        thresholds: Rule thresholds

    Returns:
        TriggerDecision, or None when the facilitator should stay quiet
    """
    now = now or datetime.now()
    window = list(recent)[-WINDOW_SIZE:]

    streak = sender_streak(window, message.sender)
    if streak >= thresholds.intervention_streak and window_is_heated(window):
        return TriggerDecision(
            response_type=ResponseType.INTERVENTION,
            urgency=Urgency.IMMEDIATE,
            reason=f"heated exchange with {streak} consecutive messages from one sender",
            fixed_content=INTERVENTION_MESSAGE,
        )

    if tracker.consecutive_count >= thresholds.redirect_streak:
        return TriggerDecision(
            response_type=ResponseType.REDIRECT,
            urgency=Urgency.NORMAL,
            reason=f"{tracker.consecutive_count} consecutive messages from one sender",
        )

    if tracker.messages_since_facilitator >= thresholds.checkin_messages:
        return TriggerDecision(
            response_type=ResponseType.CHECKIN,
            urgency=Urgency.NORMAL,
            reason=f"{tracker.messages_since_facilitator} messages without the facilitator",
        )

    if detect_heated_language(message.content):
        return TriggerDecision(
            response_type=ResponseType.DEESCALATE,
            urgency=Urgency.NORMAL,
            reason="heated language",
        )

    if tracker.seconds_since_facilitator(now) >= thresholds.checkin_silence_seconds:
        return TriggerDecision(
            response_type=ResponseType.CHECKIN,
            urgency=Urgency.NORMAL,
            reason="facilitator silent for too long",
        )

    if (
        detect_emotional_content(message.content)
        and tracker.messages_since_facilitator >= thresholds.support_messages
    ):
        return TriggerDecision(
            response_type=ResponseType.SUPPORT,
            urgency=Urgency.NORMAL,
            reason="emotional sharing",
        )

    return None


__all__ = [
    "HEATED_WORDS",
    "EMOTIONAL_WORDS",
    "INTERVENTION_MESSAGE",
    "Urgency",
    "TriggerThresholds",
    "TriggerDecision",
    "detect_heated_language",
    "detect_emotional_content",
    "sender_streak",
    "window_is_heated",
    "evaluate_triggers",
]
