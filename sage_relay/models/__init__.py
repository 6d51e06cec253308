"""
Models module for data structures
"""

from .conversation_state import ConversationTracker, ResponseType
from .message_log import MessageLog
from .session import (
    MAX_PARTICIPANTS,
    FACILITATOR_SENDER_ID,
    SYSTEM_SENDER_ID,
    SYSTEM_SENDER_NAME,
    INTERRUPTION,
    SessionStatus,
    SenderKind,
    Participant,
    Message,
    Session,
)

__all__ = [
    'ConversationTracker',
    'ResponseType',
    'MessageLog',
    'MAX_PARTICIPANTS',
    'FACILITATOR_SENDER_ID',
    'SYSTEM_SENDER_ID',
    'SYSTEM_SENDER_NAME',
    'INTERRUPTION',
    'SessionStatus',
    'SenderKind',
    'Participant',
    'Message',
    'Session',
]
