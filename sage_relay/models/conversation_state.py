"""
Conversation state tracking for the facilitator

This module defines the rolling per-session state the trigger engine reads
when deciding whether the facilitator should speak, and the response types the
facilitator can take.

Update cycle:
    participant message → record_participant_message() → trigger engine
    facilitator commits to speak → record_facilitator_turn()
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional


class ResponseType(Enum):
    """
    Facilitator stance for a single turn

    Types:
        INTERVENTION: Fixed interruption asking both voices to be heard
        REDIRECT: Invite the quieter partner after one person dominates
        CHECKIN: Check in after a long stretch without the facilitator
        DEESCALATE: Calm things down after heated language
        SUPPORT: Supportive guidance after emotional sharing
        NORMAL: Generic facilitator reply
    """
    INTERVENTION = "intervention"
    REDIRECT = "redirect"
    CHECKIN = "checkin"
    DEESCALATE = "deescalate"
    SUPPORT = "support"
    NORMAL = "normal"

    @property
    def is_strategic(self) -> bool:
        """Strategic replies use the type-specific prompt addendum."""
        return self in (
            ResponseType.REDIRECT,
            ResponseType.CHECKIN,
            ResponseType.DEESCALATE,
            ResponseType.SUPPORT,
        )


@dataclass
class ConversationTracker:
    """
    Rolling conversation state for one session

    Attributes:
        consecutive_count: Messages in a row from ``last_sender``
        last_sender: Connection id of the most recent participant sender
        messages_since_facilitator: Participant messages since the facilitator last spoke
        last_facilitator_time: Wall-clock time the facilitator last spoke
                               (session start until it first speaks)
    """
    consecutive_count: int = 0
    last_sender: Optional[str] = None
    messages_since_facilitator: int = 0
    last_facilitator_time: datetime = field(default_factory=datetime.now)

    def record_participant_message(self, sender: str) -> None:
        """Account for one accepted participant message."""
        self.messages_since_facilitator += 1

        if self.last_sender == sender:
            self.consecutive_count += 1
        else:
            self.consecutive_count = 1
            self.last_sender = sender

    def record_facilitator_turn(self, now: Optional[datetime] = None) -> None:
        """
        Reset counters when the facilitator speaks

        ``last_sender`` is kept so a sender who continues after the facilitator
        resumes counting from 1 on their next message.
        """
        self.messages_since_facilitator = 0
        self.consecutive_count = 0
        self.last_facilitator_time = now or datetime.now()

    def seconds_since_facilitator(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now()
        return (now - self.last_facilitator_time).total_seconds()

    def to_dict(self) -> dict:
        data = asdict(self)
        data['last_facilitator_time'] = self.last_facilitator_time.isoformat()
        return data
