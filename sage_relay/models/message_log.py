"""
Append-only message log for a single session.

The log is the source of truth for history (sent to late joiners) and for
the context windows the trigger engine and the facilitator read. Entries are
never edited or removed; message ids are allocated here so they stay
monotonic within a session.
"""

from itertools import count
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    from .session import Message


class MessageLog:
    """Ordered, append-only sequence of session messages."""

    def __init__(self):
        self._messages: List["Message"] = []
        self._ids = count(1)

    def next_id(self) -> int:
        """Allocate the id for the next message written to this log."""
        return next(self._ids)

    def append(self, message: "Message") -> "Message":
        last = self.last()
        if last is not None and message.id <= last.id:
            raise ValueError(
                f"Message id {message.id} is not greater than last id {last.id}"
            )
        self._messages.append(message)
        return message

    def last(self) -> Optional["Message"]:
        return self._messages[-1] if self._messages else None

    def recent(self, limit: int) -> Tuple["Message", ...]:
        """The last ``limit`` entries, oldest first."""
        if limit <= 0:
            return ()
        return tuple(self._messages[-limit:])

    def snapshot(self) -> Tuple["Message", ...]:
        return tuple(self._messages)

    def __iter__(self) -> Iterator["Message"]:
        return iter(tuple(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def __repr__(self) -> str:
        return f"<MessageLog size={len(self._messages)}>"
