"""
Memory Storage - 基于进程内存的会话存储实现
会话只保存在内存中，进程重启后全部丢失
"""

import logging
import secrets
import string
from typing import Dict, Optional

from ..models.session import Session
from .base import SessionStore, SessionCodeExhausted

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_session_code(length: int = CODE_LENGTH) -> str:
    """Random upper-case alphanumeric code that is easy to type."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


class MemorySessionStore(SessionStore):
    """
    基于内存的会话存储

    特性：
    - 会话码唯一性针对存活会话检查（冲突时重试）
    - 参与者索引是函数关系：一个连接只对应一个会话
    """

    def __init__(
        self,
        code_length: int = CODE_LENGTH,
        max_code_attempts: int = 20,
        code_factory=None
    ):
        """
        初始化内存存储

        Args:
            code_length: 会话码长度
            max_code_attempts: 生成会话码的最大尝试次数
            code_factory: 自定义会话码生成函数（测试用）
        """
        self.code_length = code_length
        self.max_code_attempts = max_code_attempts
        self._code_factory = code_factory or (lambda: generate_session_code(self.code_length))

        self._sessions: Dict[str, Session] = {}
        self._participant_index: Dict[str, str] = {}

        logger.info(f"MemorySessionStore initialized (code_length={code_length})")

    def create(self) -> Session:
        for attempt in range(1, self.max_code_attempts + 1):
            code = self._code_factory()
            if code not in self._sessions:
                session = Session(code=code)
                self._sessions[code] = session
                logger.info(f"Created session {code}")
                return session
            logger.debug(f"Session code collision on {code} (attempt {attempt})")

        raise SessionCodeExhausted(
            f"Could not allocate a free session code after {self.max_code_attempts} attempts"
        )

    def get(self, code: str) -> Optional[Session]:
        return self._sessions.get(code)

    def delete(self, code: str) -> bool:
        if code in self._sessions:
            del self._sessions[code]
            logger.info(f"Deleted session {code}")
            return True
        logger.debug(f"Session not found for delete: {code}")
        return False

    def index_participant(self, conn_id: str, code: str) -> None:
        self._participant_index[conn_id] = code

    def session_for(self, conn_id: str) -> Optional[str]:
        return self._participant_index.get(conn_id)

    def unindex_participant(self, conn_id: str) -> None:
        self._participant_index.pop(conn_id, None)

    def count(self) -> int:
        return len(self._sessions)

    def all_sessions(self) -> Dict[str, Session]:
        return self._sessions.copy()

    def clear(self) -> None:
        logger.info(f"Clearing {len(self._sessions)} sessions")
        self._sessions.clear()
        self._participant_index.clear()

    def get_statistics(self) -> dict:
        """
        获取会话统计信息

        Returns:
            统计信息字典
        """
        by_status: Dict[str, int] = {}
        for session in self._sessions.values():
            by_status[session.status.value] = by_status.get(session.status.value, 0) + 1

        return {
            "total_sessions": len(self._sessions),
            "indexed_connections": len(self._participant_index),
            "sessions_by_status": by_status,
        }
