"""
Storage Layer - 会话存储层
负责会话注册表与参与者索引（进程内存）
"""

from .base import SessionStore, SessionCodeExhausted
from .memory_storage import MemorySessionStore, generate_session_code

__all__ = [
    "SessionStore",
    "SessionCodeExhausted",
    "MemorySessionStore",
    "generate_session_code",
]
