"""
会话存储单元测试

测试 sage_relay/storage/memory_storage.py 中的:
- 会话码生成与冲突重试
- 连接 → 会话 索引
"""

import itertools

import pytest

from sage_relay.models.session import SessionStatus
from sage_relay.storage.base import SessionCodeExhausted
from sage_relay.storage.memory_storage import (
    CODE_ALPHABET,
    MemorySessionStore,
    generate_session_code,
)


def test_generate_session_code():
    code = generate_session_code()
    assert len(code) == 6
    assert all(ch in CODE_ALPHABET for ch in code)
    assert code == code.upper()


def test_create_and_get():
    store = MemorySessionStore()
    session = store.create()

    assert store.get(session.code) is session
    assert store.count() == 1
    assert session.status == SessionStatus.WAITING


def test_code_collision_retries():
    codes = iter(["AAAAAA", "AAAAAA", "BBBBBB"])
    store = MemorySessionStore(code_factory=lambda: next(codes))

    first = store.create()
    second = store.create()

    assert first.code == "AAAAAA"
    assert second.code == "BBBBBB"


def test_code_exhausted():
    store = MemorySessionStore(code_factory=lambda: "AAAAAA", max_code_attempts=3)
    store.create()
    with pytest.raises(SessionCodeExhausted):
        store.create()


def test_delete():
    store = MemorySessionStore()
    session = store.create()

    assert store.delete(session.code) is True
    assert store.get(session.code) is None
    assert store.delete(session.code) is False


def test_participant_index():
    store = MemorySessionStore()
    session = store.create()

    store.index_participant("conn-a", session.code)
    assert store.session_for("conn-a") == session.code

    store.unindex_participant("conn-a")
    store.unindex_participant("conn-a")
    assert store.session_for("conn-a") is None


def test_statistics_and_clear():
    counter = itertools.count()
    store = MemorySessionStore(code_factory=lambda: f"CODE{next(counter):02d}")
    first = store.create()
    store.create()
    first.status = SessionStatus.ACTIVE
    store.index_participant("conn-a", first.code)

    stats = store.get_statistics()
    assert stats["total_sessions"] == 2
    assert stats["indexed_connections"] == 1
    assert stats["sessions_by_status"] == {"active": 1, "waiting": 1}

    store.clear()
    assert store.count() == 0
    assert store.session_for("conn-a") is None
    assert store.all_sessions() == {}
