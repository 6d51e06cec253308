"""
共享测试替身与 fixtures
"""

import asyncio
import os
import sys
from typing import Any, Dict, List, Optional, Set

import pytest

# 添加项目根目录到 path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sage_relay.agents.facilitator_agent import FacilitatorAgentConfig
from sage_relay.channels.base import OutboundEvent, RoomBroadcaster
from sage_relay.services.facilitator_responder import FacilitatorResponder
from sage_relay.services.generation_client import GenerationClient
from sage_relay.services.session_lifecycle import SessionLifecycle
from sage_relay.services.task_scheduler import DeferredTaskScheduler
from sage_relay.storage.memory_storage import MemorySessionStore


# ==================== 测试替身 ====================

class RecordingBroadcaster(RoomBroadcaster):
    """记录所有发出事件的房间广播"""

    def __init__(self):
        super().__init__("recording")
        self.rooms: Dict[str, Set[str]] = {}
        self.sent: List[tuple] = []  # (conn_id, event, data)

    def join_room(self, conn_id: str, room: str) -> None:
        self.rooms.setdefault(room, set()).add(conn_id)

    def leave_room(self, conn_id: str, room: str) -> None:
        self.rooms.get(room, set()).discard(conn_id)

    def room_members(self, room: str) -> Set[str]:
        return set(self.rooms.get(room, ()))

    async def send_to_connection(self, conn_id, event, data=None) -> bool:
        self.sent.append((conn_id, event, data or {}))
        return True

    def events_for(self, conn_id: str, event: Optional[OutboundEvent] = None) -> List[Dict[str, Any]]:
        return [
            data for cid, ev, data in self.sent
            if cid == conn_id and (event is None or ev == event)
        ]

    def messages_for(self, conn_id: str) -> List[Dict[str, Any]]:
        return self.events_for(conn_id, OutboundEvent.MESSAGE)


class GatedBroadcaster(RecordingBroadcaster):
    """可以卡住发往某个连接的事件，用于构造发布过程中的交错"""

    def __init__(self):
        super().__init__()
        self.gated_conn: Optional[str] = None
        self.gate = asyncio.Event()
        self.gate.set()
        self.blocked = asyncio.Event()

    def hold(self, conn_id: str) -> None:
        self.gated_conn = conn_id
        self.gate.clear()
        self.blocked.clear()

    def release(self) -> None:
        self.gate.set()

    async def send_to_connection(self, conn_id, event, data=None) -> bool:
        if conn_id == self.gated_conn and not self.gate.is_set():
            self.blocked.set()
            await self.gate.wait()
        return await super().send_to_connection(conn_id, event, data)


class FakeGenerationClient(GenerationClient):
    """记录调用参数的生成客户端"""

    def __init__(self, reply: str = "Let's take a breath together.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    async def generate(self, system_prompt, messages, max_output_tokens, temperature):
        self.calls.append({
            "system_prompt": system_prompt,
            "messages": messages,
            "max_output_tokens": max_output_tokens,
            "temperature": temperature,
        })
        if self.error is not None:
            raise self.error
        return self.reply

    async def aclose(self):
        self.closed = True


# ==================== Fixtures ====================

@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
def scheduler():
    return DeferredTaskScheduler()


@pytest.fixture
def generation_client():
    return FakeGenerationClient()


@pytest.fixture
def responder(generation_client, broadcaster, scheduler, store):
    return FacilitatorResponder(
        generation_client=generation_client,
        broadcaster=broadcaster,
        scheduler=scheduler,
        store=store,
        config=FacilitatorAgentConfig(),
        intervention_delay=0.01,
        strategic_delay=(0.01, 0.01),
        generic_delay=(0.01, 0.01),
    )


@pytest.fixture
def lifecycle(store, broadcaster, responder):
    return SessionLifecycle(
        store=store,
        broadcaster=broadcaster,
        responder=responder,
        ready_delay=0,
    )


@pytest.fixture
def gated_broadcaster():
    return GatedBroadcaster()


@pytest.fixture
def gated_lifecycle(store, gated_broadcaster, scheduler, generation_client):
    responder = FacilitatorResponder(
        generation_client=generation_client,
        broadcaster=gated_broadcaster,
        scheduler=scheduler,
        store=store,
        intervention_delay=0.01,
        strategic_delay=(0.01, 0.01),
        generic_delay=(0.01, 0.01),
    )
    return SessionLifecycle(
        store=store,
        broadcaster=gated_broadcaster,
        responder=responder,
        ready_delay=0,
    )
