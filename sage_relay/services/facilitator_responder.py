"""
Facilitator Responder - Facilitator 发言的生成与投递

职责：
1. 按回复类型组装系统指令与上下文窗口
2. 调用生成服务；失败时替换为固定的降级文案（不向参与者暴露错误）
3. 以自然的延迟投递：写入会话日志并广播给房间
4. 每次发言都是按会话码登记的延迟任务，会话结束时可取消

上下文在派发时截取：回复反映的是触发时的对话，而非投递时的对话。
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..agents.facilitator_agent import FacilitatorAgentConfig
from ..channels.base import RoomBroadcaster
from ..config.settings import Settings
from ..models.conversation_state import ResponseType
from ..models.session import (
    FACILITATOR_SENDER_ID,
    INTERRUPTION,
    Message,
    SenderKind,
    Session,
)
from ..storage.base import SessionStore
from .generation_client import GenerationClient, ProviderError
from .task_scheduler import DeferredTaskScheduler
from .trigger_engine import INTERVENTION_MESSAGE, TriggerDecision

logger = logging.getLogger(__name__)


class DeliveryDropped(Exception):
    """会话在等待发布期间已关闭"""
    pass


@dataclass(frozen=True)
class DispatchContext:
    """Session facts captured when a reply is dispatched."""
    session_code: str
    participant_count: int
    duration_minutes: int
    history: Tuple[Message, ...]
    trigger: Optional[Message] = None


def build_context_messages(
    history: Sequence[Message],
    limit: int,
    trigger: Optional[Message] = None
) -> List[Dict[str, str]]:
    """
    Render the last ``limit`` log entries as generation context.

    Facilitator and system lines are left out. When ``trigger`` is given and
    did not make it into the window it is appended at the end.
    """
    window = list(history)[-limit:] if limit > 0 else []
    if trigger is not None and all(m.id != trigger.id for m in window):
        window.append(trigger)

    return [
        {"role": "user", "content": f"{m.sender_name}: {m.content}"}
        for m in window
        if m.sender_kind == SenderKind.PARTICIPANT
    ]


class FacilitatorResponder:
    """Facilitator 回复的组装、生成与延迟投递"""

    def __init__(
        self,
        generation_client: GenerationClient,
        broadcaster: RoomBroadcaster,
        scheduler: DeferredTaskScheduler,
        store: SessionStore,
        config: Optional[FacilitatorAgentConfig] = None,
        intervention_delay: float = 1.0,
        strategic_delay: Tuple[float, float] = (2.0, 4.0),
        generic_delay: Tuple[float, float] = (2.0, 5.0),
        rng: Optional[random.Random] = None
    ):
        """
        初始化 Facilitator Responder

        Args:
            generation_client: 生成服务客户端
            broadcaster: 房间广播
            scheduler: 延迟任务调度器
            store: 会话存储（投递前确认会话仍存活）
            config: Facilitator 配置（名称、文案、生成参数）
            intervention_delay: 干预消息的固定延迟（秒）
            strategic_delay: 策略型回复的延迟区间（秒）
            generic_delay: 普通回复的延迟区间（秒）
            rng: 随机数生成器（测试用）
        """
        self.generation_client = generation_client
        self.broadcaster = broadcaster
        self.scheduler = scheduler
        self.store = store
        self.config = config or FacilitatorAgentConfig()
        self.intervention_delay = intervention_delay
        self.strategic_delay = strategic_delay
        self.generic_delay = generic_delay
        self._rng = rng or random.Random()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        generation_client: GenerationClient,
        broadcaster: RoomBroadcaster,
        scheduler: DeferredTaskScheduler,
        store: SessionStore
    ) -> "FacilitatorResponder":
        return cls(
            generation_client=generation_client,
            broadcaster=broadcaster,
            scheduler=scheduler,
            store=store,
            config=FacilitatorAgentConfig(name=settings.FACILITATOR_NAME),
            intervention_delay=settings.INTERVENTION_DELAY,
            strategic_delay=(settings.STRATEGIC_DELAY_MIN, settings.STRATEGIC_DELAY_MAX),
            generic_delay=(settings.GENERIC_DELAY_MIN, settings.GENERIC_DELAY_MAX),
        )

    @property
    def name(self) -> str:
        return self.config.name

    def delay_for(self, response_type: ResponseType) -> float:
        if response_type == ResponseType.INTERVENTION:
            return self.intervention_delay
        low, high = self.strategic_delay if response_type.is_strategic else self.generic_delay
        return self._rng.uniform(low, high)

    def dispatch(
        self,
        session: Session,
        response_type: ResponseType,
        trigger: Optional[Message] = None,
        fixed_content: Optional[str] = None
    ) -> asyncio.Task:
        """
        派发一次 Facilitator 发言（立即返回，延迟投递）

        Args:
            session: 目标会话
            response_type: 回复类型
            trigger: 触发本次发言的参与者消息
            fixed_content: 固定文案（干预消息），跳过生成服务

        Returns:
            已登记到调度器的任务
        """
        context = DispatchContext(
            session_code=session.code,
            participant_count=session.participant_count,
            duration_minutes=session.duration_minutes(),
            history=session.log.snapshot(),
            trigger=trigger,
        )
        delay = self.delay_for(response_type)

        logger.info(
            f"Facilitator {response_type.value} reply dispatched for session "
            f"{session.code} (delay={delay:.2f}s)"
        )

        async def deliver():
            await self._respond(session, response_type, context, delay, fixed_content)

        return self.scheduler.schedule(
            session.code, 0, deliver, name=f"facilitator-{response_type.value}"
        )

    def dispatch_decision(self, session: Session, decision: TriggerDecision, trigger: Message) -> asyncio.Task:
        return self.dispatch(
            session,
            decision.response_type,
            trigger=trigger,
            fixed_content=decision.fixed_content,
        )

    async def _respond(
        self,
        session: Session,
        response_type: ResponseType,
        context: DispatchContext,
        delay: float,
        fixed_content: Optional[str]
    ) -> Optional[Message]:
        # 生成与延迟并行：投递时间取两者中较晚者
        content, _ = await asyncio.gather(
            self.compose(response_type, context, fixed_content),
            asyncio.sleep(delay),
        )
        return await self.deliver(session, content, response_type)

    async def compose(
        self,
        response_type: ResponseType,
        context: DispatchContext,
        fixed_content: Optional[str] = None
    ) -> str:
        """
        生成回复文本

        生成服务失败时返回该类回复对应的降级文案。
        """
        if response_type == ResponseType.INTERVENTION:
            return fixed_content or INTERVENTION_MESSAGE
        if fixed_content:
            return fixed_content

        if response_type.is_strategic:
            system_prompt = self.config.strategic_prompt(response_type, context.participant_count)
            messages = build_context_messages(context.history, self.config.strategic_window)
            max_tokens = self.config.strategic_max_tokens
            fallback = self.config.strategic_fallback
        else:
            system_prompt = self.config.generic_prompt(
                context.participant_count, context.duration_minutes
            )
            messages = build_context_messages(
                context.history, self.config.generic_window, trigger=context.trigger
            )
            max_tokens = self.config.generic_max_tokens
            fallback = self.config.generic_fallback

        try:
            return await self.generation_client.generate(
                system_prompt,
                messages,
                max_output_tokens=max_tokens,
                temperature=self.config.temperature,
            )
        except ProviderError as e:
            logger.error(
                f"Generation failed for session {context.session_code} "
                f"({response_type.value}): {e}",
                exc_info=True
            )
            return fallback

    def _is_open(self, session: Session) -> bool:
        return self.store.get(session.code) is session and not session.is_ended()

    def _ensure_open(self, session: Session) -> None:
        if not self._is_open(session):
            raise DeliveryDropped(session.code)

    async def deliver(
        self,
        session: Session,
        content: str,
        response_type: ResponseType
    ) -> Optional[Message]:
        """
        写入并广播 Facilitator 消息

        会话已结束或已销毁时丢弃；取得会话锁后再确认一次。
        开始投递后，所属的延迟任务不再被取消。
        """
        if not self._is_open(session):
            logger.info(
                f"Dropped facilitator {response_type.value} reply for closed session {session.code}"
            )
            return None

        self.scheduler.mark_delivering()
        try:
            message = await self.broadcaster.publish(
                session,
                content=content,
                sender=FACILITATOR_SENDER_ID,
                sender_kind=SenderKind.FACILITATOR,
                sender_name=self.name,
                annotation=INTERRUPTION if response_type == ResponseType.INTERVENTION else None,
                guard=lambda: self._ensure_open(session),
            )
        except DeliveryDropped:
            logger.info(
                f"Dropped facilitator {response_type.value} reply, session {session.code} "
                f"closed while waiting"
            )
            return None

        logger.info(f"Facilitator {response_type.value} reply delivered to session {session.code}")
        return message

    async def announce(
        self,
        session: Session,
        content: str,
        interruption: bool = False
    ) -> Message:
        """立即发布一条固定的 Facilitator 消息（欢迎、暂停、结束等）"""
        return await self.broadcaster.publish(
            session,
            content=content,
            sender=FACILITATOR_SENDER_ID,
            sender_kind=SenderKind.FACILITATOR,
            sender_name=self.name,
            annotation=INTERRUPTION if interruption else None,
        )

    def announce_later(self, session: Session, content: str, delay: float) -> asyncio.Task:
        """延迟发布一条固定的 Facilitator 消息，会话关闭后不再投递"""

        async def deliver():
            if not self._is_open(session):
                logger.info(f"Dropped scheduled announcement for closed session {session.code}")
                return
            self.scheduler.mark_delivering()
            try:
                await self.broadcaster.publish(
                    session,
                    content=content,
                    sender=FACILITATOR_SENDER_ID,
                    sender_kind=SenderKind.FACILITATOR,
                    sender_name=self.name,
                    guard=lambda: self._ensure_open(session),
                )
            except DeliveryDropped:
                logger.info(f"Dropped scheduled announcement for closed session {session.code}")

        return self.scheduler.schedule(session.code, delay, deliver, name="facilitator-announce")

    def cancel_pending(self, session_code: str) -> int:
        return self.scheduler.cancel(session_code)


__all__ = [
    "DeliveryDropped",
    "DispatchContext",
    "FacilitatorResponder",
    "build_context_messages",
]
