"""
Deferred Task Scheduler - 延迟任务调度

Facilitator 的延迟发言（开场消息、干预、生成回复）都以独立的 asyncio.Task
运行，按会话码分组登记：
- 不阻塞参与者消息的处理
- 会话结束或销毁时可按会话整体取消（已开始投递的任务除外）
- 进程关闭时统一取消
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Set

logger = logging.getLogger(__name__)


class DeferredTaskScheduler:
    """按会话码登记的延迟任务集合"""

    def __init__(self):
        self._tasks: Dict[str, Set[asyncio.Task]] = {}
        self._delivering: Set[asyncio.Task] = set()
        self._closed = False

        logger.info("DeferredTaskScheduler initialized")

    def schedule(
        self,
        key: str,
        delay: float,
        callback: Callable[[], Awaitable[None]],
        name: str = "deferred"
    ) -> asyncio.Task:
        """
        在 delay 秒后运行 callback

        Args:
            key: 会话码
            delay: 延迟秒数
            callback: 无参协程函数
            name: 任务名称（日志用）

        Returns:
            已创建的 asyncio.Task
        """
        if self._closed:
            raise RuntimeError("Scheduler has been shut down")

        task = asyncio.create_task(
            self._run_after(delay, callback),
            name=f"{name}:{key}"
        )
        self._tasks.setdefault(key, set()).add(task)
        task.add_done_callback(lambda t: self._on_done(key, t))

        logger.debug(f"Scheduled {name} for session {key} in {delay:.2f}s")
        return task

    async def _run_after(self, delay: float, callback: Callable[[], Awaitable[None]]) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        await callback()

    def _on_done(self, key: str, task: asyncio.Task) -> None:
        self._delivering.discard(task)
        tasks = self._tasks.get(key)
        if tasks is not None:
            tasks.discard(task)
            if not tasks:
                del self._tasks[key]

        if task.cancelled():
            logger.debug(f"Deferred task {task.get_name()} cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Deferred task {task.get_name()} failed: {type(exc).__name__}: {exc}",
                exc_info=exc
            )

    def mark_delivering(self) -> bool:
        """
        把当前任务标记为投递中

        投递中的任务不再被 cancel() 取消，保证已写入日志的消息完整广播。
        当前任务不是本调度器登记的任务时不做任何事。

        Returns:
            是否已标记
        """
        task = asyncio.current_task()
        if task is None or not any(task in tasks for tasks in self._tasks.values()):
            return False
        self._delivering.add(task)
        return True

    def cancel(self, key: str) -> int:
        """
        取消某个会话的全部待执行任务

        投递中的任务保留登记并继续运行，wait_idle 仍会等待它们。

        Returns:
            被取消的任务数量
        """
        tasks = self._tasks.get(key, set())
        cancelled = 0
        for task in list(tasks):
            if task in self._delivering:
                continue
            tasks.discard(task)
            if not task.done():
                task.cancel()
                cancelled += 1
        if not tasks:
            self._tasks.pop(key, None)

        if cancelled:
            logger.info(f"Cancelled {cancelled} pending task(s) for session {key}")
        return cancelled

    def pending_count(self, key: str) -> int:
        return sum(1 for t in self._tasks.get(key, ()) if not t.done())

    def total_pending(self) -> int:
        return sum(self.pending_count(key) for key in list(self._tasks))

    async def wait_idle(self, key: str) -> None:
        """等待某个会话当前登记的任务全部完成（测试与关闭流程使用）"""
        tasks = list(self._tasks.get(key, ()))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """取消并等待所有任务"""
        self._closed = True
        all_tasks = [t for tasks in self._tasks.values() for t in tasks]
        self._tasks.clear()

        for task in all_tasks:
            task.cancel()
        if all_tasks:
            await asyncio.gather(*all_tasks, return_exceptions=True)

        logger.info(f"DeferredTaskScheduler shut down ({len(all_tasks)} task(s) cancelled)")


__all__ = ["DeferredTaskScheduler"]
