"""
延迟调度（MR 事件 -> 延迟若干秒后再 review）。

为什么要延迟：
- GitLab 收到 push 后需要一点时间计算 MR diff，立即拉 changes 可能拿到旧数据

设计点：
- 每次调度是一个显式的 asyncio Task，不阻塞 webhook 调用方
- Task 按 (project_id, mr_iid) 登记，留出“新事件取消旧任务”的扩展点（当前不自动取消）
- 失败只记日志：延迟不是重试机制，失败的 review 不会被重新调度
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

ReviewRunner = Callable[[int, int], Awaitable[object]]
Sleeper = Callable[[float], Awaitable[None]]


class ReviewScheduler:
    """把 review 以固定延迟调度到事件循环上。"""

    def __init__(self, runner: ReviewRunner, delay_seconds: float, sleep: Sleeper = asyncio.sleep) -> None:
        """
        - runner: `async (project_id, mr_iid) -> ...`，一般是 `ReviewOrchestrator.run_review`
        - delay_seconds: 调度延迟（>= 0）
        - sleep: 可注入的 sleep（测试里可替换）
        """
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._runner = runner
        self._delay_seconds = delay_seconds
        self._sleep = sleep
        self._tasks: dict[tuple[int, int], set[asyncio.Task[None]]] = {}

    def schedule(self, project_id: int, mr_iid: int) -> asyncio.Task[None]:
        """创建后台 Task 并立即返回（必须在运行中的事件循环里调用）。"""
        key = (project_id, mr_iid)
        task = asyncio.get_running_loop().create_task(
            self._run_later(project_id=project_id, mr_iid=mr_iid),
            name=f"review-{project_id}-{mr_iid}",
        )
        self._tasks.setdefault(key, set()).add(task)
        task.add_done_callback(lambda t: self._forget(key, t))
        logger.info(f"Review scheduled in {self._delay_seconds}s: project={project_id} mr={mr_iid}")
        return task

    def pending(self, project_id: int, mr_iid: int) -> int:
        return len(self._tasks.get((project_id, mr_iid), ()))

    def cancel(self, project_id: int, mr_iid: int) -> int:
        """取消某个 MR 所有未完成的 review，返回取消的数量。"""
        cancelled = 0
        for task in list(self._tasks.get((project_id, mr_iid), ())):
            if task.cancel():
                cancelled += 1
        return cancelled

    async def drain(self) -> None:
        """等待所有已调度的 review 结束（用于优雅关闭/测试）。"""
        tasks = [task for group in self._tasks.values() for task in group]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_later(self, project_id: int, mr_iid: int) -> None:
        await self._sleep(self._delay_seconds)
        try:
            await self._runner(project_id, mr_iid)
        except Exception:
            # 致命失败（拉取/分析）：本次 review 中止，不重试
            logger.exception(f"Review aborted: project={project_id} mr={mr_iid}")

    def _forget(self, key: tuple[int, int], task: asyncio.Task[None]) -> None:
        group = self._tasks.get(key)
        if group is None:
            return
        group.discard(task)
        if not group:
            del self._tasks[key]
