"""
Review 入口（供 webhook 接入层调用）。

职责：
- 事件过滤：只处理 open/reopen/update、非草稿、且 review 功能开启的 MR
- 过滤通过后交给 `ReviewScheduler` 延迟执行；不满足条件只记日志（不是错误）
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from review_bot.analysis.engine import evaluate
from review_bot.analysis.models import AnalysisResult
from review_bot.analysis.models import ChangeEntry
from review_bot.config import ReviewConfig
from review_bot.review.orchestrator import ReviewOrchestrator
from review_bot.review.scheduler import ReviewScheduler

logger = logging.getLogger(__name__)

# GitLab 的 action 命名：open / reopen / update
REVIEWABLE_ACTIONS: frozenset[str] = frozenset({"open", "reopen", "update"})


def should_review(action: str, is_draft: bool, review_config: ReviewConfig) -> bool:
    if action not in REVIEWABLE_ACTIONS:
        logger.info(f"Skip MR event: action={action}")
        return False
    if is_draft:
        logger.info("Skip draft MR")
        return False
    if not review_config.enabled:
        logger.info("Code review is disabled")
        return False
    return True


class ReviewService:
    """把 orchestrator + scheduler 组装成对外入口。"""

    def __init__(self, orchestrator: ReviewOrchestrator, scheduler: ReviewScheduler) -> None:
        self._orchestrator = orchestrator
        self._scheduler = scheduler

    @classmethod
    def create(cls, orchestrator: ReviewOrchestrator) -> ReviewService:
        scheduler = ReviewScheduler(
            runner=orchestrator.run_review,
            delay_seconds=orchestrator.review_config.delay_seconds,
        )
        return cls(orchestrator=orchestrator, scheduler=scheduler)

    @property
    def scheduler(self) -> ReviewScheduler:
        return self._scheduler

    def on_merge_request_event(
        self,
        action: str,
        is_draft: bool,
        project_id: int,
        mr_iid: int,
    ) -> asyncio.Task[None] | None:
        """过滤事件；通过则调度 review 并立即返回 Task，否则返回 None。"""
        if not should_review(action, is_draft, self._orchestrator.review_config):
            return None
        return self._scheduler.schedule(project_id=project_id, mr_iid=mr_iid)

    def evaluate(self, change_set: Sequence[ChangeEntry]) -> AnalysisResult:
        """直接分析一个 change-set（不访问网络）。"""
        return evaluate(change_set, self._orchestrator.rules)
