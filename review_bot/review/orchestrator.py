"""
Review Orchestrator（核心流程编排）。

关键思想：
- **流程由工程代码控制**：明确的阶段 pipeline，只前进不回退
  Fetching -> Analyzing -> Reporting -> Posting -> (Approving) -> AnnotatingInline -> Done
- **致命 vs 非致命**：
  - Fetching / Analyzing 失败直接抛出，本次 review 中止，不发任何评论
  - Posting / Approving / 每条行内评论各自有失败边界：`RemoteError` 只记日志，继续后续步骤
- **顺序是契约**：先发汇总评论，再发行内评论；approve 失败不重试
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

import anyio

from review_bot.analysis.engine import evaluate
from review_bot.analysis.models import ChangeEntry
from review_bot.analysis.models import Issue
from review_bot.analysis.models import Severity
from review_bot.analysis.rules import RuleSet
from review_bot.config import ReviewConfig
from review_bot.errors import RemoteError
from review_bot.review.models import InlineComment
from review_bot.review.models import MergeRequestInfo
from review_bot.review.models import ReviewOutcome
from review_bot.review.models import ReviewStage
from review_bot.review.report import generate_review_report
from review_bot.review.report import render_inline_comment_body

logger = logging.getLogger(__name__)


class SourceControlClient(Protocol):
    """
    源码平台协作者接口（GitLab 实现见 `review_bot.gitlab.adapter`）。

    - fetch_*：失败抛 `FetchError`
    - post_* / approve：失败抛 `RemoteError`
    """

    async def fetch_merge_request(self, project_id: int, mr_iid: int) -> MergeRequestInfo: ...

    async def fetch_change_set(self, project_id: int, mr_iid: int) -> list[ChangeEntry]: ...

    async def post_summary_comment(self, project_id: int, mr_iid: int, body: str) -> None: ...

    async def post_inline_comment(self, project_id: int, mr_iid: int, comment: InlineComment) -> None: ...

    async def approve(self, project_id: int, mr_iid: int) -> None: ...


def select_inline_issues(issues: Sequence[Issue], limit: int) -> list[Issue]:
    """只挑 critical 且有 file + line 的 issue，按发现顺序取前 limit 条。"""
    eligible = [
        issue
        for issue in issues
        if issue.severity is Severity.CRITICAL and issue.file and issue.line is not None
    ]
    return eligible[:limit]


def build_inline_comment(issue: Issue, change_set: Sequence[ChangeEntry]) -> InlineComment | None:
    """按 new_path 精确匹配 change-set；找不到对应文件返回 None（跳过，不报错）。"""
    change = next((c for c in change_set if c.new_path == issue.file), None)
    if change is None or change.new_path is None or issue.line is None:
        return None
    return InlineComment(
        body=render_inline_comment_body(issue),
        new_path=change.new_path,
        old_path=change.old_path,
        line=issue.line,
        diff_refs=change.diff_refs,
    )


@dataclass(frozen=True)
class ReviewOrchestrator:
    """Orchestrator 运行时依赖集合（协作者 + 只读规则 + review 配置）。"""

    scm: SourceControlClient
    rules: RuleSet
    review_config: ReviewConfig
    clock: Callable[[], datetime] = field(default=datetime.now)

    async def run_review(self, project_id: int, mr_iid: int) -> ReviewOutcome:
        """跑一次完整 review，返回各阶段的执行记录。"""
        stages: list[ReviewStage] = [ReviewStage.FETCHING]
        logger.info(f"Review started: project={project_id} mr={mr_iid}")
        merge_request = await self.scm.fetch_merge_request(project_id=project_id, mr_iid=mr_iid)
        change_set = await self.scm.fetch_change_set(project_id=project_id, mr_iid=mr_iid)
        logger.info(f"MR {project_id}/{mr_iid} '{merge_request.title}': {len(change_set)} changed file(s)")

        # 分析是纯 CPU 计算，放到线程里跑，避免大 diff 阻塞事件循环
        stages.append(ReviewStage.ANALYZING)
        result = await anyio.to_thread.run_sync(evaluate, change_set, self.rules)

        stages.append(ReviewStage.REPORTING)
        report = generate_review_report(result=result, merge_request=merge_request, generated_at=self.clock())
        outcome = ReviewOutcome(project_id=project_id, mr_iid=mr_iid, result=result, report=report, stages=stages)

        outcome.stages.append(ReviewStage.POSTING)
        outcome.summary_posted = await self._guarded(
            outcome,
            "post_summary",
            lambda: self.scm.post_summary_comment(project_id=project_id, mr_iid=mr_iid, body=report),
        )

        if self.review_config.enabled and result.score >= self.review_config.auto_approve_threshold:
            outcome.stages.append(ReviewStage.APPROVING)
            outcome.approved = await self._guarded(
                outcome,
                "approve",
                lambda: self.scm.approve(project_id=project_id, mr_iid=mr_iid),
            )
            if outcome.approved:
                logger.info(
                    f"MR {project_id}/{mr_iid} auto-approved: "
                    f"score {result.score} >= {self.review_config.auto_approve_threshold}"
                )

        outcome.stages.append(ReviewStage.ANNOTATING_INLINE)
        await self._annotate_inline(outcome, change_set)

        outcome.stages.append(ReviewStage.DONE)
        logger.info(
            f"Review finished: project={project_id} mr={mr_iid} score={result.score} "
            f"inline={outcome.inline_posted}/{outcome.inline_attempted} failed={outcome.failed_steps}"
        )
        return outcome

    async def _annotate_inline(self, outcome: ReviewOutcome, change_set: Sequence[ChangeEntry]) -> None:
        selected = select_inline_issues(outcome.result.issues, limit=self.review_config.max_inline_comments)
        for issue in selected:
            comment = build_inline_comment(issue, change_set)
            if comment is None:
                logger.info(f"No change entry for {issue.file}, inline comment skipped")
                continue
            outcome.inline_attempted += 1
            posted = await self._guarded(
                outcome,
                f"inline:{comment.new_path}:{comment.line}",
                lambda: self.scm.post_inline_comment(
                    project_id=outcome.project_id,
                    mr_iid=outcome.mr_iid,
                    comment=comment,
                ),
            )
            if posted:
                outcome.inline_posted += 1

    async def _guarded(
        self,
        outcome: ReviewOutcome,
        step: str,
        action: Callable[[], Awaitable[None]],
    ) -> bool:
        """单步失败边界：RemoteError 记日志并返回 False，不影响后续步骤。"""
        try:
            await action()
        except RemoteError as exc:
            logger.warning(f"Review step '{step}' failed for {outcome.project_id}/{outcome.mr_iid}: {exc}")
            outcome.failed_steps.append(step)
            return False
        return True
