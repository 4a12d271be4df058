from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import pytest

from review_bot.analysis.models import ChangeEntry
from review_bot.analysis.models import Issue
from review_bot.analysis.models import IssueKind
from review_bot.analysis.models import Severity
from review_bot.config import ReviewConfig
from review_bot.errors import FetchError
from review_bot.errors import RemoteError
from review_bot.review.models import InlineComment
from review_bot.review.models import MergeRequestInfo
from review_bot.review.models import ReviewStage
from review_bot.review.orchestrator import ReviewOrchestrator
from review_bot.review.orchestrator import build_inline_comment
from review_bot.review.orchestrator import select_inline_issues
from tests.helpers import DIFF_REFS
from tests.helpers import make_change
from tests.helpers import rules_without_required_patterns


class FakeSourceControl:
    """内存版协作者：记录调用顺序，可按步骤注入失败。"""

    def __init__(
        self,
        change_set: Sequence[ChangeEntry],
        fail: Sequence[str] = (),
        fail_inline_at: Sequence[int] = (),
    ) -> None:
        self.change_set = list(change_set)
        self.fail = set(fail)
        self.fail_inline_at = set(fail_inline_at)
        self.calls: list[str] = []
        self.summaries: list[str] = []
        self.inline_comments: list[InlineComment] = []
        self.approvals = 0

    async def fetch_merge_request(self, project_id: int, mr_iid: int) -> MergeRequestInfo:
        self.calls.append("fetch_merge_request")
        if "fetch" in self.fail:
            raise FetchError("boom", status_code=500)
        return MergeRequestInfo(title="T", author="dev", source_branch="f", target_branch="main")

    async def fetch_change_set(self, project_id: int, mr_iid: int) -> list[ChangeEntry]:
        self.calls.append("fetch_change_set")
        return self.change_set

    async def post_summary_comment(self, project_id: int, mr_iid: int, body: str) -> None:
        self.calls.append("post_summary_comment")
        if "summary" in self.fail:
            raise RemoteError("note failed", status_code=500)
        self.summaries.append(body)

    async def post_inline_comment(self, project_id: int, mr_iid: int, comment: InlineComment) -> None:
        self.calls.append("post_inline_comment")
        attempt = self.calls.count("post_inline_comment")
        if attempt in self.fail_inline_at:
            raise RemoteError("discussion failed", status_code=400)
        self.inline_comments.append(comment)

    async def approve(self, project_id: int, mr_iid: int) -> None:
        self.calls.append("approve")
        if "approve" in self.fail:
            raise RemoteError("approve failed", status_code=403)
        self.approvals += 1


def _orchestrator(scm: FakeSourceControl, threshold: int = 90, enabled: bool = True) -> ReviewOrchestrator:
    return ReviewOrchestrator(
        scm=scm,
        rules=rules_without_required_patterns(),
        review_config=ReviewConfig(enabled=enabled, auto_approve_threshold=threshold),
        clock=lambda: datetime(2024, 1, 1),
    )


@pytest.mark.anyio
async def test_score_90_is_auto_approved() -> None:
    scm = FakeSourceControl([make_change("a.py", ["a" * 121, "b" * 121])])
    outcome = await _orchestrator(scm).run_review(project_id=1, mr_iid=2)

    assert outcome.result.score == 90
    assert scm.approvals == 1
    assert outcome.approved
    assert scm.calls == ["fetch_merge_request", "fetch_change_set", "post_summary_comment", "approve"]
    assert outcome.stages == [
        ReviewStage.FETCHING,
        ReviewStage.ANALYZING,
        ReviewStage.REPORTING,
        ReviewStage.POSTING,
        ReviewStage.APPROVING,
        ReviewStage.ANNOTATING_INLINE,
        ReviewStage.DONE,
    ]


@pytest.mark.anyio
async def test_score_89_is_not_approved() -> None:
    scm = FakeSourceControl([make_change("a.py", ["a" * 121, "b" * 121, "# TODO"])])
    outcome = await _orchestrator(scm).run_review(project_id=1, mr_iid=2)

    assert outcome.result.score == 89
    assert scm.approvals == 0
    assert "approve" not in scm.calls
    assert ReviewStage.APPROVING not in outcome.stages


@pytest.mark.anyio
async def test_disabled_review_never_approves() -> None:
    scm = FakeSourceControl([make_change("a.py", ["print('ok')"])])
    outcome = await _orchestrator(scm, enabled=False).run_review(project_id=1, mr_iid=2)

    assert outcome.result.score == 100
    assert "approve" not in scm.calls


@pytest.mark.anyio
async def test_inline_comments_limited_to_five_in_discovery_order() -> None:
    change_set = [
        make_change("a.js", ["console.log(1)", "console.log(2)"]),
        make_change("b.js", ["console.log(3)", "console.log(4)"]),
        make_change("c.js", ["console.log(5)", "console.log(6)"]),
    ]
    scm = FakeSourceControl(change_set)
    outcome = await _orchestrator(scm).run_review(project_id=1, mr_iid=2)

    assert outcome.result.summary.critical_issues == 6
    assert outcome.inline_attempted == 5
    assert [(c.new_path, c.line) for c in scm.inline_comments] == [
        ("a.js", 1),
        ("a.js", 2),
        ("b.js", 1),
        ("b.js", 2),
        ("c.js", 1),
    ]
    assert all(c.diff_refs == DIFF_REFS for c in scm.inline_comments)
    assert scm.inline_comments[0].body.startswith("🚨 **危险代码**")
    # 汇总评论一定在行内评论之前
    assert scm.calls.index("post_summary_comment") < scm.calls.index("post_inline_comment")


@pytest.mark.anyio
async def test_max_inline_comments_is_configurable() -> None:
    scm = FakeSourceControl([make_change("a.js", ["console.log(1)", "console.log(2)"])])
    orchestrator = ReviewOrchestrator(
        scm=scm,
        rules=rules_without_required_patterns(),
        review_config=ReviewConfig(enabled=True, max_inline_comments=1),
    )
    outcome = await orchestrator.run_review(project_id=1, mr_iid=2)
    assert outcome.inline_posted == 1


def test_unmatched_file_is_skipped_without_error() -> None:
    issue = Issue(
        kind=IssueKind.DANGEROUS_PATTERN,
        severity=Severity.CRITICAL,
        message="m",
        file="missing.js",
        line=3,
    )
    assert build_inline_comment(issue, [make_change("a.js", ["x"])]) is None


def test_inline_comment_keeps_old_path_for_renames() -> None:
    change = ChangeEntry(old_path="old.js", new_path="renamed.js", diff_text="+console.log(1)\n", diff_refs=DIFF_REFS)
    issue = Issue(
        kind=IssueKind.DANGEROUS_PATTERN,
        severity=Severity.CRITICAL,
        message="m",
        file="renamed.js",
        line=1,
    )
    comment = build_inline_comment(issue, [change])
    assert comment is not None
    assert (comment.new_path, comment.old_path, comment.line) == ("renamed.js", "old.js", 1)
    assert comment.diff_refs == DIFF_REFS


def test_select_inline_issues_requires_critical_file_and_line() -> None:
    issues = [
        Issue(kind=IssueKind.FILE_SIZE, severity=Severity.WARNING, message="w", file="a.js"),
        Issue(kind=IssueKind.DANGEROUS_PATTERN, severity=Severity.CRITICAL, message="c", file=None, line=1),
        Issue(kind=IssueKind.DANGEROUS_PATTERN, severity=Severity.CRITICAL, message="c", file="a.js", line=None),
        Issue(kind=IssueKind.DANGEROUS_PATTERN, severity=Severity.CRITICAL, message="ok", file="a.js", line=2),
    ]
    assert [i.message for i in select_inline_issues(issues, limit=5)] == ["ok"]
    assert select_inline_issues(issues, limit=0) == []


@pytest.mark.anyio
async def test_failed_summary_does_not_stop_remaining_steps() -> None:
    scm = FakeSourceControl([make_change("a.js", ["console.log(1)"])], fail=["summary"])
    outcome = await _orchestrator(scm, threshold=80).run_review(project_id=1, mr_iid=2)

    assert not outcome.summary_posted
    assert outcome.approved
    assert outcome.inline_posted == 1
    assert outcome.failed_steps == ["post_summary"]


@pytest.mark.anyio
async def test_failed_approve_is_not_retried() -> None:
    scm = FakeSourceControl([make_change("a.py", ["print('ok')"])], fail=["approve"])
    outcome = await _orchestrator(scm).run_review(project_id=1, mr_iid=2)

    assert outcome.summary_posted
    assert not outcome.approved
    assert scm.calls.count("approve") == 1
    assert outcome.stages[-1] is ReviewStage.DONE


@pytest.mark.anyio
async def test_failed_inline_comment_does_not_stop_the_rest() -> None:
    change_set = [make_change("a.js", ["console.log(1)", "console.log(2)", "console.log(3)"])]
    scm = FakeSourceControl(change_set, fail_inline_at=[2])
    outcome = await _orchestrator(scm).run_review(project_id=1, mr_iid=2)

    assert outcome.summary_posted
    assert outcome.inline_attempted == 3
    assert outcome.inline_posted == 2
    assert [c.line for c in scm.inline_comments] == [1, 3]
    assert outcome.failed_steps == ["inline:a.js:2"]


@pytest.mark.anyio
async def test_fetch_failure_aborts_without_posting() -> None:
    scm = FakeSourceControl([make_change("a.js", ["console.log(1)"])], fail=["fetch"])
    with pytest.raises(FetchError):
        await _orchestrator(scm).run_review(project_id=1, mr_iid=2)
    assert scm.calls == ["fetch_merge_request"]
    assert scm.summaries == []
