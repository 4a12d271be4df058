"""
GitLab -> Review domain adapter。

职责：
- 将 GitLab API 的 MR / changes schema 转换为平台无关的 `MergeRequestInfo` / `ChangeEntry`
- 实现 orchestrator 需要的 `SourceControlClient` 接口
- 只做数据归一化，不做业务决策
"""

from __future__ import annotations

from review_bot.analysis.models import ChangeEntry
from review_bot.analysis.models import DiffRefs
from review_bot.gitlab.client import GitLabClient
from review_bot.gitlab.schemas import GitLabDiscussionPosition
from review_bot.gitlab.schemas import GitLabMergeRequest
from review_bot.gitlab.schemas import GitLabMergeRequestChanges
from review_bot.review.models import InlineComment
from review_bot.review.models import MergeRequestInfo


def to_merge_request_info(merge_request: GitLabMergeRequest) -> MergeRequestInfo:
    return MergeRequestInfo(
        title=merge_request.title,
        author=merge_request.author.name or merge_request.author.username,
        source_branch=merge_request.source_branch,
        target_branch=merge_request.target_branch,
        web_url=merge_request.web_url,
        draft=merge_request.draft or merge_request.work_in_progress,
    )


def to_change_set(changes: GitLabMergeRequestChanges) -> list[ChangeEntry]:
    """GitLab 的 diff_refs 是 MR 级别的，这里复制到每个文件的 ChangeEntry 上。"""
    diff_refs = None
    if changes.diff_refs is not None:
        diff_refs = DiffRefs(
            base_sha=changes.diff_refs.base_sha,
            start_sha=changes.diff_refs.start_sha,
            head_sha=changes.diff_refs.head_sha,
        )
    return [
        ChangeEntry(old_path=c.old_path, new_path=c.new_path, diff_text=c.diff, diff_refs=diff_refs)
        for c in changes.changes
    ]


def to_discussion_position(comment: InlineComment) -> GitLabDiscussionPosition:
    refs = comment.diff_refs
    return GitLabDiscussionPosition(
        base_sha=refs.base_sha if refs else None,
        start_sha=refs.start_sha if refs else None,
        head_sha=refs.head_sha if refs else None,
        old_path=comment.old_path,
        new_path=comment.new_path,
        new_line=comment.line,
    )


class GitLabSourceControl:
    """`SourceControlClient` 的 GitLab 实现。"""

    def __init__(self, client: GitLabClient) -> None:
        self._client = client

    async def fetch_merge_request(self, project_id: int, mr_iid: int) -> MergeRequestInfo:
        merge_request = await self._client.get_merge_request(project_id=project_id, mr_iid=mr_iid)
        return to_merge_request_info(merge_request)

    async def fetch_change_set(self, project_id: int, mr_iid: int) -> list[ChangeEntry]:
        changes = await self._client.get_merge_request_changes(project_id=project_id, mr_iid=mr_iid)
        return to_change_set(changes)

    async def post_summary_comment(self, project_id: int, mr_iid: int, body: str) -> None:
        await self._client.post_merge_request_note(project_id=project_id, mr_iid=mr_iid, body=body)

    async def post_inline_comment(self, project_id: int, mr_iid: int, comment: InlineComment) -> None:
        await self._client.create_merge_request_discussion(
            project_id=project_id,
            mr_iid=mr_iid,
            body=comment.body,
            position=to_discussion_position(comment),
        )

    async def approve(self, project_id: int, mr_iid: int) -> None:
        await self._client.approve_merge_request(project_id=project_id, mr_iid=mr_iid)
