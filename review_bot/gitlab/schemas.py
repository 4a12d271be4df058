"""
GitLab Webhook / API response schemas（Pydantic）。

为什么要单独放 schema：
- GitLab 的 payload 结构复杂，直接用 dict 容易写错 key
- schema 校验失败会立刻暴露问题（比“默默 None”安全）

说明：
- 这里的字段只覆盖 review 流程所需子集，GitLab 的其他字段会被忽略
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class GitLabUser(BaseModel):
    """Webhook 里的 user 子结构。"""

    username: str
    name: str | None = None


class GitLabProject(BaseModel):
    """Webhook 里的 project 子结构（id/web_url）。"""

    id: int = Field(gt=0)
    web_url: str | None = None


class GitLabMergeRequestObjectAttributes(BaseModel):
    """Merge request webhook 的 object_attributes 子结构。"""

    iid: int = Field(gt=0)
    # action 不做枚举校验，未知取值交给 `should_review` 过滤
    action: str
    title: str | None = None
    target_branch: str | None = None
    source_branch: str | None = None
    draft: bool = False
    work_in_progress: bool = False
    last_commit: dict[str, object] = Field(default_factory=dict)

    @property
    def is_draft(self) -> bool:
        return self.draft or self.work_in_progress


class GitLabMergeRequestWebhookEvent(BaseModel):
    """Merge request webhook 的最小结构。"""

    object_kind: Literal["merge_request"]
    user: GitLabUser | None = None
    project: GitLabProject
    object_attributes: GitLabMergeRequestObjectAttributes


class GitLabPushEvent(BaseModel):
    """Push webhook（只用于日志）。"""

    object_kind: Literal["push"]
    ref: str
    project: GitLabProject
    commits: list[dict[str, object]] = Field(default_factory=list)


class GitLabPipelineAttributes(BaseModel):
    id: int
    status: str | None = None


class GitLabPipelineMergeRequest(BaseModel):
    iid: int


class GitLabPipelineEvent(BaseModel):
    """Pipeline webhook（只用于日志）。merge_request 只在 MR pipeline 上存在。"""

    object_kind: Literal["pipeline"]
    project: GitLabProject
    object_attributes: GitLabPipelineAttributes
    merge_request: GitLabPipelineMergeRequest | None = None


class GitLabAuthor(BaseModel):
    username: str
    name: str | None = None


class GitLabMergeRequest(BaseModel):
    """GET /merge_requests/:iid 返回结构（子集）。"""

    iid: int
    title: str
    author: GitLabAuthor
    source_branch: str
    target_branch: str
    draft: bool = False
    work_in_progress: bool = False
    web_url: str | None = None


class GitLabDiffRef(BaseModel):
    """GitLab 返回的 diff refs（行内评论 position 需要）。"""

    base_sha: str
    head_sha: str
    start_sha: str


class GitLabMRChange(BaseModel):
    """单个文件变更（包含 diff 字符串）。"""

    old_path: str | None = None
    new_path: str | None = None
    a_mode: str | None = None
    b_mode: str | None = None
    new_file: bool = False
    renamed_file: bool = False
    deleted_file: bool = False
    diff: str = ""


class GitLabMergeRequestChanges(BaseModel):
    """MR changes API 返回结构（changes + diff_refs）。"""

    changes: list[GitLabMRChange] = Field(default_factory=list)
    diff_refs: GitLabDiffRef | None = None


class GitLabDiscussionPosition(BaseModel):
    """行内评论的 position（text 类型，锚定新文件的 new_line）。"""

    base_sha: str | None = None
    start_sha: str | None = None
    head_sha: str | None = None
    old_path: str | None = None
    new_path: str
    position_type: Literal["text"] = "text"
    new_line: int


class GitLabProjectDetails(BaseModel):
    """GET /projects/:id 返回结构（子集）。"""

    id: int
    name: str
    path_with_namespace: str
    default_branch: str | None = None
    web_url: str | None = None


class GitLabRepositoryFile(BaseModel):
    """GET /projects/:id/repository/files/:path 返回结构（content 默认 base64）。"""

    file_path: str
    ref: str | None = None
    encoding: str = "base64"
    content: str
