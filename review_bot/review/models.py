"""
Review 流程模型（Pydantic）。

用途：
- MR 元信息（报告头部用）
- 行内评论请求（文件 + 行号 + diff refs）
- 一次 review 的执行结果（各阶段是否成功），便于日志与测试断言
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from review_bot.analysis.models import AnalysisResult
from review_bot.analysis.models import DiffRefs


class MergeRequestInfo(BaseModel):
    """平台无关的 MR 元信息。"""

    model_config = ConfigDict(frozen=True)

    title: str
    author: str
    source_branch: str
    target_branch: str
    web_url: str | None = None
    draft: bool = False


class InlineComment(BaseModel):
    """一条行内评论（锚定在 new_path 的 line 行）。"""

    model_config = ConfigDict(frozen=True)

    body: str
    new_path: str
    old_path: str | None = None
    line: int
    diff_refs: DiffRefs | None = None


class ReviewStage(str, Enum):
    """单次 review 的状态机：只前进，不回退。"""

    FETCHING = "fetching"
    ANALYZING = "analyzing"
    REPORTING = "reporting"
    POSTING = "posting"
    APPROVING = "approving"
    ANNOTATING_INLINE = "annotating_inline"
    DONE = "done"


class ReviewOutcome(BaseModel):
    """一次 review 的执行记录。"""

    project_id: int
    mr_iid: int
    result: AnalysisResult
    report: str
    stages: list[ReviewStage] = Field(default_factory=list)
    summary_posted: bool = False
    approved: bool = False
    inline_attempted: int = 0
    inline_posted: int = 0
    failed_steps: list[str] = Field(default_factory=list)
