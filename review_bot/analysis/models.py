"""
Diff 分析领域模型（Pydantic）。

用途：
- 明确 Extractor -> Scanners -> Scoring 各阶段的输入/输出结构
- 所有 finding / result 都是不可变值对象（frozen），同样输入必然得到相同输出

注意：
- Issue / Suggestion 的 kind 是封闭枚举：新增一种 finding 必须同时更新打分与报告渲染
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_SCORE = 100


class Severity(str, Enum):
    """Issue 严重程度：critical 扣分重且可生成行内评论，warning 只进汇总。"""

    CRITICAL = "critical"
    WARNING = "warning"


class IssueKind(str, Enum):
    DANGEROUS_PATTERN = "dangerous_pattern"
    FILE_SIZE = "file_size"
    LINE_LENGTH = "line_length"
    EMPTY_CATCH = "empty_catch"


class SuggestionKind(str, Enum):
    TODO = "todo"
    NAMING = "naming"
    FUNCTION_COMPLEXITY = "function_complexity"
    REQUIRED_PATTERN = "required_pattern"


class DiffRefs(BaseModel):
    """diff 引用（base/start/head sha），原样透传给行内评论，不做解释。"""

    model_config = ConfigDict(frozen=True)

    base_sha: str
    start_sha: str
    head_sha: str


class ChangeEntry(BaseModel):
    """单个文件的 diff（平台无关）。"""

    model_config = ConfigDict(frozen=True)

    old_path: str | None = None
    new_path: str | None = None
    diff_text: str = ""
    diff_refs: DiffRefs | None = None


@dataclass(frozen=True)
class AddedLine:
    """
    diff 中的一行新增代码。

    line_number 是该行在本文件所有新增行中的序号（从 1 开始），
    不是新文件中的真实行号，只用于展示和行内评论的近似定位。
    """

    content: str
    line_number: int


class Issue(BaseModel):
    """会影响分数的问题（critical / warning）。"""

    model_config = ConfigDict(frozen=True)

    kind: IssueKind
    severity: Severity
    message: str
    file: str | None = None
    line: int | None = None
    snippet: str | None = None


class Suggestion(BaseModel):
    """优化建议（每条扣 1 分）。"""

    model_config = ConfigDict(frozen=True)

    kind: SuggestionKind
    message: str
    file: str | None = None
    line: int | None = None


class FileFindings(BaseModel):
    """单个文件的扫描结果。"""

    model_config = ConfigDict(frozen=True)

    issues: tuple[Issue, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()


class AnalysisSummary(BaseModel):
    """统计信息：issue/suggestion 相关计数全部由 finding 推导。"""

    model_config = ConfigDict(frozen=True)

    files_analyzed: int = Field(ge=0)
    lines_added: int = Field(ge=0)
    lines_removed: int = Field(ge=0)
    critical_issues: int = Field(ge=0)
    warnings: int = Field(ge=0)
    suggestion_count: int = Field(ge=0)

    @classmethod
    def from_findings(
        cls,
        issues: tuple[Issue, ...],
        suggestions: tuple[Suggestion, ...],
        files_analyzed: int,
        lines_added: int,
        lines_removed: int,
    ) -> AnalysisSummary:
        return cls(
            files_analyzed=files_analyzed,
            lines_added=lines_added,
            lines_removed=lines_removed,
            critical_issues=sum(1 for issue in issues if issue.severity is Severity.CRITICAL),
            warnings=sum(1 for issue in issues if issue.severity is Severity.WARNING),
            suggestion_count=len(suggestions),
        )


class AnalysisResult(BaseModel):
    """一次 MR 分析的最终结果。"""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=MAX_SCORE)
    max_score: int = MAX_SCORE
    issues: tuple[Issue, ...] = ()
    suggestions: tuple[Suggestion, ...] = ()
    summary: AnalysisSummary

    @model_validator(mode="after")
    def _check_summary_matches_findings(self) -> AnalysisResult:
        expected = AnalysisSummary.from_findings(
            issues=self.issues,
            suggestions=self.suggestions,
            files_analyzed=self.summary.files_analyzed,
            lines_added=self.summary.lines_added,
            lines_removed=self.summary.lines_removed,
        )
        if expected != self.summary:
            raise ValueError("summary counts must be derived from issues/suggestions")
        if self.max_score != MAX_SCORE:
            raise ValueError(f"max_score is fixed at {MAX_SCORE}")
        return self

    @property
    def critical_issues(self) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.CRITICAL)

    @property
    def warnings(self) -> tuple[Issue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.WARNING)
