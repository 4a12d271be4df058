"""
Report Generator（确定性输出）。

注意：
- 除了末尾的生成时间，同样的输入必然得到同样的文本，便于稳定回写 GitLab
- 分数档位（>=90 / 70~89 / <70）只用于报告展示，和自动 approve 阈值无关
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from enum import Enum

from review_bot.analysis.models import AnalysisResult
from review_bot.analysis.models import Issue
from review_bot.analysis.models import IssueKind
from review_bot.analysis.models import SuggestionKind
from review_bot.review.models import MergeRequestInfo

MAX_SUGGESTIONS_IN_REPORT = 5

ISSUE_KIND_LABELS: dict[IssueKind, str] = {
    IssueKind.DANGEROUS_PATTERN: "危险代码",
    IssueKind.FILE_SIZE: "文件过大",
    IssueKind.LINE_LENGTH: "行过长",
    IssueKind.EMPTY_CATCH: "空catch块",
}

SUGGESTION_KIND_LABELS: dict[SuggestionKind, str] = {
    SuggestionKind.TODO: "待办注释",
    SuggestionKind.NAMING: "命名",
    SuggestionKind.FUNCTION_COMPLEXITY: "函数复杂度",
    SuggestionKind.REQUIRED_PATTERN: "缺少必需模式",
}


class ScoreBand(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


_BAND_EMOJI: dict[ScoreBand, str] = {
    ScoreBand.GOOD: "🟢",
    ScoreBand.FAIR: "🟡",
    ScoreBand.POOR: "🔴",
}

_BAND_RECOMMENDATION: dict[ScoreBand, str] = {
    ScoreBand.GOOD: "✅ **代码质量优秀！** 可以考虑合并。",
    ScoreBand.FAIR: "⚠️ **代码质量良好，但有改进空间。** 建议处理上述问题后合并。",
    ScoreBand.POOR: "❌ **代码质量需要改进。** 强烈建议先处理严重问题和警告。",
}


def score_band(score: int) -> ScoreBand:
    if score >= 90:
        return ScoreBand.GOOD
    if score >= 70:
        return ScoreBand.FAIR
    return ScoreBand.POOR


def issue_label(kind: IssueKind) -> str:
    return ISSUE_KIND_LABELS[kind]


def suggestion_label(kind: SuggestionKind) -> str:
    return SUGGESTION_KIND_LABELS[kind]


def _render_issues(title: str, issues: Sequence[Issue], with_snippet: bool) -> list[str]:
    lines = [f"**{title} ({len(issues)}):**"]
    for index, issue in enumerate(issues, start=1):
        lines.append(f"{index}. **{issue_label(issue.kind)}** - {issue.message}")
        if issue.file:
            lines.append(f"   📄 文件: `{issue.file}`")
        if issue.line:
            lines.append(f"   📍 行号: {issue.line}")
        if with_snippet and issue.snippet:
            lines.append(f"   💻 代码: `{issue.snippet}`")
        lines.append("")
    return lines


def generate_review_report(
    result: AnalysisResult,
    merge_request: MergeRequestInfo,
    generated_at: datetime,
) -> str:
    """
    将分析结果渲染成一段 GitLab MR note（Markdown）。

    - result：engine 输出
    - merge_request：MR 元信息（标题/作者/分支）
    - generated_at：报告生成时间（由调用方传入，engine 内部不读时钟）
    """
    summary = result.summary
    band = score_band(result.score)
    lines: list[str] = []
    lines.append("## 🤖 自动代码审查报告")
    lines.append("")
    lines.append(f"**{merge_request.title}** by @{merge_request.author}")
    lines.append(f"`{merge_request.source_branch}` → `{merge_request.target_branch}`")
    lines.append("")
    lines.append(f"### {_BAND_EMOJI[band]} 总体评分: {result.score}/{result.max_score}")
    lines.append("")

    lines.append("**📊 统计信息:**")
    lines.append(f"- 📁 分析文件: {summary.files_analyzed}")
    lines.append(f"- ➕ 新增代码: {summary.lines_added} 行")
    lines.append(f"- ➖ 删除代码: {summary.lines_removed} 行")
    lines.append(f"- 🚨 严重问题: {summary.critical_issues}")
    lines.append(f"- ⚠️ 警告: {summary.warnings}")
    lines.append(f"- 💡 建议: {summary.suggestion_count}")
    lines.append("")

    if result.issues:
        lines.append("### 🚨 发现的问题")
        lines.append("")
        if result.critical_issues:
            lines.extend(_render_issues("严重问题", result.critical_issues, with_snippet=True))
        if result.warnings:
            lines.extend(_render_issues("警告", result.warnings, with_snippet=False))

    if result.suggestions:
        lines.append("### 💡 优化建议")
        lines.append("")
        for index, suggestion in enumerate(result.suggestions[:MAX_SUGGESTIONS_IN_REPORT], start=1):
            lines.append(f"{index}. **{suggestion_label(suggestion.kind)}** - {suggestion.message}")
            if suggestion.file:
                lines.append(f"   📄 文件: `{suggestion.file}`")
            lines.append("")
        hidden = len(result.suggestions) - MAX_SUGGESTIONS_IN_REPORT
        if hidden > 0:
            lines.append(f"*还有 {hidden} 个建议...*")
            lines.append("")

    lines.append("### 📋 审查总结")
    lines.append("")
    lines.append(_BAND_RECOMMENDATION[band])
    lines.append("")
    lines.append("---")
    lines.append(f"*🤖 此报告由自动代码审查系统生成 | {generated_at.strftime('%Y-%m-%d %H:%M:%S')}*")
    return "\n".join(lines)


def render_inline_comment_body(issue: Issue) -> str:
    return f"🚨 **{issue_label(issue.kind)}**: {issue.message}"
