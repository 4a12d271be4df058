"""
Diff Analysis & Scoring Engine。

`evaluate(change_set, rules)` 是纯函数：
- 不访问网络、不读时钟、没有随机性
- 同样的 change-set + 规则必然得到相同的 `AnalysisResult`
- RuleSet 只读，可以被多个请求并发调用
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import PurePosixPath

from review_bot.analysis.diff_lines import count_line_changes
from review_bot.analysis.diff_lines import extract_added_lines
from review_bot.analysis.models import AnalysisResult
from review_bot.analysis.models import AnalysisSummary
from review_bot.analysis.models import ChangeEntry
from review_bot.analysis.models import Issue
from review_bot.analysis.models import Suggestion
from review_bot.analysis.rules import RuleSet
from review_bot.analysis.scanners import scan_file
from review_bot.analysis.scoring import calculate_score

logger = logging.getLogger(__name__)


def get_file_extension(path: str) -> str:
    """返回带点的扩展名（例如 `.js`）；没有扩展名返回空字符串。"""
    return PurePosixPath(path).suffix


def should_analyze(path: str | None, rules: RuleSet) -> bool:
    if not path:
        return False
    return get_file_extension(path) in rules.allowed_extensions


def evaluate(change_set: Sequence[ChangeEntry], rules: RuleSet) -> AnalysisResult:
    """
    分析整个 change-set 并打分。

    - 只分析扩展名在白名单里的文件（按 new_path 判断），其余文件完全跳过
    - finding 顺序：文件顺序 x 行顺序（稳定、可复现）
    """
    issues: list[Issue] = []
    suggestions: list[Suggestion] = []
    files_analyzed = 0
    lines_added = 0
    lines_removed = 0

    for change in change_set:
        path = change.new_path
        if path is None or not should_analyze(path, rules):
            continue
        added_lines = extract_added_lines(change.diff_text)
        findings = scan_file(added_lines, path, get_file_extension(path), rules)
        issues.extend(findings.issues)
        suggestions.extend(findings.suggestions)

        counts = count_line_changes(change.diff_text)
        files_analyzed += 1
        lines_added += counts.added
        lines_removed += counts.removed

    summary = AnalysisSummary.from_findings(
        issues=tuple(issues),
        suggestions=tuple(suggestions),
        files_analyzed=files_analyzed,
        lines_added=lines_added,
        lines_removed=lines_removed,
    )
    result = AnalysisResult(
        score=calculate_score(summary),
        issues=tuple(issues),
        suggestions=tuple(suggestions),
        summary=summary,
    )
    logger.info(f"Analysis finished: score={result.score}/{result.max_score}, files={files_analyzed}")
    return result
