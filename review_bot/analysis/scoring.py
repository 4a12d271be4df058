"""
Scoring Aggregator：固定权重线性扣分。

score = max(0, 100 - 15 * critical - 5 * warning - 1 * suggestion)
"""

from __future__ import annotations

from review_bot.analysis.models import MAX_SCORE
from review_bot.analysis.models import AnalysisSummary
from review_bot.analysis.models import Severity

SEVERITY_PENALTY: dict[Severity, int] = {
    Severity.CRITICAL: 15,
    Severity.WARNING: 5,
}
SUGGESTION_PENALTY = 1


def calculate_score(summary: AnalysisSummary) -> int:
    penalty = (
        summary.critical_issues * SEVERITY_PENALTY[Severity.CRITICAL]
        + summary.warnings * SEVERITY_PENALTY[Severity.WARNING]
        + summary.suggestion_count * SUGGESTION_PENALTY
    )
    return min(MAX_SCORE, max(0, MAX_SCORE - penalty))
