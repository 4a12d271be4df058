"""
Diff Line Extractor（非 AI，纯函数）。

注意：
- 行号是“本文件第几条新增行”（从 1 开始），不是新文件中的真实行号
- 真实行号需要解析 `@@ -a,b +c,d @@` 并跟踪偏移；这里刻意保持简化，只用于展示/近似定位
"""

from __future__ import annotations

from dataclasses import dataclass

from review_bot.analysis.models import AddedLine


@dataclass(frozen=True)
class LineCounts:
    added: int
    removed: int


def _is_added(line: str) -> bool:
    return line.startswith("+") and not line.startswith("+++")


def _is_removed(line: str) -> bool:
    return line.startswith("-") and not line.startswith("---")


def extract_added_lines(diff: str) -> list[AddedLine]:
    """提取新增行（去掉开头的一个 `+`），跳过 `+++` 文件头。"""
    added: list[AddedLine] = []
    for line in diff.splitlines():
        if _is_added(line):
            added.append(AddedLine(content=line[1:], line_number=len(added) + 1))
    return added


def count_line_changes(diff: str) -> LineCounts:
    """统计新增/删除行数（不含 `+++` / `---` 文件头）。"""
    added = 0
    removed = 0
    for line in diff.splitlines():
        if _is_added(line):
            added += 1
        elif _is_removed(line):
            removed += 1
    return LineCounts(added=added, removed=removed)
