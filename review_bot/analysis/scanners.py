"""
Pattern Scanners（确定性规则扫描）。

特点：
- 每个 scanner 是纯函数：输入一行新增代码（+ 文件/规则上下文），输出 0~N 条 finding
- 文件级 scanner（文件大小、必需模式）每个文件只跑一次
- 只做正则/字符串匹配，不解析 AST、不做语义分析

已知限制：
- `scan_function_introduction` 只检测“新增了函数”，不计算函数长度/圈复杂度；
  RuleSet 里的 max_method_length / max_complexity 目前不参与判断
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence

from review_bot.analysis.models import AddedLine
from review_bot.analysis.models import FileFindings
from review_bot.analysis.models import Issue
from review_bot.analysis.models import IssueKind
from review_bot.analysis.models import Severity
from review_bot.analysis.models import Suggestion
from review_bot.analysis.models import SuggestionKind
from review_bot.analysis.rules import RuleSet

Finding = Issue | Suggestion
LineScanner = Callable[[AddedLine, str, RuleSet], list[Finding]]

_TODO_RE = re.compile(r"(?:TODO|FIXME|XXX|HACK)", re.IGNORECASE)
_EMPTY_CATCH_RE = re.compile(r"catch\s*\(\s*\w*\s*\)\s*\{\s*\}")
_VARIABLE_DECL_RE = re.compile(r"\b(?:let|const|var)\s+([a-zA-Z_$][a-zA-Z0-9_$]*)")
_NAMED_FUNCTION_RE = re.compile(r"function\s+\w+")
_ARROW_BLOCK_RE = re.compile(r"=>\s*\{")
_LOOP_INDEX_NAMES = frozenset({"i", "j", "k"})


def scan_file_size(lines: Sequence[AddedLine], file: str, rules: RuleSet) -> list[Issue]:
    if len(lines) <= rules.max_file_size:
        return []
    return [
        Issue(
            kind=IssueKind.FILE_SIZE,
            severity=Severity.WARNING,
            message=f"文件过大: {len(lines)}行，建议拆分为更小的模块",
            file=file,
        )
    ]


def scan_dangerous_patterns(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    """每个命中的危险模式各产生一条 critical issue（同一行多次命中不去重）。"""
    findings: list[Finding] = []
    for pattern in rules.dangerous_patterns:
        if pattern.matcher.matches(line.content):
            findings.append(
                Issue(
                    kind=IssueKind.DANGEROUS_PATTERN,
                    severity=Severity.CRITICAL,
                    message=f"检测到危险代码模式: {pattern.name}",
                    file=file,
                    line=line.line_number,
                    snippet=line.content.strip(),
                )
            )
    return findings


def scan_line_length(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    length = len(line.content)
    if length <= rules.max_line_length:
        return []
    return [
        Issue(
            kind=IssueKind.LINE_LENGTH,
            severity=Severity.WARNING,
            message=f"代码行过长: {length}字符，建议不超过{rules.max_line_length}字符",
            file=file,
            line=line.line_number,
        )
    ]


def scan_todo(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    if not _TODO_RE.search(line.content.strip()):
        return []
    return [
        Suggestion(
            kind=SuggestionKind.TODO,
            message="发现TODO/FIXME注释，建议在合并前处理",
            file=file,
            line=line.line_number,
        )
    ]


def scan_empty_catch(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    if not _EMPTY_CATCH_RE.search(line.content.strip()):
        return []
    return [
        Issue(
            kind=IssueKind.EMPTY_CATCH,
            severity=Severity.WARNING,
            message="空的catch块，应该至少记录错误",
            file=file,
            line=line.line_number,
        )
    ]


def scan_naming(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    """只看本行第一个变量声明；单字符变量名（循环下标 i/j/k 除外）给出建议。"""
    match = _VARIABLE_DECL_RE.search(line.content.strip())
    if match is None:
        return []
    name = match.group(1)
    if len(name) != 1 or name in _LOOP_INDEX_NAMES:
        return []
    return [
        Suggestion(
            kind=SuggestionKind.NAMING,
            message=f'变量名过短: "{name}"，建议使用更有意义的名称',
            file=file,
            line=line.line_number,
        )
    ]


def scan_function_introduction(line: AddedLine, file: str, rules: RuleSet) -> list[Finding]:
    trimmed = line.content.strip()
    if not (_NAMED_FUNCTION_RE.search(trimmed) or _ARROW_BLOCK_RE.search(trimmed)):
        return []
    return [
        Suggestion(
            kind=SuggestionKind.FUNCTION_COMPLEXITY,
            message="新增函数，请确保函数职责单一且长度适中",
            file=file,
            line=line.line_number,
        )
    ]


def scan_required_patterns(
    lines: Sequence[AddedLine],
    file: str,
    extension: str,
    rules: RuleSet,
) -> list[Suggestion]:
    """
    新增内容（按换行拼接）里缺少必需模式时，给出锚定在第 1 行的建议。

    没有新增行（纯删除）的文件不检查。
    """
    patterns = rules.required_patterns_for(extension)
    if not patterns or not lines:
        return []
    content = "\n".join(line.content for line in lines)
    return [
        Suggestion(
            kind=SuggestionKind.REQUIRED_PATTERN,
            message=f"建议添加: {pattern.name}",
            file=file,
            line=1,
        )
        for pattern in patterns
        if not pattern.matcher.matches(content)
    ]


# 顺序即 finding 的输出顺序（同一行内）
LINE_SCANNERS: tuple[LineScanner, ...] = (
    scan_dangerous_patterns,
    scan_line_length,
    scan_todo,
    scan_empty_catch,
    scan_naming,
    scan_function_introduction,
)


def scan_file(lines: Sequence[AddedLine], file: str, extension: str, rules: RuleSet) -> FileFindings:
    """
    扫描单个文件的所有新增行。

    顺序：文件大小 -> 逐行 scanners -> 必需模式。
    """
    issues: list[Issue] = list(scan_file_size(lines, file, rules))
    suggestions: list[Suggestion] = []
    for line in lines:
        for scanner in LINE_SCANNERS:
            for finding in scanner(line, file, rules):
                if isinstance(finding, Issue):
                    issues.append(finding)
                else:
                    suggestions.append(finding)
    suggestions.extend(scan_required_patterns(lines, file, extension, rules))
    return FileFindings(issues=tuple(issues), suggestions=tuple(suggestions))
