from __future__ import annotations

from collections.abc import Sequence

from review_bot.analysis.models import ChangeEntry
from review_bot.analysis.models import DiffRefs
from review_bot.analysis.rules import RuleSet
from review_bot.analysis.rules import RuleSettings

DIFF_REFS = DiffRefs(base_sha="base", start_sha="start", head_sha="head")


def make_diff(added: Sequence[str], removed: Sequence[str] = ()) -> str:
    lines = [f"@@ -1,{len(removed)} +1,{len(added)} @@"]
    lines.extend(f"-{line}" for line in removed)
    lines.extend(f"+{line}" for line in added)
    return "\n".join(lines) + "\n"


def make_change(path: str, added: Sequence[str], removed: Sequence[str] = ()) -> ChangeEntry:
    return ChangeEntry(old_path=path, new_path=path, diff_text=make_diff(added, removed), diff_refs=DIFF_REFS)


def rules_without_required_patterns() -> RuleSet:
    return RuleSettings(required_patterns={}).build_rule_set()
