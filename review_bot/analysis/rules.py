"""
规则集（RuleSet）与模式匹配器。

设计目标：
- **规则是数据**：危险模式 / 必需模式都是 `NamedPattern`（名字 + matcher），新增规则不改扫描代码
- **不可变**：RuleSet 启动时构建一次，之后只读；可以被多个并发 review 共享
- **启动即校验**：阈值非正数、正则编译失败都直接抛 `ConfigError`
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from pydantic import BaseModel, Field, ValidationError

from review_bot.errors import ConfigError

MAX_LINE_LENGTH = 120

DEFAULT_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    ".js",
    ".ts",
    ".jsx",
    ".tsx",
    ".vue",
    ".py",
    ".java",
    ".go",
    ".php",
)

DEFAULT_DANGEROUS_PATTERNS: tuple[str, ...] = (
    r"console\.log",
    r"debugger",
    r"eval\(",
    r"document\.write",
    r"innerHTML\s*=",
)

DEFAULT_REQUIRED_PATTERNS: dict[str, tuple[str, ...]] = {
    ".js": (r"^['\"]use strict['\"];?",),
}


class PatternMatcher(Protocol):
    """匹配器接口：只要求 `matches(text)`，便于以后替换为 token 级匹配等实现。"""

    def matches(self, text: str) -> bool: ...


@dataclass(frozen=True)
class RegexMatcher:
    """基于 `re` 的匹配器（search 语义，命中任意位置即可）。"""

    regex: re.Pattern[str]

    @classmethod
    def compile(cls, pattern: str, flags: int = 0) -> RegexMatcher:
        try:
            return cls(regex=re.compile(pattern, flags))
        except re.error as exc:
            raise ConfigError(f"Invalid pattern {pattern!r}: {exc}") from exc

    def matches(self, text: str) -> bool:
        return self.regex.search(text) is not None


@dataclass(frozen=True)
class NamedPattern:
    """带名字的规则；name 会出现在 finding 的 message 里。"""

    name: str
    matcher: PatternMatcher


def regex_pattern(pattern: str, name: str | None = None, flags: int = 0) -> NamedPattern:
    """用正则构建 `NamedPattern`；默认以正则源码作为名字。"""
    return NamedPattern(name=name or pattern, matcher=RegexMatcher.compile(pattern, flags))


@dataclass(frozen=True)
class RuleSet:
    """
    静态规则配置（进程级只读）。

    - max_method_length / max_complexity：只接收不使用（函数扫描器只检测“新增函数”）
    - required_patterns：扩展名 -> 必需模式（新增内容里缺失即产生建议）
    """

    max_file_size: int
    allowed_extensions: frozenset[str]
    dangerous_patterns: tuple[NamedPattern, ...] = ()
    required_patterns: Mapping[str, tuple[NamedPattern, ...]] = field(default_factory=dict)
    max_line_length: int = MAX_LINE_LENGTH
    max_method_length: int = 50
    max_complexity: int = 10

    def __post_init__(self) -> None:
        thresholds = {
            "max_file_size": self.max_file_size,
            "max_line_length": self.max_line_length,
            "max_method_length": self.max_method_length,
            "max_complexity": self.max_complexity,
        }
        for name, value in thresholds.items():
            if value <= 0:
                raise ConfigError(f"{name} must be > 0, got {value}")
        for ext in self.allowed_extensions:
            if not ext.startswith("."):
                raise ConfigError(f"allowed extension must start with '.', got {ext!r}")
        # frozen dataclass：用 object.__setattr__ 把可变容器换成只读视图
        object.__setattr__(self, "allowed_extensions", frozenset(self.allowed_extensions))
        object.__setattr__(self, "dangerous_patterns", tuple(self.dangerous_patterns))
        object.__setattr__(
            self,
            "required_patterns",
            MappingProxyType({ext: tuple(patterns) for ext, patterns in self.required_patterns.items()}),
        )

    def required_patterns_for(self, extension: str) -> tuple[NamedPattern, ...]:
        return self.required_patterns.get(extension, ())


class DangerousPatternSetting(BaseModel):
    name: str | None = None
    pattern: str = Field(min_length=1)


class RuleSettings(BaseModel):
    """
    规则配置文件（JSON）的 schema。

    所有字段都有默认值，与内置规则一致；`max_line_length` 固定为 120，不开放配置。
    """

    max_file_size: int = 1000
    max_method_length: int = 50
    max_complexity: int = 10
    allowed_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_EXTENSIONS))
    dangerous_patterns: list[DangerousPatternSetting] = Field(
        default_factory=lambda: [DangerousPatternSetting(pattern=p) for p in DEFAULT_DANGEROUS_PATTERNS]
    )
    required_patterns: dict[str, list[str]] = Field(
        default_factory=lambda: {ext: list(patterns) for ext, patterns in DEFAULT_REQUIRED_PATTERNS.items()}
    )

    def build_rule_set(self) -> RuleSet:
        """编译所有正则并构建 RuleSet；必需模式按多行模式编译（`^` 匹配每一行开头）。"""
        return RuleSet(
            max_file_size=self.max_file_size,
            max_method_length=self.max_method_length,
            max_complexity=self.max_complexity,
            allowed_extensions=frozenset(self.allowed_extensions),
            dangerous_patterns=tuple(regex_pattern(p.pattern, name=p.name) for p in self.dangerous_patterns),
            required_patterns={
                ext: _compile_required(patterns) for ext, patterns in self.required_patterns.items()
            },
        )


def _compile_required(patterns: Iterable[str]) -> tuple[NamedPattern, ...]:
    return tuple(regex_pattern(p, flags=re.MULTILINE) for p in patterns)


def default_rule_set() -> RuleSet:
    return RuleSettings().build_rule_set()


def load_rule_set(path: Path | None) -> RuleSet:
    """
    从 JSON 文件加载规则集；path 为 None 时使用内置默认规则。

    - **失败**：文件不可读 / 非法 JSON / schema 不符 / 正则非法，统一抛 `ConfigError`
    """
    if path is None:
        return default_rule_set()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read rules file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Rules file {path} is not valid JSON: {exc}") from exc
    try:
        settings = RuleSettings.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Rules file {path} does not match schema: {exc}") from exc
    return settings.build_rule_set()
