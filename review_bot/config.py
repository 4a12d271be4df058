"""
应用配置加载。

设计目标：
- **严格**：缺少必要环境变量/取值非法就直接报错（`ConfigError`，启动失败）
- **类型安全**：使用 Pydantic 校验 URL/整数范围等，减少运行时踩坑
- **可测试**：核心加载函数接收 `environ` 显式输入，便于单元测试
- **无全局单例**：配置对象构建一次后注入到 orchestrator / webhook
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, HttpUrl, ValidationError

from review_bot.errors import ConfigError


class GitLabConfig(BaseModel):
    """GitLab 连接配置（全部必填）。"""

    base_url: HttpUrl
    token: str = Field(min_length=1)
    webhook_secret: str = Field(min_length=1)


class ReviewConfig(BaseModel):
    """
    Review 行为配置。

    - min_reviewers：只接收，不在本服务里强制
    - delay_seconds：收到 MR 事件后延迟多久再拉 diff（给 GitLab 时间算 diff）
    """

    enabled: bool = False
    auto_approve_threshold: int = Field(default=90, ge=0, le=100)
    min_reviewers: int = Field(default=1, ge=1)
    delay_seconds: float = Field(default=5.0, ge=0)
    max_inline_comments: int = Field(default=5, ge=0)


class AppConfig(BaseModel):
    """应用运行所需的配置集合。"""

    gitlab: GitLabConfig
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    rules_file: Path | None = None
    log_level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"


def _optional(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(key)
    if value is None or not value.strip():
        return None
    return value.strip()


def load_config_from_env(environ: Mapping[str, str]) -> AppConfig:
    """
    从环境变量加载并校验配置。

    - **输入**：`environ`（例如 `os.environ`）
    - **输出**：`AppConfig`
    - **失败**：缺失/为空/非法取值抛 `ConfigError`
    """
    required_keys: tuple[str, ...] = ("GITLAB_BASE_URL", "GITLAB_TOKEN", "GITLAB_WEBHOOK_SECRET")
    missing: list[str] = [key for key in required_keys if _optional(environ, key) is None]
    if missing:
        raise ConfigError(f"Missing required env vars: {', '.join(missing)}")

    # 可选项：未设置就用 ReviewConfig 的默认值
    review_fields: dict[str, object] = {"enabled": environ.get("REVIEW_ENABLED", "").strip().lower() == "true"}
    optional_keys = {
        "AUTO_APPROVE_THRESHOLD": "auto_approve_threshold",
        "MIN_REVIEWERS": "min_reviewers",
        "REVIEW_DELAY_SECONDS": "delay_seconds",
        "MAX_INLINE_COMMENTS": "max_inline_comments",
    }
    for env_key, field_name in optional_keys.items():
        value = _optional(environ, env_key)
        if value is not None:
            review_fields[field_name] = value

    rules_file = _optional(environ, "REVIEW_RULES_FILE")

    # 交给 Pydantic 做类型校验（URL 合法性、整数范围等）
    try:
        return AppConfig(
            gitlab=GitLabConfig(
                base_url=environ["GITLAB_BASE_URL"].strip(),
                token=environ["GITLAB_TOKEN"].strip(),
                webhook_secret=environ["GITLAB_WEBHOOK_SECRET"].strip(),
            ),
            review=ReviewConfig.model_validate(review_fields),
            rules_file=Path(rules_file) if rules_file else None,
            log_level=(_optional(environ, "LOG_LEVEL") or "INFO").upper(),
        )
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc
