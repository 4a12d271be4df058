"""
错误类型（Review Bot 统一异常分类）。

约定：
- `ConfigError`：配置/规则非法，启动即失败
- `FetchError`：拉取 MR / changes 失败，中止本次 review（不发任何评论）
- `RemoteError`：发评论 / approve 失败，只记日志，不影响后续步骤
- `EventValidationError`：webhook 事件格式非法，直接丢弃，不重试
"""

from __future__ import annotations


class ReviewBotError(Exception):
    """所有业务异常的基类。"""


class ConfigError(ReviewBotError, ValueError):
    """配置或规则集非法（致命错误，进程不应启动）。"""


class FetchError(ReviewBotError):
    """从 GitLab 拉取 MR 数据失败。"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RemoteError(ReviewBotError):
    """写回 GitLab（note / discussion / approve）失败。"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EventValidationError(ReviewBotError):
    """webhook payload 无法解析或不符合 schema。"""
