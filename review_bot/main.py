"""
FastAPI 服务入口。

这里做四件事：
- 加载配置（严格校验环境变量）+ 规则集（启动时构建一次，之后只读）
- 配置日志
- 组装外部依赖（HTTP Client / GitLab client / orchestrator / scheduler）
- 装配路由（health + gitlab webhook）

注意：
- 业务流程不写在这里（由 `review/orchestrator.py` 负责）
- `httpx.AsyncClient` 会被复用（避免每个请求新建连接），关闭时等待未完成的 review

启动（factory 模式，配置缺失时启动失败）：
  uvicorn review_bot.main:build_app --factory
"""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from review_bot.analysis.rules import load_rule_set
from review_bot.config import load_config_from_env
from review_bot.gitlab.adapter import GitLabSourceControl
from review_bot.gitlab.client import GitLabClient
from review_bot.gitlab.webhook import build_gitlab_webhook_router
from review_bot.review.orchestrator import ReviewOrchestrator
from review_bot.review.service import ReviewService

logger = logging.getLogger(__name__)


def build_app(environ: Mapping[str, str] | None = None) -> FastAPI:
    """创建并返回 FastAPI app（便于测试/复用）。"""

    # 1) 配置 + 规则：缺失/非法会直接抛 ConfigError，启动失败（这是期望行为）
    config = load_config_from_env(os.environ if environ is None else environ)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    rules = load_rule_set(config.rules_file)

    # 2) 可复用的 HTTP client：供 GitLab API 调用使用
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(30.0))
    gitlab_client = GitLabClient(
        base_url=str(config.gitlab.base_url).rstrip("/"),
        private_token=config.gitlab.token,
        http_client=http_client,
    )

    # 3) orchestrator + 延迟调度
    orchestrator = ReviewOrchestrator(
        scm=GitLabSourceControl(client=gitlab_client),
        rules=rules,
        review_config=config.review,
    )
    service = ReviewService.create(orchestrator=orchestrator)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        logger.info(
            f"Review bot started: gitlab={config.gitlab.base_url} enabled={config.review.enabled} "
            f"auto_approve>={config.review.auto_approve_threshold}"
        )
        yield
        await service.scheduler.drain()
        await http_client.aclose()

    app = FastAPI(title="GitLab Review Bot", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """健康检查：用于 k8s / LB 探活。"""
        return {"status": "ok"}

    app.include_router(build_gitlab_webhook_router(config=config.gitlab, service=service))
    return app
