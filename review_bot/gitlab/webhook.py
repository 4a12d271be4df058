"""
GitLab Webhook 接入层。

职责：
- 校验 `X-Gitlab-Token`（防止被随意调用）
- 按 `X-Gitlab-Event` 分发（没有该头时回退到 payload 的 `object_kind`）
- 解析 webhook payload -> Pydantic schema（类型安全）
- Push / Pipeline 事件只记日志；其他事件直接忽略；格式非法的事件返回 400 并丢弃（不重试）
- MR 事件调用 `ReviewService.on_merge_request_event`（只调度，不等待 review 完成）
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter
from fastapi import Header
from fastapi import HTTPException
from fastapi import Request
from pydantic import BaseModel
from pydantic import ValidationError

from review_bot.config import GitLabConfig
from review_bot.errors import EventValidationError
from review_bot.gitlab.schemas import GitLabMergeRequestWebhookEvent
from review_bot.gitlab.schemas import GitLabPipelineEvent
from review_bot.gitlab.schemas import GitLabPushEvent
from review_bot.review.service import ReviewService

logger = logging.getLogger(__name__)

WebhookEvent = GitLabMergeRequestWebhookEvent | GitLabPushEvent | GitLabPipelineEvent

# X-Gitlab-Event 头 -> payload 的 object_kind
EVENT_KINDS: dict[str, str] = {
    "Merge Request Hook": "merge_request",
    "Push Hook": "push",
    "Pipeline Hook": "pipeline",
}

_EVENT_SCHEMAS: dict[str, type[BaseModel]] = {
    "merge_request": GitLabMergeRequestWebhookEvent,
    "push": GitLabPushEvent,
    "pipeline": GitLabPipelineEvent,
}


def resolve_event_kind(event_header: str | None, payload: dict[str, object]) -> str | None:
    """有 `X-Gitlab-Event` 头就按头分发，否则看 `object_kind`；不处理的事件返回 None。"""
    if event_header is not None:
        return EVENT_KINDS.get(event_header)
    kind = payload.get("object_kind")
    return kind if isinstance(kind, str) and kind in _EVENT_SCHEMAS else None


def parse_webhook_event(body: bytes, event_header: str | None = None) -> WebhookEvent | None:
    """
    解析 webhook body。

    - 不处理的事件类型返回 None（忽略）
    - 非法 JSON / schema 不符抛 `EventValidationError`
    """
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise EventValidationError("Webhook body is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise EventValidationError("Webhook payload must be a JSON object")
    kind = resolve_event_kind(event_header, payload)
    if kind is None:
        return None
    try:
        return _EVENT_SCHEMAS[kind].model_validate(payload)  # type: ignore[return-value]
    except ValidationError as exc:
        raise EventValidationError(f"Invalid {kind} payload: {exc}") from exc


def build_gitlab_webhook_router(config: GitLabConfig, service: ReviewService) -> APIRouter:
    """创建 GitLab webhook 路由。"""
    router = APIRouter()

    @router.post("/gitlab/webhook")
    async def gitlab_webhook(
        request: Request,
        x_gitlab_token: str | None = Header(default=None, alias="X-Gitlab-Token"),
        x_gitlab_event: str | None = Header(default=None, alias="X-Gitlab-Event"),
    ) -> dict[str, str]:
        # 1) Webhook secret 校验（GitLab UI 里配置）
        if x_gitlab_token != config.webhook_secret:
            logger.warning(f"Webhook token rejected from {request.client.host if request.client else 'unknown'}")
            raise HTTPException(status_code=401, detail="Invalid webhook token")

        # 2) 解析 payload：格式不对直接 400，事件丢弃
        try:
            event = parse_webhook_event(await request.body(), event_header=x_gitlab_event)
        except EventValidationError as exc:
            logger.warning(f"Webhook payload dropped: {exc}")
            raise HTTPException(status_code=400, detail="Invalid payload") from exc

        if event is None:
            logger.info(f"Unhandled webhook event: {x_gitlab_event or 'unknown'}")
            return {"status": "ignored"}
        if isinstance(event, GitLabPushEvent):
            logger.info(f"Push event: project={event.project.id} ref={event.ref} commits={len(event.commits)}")
            return {"status": "ignored"}
        if isinstance(event, GitLabPipelineEvent):
            mr_iid = event.merge_request.iid if event.merge_request else None
            logger.info(
                f"Pipeline event: project={event.project.id} pipeline={event.object_attributes.id} "
                f"status={event.object_attributes.status} mr={mr_iid}"
            )
            return {"status": "ignored"}

        attrs = event.object_attributes
        logger.info(f"Merge request event: project={event.project.id} mr={attrs.iid} action={attrs.action}")

        # 3) 过滤 + 延迟调度（由 service 决定）
        task = service.on_merge_request_event(
            action=attrs.action,
            is_draft=attrs.is_draft,
            project_id=event.project.id,
            mr_iid=attrs.iid,
        )
        if task is None:
            return {"status": "ignored"}
        return {"status": "scheduled"}

    return router
