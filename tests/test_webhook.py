from __future__ import annotations

import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from review_bot.config import GitLabConfig
from review_bot.errors import EventValidationError
from review_bot.gitlab.schemas import GitLabMergeRequestWebhookEvent
from review_bot.gitlab.webhook import build_gitlab_webhook_router
from review_bot.gitlab.webhook import parse_webhook_event
from review_bot.gitlab.webhook import resolve_event_kind

SECRET = "s3cret"


class FakeReviewService:
    def __init__(self, schedule: bool = True) -> None:
        self.schedule = schedule
        self.events: list[dict[str, object]] = []

    def on_merge_request_event(self, action: str, is_draft: bool, project_id: int, mr_iid: int) -> object | None:
        self.events.append({"action": action, "is_draft": is_draft, "project_id": project_id, "mr_iid": mr_iid})
        return object() if self.schedule else None


def _payload(action: str = "open", draft: bool = False) -> dict[str, object]:
    return {
        "object_kind": "merge_request",
        "user": {"username": "dev"},
        "project": {"id": 42, "web_url": "https://gitlab.example.com/g/p"},
        "object_attributes": {
            "iid": 7,
            "action": action,
            "title": "Feature",
            "target_branch": "main",
            "source_branch": "feature",
            "draft": draft,
            "last_commit": {"id": "abc"},
        },
    }


def _client(service: FakeReviewService) -> TestClient:
    config = GitLabConfig(base_url="https://gitlab.example.com", token="t", webhook_secret=SECRET)
    app = FastAPI()
    app.include_router(build_gitlab_webhook_router(config=config, service=service))  # type: ignore[arg-type]
    return TestClient(app)


def test_webhook_rejects_wrong_token() -> None:
    service = FakeReviewService()
    response = _client(service).post("/gitlab/webhook", json=_payload(), headers={"X-Gitlab-Token": "nope"})
    assert response.status_code == 401
    assert service.events == []


def test_webhook_rejects_missing_token() -> None:
    response = _client(FakeReviewService()).post("/gitlab/webhook", json=_payload())
    assert response.status_code == 401


def test_webhook_schedules_merge_request_event() -> None:
    service = FakeReviewService()
    response = _client(service).post(
        "/gitlab/webhook",
        json=_payload(action="update", draft=True),
        headers={"X-Gitlab-Token": SECRET},
    )
    assert response.status_code == 200
    assert response.json() == {"status": "scheduled"}
    assert service.events == [{"action": "update", "is_draft": True, "project_id": 42, "mr_iid": 7}]


def test_webhook_reports_ignored_when_service_filters() -> None:
    response = _client(FakeReviewService(schedule=False)).post(
        "/gitlab/webhook",
        json=_payload(action="merge"),
        headers={"X-Gitlab-Token": SECRET},
    )
    assert response.json() == {"status": "ignored"}


def test_webhook_passes_unknown_action_to_service_filter() -> None:
    service = FakeReviewService(schedule=False)
    response = _client(service).post(
        "/gitlab/webhook",
        json=_payload(action="explode"),
        headers={"X-Gitlab-Token": SECRET},
    )
    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}
    assert [event["action"] for event in service.events] == ["explode"]


@pytest.mark.parametrize(
    ("event_header", "payload"),
    [
        ("Push Hook", {"object_kind": "push", "ref": "refs/heads/main", "project": {"id": 42}, "commits": [{}]}),
        (
            "Pipeline Hook",
            {
                "object_kind": "pipeline",
                "project": {"id": 42},
                "object_attributes": {"id": 9, "status": "failed"},
                "merge_request": {"iid": 7},
            },
        ),
        ("Tag Push Hook", {"object_kind": "tag_push"}),
        (None, {"object_kind": "issue"}),
    ],
)
def test_webhook_ignores_non_merge_request_events(event_header: str | None, payload: dict[str, object]) -> None:
    service = FakeReviewService()
    headers = {"X-Gitlab-Token": SECRET}
    if event_header is not None:
        headers["X-Gitlab-Event"] = event_header
    response = _client(service).post("/gitlab/webhook", json=payload, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}
    assert service.events == []


def test_webhook_dispatches_on_event_header() -> None:
    service = FakeReviewService()
    response = _client(service).post(
        "/gitlab/webhook",
        json=_payload(),
        headers={"X-Gitlab-Token": SECRET, "X-Gitlab-Event": "Merge Request Hook"},
    )
    assert response.json() == {"status": "scheduled"}
    assert len(service.events) == 1


@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        b"[]",
        json.dumps({"object_kind": "merge_request", "project": {"id": 1}}).encode(),
        json.dumps({**_payload(), "project": {"id": 0}}).encode(),
        json.dumps({"object_kind": "push", "ref": "refs/heads/main"}).encode(),
    ],
)
def test_webhook_drops_invalid_payload(body: bytes) -> None:
    service = FakeReviewService()
    response = _client(service).post(
        "/gitlab/webhook",
        content=body,
        headers={"X-Gitlab-Token": SECRET, "Content-Type": "application/json"},
    )
    assert response.status_code == 400
    assert service.events == []


def test_parse_webhook_event_marks_work_in_progress_as_draft() -> None:
    payload = _payload()
    payload["object_attributes"]["work_in_progress"] = True  # type: ignore[index]
    event = parse_webhook_event(json.dumps(payload).encode())
    assert isinstance(event, GitLabMergeRequestWebhookEvent)
    assert event.object_attributes.is_draft


def test_parse_webhook_event_raises_validation_error() -> None:
    with pytest.raises(EventValidationError):
        parse_webhook_event(b"{")


def test_resolve_event_kind_prefers_header() -> None:
    assert resolve_event_kind("Push Hook", {"object_kind": "merge_request"}) == "push"
    assert resolve_event_kind("Note Hook", {"object_kind": "merge_request"}) is None
    assert resolve_event_kind(None, {"object_kind": "pipeline"}) == "pipeline"
    assert resolve_event_kind(None, {}) is None
