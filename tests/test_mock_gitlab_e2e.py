from __future__ import annotations

from datetime import datetime

import httpx
import pytest

from review_bot.analysis.rules import default_rule_set
from review_bot.config import ReviewConfig
from review_bot.dev import mock_gitlab_server
from review_bot.gitlab.adapter import GitLabSourceControl
from review_bot.gitlab.client import GitLabClient
from review_bot.review.orchestrator import ReviewOrchestrator


@pytest.mark.anyio
async def test_review_against_mock_gitlab() -> None:
    transport = httpx.ASGITransport(app=mock_gitlab_server.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://mock") as http_client:
        client = GitLabClient(base_url="http://mock", private_token="t", http_client=http_client)
        orchestrator = ReviewOrchestrator(
            scm=GitLabSourceControl(client=client),
            rules=default_rule_set(),
            review_config=ReviewConfig(enabled=True, auto_approve_threshold=50),
            clock=lambda: datetime(2024, 1, 1),
        )
        outcome = await orchestrator.run_review(project_id=3, mr_iid=9)

        # console.log（critical）+ TODO + 缺少 use strict
        assert outcome.result.score == 100 - 15 - 1 - 1
        assert outcome.summary_posted
        assert outcome.approved
        assert outcome.inline_posted == 1
        assert outcome.failed_steps == []

        debug = (await http_client.get("/__debug__/notes")).json()
        notes = [n for n in debug["notes"] if n["mr_iid"] == 9]
        discussions = [d for d in debug["discussions"] if d["mr_iid"] == 9]
        assert "自动代码审查报告" in notes[-1]["body"]
        assert discussions[-1]["position"]["new_path"] == "src/example.js"
        assert discussions[-1]["position"]["new_line"] == 2
        assert discussions[-1]["position"]["head_sha"] == "1" * 40
