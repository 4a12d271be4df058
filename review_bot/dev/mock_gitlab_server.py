"""
本地 Mock GitLab API server（只覆盖 review 流程用到的接口）。

用途：
- 在没有真实 GitLab 的情况下，本地跑通：
  Webhook -> get MR + changes -> post note -> approve -> post discussions

启动：
  python -m review_bot.dev.mock_gitlab_server
"""

from __future__ import annotations

import time

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from review_bot.gitlab.schemas import GitLabDiscussionPosition


class NoteCreateRequest(BaseModel):
    body: str


class DiscussionCreateRequest(BaseModel):
    body: str
    position: GitLabDiscussionPosition


def _default_merge_request(mr_iid: int) -> dict[str, object]:
    return {
        "iid": mr_iid,
        "title": "Add debug helpers",
        "author": {"username": "dev", "name": "Dev User"},
        "source_branch": "feature/debug",
        "target_branch": "main",
        "draft": False,
        "web_url": f"http://127.0.0.1:9002/mock/merge_requests/{mr_iid}",
    }


def _default_changes_response() -> dict[str, object]:
    return {
        "changes": [
            {
                "old_path": "src/example.js",
                "new_path": "src/example.js",
                "a_mode": "100644",
                "b_mode": "100644",
                "new_file": False,
                "renamed_file": False,
                "deleted_file": False,
                "diff": (
                    "@@ -1,3 +1,6 @@\n"
                    " function add(a, b) {\n"
                    "-  return a + b;\n"
                    "+  // TODO: handle undefined inputs\n"
                    "+  console.log(a, b);\n"
                    "+  return a + b;\n"
                    " }\n"
                ),
            }
        ],
        "diff_refs": {
            "base_sha": "0000000000000000000000000000000000000000",
            "head_sha": "1111111111111111111111111111111111111111",
            "start_sha": "0000000000000000000000000000000000000000",
        },
    }


app = FastAPI(title="Mock GitLab API", version="0.1.0")

_notes: list[dict[str, object]] = []
_discussions: list[dict[str, object]] = []
_approvals: list[dict[str, object]] = []


@app.get("/api/v4/projects/{project_id}/merge_requests/{mr_iid}")
async def get_merge_request(project_id: int, mr_iid: int) -> dict[str, object]:
    _ = project_id
    return _default_merge_request(mr_iid)


@app.get("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/changes")
async def get_merge_request_changes(project_id: int, mr_iid: int) -> dict[str, object]:
    _ = project_id
    _ = mr_iid
    return _default_changes_response()


@app.post("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/notes")
async def post_merge_request_note(project_id: int, mr_iid: int, req: NoteCreateRequest) -> dict[str, object]:
    note_id = len(_notes) + 1
    note = {
        "id": note_id,
        "body": req.body,
        "project_id": project_id,
        "mr_iid": mr_iid,
        "created_at": int(time.time()),
    }
    _notes.append(note)
    return {"id": note_id, "body": req.body}


@app.post("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/discussions")
async def post_merge_request_discussion(
    project_id: int,
    mr_iid: int,
    req: DiscussionCreateRequest,
) -> dict[str, object]:
    discussion_id = f"d{len(_discussions) + 1}"
    _discussions.append(
        {
            "id": discussion_id,
            "project_id": project_id,
            "mr_iid": mr_iid,
            "body": req.body,
            "position": req.position.model_dump(),
        }
    )
    return {"id": discussion_id}


@app.post("/api/v4/projects/{project_id}/merge_requests/{mr_iid}/approve")
async def approve_merge_request(project_id: int, mr_iid: int) -> dict[str, object]:
    _approvals.append({"project_id": project_id, "mr_iid": mr_iid, "created_at": int(time.time())})
    return {"iid": mr_iid, "approved": True}


@app.get("/__debug__/notes")
async def debug_notes() -> dict[str, object]:
    return {
        "count": len(_notes),
        "notes": _notes,
        "discussions": _discussions,
        "approvals": _approvals,
    }


def main() -> None:
    uvicorn.run(app, host="127.0.0.1", port=9002)


if __name__ == "__main__":
    main()
