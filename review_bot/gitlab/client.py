"""
GitLab API 客户端（外部系统连接器）。

约定：
- 这里只做“HTTP 调用 + 错误处理 + schema 校验”，不做业务决策。
- 发生错误时**直接抛错**，不要吞异常：读接口抛 `FetchError`，写接口抛 `RemoteError`。
- 不做自动重试（是否重试由上游决定；当前 review 流程不重试）。
"""

from __future__ import annotations

import base64
import binascii
import logging
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from review_bot.errors import FetchError
from review_bot.errors import RemoteError
from review_bot.gitlab.schemas import GitLabDiscussionPosition
from review_bot.gitlab.schemas import GitLabMergeRequest
from review_bot.gitlab.schemas import GitLabMergeRequestChanges
from review_bot.gitlab.schemas import GitLabProjectDetails
from review_bot.gitlab.schemas import GitLabRepositoryFile

logger = logging.getLogger(__name__)


def is_safe_repository_path(file_path: str) -> bool:
    """仓库内相对路径：非空、不含 `..`、不以 `/` 开头。"""
    return bool(file_path) and ".." not in file_path and not file_path.startswith("/")


class GitLabClient:
    """最小 GitLab v4 API client：读 project / 文件 / MR / changes，写 note / discussion / approve。"""

    def __init__(self, base_url: str, private_token: str, http_client: httpx.AsyncClient) -> None:
        """
        - base_url: GitLab 实例地址（不包含末尾 /）
        - private_token: PRIVATE-TOKEN（建议用专用机器人账号）
        - http_client: 复用的 httpx.AsyncClient
        """
        self._base_url = base_url.rstrip("/")
        self._private_token = private_token
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        """GitLab API 鉴权头。"""
        return {"PRIVATE-TOKEN": self._private_token}

    def _project_url(self, project_id: int, suffix: str = "") -> str:
        return f"{self._base_url}/api/v4/projects/{project_id}{suffix}"

    def _mr_url(self, project_id: int, mr_iid: int, suffix: str = "") -> str:
        return self._project_url(project_id, f"/merge_requests/{mr_iid}{suffix}")

    async def _get(self, url: str, params: dict[str, str] | None = None) -> object:
        logger.debug(f"GitLab API request: GET {url}")
        try:
            response = await self._http_client.get(url, headers=self._headers(), params=params)
        except httpx.HTTPError as exc:
            logger.error(f"GitLab HTTP error: GET {url}: {exc}")
            raise FetchError(f"GitLab request failed: GET {url}: {exc}") from exc
        if response.status_code >= 400:
            logger.error(f"GitLab API error {response.status_code}: GET {url}")
            raise FetchError(f"GitLab API error {response.status_code}: {response.text}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"GitLab returned non-JSON body: GET {url}") from exc

    async def _post(self, url: str, payload: dict[str, object] | None = None) -> None:
        logger.debug(f"GitLab API request: POST {url}")
        try:
            response = await self._http_client.post(url, headers=self._headers(), json=payload)
        except httpx.HTTPError as exc:
            logger.error(f"GitLab HTTP error: POST {url}: {exc}")
            raise RemoteError(f"GitLab request failed: POST {url}: {exc}") from exc
        if response.status_code >= 400:
            logger.error(f"GitLab API error {response.status_code}: POST {url}")
            raise RemoteError(f"GitLab API error {response.status_code}: {response.text}", status_code=response.status_code)

    async def get_project(self, project_id: int) -> GitLabProjectDetails:
        """GitLab v4 API: GET /projects/:id"""
        data = await self._get(self._project_url(project_id))
        try:
            return GitLabProjectDetails.model_validate(data)
        except ValidationError as exc:
            raise FetchError(f"Unexpected GitLab project payload: {exc}") from exc

    async def get_file_content(self, project_id: int, file_path: str, ref: str = "main") -> str:
        """
        读取仓库文件内容（UTF-8 文本）。

        - GitLab v4 API: GET /projects/:id/repository/files/:file_path?ref=...
        - file_path 整体 URL 编码（`/` -> `%2F`）
        - 不安全的路径直接抛 `ValueError`，不发请求
        """
        if not is_safe_repository_path(file_path):
            raise ValueError(f"Unsafe repository file path: {file_path!r}")
        url = self._project_url(project_id, f"/repository/files/{quote(file_path, safe='')}")
        data = await self._get(url, params={"ref": ref})
        try:
            file = GitLabRepositoryFile.model_validate(data)
        except ValidationError as exc:
            raise FetchError(f"Unexpected GitLab file payload: {exc}") from exc
        if file.encoding != "base64":
            return file.content
        try:
            return base64.b64decode(file.content).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise FetchError(f"GitLab file {file_path}@{ref} is not UTF-8 text") from exc

    async def get_merge_request(self, project_id: int, mr_iid: int) -> GitLabMergeRequest:
        """GitLab v4 API: GET /projects/:id/merge_requests/:iid"""
        data = await self._get(self._mr_url(project_id, mr_iid))
        try:
            return GitLabMergeRequest.model_validate(data)
        except ValidationError as exc:
            raise FetchError(f"Unexpected GitLab merge request payload: {exc}") from exc

    async def get_merge_request_changes(self, project_id: int, mr_iid: int) -> GitLabMergeRequestChanges:
        """
        获取 MR changes（包含每个文件的 diff）。

        说明：
        - GitLab v4 API: GET /projects/:id/merge_requests/:iid/changes
        - 返回用 Pydantic 校验为 `GitLabMergeRequestChanges`
        """
        data = await self._get(self._mr_url(project_id, mr_iid, "/changes"))
        try:
            return GitLabMergeRequestChanges.model_validate(data)
        except ValidationError as exc:
            raise FetchError(f"Unexpected GitLab changes payload: {exc}") from exc

    async def post_merge_request_note(self, project_id: int, mr_iid: int, body: str) -> None:
        """在 MR 下发布一条全局评论（note）。只看状态码，不解析返回体。"""
        await self._post(self._mr_url(project_id, mr_iid, "/notes"), {"body": body})

    async def create_merge_request_discussion(
        self,
        project_id: int,
        mr_iid: int,
        body: str,
        position: GitLabDiscussionPosition,
    ) -> None:
        """
        发布行内评论：POST /discussions + position（diff_refs + new_path/new_line）。

        注意：GitLab 对 position 校验很严格，行号不在 diff 内会返回 400（抛 `RemoteError`）。
        """
        payload: dict[str, object] = {"body": body, "position": position.model_dump()}
        await self._post(self._mr_url(project_id, mr_iid, "/discussions"), payload)

    async def approve_merge_request(self, project_id: int, mr_iid: int) -> None:
        await self._post(self._mr_url(project_id, mr_iid, "/approve"))

    async def unapprove_merge_request(self, project_id: int, mr_iid: int) -> None:
        await self._post(self._mr_url(project_id, mr_iid, "/unapprove"))
