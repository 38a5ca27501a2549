from __future__ import annotations

import base64
import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx
from google.cloud import secretmanager

from .errors import (
    AuthError,
    ConflictError,
    ContentSyncError,
    MissingTokenError,
    NetworkError,
    NotFoundError,
)
from .models.commit import Branch, BranchComparison, CommitAuthor, CommitRecord, FileChange
from .retry import RetryConfig, call_with_retry

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
USER_AGENT = "cms-draft-sync"


class RemoteContentStore(Protocol):
    """Branch-addressed file store. Every mutation is a single-file commit on one branch."""

    async def branch_exists(self, name: str) -> bool:
        ...

    async def get_main_branch(self) -> str:
        ...

    async def get_branch(self, name: str) -> Branch:
        ...

    async def create_branch(self, name: str, from_sha: str) -> Branch:
        ...

    async def delete_branch(self, name: str) -> None:
        ...

    async def get_file_content(self, path: str, branch: str) -> bytes | None:
        ...

    async def commit_file(self, path: str, content: bytes, message: str, branch: str) -> str:
        ...

    async def get_commits(
        self, branch: str, page: int = 1, per_page: int = 30, *, path: str | None = None
    ) -> list[CommitRecord]:
        ...

    async def compare_branches(self, base: str, head: str) -> BranchComparison:
        ...

    async def list_directory(self, path: str, branch: str) -> list[str]:
        ...


class GitHubContentStore:
    """GitHub REST v3 client scoped to one repository.

    Reads are retried with backoff on transient failures; writes are sent
    once and surface their error. No caching and no business rules live here.
    """

    def __init__(
        self,
        *,
        owner: str,
        repo: str,
        token: str | None = None,
        project_id: str | None = None,
        timeout: float = 30.0,
        retry: RetryConfig | None = None,
        base_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            owner: Repository owner (user or organization)
            repo: Repository name
            token: Bearer token (or fetch from Secret Manager)
            project_id: GCP project ID for Secret Manager
            timeout: Per-request timeout in seconds
            retry: Backoff policy for reads
            base_url: API root, overridable for GitHub Enterprise
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)

        Raises:
            MissingTokenError: If no token is supplied or found
        """
        if not token and project_id:
            token = self._get_secret(project_id, "github-token")
        if not token:
            raise MissingTokenError("A GitHub token is required")

        self.owner = owner
        self.repo = repo
        self._retry = retry or RetryConfig()
        self._main_branch: str | None = None
        self._repo_path = f"/repos/{owner}/{repo}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "GitHubContentStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # -- branches -------------------------------------------------------

    async def get_main_branch(self) -> str:
        """Resolve the repository's default branch; looked up once per client."""
        if self._main_branch is None:
            repo = await self._get("")
            self._main_branch = repo["default_branch"]
        return self._main_branch

    async def get_branch(self, name: str) -> Branch:
        ref = await self._get(f"/git/ref/heads/{quote(name, safe='')}")
        return Branch(name=name, head_sha=ref["object"]["sha"])

    async def branch_exists(self, name: str) -> bool:
        try:
            await self.get_branch(name)
        except NotFoundError:
            return False
        return True

    async def create_branch(self, name: str, from_sha: str) -> Branch:
        """Create ``name`` pointing at ``from_sha``.

        Raises:
            ConflictError: If the branch already exists
        """
        await self._send(
            "POST",
            "/git/refs",
            json={"ref": f"refs/heads/{name}", "sha": from_sha},
        )
        logger.info("Created branch", extra={"branch": name, "sha": from_sha})
        return Branch(name=name, head_sha=from_sha)

    async def delete_branch(self, name: str) -> None:
        await self._send("DELETE", f"/git/refs/heads/{quote(name, safe='')}")
        logger.info("Deleted branch", extra={"branch": name})

    # -- files ----------------------------------------------------------

    async def get_file_content(self, path: str, branch: str) -> bytes | None:
        """Return the decoded file bytes, or None when the file is absent on ``branch``."""
        try:
            file = await self._get(f"/contents/{path}", params={"ref": branch})
        except NotFoundError:
            return None
        if isinstance(file, list):
            raise ConflictError(f"{path} is a directory on {branch}")
        content = file.get("content") or ""
        return base64.b64decode(content.replace("\n", ""))

    async def list_directory(self, path: str, branch: str) -> list[str]:
        try:
            entries = await self._get(f"/contents/{path}", params={"ref": branch})
        except NotFoundError:
            return []
        if not isinstance(entries, list):
            return []
        return [entry["path"] for entry in entries if entry.get("type") == "file"]

    async def commit_file(self, path: str, content: bytes, message: str, branch: str) -> str:
        """Create or overwrite ``path`` on ``branch`` in one commit; returns the new head sha."""
        sha = await self._get_file_sha(path, branch)
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha

        result = await self._send("PUT", f"/contents/{path}", json=body)
        commit_sha = result["commit"]["sha"]
        logger.info(
            "Committed file",
            extra={"path": path, "branch": branch, "sha": commit_sha},
        )
        return commit_sha

    async def _get_file_sha(self, path: str, branch: str) -> str | None:
        try:
            file = await self._get(f"/contents/{path}", params={"ref": branch})
        except NotFoundError:
            return None
        return file.get("sha") if isinstance(file, dict) else None

    # -- history --------------------------------------------------------

    async def get_commits(
        self, branch: str, page: int = 1, per_page: int = 30, *, path: str | None = None
    ) -> list[CommitRecord]:
        """Commits on ``branch``, newest first, optionally only those touching ``path``."""
        params: dict[str, Any] = {"sha": branch, "page": page, "per_page": per_page}
        if path:
            params["path"] = path
        commits = await self._get("/commits", params=params)
        return [self._parse_commit(raw) for raw in commits]

    async def compare_branches(self, base: str, head: str) -> BranchComparison:
        data = await self._get(f"/compare/{quote(base, safe='')}...{quote(head, safe='')}")
        return BranchComparison(
            base=base,
            head=head,
            ahead_by=data.get("ahead_by", 0),
            behind_by=data.get("behind_by", 0),
            files=[
                FileChange(
                    filename=f["filename"],
                    status=f.get("status", "modified"),
                    additions=f.get("additions", 0),
                    deletions=f.get("deletions", 0),
                    patch=f.get("patch"),
                    previous_filename=f.get("previous_filename"),
                )
                for f in data.get("files", [])
            ],
        )

    def _parse_commit(self, raw: dict[str, Any]) -> CommitRecord:
        commit = raw.get("commit", {})
        git_author = commit.get("author") or {}
        account = raw.get("author") or {}
        return CommitRecord(
            sha=raw["sha"],
            message=commit.get("message", ""),
            author=CommitAuthor(
                name=git_author.get("name") or account.get("login") or "unknown",
                avatar_url=account.get("avatar_url"),
            ),
            date=git_author.get("date"),
        )

    # -- transport ------------------------------------------------------

    async def _get(self, url: str, *, params: dict[str, Any] | None = None) -> Any:
        return await call_with_retry(self._send, "GET", url, params=params, config=self._retry)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            response = await self._client.request(
                method, f"{self._repo_path}{url}", params=params, json=json
            )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {url} timed out: {exc}") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc}") from exc

        self._raise_for_status(method, url, response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _raise_for_status(method: str, url: str, response: httpx.Response) -> None:
        status = response.status_code
        if status < 400:
            return

        detail = f"GitHub API error: {status} {method} {url} - {response.text[:200]}"
        if status == 401:
            raise AuthError(detail)
        if status == 403:
            if response.headers.get("x-ratelimit-remaining") == "0" or "rate limit" in response.text.lower():
                raise NetworkError(detail, status_code=status)
            raise AuthError(detail)
        if status == 404:
            raise NotFoundError(detail)
        if status in (409, 422):
            raise ConflictError(detail)
        if status == 429 or status >= 500:
            raise NetworkError(detail, status_code=status)
        raise ContentSyncError(detail)

    def _get_secret(self, project_id: str, secret_id: str) -> str:
        """Fetch secret from Secret Manager.

        Args:
            project_id: GCP project ID
            secret_id: Secret ID

        Returns:
            Secret value
        """
        client = secretmanager.SecretManagerServiceClient()
        name = f"projects/{project_id}/secrets/{secret_id}/versions/latest"
        response = client.access_secret_version(name=name)
        return response.payload.data.decode("UTF-8")


__all__ = ["RemoteContentStore", "GitHubContentStore", "GITHUB_API_URL"]
