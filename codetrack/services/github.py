"""GitHub repository content fetcher: archives, branches and commit details."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from codetrack.config import Settings, get_settings
from codetrack.services.errors import ExternalToolFailure, ValidationFailure

logger = logging.getLogger(__name__)

USER_AGENT = "CodeTrack/0.1 (repo-scanner)"
_DEFAULT_BRANCHES = ("main", "master")
_PAGE_SIZE = 100


@dataclass
class Branch:
    """A branch head enriched with its commit details."""

    name: str
    sha: str
    url: str = ""
    message: str = ""
    author_name: str = ""
    date: str = ""

    def commit_info(self) -> dict[str, str | None]:
        """Commit metadata in the shape stored on envelopes and registry rows."""
        return {
            "branch": self.name,
            "commit_sha": self.sha,
            "commit_msg": self.message or None,
            "commit_url": self.url or None,
        }


def parse_repo_url(repo_url: str) -> tuple[str, str]:
    """Return (owner, repo) from a URL like https://github.com/owner/repo(.git)."""
    slices = [s for s in repo_url.strip().rstrip("/").split("/") if s]
    if len(slices) < 2:
        raise ValidationFailure(f"cannot parse owner/repo from {repo_url!r}")
    owner, repo = slices[-2], slices[-1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo or ":" in owner:
        raise ValidationFailure(f"cannot parse owner/repo from {repo_url!r}")
    return owner, repo


def _parse_date(value: Any) -> datetime:
    """Parse GitHub ISO 8601 dates; unknown dates sort last."""
    s = str(value) if value else ""
    if not s:
        return datetime.min.replace(tzinfo=UTC)
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=UTC)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def sort_branches(branches: list[Branch]) -> list[Branch]:
    """main/master first, then newest commit first."""
    by_date = sorted(branches, key=lambda b: _parse_date(b.date), reverse=True)
    return sorted(by_date, key=lambda b: 0 if b.name in _DEFAULT_BRANCHES else 1)


class GitHubClient:
    """Thin async client over the GitHub REST API.

    Every call takes the caller's access token; nothing is cached between
    requests. HTTP and transport errors surface as ExternalToolFailure.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self, access_token: str | None) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return httpx.AsyncClient(
            base_url=self.settings.github_api_url,
            headers=headers,
            timeout=self.settings.github_timeout,
            follow_redirects=True,
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, **params: Any) -> httpx.Response:
        try:
            response = await client.get(path, params=params or None)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("GitHub HTTP %s for %s", exc.response.status_code, path)
            raise ExternalToolFailure(
                f"GitHub returned {exc.response.status_code} for {path}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("GitHub request failed for %s: %s", path, exc)
            raise ExternalToolFailure(f"GitHub request failed for {path}: {exc}") from exc
        return response

    async def fetch_archive(
        self, owner: str, repo: str, branch: str | None, access_token: str | None
    ) -> bytes:
        """Download the repository zipball for ``branch`` (default branch when None)."""
        path = f"/repos/{owner}/{repo}/zipball"
        if branch:
            path = f"{path}/{branch}"
        async with self._client(access_token) as client:
            response = await self._get(client, path)
        logger.info(
            "Fetched %s/%s@%s archive (%d bytes)",
            owner,
            repo,
            branch or "HEAD",
            len(response.content),
        )
        return response.content

    async def _commit_details(
        self, client: httpx.AsyncClient, owner: str, repo: str, sha: str
    ) -> dict[str, Any] | None:
        try:
            response = await self._get(client, f"/repos/{owner}/{repo}/commits/{sha}")
        except ExternalToolFailure:
            return None
        return response.json()

    async def list_branches(
        self, owner: str, repo: str, access_token: str | None
    ) -> list[Branch]:
        """Branches with commit message/author/date, main/master first then newest.

        A commit whose details cannot be fetched keeps only its sha and url.
        """
        async with self._client(access_token) as client:
            response = await self._get(
                client, f"/repos/{owner}/{repo}/branches", per_page=_PAGE_SIZE
            )
            branches: list[Branch] = []
            details_by_sha: dict[str, dict[str, Any] | None] = {}
            for raw in response.json():
                commit = raw.get("commit") or {}
                sha = commit.get("sha") or ""
                if sha and sha not in details_by_sha:
                    details_by_sha[sha] = await self._commit_details(client, owner, repo, sha)
                details = details_by_sha.get(sha) or {}
                inner = details.get("commit") or {}
                author = inner.get("author") or {}
                branches.append(
                    Branch(
                        name=raw.get("name") or "",
                        sha=sha,
                        url=details.get("html_url") or commit.get("url") or "",
                        message=inner.get("message") or "",
                        author_name=author.get("name") or "",
                        date=author.get("date") or "",
                    )
                )
        return sort_branches(branches)

    async def find_branch(
        self, owner: str, repo: str, name: str, access_token: str | None
    ) -> Branch | None:
        for branch in await self.list_branches(owner, repo, access_token):
            if branch.name == name:
                return branch
        return None
