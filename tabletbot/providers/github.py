"""GitHub REST API v3 and raw.githubusercontent.com clients."""

import logging
import subprocess

import httpx

from tabletbot.models import Author, IssueItem, PullRequestItem
from tabletbot.providers.base import ContentHost, IssueTracker, ProviderError
from tabletbot.settings import BotSettings

BASE_URL = "https://api.github.com"
RAW_URL = "https://raw.githubusercontent.com"

logger = logging.getLogger(__name__)


def _author_from_node(node: dict | None) -> Author | None:
    if not node:
        return None
    return Author(login=node["login"], url=node.get("html_url"), avatar_url=node.get("avatar_url"))


def _milestone_from_node(node: dict) -> str | None:
    milestone = node.get("milestone")
    return milestone["title"] if milestone else None


class GitHubProvider(IssueTracker):
    def __init__(self, settings: BotSettings, client: httpx.AsyncClient | None = None) -> None:
        self._token = self._resolve_token(settings)
        self._headers = {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        self._client = client or httpx.AsyncClient(timeout=30)

    def _resolve_token(self, settings: BotSettings) -> str:
        if settings.github_auth == "gh-cli":
            result = subprocess.run(
                ["gh", "auth", "token"],
                capture_output=True,
                text=True,
            )
            if result.returncode != 0:
                raise RuntimeError("gh auth token failed. Run: gh auth login")
            return result.stdout.strip()
        if settings.github_token:
            return settings.github_token.get_secret_value()
        raise RuntimeError("No GitHub credentials. Set TABLETBOT_GITHUB_TOKEN or github_auth = \"gh-cli\"")

    async def _get(self, path: str) -> dict:
        response = await self._client.get(f"{BASE_URL}{path}", headers=self._headers)
        if response.status_code == 401:
            raise ProviderError("GitHub API returned 401. Check TABLETBOT_GITHUB_TOKEN.")
        response.raise_for_status()
        return response.json()

    async def get_issue(self, owner: str, repo: str, number: int) -> IssueItem:
        node = await self._get(f"/repos/{owner}/{repo}/issues/{number}")
        return IssueItem(
            number=node["number"],
            title=node["title"],
            body=node.get("body"),
            state="closed" if node.get("closed_at") else "open",
            author=_author_from_node(node.get("user")),
            labels=[label["name"] for label in node.get("labels", [])],
            milestone=_milestone_from_node(node),
            url=node["html_url"],
        )

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequestItem:
        node = await self._get(f"/repos/{owner}/{repo}/pulls/{number}")
        if node.get("merged_at"):
            state = "merged"
        elif node.get("closed_at"):
            state = "closed"
        else:
            state = "open"
        return PullRequestItem(
            number=node["number"],
            title=node.get("title"),
            body=node.get("body"),
            state=state,
            author=_author_from_node(node.get("user")),
            labels=[label["name"] for label in node.get("labels") or []],
            milestone=_milestone_from_node(node),
            url=node.get("html_url"),
        )

    async def remaining_quota(self) -> int:
        # /rate_limit does not count against the quota it reports.
        node = await self._get("/rate_limit")
        return node["resources"]["core"]["remaining"]

    async def aclose(self) -> None:
        await self._client.aclose()


class RawContentHost(ContentHost):
    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client or httpx.AsyncClient(timeout=30, follow_redirects=True)

    async def fetch_file(self, owner: str, repo: str, git_ref: str, path: str) -> str:
        url = f"{RAW_URL}/{owner}/{repo}/{git_ref}/{path}"
        logger.info("Downloading content: %s", url)
        response = await self._client.get(url)
        response.raise_for_status()
        return response.text

    async def aclose(self) -> None:
        await self._client.aclose()
