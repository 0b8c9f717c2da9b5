"""Shared test fixtures."""

import os
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import discord
import httpx
import pytest

from tabletbot.models import Author, FileExcerpt, IssueItem, PullRequestItem, RepositoryDetails
from tabletbot.providers.base import ContentHost, IssueTracker
from tabletbot.store import StateStore

DEFAULT_REPO = RepositoryDetails(owner="OpenTabletDriver", name="OpenTabletDriver")


@pytest.fixture
def issue_item() -> IssueItem:
    return IssueItem(
        number=42,
        title="Tablet not detected",
        body="The tablet is not detected on startup.\nSteps:\n1. plug in",
        state="open",
        author=Author(login="jdoe", url="https://github.com/jdoe", avatar_url="https://avatars.example/jdoe"),
        labels=["bug", "linux"],
        milestone="v0.7",
        url="https://github.com/OpenTabletDriver/OpenTabletDriver/issues/42",
    )


@pytest.fixture
def pull_request_item() -> PullRequestItem:
    return PullRequestItem(
        number=7,
        title="Add tablet config",
        body="Adds a config.",
        state="merged",
        url="https://github.com/acme/widgets/pull/7",
    )


@pytest.fixture
def file_excerpt() -> FileExcerpt:
    return FileExcerpt(
        path="src/lib.rs",
        language="rs",
        content="fn main() {}",
        url="https://github.com/acme/widgets/blob/main/src/lib.rs#L1",
    )


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state.json")


def not_found(url: str = "https://api.github.com/x") -> httpx.HTTPStatusError:
    request = httpx.Request("GET", url)
    return httpx.HTTPStatusError("404 Not Found", request=request, response=httpx.Response(404, request=request))


def http_exception(status: int = 404) -> discord.HTTPException:
    return discord.HTTPException(MagicMock(status=status, reason="Not Found"), "Unknown Message")


class FakeTracker(IssueTracker):
    """In-memory issue tracker keyed by (owner, repo, number)."""

    def __init__(self, quota: int = 5000) -> None:
        self.quota = quota
        self.issues: dict[tuple[str, str, int], IssueItem] = {}
        self.pulls: dict[tuple[str, str, int], PullRequestItem] = {}
        self.calls: list[tuple[str, str, str, int]] = []
        self.quota_error: Exception | None = None

    async def get_issue(self, owner: str, repo: str, number: int) -> IssueItem:
        self.calls.append(("issue", owner, repo, number))
        try:
            return self.issues[(owner, repo, number)]
        except KeyError:
            raise not_found() from None

    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequestItem:
        self.calls.append(("pull", owner, repo, number))
        try:
            return self.pulls[(owner, repo, number)]
        except KeyError:
            raise not_found() from None

    async def remaining_quota(self) -> int:
        if self.quota_error:
            raise self.quota_error
        return self.quota


class FakeHost(ContentHost):
    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files = files or {}
        self.requested: list[str] = []

    async def fetch_file(self, owner: str, repo: str, git_ref: str, path: str) -> str:
        key = f"{owner}/{repo}/{git_ref}/{path}"
        self.requested.append(key)
        if key not in self.files:
            raise httpx.ConnectError("connection refused")
        return self.files[key]


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


def make_interaction(user_id: int = 1, manage_messages: bool = False) -> MagicMock:
    interaction = MagicMock()
    interaction.id = 555
    interaction.user.id = user_id
    interaction.permissions.manage_messages = manage_messages
    interaction.response.is_done = MagicMock(return_value=False)
    interaction.response.defer = AsyncMock()
    interaction.response.edit_message = AsyncMock()
    interaction.response.send_message = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def make_message() -> MagicMock:
    message = MagicMock()
    message.edit = AsyncMock()
    message.delete = AsyncMock()
    return message


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep real TABLETBOT_* variables and a stray .env out of settings under test."""
    for key in list(os.environ):
        if key.startswith("TABLETBOT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
