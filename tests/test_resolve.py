"""Tests for RateLimitGuard and ResourceResolver."""

import httpx
import pytest
from conftest import DEFAULT_REPO, FakeHost, FakeTracker
from pytest_httpx import HTTPXMock

from tabletbot.extract import extract_references
from tabletbot.models import FileExcerpt, FileReference, IssueItem, IssueReference, PullRequestItem, RepositoryDetails
from tabletbot.providers.github import BASE_URL, GitHubProvider
from tabletbot.resolve import RateLimitGuard, ResourceResolver
from tabletbot.settings import BotSettings
from tabletbot.store import StateStore

OWNER, NAME = DEFAULT_REPO.owner, DEFAULT_REPO.name


def _resolver(tracker: FakeTracker, host: FakeHost, store: StateStore, reserve: int = 2) -> ResourceResolver:
    return ResourceResolver(tracker, host, store, DEFAULT_REPO, guard=RateLimitGuard(tracker, reserve=reserve))


def _file_ref(start: int, end: int | None = None) -> FileReference:
    url = f"https://github.com/acme/widgets/blob/main/src/lib.rs#L{start}" + (f"-L{end}" if end else "")
    return FileReference(
        owner="acme",
        repo="widgets",
        git_ref="main",
        path="src/lib.rs",
        start=start,
        end=end,
        url=url,
        span=(0, len(url)),
    )


class TestRateLimitGuard:
    @pytest.mark.asyncio
    async def test_allows_above_reserve(self, tracker: FakeTracker) -> None:
        tracker.quota = 3
        assert await RateLimitGuard(tracker, reserve=2).allow()

    @pytest.mark.asyncio
    async def test_blocks_at_reserve(self, tracker: FakeTracker) -> None:
        tracker.quota = 2
        assert not await RateLimitGuard(tracker, reserve=2).allow()

    @pytest.mark.asyncio
    async def test_blocks_when_quota_unreadable(self, tracker: FakeTracker) -> None:
        tracker.quota_error = httpx.ConnectError("down")
        assert not await RateLimitGuard(tracker).allow()


class TestResolveIssue:
    @pytest.mark.asyncio
    async def test_default_repository(
        self, tracker: FakeTracker, host: FakeHost, store: StateStore, issue_item: IssueItem
    ) -> None:
        tracker.issues[(OWNER, NAME, 42)] = issue_item
        result = await _resolver(tracker, host, store).resolve(IssueReference(alias=None, number=42, span=(0, 3)))
        assert result == issue_item

    @pytest.mark.asyncio
    async def test_pull_request_preferred_over_issue(
        self,
        tracker: FakeTracker,
        host: FakeHost,
        store: StateStore,
        issue_item: IssueItem,
        pull_request_item: PullRequestItem,
    ) -> None:
        tracker.issues[(OWNER, NAME, 7)] = issue_item
        tracker.pulls[(OWNER, NAME, 7)] = pull_request_item
        result = await _resolver(tracker, host, store).resolve(IssueReference(alias=None, number=7, span=(0, 2)))
        assert result == pull_request_item
        assert tracker.calls == [("pull", OWNER, NAME, 7)]

    @pytest.mark.asyncio
    async def test_falls_back_to_issue(
        self, tracker: FakeTracker, host: FakeHost, store: StateStore, issue_item: IssueItem
    ) -> None:
        tracker.issues[(OWNER, NAME, 42)] = issue_item
        await _resolver(tracker, host, store).resolve(IssueReference(alias=None, number=42, span=(0, 3)))
        assert tracker.calls == [("pull", OWNER, NAME, 42), ("issue", OWNER, NAME, 42)]

    @pytest.mark.asyncio
    async def test_alias_uses_registered_repository(
        self, tracker: FakeTracker, host: FakeHost, store: StateStore, pull_request_item: PullRequestItem
    ) -> None:
        store.add_repository("foo", RepositoryDetails(owner="acme", name="widgets"))
        tracker.pulls[("acme", "widgets", 7)] = pull_request_item
        result = await _resolver(tracker, host, store).resolve(IssueReference(alias="FOO", number=7, span=(0, 5)))
        assert result == pull_request_item

    @pytest.mark.asyncio
    async def test_unknown_alias_issues_no_calls(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        result = await _resolver(tracker, host, store).resolve(IssueReference(alias="nope", number=1, span=(0, 6)))
        assert result is None
        assert tracker.calls == []

    @pytest.mark.asyncio
    async def test_low_quota_skips_without_lookup(
        self, tracker: FakeTracker, host: FakeHost, store: StateStore, issue_item: IssueItem
    ) -> None:
        tracker.quota = 1
        tracker.issues[(OWNER, NAME, 42)] = issue_item
        result = await _resolver(tracker, host, store, reserve=2).resolve(
            IssueReference(alias=None, number=42, span=(0, 3))
        )
        assert result is None
        assert tracker.calls == []

    @pytest.mark.asyncio
    async def test_not_found_is_none(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        result = await _resolver(tracker, host, store).resolve(IssueReference(alias=None, number=999, span=(0, 4)))
        assert result is None


class TestResolveFile:
    SOURCE = "\n".join(f"    line{i}" for i in range(1, 21))

    @pytest.fixture
    def host(self) -> FakeHost:
        return FakeHost({"acme/widgets/main/src/lib.rs": self.SOURCE})

    @pytest.mark.asyncio
    async def test_range(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        result = await _resolver(tracker, host, store).resolve(_file_ref(10, 12))
        assert isinstance(result, FileExcerpt)
        assert result.content == "line10\nline11\nline12"
        assert result.language == "rs"
        assert result.path == "src/lib.rs"
        assert host.requested == ["acme/widgets/main/src/lib.rs"]

    @pytest.mark.asyncio
    async def test_single_line(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        result = await _resolver(tracker, host, store).resolve(_file_ref(5))
        assert isinstance(result, FileExcerpt)
        assert result.content == "line5"

    @pytest.mark.asyncio
    async def test_inverted_range_is_none(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        assert await _resolver(tracker, host, store).resolve(_file_ref(12, 10)) is None

    @pytest.mark.asyncio
    async def test_out_of_range_is_none(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        assert await _resolver(tracker, host, store).resolve(_file_ref(50)) is None

    @pytest.mark.asyncio
    async def test_fetch_failure_is_none(self, tracker: FakeTracker, store: StateStore) -> None:
        result = await _resolver(tracker, FakeHost(), store).resolve(_file_ref(1))
        assert result is None

    @pytest.mark.asyncio
    async def test_file_lookup_ignores_quota(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        tracker.quota = 0
        assert await _resolver(tracker, host, store).resolve(_file_ref(1)) is not None


class TestResolveAll:
    @pytest.mark.asyncio
    async def test_keeps_order_and_drops_failures(
        self,
        tracker: FakeTracker,
        store: StateStore,
        issue_item: IssueItem,
        pull_request_item: PullRequestItem,
    ) -> None:
        store.add_repository("foo", RepositoryDetails(owner="acme", name="widgets"))
        tracker.issues[(OWNER, NAME, 42)] = issue_item
        tracker.pulls[("acme", "widgets", 7)] = pull_request_item
        host = FakeHost({"acme/widgets/main/x.py": "a\nb\nc"})

        text = "foo#7 and #999 then https://github.com/acme/widgets/blob/main/x.py#L2 and #42"
        references = extract_references(text)
        assert references is not None

        items = await _resolver(tracker, host, store).resolve_all(references)
        assert [item.kind for item in items] == ["pull_request", "file", "issue"]
        assert items[0] == pull_request_item
        assert items[2] == issue_item

    @pytest.mark.asyncio
    async def test_empty(self, tracker: FakeTracker, host: FakeHost, store: StateStore) -> None:
        assert await _resolver(tracker, host, store).resolve_all([]) == []


class TestMalformedResponses:
    @pytest.mark.asyncio
    async def test_non_json_body_falls_back_and_keeps_other_references(
        self, httpx_mock: HTTPXMock, store: StateStore
    ) -> None:
        repo_url = f"{BASE_URL}/repos/{OWNER}/{NAME}"
        httpx_mock.add_response(url=f"{BASE_URL}/rate_limit", json={"resources": {"core": {"remaining": 100}}})
        httpx_mock.add_response(url=f"{repo_url}/pulls/42", text="<html>oops</html>")
        httpx_mock.add_response(url=f"{repo_url}/issues/42", text="<html>oops</html>")
        provider = GitHubProvider(BotSettings(github_token="ghp_test"))  # type: ignore[arg-type]
        host = FakeHost({"acme/widgets/main/src/lib.rs": "fn main() {}"})

        items = await ResourceResolver(provider, host, store, DEFAULT_REPO).resolve_all(
            [IssueReference(alias=None, number=42, span=(0, 3)), _file_ref(1)]
        )
        await provider.aclose()

        assert [item.kind for item in items] == ["file"]
        requested = [str(request.url) for request in httpx_mock.get_requests()]
        assert f"{repo_url}/issues/42" in requested

    @pytest.mark.asyncio
    async def test_unreadable_quota_payload_blocks(self, tracker: FakeTracker) -> None:
        tracker.quota_error = ValueError("Expecting value: line 1 column 1 (char 0)")
        assert not await RateLimitGuard(tracker).allow()
