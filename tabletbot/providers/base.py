"""Abstract base classes for the remote services the resolver consumes."""

from abc import ABC, abstractmethod

from tabletbot.models import IssueItem, PullRequestItem


class ProviderError(RuntimeError):
    """A remote service rejected the request in a way retrying cannot fix (e.g. bad credentials)."""


class IssueTracker(ABC):
    @abstractmethod
    async def get_issue(self, owner: str, repo: str, number: int) -> IssueItem: ...

    @abstractmethod
    async def get_pull_request(self, owner: str, repo: str, number: int) -> PullRequestItem: ...

    @abstractmethod
    async def remaining_quota(self) -> int: ...


class ContentHost(ABC):
    @abstractmethod
    async def fetch_file(self, owner: str, repo: str, git_ref: str, path: str) -> str: ...
