"""Turn extracted references into displayable content.

Resolution is best-effort: a reference that cannot be resolved (unknown alias,
quota at the reserve, not found, network failure) yields nothing and is logged,
never retried and never reported to the user.
"""

import asyncio
import logging

import httpx

from tabletbot.formatting import excerpt_lines, extension_hint
from tabletbot.models import FileExcerpt, FileReference, IssueReference, Reference, RepositoryDetails, ResolvedItem
from tabletbot.providers.base import ContentHost, IssueTracker, ProviderError
from tabletbot.store import StateStore

logger = logging.getLogger(__name__)

# ValueError covers bodies that are not JSON and pydantic validation errors;
# KeyError and TypeError cover JSON of the wrong shape.
LOOKUP_ERRORS = (httpx.HTTPError, ProviderError, ValueError, KeyError, TypeError)


class RateLimitGuard:
    """Gates issue-tracker lookups on the remaining API quota.

    The quota is read fresh before every lookup and never held, so two
    concurrent lookups may both pass on the last spare call.
    """

    def __init__(self, tracker: IssueTracker, reserve: int = 2) -> None:
        self._tracker = tracker
        self.reserve = reserve

    async def allow(self) -> bool:
        try:
            remaining = await self._tracker.remaining_quota()
        except LOOKUP_ERRORS as exc:
            logger.warning("Could not read GitHub rate limit: %s", exc)
            return False

        if remaining <= self.reserve:
            logger.info("GitHub rate limit low (%d remaining), skipping lookup", remaining)
            return False
        return True


class ResourceResolver:
    def __init__(
        self,
        tracker: IssueTracker,
        host: ContentHost,
        store: StateStore,
        default_repo: RepositoryDetails,
        guard: RateLimitGuard | None = None,
    ) -> None:
        self._tracker = tracker
        self._host = host
        self._store = store
        self._default_repo = default_repo
        self._guard = guard or RateLimitGuard(tracker)

    async def resolve_all(self, references: list[Reference]) -> list[ResolvedItem]:
        """Resolve concurrently, keeping the order references appeared in."""
        results = await asyncio.gather(*(self.resolve(ref) for ref in references))
        return [item for item in results if item is not None]

    async def resolve(self, reference: Reference) -> ResolvedItem | None:
        match reference:
            case IssueReference():
                return await self._resolve_issue(reference)
            case FileReference():
                return await self._resolve_file(reference)

    def repository_for(self, alias: str | None) -> RepositoryDetails | None:
        """Default repository for no alias, the aliased one otherwise, None for an unknown alias."""
        if alias is None:
            return self._default_repo
        return self._store.get_repository(alias)

    async def _resolve_issue(self, reference: IssueReference) -> ResolvedItem | None:
        repo = self.repository_for(reference.alias)
        if repo is None:
            logger.debug("Unknown repository alias '%s', skipping #%d", reference.alias, reference.number)
            return None

        if not await self._guard.allow():
            return None

        # Prefer the pull request view; plain issues 404 on the pulls endpoint.
        try:
            return await self._tracker.get_pull_request(repo.owner, repo.name, reference.number)
        except LOOKUP_ERRORS as exc:
            logger.debug("%s#%d is not a pull request: %s", repo.full_name, reference.number, exc)

        try:
            return await self._tracker.get_issue(repo.owner, repo.name, reference.number)
        except LOOKUP_ERRORS as exc:
            logger.info("Could not resolve %s#%d: %s", repo.full_name, reference.number, exc)
            return None

    async def _resolve_file(self, reference: FileReference) -> FileExcerpt | None:
        try:
            text = await self._host.fetch_file(reference.owner, reference.repo, reference.git_ref, reference.path)
        except httpx.HTTPError as exc:
            logger.info("Failed to get content for %s: %s", reference.url, exc)
            return None

        content = excerpt_lines(text, reference.start, reference.end)
        if content is None:
            return None

        return FileExcerpt(
            path=reference.path,
            language=extension_hint(reference.path),
            content=content,
            url=reference.url,
        )
