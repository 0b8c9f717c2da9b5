"""JSON-backed snippet and repository-alias store."""

import logging
import threading
from pathlib import Path

from tabletbot.models import BotState, RepositoryDetails, Snippet

logger = logging.getLogger(__name__)


class StateStore:
    """Holds the bot state and rewrites the JSON document after every mutation.

    Readers get the current immutable BotState snapshot without locking; writers
    are serialised and swap in a new snapshot, so a reader never observes a
    half-applied change.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._write_lock = threading.Lock()
        self._state = self._read()

    def _read(self) -> BotState:
        if not self.path.exists():
            return BotState()
        return BotState.model_validate_json(self.path.read_text(encoding="utf-8"))

    def _write(self, state: BotState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        logger.info("Saved state to %s", self.path)

    def _commit(self, state: BotState) -> None:
        # caller holds _write_lock
        self._write(state)
        self._state = state

    def snapshot(self) -> BotState:
        return self._state

    # Snippets

    def get_snippet(self, snippet_id: str) -> Snippet | None:
        return next((s for s in self._state.snippets if s.id == snippet_id), None)

    def list_snippets(self) -> list[Snippet]:
        return list(self._state.snippets)

    def upsert_snippet(self, snippet: Snippet) -> None:
        """Insert snippet, replacing any snippet with the same id."""
        with self._write_lock:
            snippets = [s for s in self._state.snippets if s.id != snippet.id]
            snippets.append(snippet)
            self._commit(self._state.model_copy(update={"snippets": snippets}))
        logger.info("Snippet saved '%s'", snippet.format_output())

    def edit_snippet(self, snippet_id: str, title: str | None = None, content: str | None = None) -> Snippet | None:
        """Update the given fields of an existing snippet. Returns None if it does not exist."""
        with self._write_lock:
            current = next((s for s in self._state.snippets if s.id == snippet_id), None)
            if current is None:
                return None
            updates = {k: v for k, v in (("title", title), ("content", content)) if v is not None}
            edited = current.model_copy(update=updates)
            snippets = [edited if s.id == snippet_id else s for s in self._state.snippets]
            self._commit(self._state.model_copy(update={"snippets": snippets}))
        logger.info("Snippet edited '%s'", edited.format_output())
        return edited

    def remove_snippet(self, snippet_id: str) -> Snippet | None:
        with self._write_lock:
            removed = next((s for s in self._state.snippets if s.id == snippet_id), None)
            if removed is None:
                return None
            snippets = [s for s in self._state.snippets if s.id != snippet_id]
            self._commit(self._state.model_copy(update={"snippets": snippets}))
        logger.info("Removed snippet '%s'", removed.format_output())
        return removed

    # Repository aliases

    def get_repository(self, key: str) -> RepositoryDetails | None:
        return self._state.issue_prefixes.get(key.lower())

    def list_repositories(self) -> dict[str, RepositoryDetails]:
        return dict(self._state.issue_prefixes)

    def add_repository(self, key: str, details: RepositoryDetails) -> None:
        with self._write_lock:
            prefixes = {**self._state.issue_prefixes, key.lower(): details}
            self._commit(self._state.model_copy(update={"issue_prefixes": prefixes}))
        logger.info("Added repository %s for %s", key.lower(), details.full_name)

    def remove_repository(self, key: str) -> RepositoryDetails | None:
        with self._write_lock:
            prefixes = dict(self._state.issue_prefixes)
            removed = prefixes.pop(key.lower(), None)
            if removed is None:
                return None
            self._commit(self._state.model_copy(update={"issue_prefixes": prefixes}))
        logger.info("Removed repository %s", key.lower())
        return removed
