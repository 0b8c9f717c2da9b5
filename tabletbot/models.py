"""Shared pydantic models: references, resolved content and persisted state."""

from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class IssueReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    alias: str | None  # None → default repository
    number: int
    span: tuple[int, int]  # match position in the message text


class FileReference(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    git_ref: str
    path: str
    start: int  # 1-based
    end: int | None = None
    url: str
    span: tuple[int, int]


Reference = IssueReference | FileReference


class RepositoryDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


class Snippet(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    content: str

    def format_output(self) -> str:
        return f"{self.id}: {self.title}"


class BotState(BaseModel):
    """The persisted JSON document. Field names match the on-disk state file."""

    model_config = ConfigDict(frozen=True)

    snippets: list[Snippet] = []
    issue_prefixes: dict[str, RepositoryDetails] = {}


class Author(BaseModel):
    model_config = ConfigDict(frozen=True)

    login: str
    url: str | None = None
    avatar_url: str | None = None


class IssueItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["issue"] = "issue"
    number: int
    title: str
    body: str | None = None
    state: Literal["open", "closed"]
    author: Author | None = None
    labels: list[str] = []
    milestone: str | None = None
    url: str


class PullRequestItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["pull_request"] = "pull_request"
    number: int
    title: str | None = None
    body: str | None = None
    state: Literal["open", "closed", "merged"]
    author: Author | None = None
    labels: list[str] = []
    milestone: str | None = None
    url: str | None = None


class FileExcerpt(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    path: str
    language: str  # extension hint, "" if none
    content: str
    url: str


ResolvedItem = Annotated[IssueItem | PullRequestItem | FileExcerpt, Field(discriminator="kind")]
