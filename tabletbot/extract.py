"""Reference extraction: pull issue numbers and GitHub file links out of message text."""

import re

from tabletbot.models import FileReference, IssueReference, Reference

# Optional alias directly before '#', single surrounding spaces are consumed as separators.
ISSUE_PATTERN = re.compile(r" ?([A-Za-z0-9_.-]+)?#([0-9]+) ?")

# https://github.com/<owner>/<repo>/blob/<ref>/<path>#L<start>[-L<end>]
FILE_PATTERN = re.compile(r"https://github\.com/(.+?)/(.+?)/blob/(.+?)/(.+?)#L([0-9]+)(?:-L([0-9]+))?")


def extract_issue_references(text: str) -> list[IssueReference]:
    return [
        IssueReference(alias=match.group(1), number=int(match.group(2)), span=match.span())
        for match in ISSUE_PATTERN.finditer(text)
    ]


def extract_file_references(text: str) -> list[FileReference]:
    references = []
    for match in FILE_PATTERN.finditer(text):
        owner, repo, git_ref, path, start, end = match.groups()
        references.append(
            FileReference(
                owner=owner,
                repo=repo,
                git_ref=git_ref,
                path=path,
                start=int(start),
                end=int(end) if end is not None else None,
                url=match.group(0),
                span=match.span(),
            )
        )
    return references


def _overlaps(span: tuple[int, int], others: list[tuple[int, int]]) -> bool:
    start, end = span
    return any(start < other_end and other_start < end for other_start, other_end in others)


def extract_references(text: str) -> list[Reference] | None:
    """Return every reference in text, ordered by position, or None when there are none.

    Issue matches that fall inside a file link are dropped so a URL is never
    resolved twice.
    """
    files = extract_file_references(text)
    file_spans = [ref.span for ref in files]
    issues = [ref for ref in extract_issue_references(text) if not _overlaps(ref.span, file_spans)]

    references: list[Reference] = sorted([*issues, *files], key=lambda ref: ref.span[0])
    return references or None
