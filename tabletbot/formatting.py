"""Text bounding helpers shared by every embed the bot renders."""

from pathlib import PurePosixPath

MAX_EMBED_LENGTH = 4096  # Discord's embed description limit
MAX_TITLE_LENGTH = 256
MAX_FIELD_LENGTH = 1024
MAX_BODY_LINES = 15


def clip(text: str, limit: int) -> str:
    """Cut text to at most limit characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)] + "…"


def truncate_body(body: str | None, limit: int = MAX_EMBED_LENGTH) -> str:
    """First MAX_BODY_LINES lines of body, then cut to limit characters."""
    lines = (body or "").split("\n")[:MAX_BODY_LINES]
    return "\n".join(lines)[:limit]


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def trim_indent(lines: list[str]) -> str:
    """Strip the indentation shared by all non-blank lines and join them.

    Lines with less leading whitespace than the shared indent keep what they have.
    """
    indents = [_indent(line) for line in lines if line.strip()]
    if not indents:
        return "\n".join(lines)

    prefix = " " * min(indents)
    return "\n".join(line.removeprefix(prefix) for line in lines)


def excerpt_lines(text: str, start: int, end: int | None = None) -> str | None:
    """Cut the 1-based line range start..end (inclusive) out of text.

    Returns None for ranges that select nothing.
    """
    lines = text.split("\n")
    first = start - 1
    if first < 0 or first >= len(lines):
        return None

    if end is None:
        return lines[first].lstrip()

    if end <= first:
        return None

    return trim_indent(lines[first:end])


def extension_hint(path: str) -> str:
    return PurePosixPath(path).suffix.removeprefix(".")


def code_block(content: str, language: str = "", limit: int = MAX_EMBED_LENGTH) -> str:
    """Wrap content in a fenced block of at most limit characters, the fence included."""
    # ``` + language + \n + content + \n + ```
    room = max(limit - 8 - len(language), 0)
    return f"```{language}\n{content[:room]}\n```"


def format_labels(labels: list[str]) -> str | None:
    if not labels:
        return None
    return "`" + "`, `".join(labels) + "`"
