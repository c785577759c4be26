"""Helpers that turn raw note input into store fields."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime

DEFAULT_PROJECT_ID = "general"
MAX_TITLE_CHARS = 60
MAX_SLUG_CHARS = 50

_PROJECT_MARKER = re.compile(r"#(\w+)")
_TAG_MARKER = re.compile(r"@(\w+)")
_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_DASHES = re.compile(r"-+")


@dataclass(slots=True)
class ParsedNoteInput:
    """Note content with inline markers extracted."""

    content: str
    project_id: str
    tags: tuple[str, ...]


def parse_note_input(text: str) -> ParsedNoteInput:
    """Extract the first `#project` marker and every `@tag` marker from text.

    Markers are removed from the content. Without a project marker the note
    is filed under the general project.
    """

    content = text
    project_id = DEFAULT_PROJECT_ID
    project_match = _PROJECT_MARKER.search(content)
    if project_match is not None:
        project_id = project_match.group(1)
        content = content.replace(project_match.group(0), "", 1)

    tags = normalize_tags(match.group(1) for match in _TAG_MARKER.finditer(content))
    content = _TAG_MARKER.sub("", content)
    content = "\n".join(_WHITESPACE.sub(" ", line).strip() for line in content.splitlines())
    return ParsedNoteInput(content=content.strip(), project_id=project_id, tags=tags)


def normalize_tags(tags) -> tuple[str, ...]:
    """Strip, drop empties and de-duplicate while keeping order."""

    seen: set[str] = set()
    normalized: list[str] = []
    for tag in tags:
        value = tag.strip()
        if not value or value in seen:
            continue
        seen.add(value)
        normalized.append(value)
    return tuple(normalized)


def derive_title(body: str) -> str:
    """Use the first non-empty line of the body as a title."""

    for line in body.splitlines():
        stripped = line.strip()
        if stripped:
            if len(stripped) <= MAX_TITLE_CHARS:
                return stripped
            return stripped[: MAX_TITLE_CHARS - 3].rstrip() + "..."
    return "Untitled"


def slugify(value: str) -> str:
    clean = _NON_SLUG_CHARS.sub("", value.lower())
    clean = _WHITESPACE.sub("-", clean.strip())
    clean = _DASHES.sub("-", clean)
    return clean[:MAX_SLUG_CHARS].strip("-")


def build_note_id(*, title: str, body: str, created_at: datetime) -> str:
    """Slug of the title plus a short content hash."""

    digest = hashlib.sha1(  # noqa: S324
        f"{title}\n{body}\n{created_at.isoformat()}".encode(),
    ).hexdigest()[:8]
    slug = slugify(title) or "note"
    return f"{slug}-{digest}"
