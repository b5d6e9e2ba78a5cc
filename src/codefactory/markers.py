"""Marker regions — the bounded spans of a file the engine may rewrite.

A region is delimited by two comment lines:

    // codefactory:start id="user-service"
    ...generated code...
    // codefactory:end

The comment prefix follows the file type (``#`` for Python, ``--`` for
SQL, ``//`` otherwise). The tag attribute is either ``id`` (a manifest
call id) or ``factory`` (a factory name). The legacy ``@codefactory:``
spelling is still read. Everything outside a region is preserved verbatim.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from codefactory.errors import MarkerError, MissingMarkerError

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = {
    ".py": "#",
    ".sh": "#",
    ".bash": "#",
    ".rb": "#",
    ".yaml": "#",
    ".yml": "#",
    ".toml": "#",
    ".sql": "--",
    ".lua": "--",
    ".hs": "--",
}
DEFAULT_PREFIX = "//"

_START_RE = re.compile(
    r'^[ \t]*(?P<prefix>//|#|--)[ \t]*@?codefactory:start[ \t]+'
    r'(?P<attr>id|factory)="(?P<tag>[^"]*)"[^\n]*$',
    re.MULTILINE,
)
_END_RE = re.compile(r"^[ \t]*(?://|#|--)[ \t]*@?codefactory:end\b[^\n]*$", re.MULTILINE)
_ANY_MARKER_RE = re.compile(r"@?codefactory:(?:start|end)\b")


@dataclass(frozen=True)
class MarkerRegion:
    """One delimited region.

    ``start``/``end`` cover both marker lines; ``content_start`` and
    ``content_end`` bound the interior, which includes its trailing newline.
    """

    attr: str
    tag: str
    prefix: str
    start: int
    content_start: int
    content_end: int
    end: int

    def interior(self, text: str) -> str:
        return text[self.content_start:self.content_end]


def comment_prefix(path: Path | str) -> str:
    """Line-comment prefix for a file, chosen by extension."""
    return COMMENT_PREFIXES.get(Path(path).suffix.lower(), DEFAULT_PREFIX)


def start_marker(tag: str, attr: str = "id", prefix: str = DEFAULT_PREFIX) -> str:
    return f'{prefix} codefactory:start {attr}="{tag}"'


def end_marker(prefix: str = DEFAULT_PREFIX) -> str:
    return f"{prefix} codefactory:end"


def normalize(content: str) -> str:
    """Region interiors always end with a newline (unless empty)."""
    if content and not content.endswith("\n"):
        return content + "\n"
    return content


def wrap(content: str, tag: str, attr: str = "id", prefix: str = DEFAULT_PREFIX) -> str:
    """Wrap content in start/end marker lines."""
    return f"{start_marker(tag, attr, prefix)}\n{normalize(content)}{end_marker(prefix)}"


def has_markers(text: str) -> bool:
    return bool(_ANY_MARKER_RE.search(text))


def find_regions(text: str, source: str = "<string>") -> list[MarkerRegion]:
    """Locate every region in ``text``, in file order.

    Raises:
        MarkerError: A start marker without an end, a start inside another
            region, or an end marker without a start.
    """
    tokens = sorted(
        [("start", m) for m in _START_RE.finditer(text)]
        + [("end", m) for m in _END_RE.finditer(text)],
        key=lambda t: t[1].start(),
    )

    regions: list[MarkerRegion] = []
    open_match: re.Match | None = None
    for kind, match in tokens:
        line_no = text.count("\n", 0, match.start()) + 1
        if kind == "start":
            if open_match is not None:
                raise MarkerError(
                    f"{source}:{line_no}: region '{open_match.group('tag')}' is not closed "
                    f"before the next start marker"
                )
            open_match = match
            continue
        if open_match is None:
            raise MarkerError(f"{source}:{line_no}: end marker without a start marker")
        content_start = min(open_match.end() + 1, len(text))
        regions.append(MarkerRegion(
            attr=open_match.group("attr"),
            tag=open_match.group("tag"),
            prefix=open_match.group("prefix"),
            start=open_match.start(),
            content_start=content_start,
            content_end=max(match.start(), content_start),
            end=match.end(),
        ))
        open_match = None

    if open_match is not None:
        raise MarkerError(f"{source}: region '{open_match.group('tag')}' has no end marker")
    return regions


def find_region(text: str, tag: str, attr: str | None = None, source: str = "<string>") -> MarkerRegion | None:
    """First region carrying ``tag`` (optionally only for one attribute)."""
    for region in find_regions(text, source):
        if region.tag == tag and (attr is None or region.attr == attr):
            return region
    return None


def replace_interior(text: str, region: MarkerRegion, content: str) -> str:
    """Return ``text`` with only the region's interior replaced."""
    return text[:region.content_start] + normalize(content) + text[region.content_end:]


def inject_region(
    file_path: Path | str,
    content: str,
    tag: str,
    attr: str = "id",
    header: str = "",
    footer: str = "",
    dry_run: bool = False,
) -> str:
    """Write ``content`` into the region tagged ``tag`` of a file.

    A missing file is created as header, region, footer. An existing file
    has only the interior of its matching region replaced.

    Returns:
        "created", "updated" or "unchanged".

    Raises:
        MissingMarkerError: The file exists but has no region for ``tag``.
        MarkerError: The file's markers are malformed.
    """
    file_path = Path(file_path)
    if not file_path.exists():
        new_content = compose(content, tag, attr, comment_prefix(file_path), header, footer)
        if not dry_run:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_text(new_content)
        logger.debug("Created %s with region '%s'", file_path, tag)
        return "created"

    text = file_path.read_text()
    region = find_region(text, tag, attr, str(file_path))
    if region is None:
        raise MissingMarkerError(str(file_path), tag)

    new_content = replace_interior(text, region, content)
    if new_content == text:
        return "unchanged"
    if not dry_run:
        file_path.write_text(new_content)
    logger.debug("Updated region '%s' in %s", tag, file_path)
    return "updated"


def compose(
    content: str,
    tag: str,
    attr: str = "id",
    prefix: str = DEFAULT_PREFIX,
    header: str = "",
    footer: str = "",
) -> str:
    """Text of a new file: optional header, the region, optional footer."""
    parts = []
    if header:
        parts.append(normalize(header))
    parts.append(wrap(content, tag, attr, prefix) + "\n")
    if footer:
        parts.append(normalize(footer))
    return "\n".join(parts)


def find_marked_files(directory: Path | str, pattern: str = "*") -> list[Path]:
    """Files under ``directory`` containing at least one marker, sorted."""
    found = []
    for path in sorted(Path(directory).rglob(pattern)):
        if not path.is_file():
            continue
        try:
            text = path.read_text()
        except (UnicodeDecodeError, OSError):
            continue
        if has_markers(text):
            found.append(path)
    return found
