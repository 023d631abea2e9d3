"""Pure text transforms behind the file mutation operations.

Every transform here is idempotent: feeding a transform its own output
returns that output unchanged. The file-level wrappers in
``weaver.mutation.files`` rely on this to skip writes on re-runs.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from weaver.constants import MARKER_TAG
from weaver.mutation.errors import TransformError

Needle = Union[str, re.Pattern[str]]
Replacement = Union[str, Callable[[re.Match[str]], str]]

SECTION_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class CommentStyle:
    """Line comment syntax used to write block markers into a file."""

    prefix: str
    suffix: str = ""

    def wrap(self, text: str) -> str:
        return f"{self.prefix} {text} {self.suffix}" if self.suffix else f"{self.prefix} {text}"


XML_COMMENT = CommentStyle("<!--", "-->")
SLASH_COMMENT = CommentStyle("//")
HASH_COMMENT = CommentStyle("#")


@dataclass(frozen=True)
class Anchor:
    """Where new lines are inserted.

    Attributes:
        needle: Literal text or compiled regex to locate
        before: Insert on new line(s) before the anchor's line instead of after it
        last: Use the last occurrence instead of the first
    """

    needle: Needle
    before: bool = False
    last: bool = False

    def locate(self, content: str) -> Optional[Tuple[int, int]]:
        if isinstance(self.needle, str):
            index = content.rfind(self.needle) if self.last else content.find(self.needle)
            return None if index < 0 else (index, index + len(self.needle))

        matches = list(self.needle.finditer(content))
        if not matches:
            return None
        match = matches[-1] if self.last else matches[0]
        return match.start(), match.end()

    def describe(self) -> str:
        text = self.needle if isinstance(self.needle, str) else self.needle.pattern
        return repr(text)


def _contains(content: str, needle: Needle) -> bool:
    if isinstance(needle, str):
        return needle in content
    return needle.search(content) is not None


def _append(content: str, text: str) -> str:
    if content and not content.endswith("\n"):
        content += "\n"
    return content + text + "\n"


def insert_lines(content: str, anchor: Anchor, text: str) -> str:
    """Insert text as whole line(s) next to the line holding the anchor."""
    span = anchor.locate(content)
    if span is None:
        raise TransformError(f"anchor not found: {anchor.describe()}")

    start, end = span
    if anchor.before:
        line_start = content.rfind("\n", 0, start) + 1
        return content[:line_start] + text + "\n" + content[line_start:]

    line_end = content.find("\n", end)
    if line_end < 0:
        return content + "\n" + text + "\n"
    return content[: line_end + 1] + text + "\n" + content[line_end + 1 :]


# ----------------------------------------------------------------------------
# Exact and regex replace
# ----------------------------------------------------------------------------


def replace_exact(content: str, old: str, new: str, count: int = -1) -> str:
    """Replace literal text.

    Already-replaced content (``old`` absent, ``new`` present) is returned
    unchanged.
    """
    if not old:
        raise TransformError("search text must not be empty")
    if old in new:
        raise TransformError(f"replacement contains the search text {old!r}")

    if old not in content:
        if new in content:
            return content
        raise TransformError(f"text not found: {old!r}")
    return content.replace(old, new, count)


def replace_pattern(
    content: str,
    pattern: Union[str, re.Pattern[str]],
    replacement: Replacement,
    count: int = 0,
    required: bool = True,
) -> str:
    """Replace regex matches, refusing replacements that would change on re-run.

    The replacement is applied a second time to its own output; any
    difference means the substituted value still matches the pattern in a
    way that would keep rewriting the file, so the call fails instead.
    """
    regex = re.compile(pattern, re.MULTILINE) if isinstance(pattern, str) else pattern
    result, replaced = regex.subn(replacement, content, count=count)
    if replaced == 0:
        if required:
            raise TransformError(f"pattern not found: {regex.pattern!r}")
        return content

    if regex.sub(replacement, result, count=count) != result:
        raise TransformError(f"replacement for {regex.pattern!r} is not idempotent")
    return result


# ----------------------------------------------------------------------------
# Marker-delimited blocks
# ----------------------------------------------------------------------------


def block_markers(section: str, style: CommentStyle) -> Tuple[str, str]:
    """Return the begin and end marker lines for a named section."""
    if not SECTION_PATTERN.match(section):
        raise TransformError(f"invalid section id: {section!r}")
    return style.wrap(f"{MARKER_TAG}:begin {section}"), style.wrap(f"{MARKER_TAG}:end {section}")


def _marker_regex(marker: str) -> re.Pattern[str]:
    return re.compile(r"^(?P<indent>[ \t]*)(?P<marker>" + re.escape(marker) + r")[ \t]*\r?$", re.MULTILINE)


def find_block(content: str, section: str, style: CommentStyle) -> Optional[Tuple[re.Match[str], re.Match[str]]]:
    """Locate the begin/end marker lines of a section.

    Returns:
        (begin match, end match), or None if the section is absent

    Raises:
        TransformError: If markers are duplicated, unpaired or out of order
    """
    begin, end = block_markers(section, style)
    begins = list(_marker_regex(begin).finditer(content))
    ends = list(_marker_regex(end).finditer(content))

    if not begins and not ends:
        return None
    if len(begins) != 1 or len(ends) != 1:
        raise TransformError(
            f"section '{section}' has {len(begins)} begin and {len(ends)} end markers, expected one pair"
        )
    if ends[0].start() < begins[0].end():
        raise TransformError(f"section '{section}' end marker precedes its begin marker")
    return begins[0], ends[0]


def replace_block(
    content: str,
    section: str,
    block: str,
    style: CommentStyle,
    anchor: Optional[Anchor] = None,
    indent: str = "",
) -> str:
    """Replace everything between a section's markers with ``block``.

    Markers are kept; bytes outside them are untouched. When the section is
    absent, markers and block are inserted next to ``anchor`` (or appended at
    the end of the content when no anchor is given). An empty block for an
    absent section changes nothing. Trailing newlines in ``block`` are kept,
    so :func:`read_block` returns it unchanged.
    """
    body = block
    found = find_block(content, section, style)

    if found is None:
        if not body:
            return content
        begin, end = block_markers(section, style)
        region = f"{indent}{begin}\n{body}\n{indent}{end}"
        if anchor is None:
            return _append(content, region)
        return insert_lines(content, anchor, region)

    begin_match, end_match = found
    inner = "\n" + (body + "\n" if body else "") + end_match.group("indent")
    return content[: begin_match.end("marker")] + inner + content[end_match.start("marker") :]


def read_block(content: str, section: str, style: CommentStyle) -> Optional[str]:
    """Return the text between a section's markers, as it was supplied."""
    found = find_block(content, section, style)
    if found is None:
        return None

    begin_match, end_match = found
    inner = content[begin_match.end("marker") : end_match.start("marker")]
    if inner.startswith("\r\n"):
        inner = inner[2:]
    elif inner.startswith("\n"):
        inner = inner[1:]
    indent = end_match.group("indent")
    if indent and inner.endswith(indent):
        inner = inner[: -len(indent)]
    if inner.endswith("\n"):
        inner = inner[:-1]
    return inner


def strip_block(content: str, section: str, style: CommentStyle) -> str:
    """Return the content with a section's marker lines and body removed."""
    found = find_block(content, section, style)
    if found is None:
        return content

    begin_match, end_match = found
    stop = end_match.end()
    if content.startswith("\n", stop):
        stop += 1
    return content[: begin_match.start()] + content[stop:]


# ----------------------------------------------------------------------------
# Guarded injection
# ----------------------------------------------------------------------------


def inject_guarded(content: str, fragment: str, anchor: Anchor, guard: Optional[Needle] = None) -> str:
    """Insert ``fragment`` next to ``anchor`` unless the guard is already present.

    The guard defaults to the fragment's stripped text.
    """
    needle = guard if guard is not None else fragment.strip()
    if _contains(content, needle):
        return content
    return insert_lines(content, anchor, fragment)
