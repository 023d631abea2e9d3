"""Syntactic checks run on candidate file content before it replaces the original.

These only accept or reject text; nothing here rewrites a file.
"""

import plistlib
import xml.etree.ElementTree as ElementTree
from xml.parsers.expat import ExpatError

_PAIRS = {"}": "{", "]": "[", ")": "("}


def xml_well_formed(text: str) -> None:
    """Reject text that is not well-formed XML."""
    try:
        ElementTree.fromstring(text.encode("utf-8"))
    except ElementTree.ParseError as e:
        raise ValueError(f"malformed XML: {e}") from e


def plist_well_formed(text: str) -> None:
    """Reject text that is not a readable property list."""
    try:
        plistlib.loads(text.encode("utf-8"))
    except (ValueError, ExpatError) as e:
        raise ValueError(f"malformed property list: {e}") from e


def balanced_brackets(text: str) -> None:
    """Reject C-family source (Gradle, Java, Swift) with unbalanced brackets.

    String literals and comments are skipped.
    """
    stack = []
    line = 1
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < length else ""

        if ch == "\n":
            line += 1
        elif ch == "/" and nxt == "/":
            end = text.find("\n", i)
            i = length if end < 0 else end
            continue
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            if end < 0:
                raise ValueError(f"unterminated block comment starting on line {line}")
            line += text.count("\n", i, end)
            i = end + 2
            continue
        elif ch in ("'", '"'):
            i = _skip_string(text, i, line)
            continue
        elif ch in "{[(":
            stack.append((ch, line))
        elif ch in _PAIRS:
            if not stack or stack[-1][0] != _PAIRS[ch]:
                raise ValueError(f"unbalanced '{ch}' on line {line}")
            stack.pop()
        i += 1

    if stack:
        opener, opened_on = stack[-1]
        raise ValueError(f"unclosed '{opener}' opened on line {opened_on}")


def _skip_string(text: str, start: int, line: int) -> int:
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n":
            raise ValueError(f"unterminated string literal on line {line}")
        i += 1
    raise ValueError(f"unterminated string literal on line {line}")
