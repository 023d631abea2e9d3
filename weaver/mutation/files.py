"""File-level mutation operations.

Each ``apply_*`` function reads its target, runs the matching transform from
``weaver.mutation.text`` and writes atomically only when the content
changed. They return True when the file was rewritten.
"""

import fnmatch
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from weaver.mutation import text
from weaver.mutation.atomic import Validator, atomic_write, read_text
from weaver.mutation.errors import MutationError, MutationKind, TransformError

logger = logging.getLogger(__name__)

# Names skipped when copying native sources out of a plugin package
DEFAULT_EXCLUDES = (
    "build",
    ".gradle",
    ".idea",
    "*.iml",
    ".DS_Store",
    "Pods",
    "xcuserdata",
    "__pycache__",
)


def _mutate(
    path: Path,
    kind: MutationKind,
    transform: Callable[[str], str],
    validate: Optional[Validator] = None,
) -> bool:
    original = read_text(path, kind)
    try:
        updated = transform(original)
    except TransformError as e:
        raise MutationError(kind, path, e) from e

    if updated == original:
        logger.debug(f"{kind.value}: {path} already up to date")
        return False

    atomic_write(path, updated, kind, validate)
    logger.info(f"{kind.value}: updated {path}")
    return True


def apply_exact_replace(
    path: Path,
    old: str,
    new: str,
    count: int = -1,
    validate: Optional[Validator] = None,
) -> bool:
    return _mutate(
        path,
        MutationKind.EXACT_REPLACE,
        lambda content: text.replace_exact(content, old, new, count),
        validate,
    )


def apply_regex_replace(
    path: Path,
    pattern: Union[str, re.Pattern],
    replacement: text.Replacement,
    count: int = 0,
    required: bool = True,
    validate: Optional[Validator] = None,
) -> bool:
    return _mutate(
        path,
        MutationKind.REGEX_REPLACE,
        lambda content: text.replace_pattern(content, pattern, replacement, count, required),
        validate,
    )


def apply_block_replace(
    path: Path,
    section: str,
    block: str,
    style: text.CommentStyle,
    anchor: Optional[text.Anchor] = None,
    indent: str = "",
    validate: Optional[Validator] = None,
) -> bool:
    return _mutate(
        path,
        MutationKind.BLOCK_REPLACE,
        lambda content: text.replace_block(content, section, block, style, anchor, indent),
        validate,
    )


def apply_guarded_inject(
    path: Path,
    fragment: str,
    anchor: text.Anchor,
    guard: Optional[text.Needle] = None,
    validate: Optional[Validator] = None,
) -> bool:
    return _mutate(
        path,
        MutationKind.GUARDED_INJECT,
        lambda content: text.inject_guarded(content, fragment, anchor, guard),
        validate,
    )


def write_if_changed(
    path: Path,
    content: str,
    kind: MutationKind = MutationKind.TEMPLATE_RENDER,
    validate: Optional[Validator] = None,
) -> bool:
    """Write a whole file, skipping the write when it already holds ``content``."""
    path = Path(path)
    if path.is_file() and read_text(path, kind) == content:
        logger.debug(f"{kind.value}: {path} already up to date")
        return False

    atomic_write(path, content, kind, validate)
    logger.info(f"{kind.value}: wrote {path}")
    return True


# ----------------------------------------------------------------------------
# Directory sync
# ----------------------------------------------------------------------------


def normalize_line_endings(data: bytes) -> bytes:
    """Convert CRLF/CR to LF for text content; binary content is returned as is."""
    if b"\0" in data:
        return data
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return data
    return data.replace(b"\r\n", b"\n").replace(b"\r", b"\n")


def _excluded(relative: Path, patterns: Sequence[str]) -> bool:
    posix = relative.as_posix()
    for pattern in patterns:
        if fnmatch.fnmatch(posix, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in relative.parts):
            return True
    return False


def sync_tree(
    source: Path,
    destination: Path,
    exclude: Sequence[str] = DEFAULT_EXCLUDES,
    mirror: bool = False,
) -> List[Path]:
    """Copy a directory tree, converging the destination on the source.

    Text files get LF line endings. Files whose bytes already match are not
    rewritten. With ``mirror`` the destination loses files the source no
    longer has (excluded paths are left alone).

    Returns:
        Destination files written or removed

    Raises:
        MutationError: If the source is missing or a copy fails
    """
    source = Path(source)
    destination = Path(destination)
    if not source.is_dir():
        raise MutationError(MutationKind.COPY_TREE, source, "source directory not found")

    changed: List[Path] = []
    expected = set()
    try:
        for root, dirs, files in os.walk(source):
            root_path = Path(root)
            dirs[:] = sorted(d for d in dirs if not _excluded((root_path / d).relative_to(source), exclude))
            for name in sorted(files):
                relative = (root_path / name).relative_to(source)
                if _excluded(relative, exclude):
                    continue
                expected.add(relative)
                target = destination / relative
                data = normalize_line_endings((root_path / name).read_bytes())
                if target.is_file() and target.read_bytes() == data:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
                shutil.copymode(root_path / name, target)
                changed.append(target)

        if mirror and destination.is_dir():
            for existing in sorted(destination.rglob("*")):
                relative = existing.relative_to(destination)
                if existing.is_file() and relative not in expected and not _excluded(relative, exclude):
                    existing.unlink()
                    changed.append(existing)
    except OSError as e:
        raise MutationError(MutationKind.COPY_TREE, destination, e) from e

    if changed:
        logger.info(f"{MutationKind.COPY_TREE.value}: {len(changed)} file(s) synced from {source} to {destination}")
    return changed


def prune_children(root: Path, keep: Iterable[str]) -> List[Path]:
    """Remove subdirectories of ``root`` whose names are not in ``keep``."""
    root = Path(root)
    if not root.is_dir():
        return []

    wanted = set(keep)
    removed = []
    for child in sorted(root.iterdir()):
        if child.is_dir() and child.name not in wanted:
            try:
                shutil.rmtree(child)
            except OSError as e:
                raise MutationError(MutationKind.COPY_TREE, child, e) from e
            logger.info(f"Removed stale plugin sources: {child}")
            removed.append(child)
    return removed
