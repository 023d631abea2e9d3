"""Atomic file writes: temp file, validate, then replace."""

import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Callable, Optional

from weaver.mutation.errors import MutationError, MutationKind

logger = logging.getLogger(__name__)

# A validator receives the candidate text and raises on a syntax problem
Validator = Callable[[str], None]

DEFAULT_MODE = 0o644


def read_text(path: Path, kind: MutationKind) -> str:
    """Read a target file without translating line endings.

    Raises:
        MutationError: If the file is missing or unreadable
    """
    try:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise MutationError(kind, path, e) from e


def atomic_write(
    path: Path,
    text: str,
    kind: MutationKind,
    validate: Optional[Validator] = None,
) -> None:
    """Write text to path so readers only ever see the old or the new file.

    The candidate is written next to the target, checked with ``validate``
    and swapped in with ``os.replace``. The original file mode is kept.

    Raises:
        MutationError: If validation or any filesystem step fails; the
            original file is untouched and the temp file removed
    """
    path = Path(path)
    if validate is not None:
        try:
            validate(text)
        except Exception as e:
            logger.error(f"Validation rejected new content for {path}: {e}")
            raise MutationError(kind, path, f"validation failed: {e}") from e

    tmp_path: Optional[Path] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        mode = stat.S_IMODE(path.stat().st_mode) if path.exists() else DEFAULT_MODE
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
        tmp_path = Path(tmp_name)
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
        tmp_path = None
        logger.debug(f"Wrote {path} ({len(text)} chars)")
    except OSError as e:
        raise MutationError(kind, path, e) from e
    finally:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
