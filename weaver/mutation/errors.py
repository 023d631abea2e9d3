"""Mutation error types shared by every operation."""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class MutationKind(str, Enum):
    """The operation patterns the engine supports."""

    EXACT_REPLACE = "exact_replace"
    REGEX_REPLACE = "regex_replace"
    BLOCK_REPLACE = "block_replace"
    TEMPLATE_RENDER = "template_render"
    GUARDED_INJECT = "guarded_inject"
    COPY_TREE = "copy_tree"


class TransformError(ValueError):
    """A text transform could not be applied (missing anchor, bad markers, unsafe pattern)."""


class MutationError(Exception):
    """A single mutation failed; the target file was left as it was.

    Attributes:
        kind: Operation kind that failed
        target: File or directory the operation was applied to
        cause: Underlying exception or message
        plugin: Provider identity being compiled when it failed, if known
        step: Compiler step being run when it failed, if known
    """

    def __init__(
        self,
        kind: MutationKind,
        target: Path,
        cause: Union[BaseException, str],
        plugin: Optional[str] = None,
        step: Optional[str] = None,
    ):
        self.kind = kind
        self.target = Path(target)
        self.cause = cause
        self.plugin = plugin
        self.step = step
        super().__init__(str(cause))

    def attribute(self, plugin: Optional[str] = None, step: Optional[str] = None) -> "MutationError":
        """Record which plugin and step caused the failure (first attribution wins)."""
        if self.plugin is None:
            self.plugin = plugin
        if self.step is None:
            self.step = step
        return self

    def __str__(self) -> str:
        context = []
        if self.step:
            context.append(f"step={self.step}")
        if self.plugin:
            context.append(f"plugin={self.plugin}")
        where = f" [{', '.join(context)}]" if context else ""
        return f"{self.kind.value} failed on {self.target}{where}: {self.cause}"
