"""Idempotent mutation operations for native project files."""

from weaver.mutation.atomic import atomic_write, read_text
from weaver.mutation.errors import MutationError, MutationKind, TransformError
from weaver.mutation.files import (
    apply_block_replace,
    apply_exact_replace,
    apply_guarded_inject,
    apply_regex_replace,
    prune_children,
    sync_tree,
    write_if_changed,
)
from weaver.mutation.templates import TemplateRegistry, apply_template
from weaver.mutation.text import (
    HASH_COMMENT,
    SLASH_COMMENT,
    XML_COMMENT,
    Anchor,
    CommentStyle,
    inject_guarded,
    read_block,
    replace_block,
    replace_exact,
    replace_pattern,
    strip_block,
)

__all__ = [
    "Anchor",
    "CommentStyle",
    "HASH_COMMENT",
    "MutationError",
    "MutationKind",
    "SLASH_COMMENT",
    "TemplateRegistry",
    "TransformError",
    "XML_COMMENT",
    "apply_block_replace",
    "apply_exact_replace",
    "apply_guarded_inject",
    "apply_regex_replace",
    "apply_template",
    "atomic_write",
    "inject_guarded",
    "prune_children",
    "read_block",
    "read_text",
    "replace_block",
    "replace_exact",
    "replace_pattern",
    "strip_block",
    "sync_tree",
    "write_if_changed",
]
