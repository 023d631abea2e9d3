"""Named templates rendered into whole generated files."""

import logging
from pathlib import Path
from string import Template
from typing import Any, Dict, List, Mapping, Optional

from weaver.mutation.atomic import Validator
from weaver.mutation.errors import MutationError, MutationKind, TransformError
from weaver.mutation.files import write_if_changed

logger = logging.getLogger(__name__)


class TemplateRegistry:
    """Holds ``string.Template`` sources by name (``${placeholder}`` syntax)."""

    def __init__(self, templates: Optional[Mapping[str, str]] = None):
        self._templates: Dict[str, Template] = {}
        for name, source in (templates or {}).items():
            self.register(name, source)

    def register(self, name: str, source: str) -> None:
        if name in self._templates:
            logger.warning(f"Template '{name}' already registered, overwriting")
        self._templates[name] = Template(source)

    def has(self, name: str) -> bool:
        return name in self._templates

    def names(self) -> List[str]:
        return sorted(self._templates)

    def render(self, name: str, values: Mapping[str, Any]) -> str:
        """Fill a template's placeholders.

        Raises:
            TransformError: If the template is unknown or a placeholder has no value
        """
        template = self._templates.get(name)
        if template is None:
            raise TransformError(f"unknown template: {name}")
        try:
            return template.substitute(values)
        except KeyError as e:
            raise TransformError(f"template '{name}' missing value for {e}") from e
        except ValueError as e:
            raise TransformError(f"template '{name}' is malformed: {e}") from e


def apply_template(
    registry: TemplateRegistry,
    name: str,
    values: Mapping[str, Any],
    destination: Path,
    validate: Optional[Validator] = None,
) -> bool:
    """Render a template and write it over ``destination``.

    Returns:
        True if the file was (re)written
    """
    try:
        content = registry.render(name, values)
    except TransformError as e:
        raise MutationError(MutationKind.TEMPLATE_RENDER, destination, e) from e
    return write_if_changed(destination, content, MutationKind.TEMPLATE_RENDER, validate)
