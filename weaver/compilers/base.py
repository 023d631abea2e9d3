"""Platform compiler base - the shared four-step pipeline over an approved plugin set."""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from weaver.mutation import MutationError, MutationKind, TransformError, prune_children, read_text, sync_tree
from weaver.plugins.manifest import Platform
from weaver.plugins.registry import PluginConflictError, RegisteredPluginSet, detect_conflicts

logger = logging.getLogger(__name__)


class CompileStep(str, Enum):
    COPY_SOURCES = "copy_sources"
    RENDER_GLUE = "render_glue"
    MERGE_CONFIG = "merge_config"
    INJECT_DEPENDENCIES = "inject_dependencies"


@dataclass(frozen=True)
class BuildTarget:
    """One native project to compile plugins into.

    ``build_root`` defaults to ``<project_root>/build``.
    """

    platform: Platform
    project_root: Path
    build_root: Optional[Path] = None

    def __post_init__(self):
        object.__setattr__(self, "project_root", Path(self.project_root))
        build_root = self.build_root if self.build_root is not None else self.project_root / "build"
        object.__setattr__(self, "build_root", Path(build_root))


@dataclass
class CompileResult:
    platform: Platform
    plugins: List[str] = field(default_factory=list)
    changed: List[Path] = field(default_factory=list)

    def record(self, path: Path, written: bool) -> None:
        if written and Path(path) not in self.changed:
            self.changed.append(Path(path))


class PlatformCompiler(ABC):
    """Weaves an approved plugin set into one platform's project tree.

    Subclasses supply target file locations, mappings and templates; the
    step order and error attribution live here. Compilers keep no state
    between runs, so one instance may serve several targets.
    """

    platform: Platform
    default_source_dir: str

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        self.settings = dict(settings or {})

    def compile(self, target: BuildTarget, plugin_set: RegisteredPluginSet) -> CompileResult:
        """Run every compile step for a target.

        Args:
            target: Project to mutate; its platform must match this compiler
            plugin_set: Approved plugins in registration order

        Returns:
            CompileResult listing the files that were written

        Raises:
            PluginConflictError: Before any file is touched, if plugins collide
            MutationError: Annotated with the failing step (and plugin, when known)
        """
        if target.platform != self.platform:
            raise ValueError(f"{type(self).__name__} cannot compile a {target.platform.value} target")

        report = detect_conflicts(plugin_set)
        if report:
            raise PluginConflictError(report)

        result = CompileResult(platform=self.platform, plugins=plugin_set.providers())
        logger.info(f"Compiling {len(plugin_set)} plugin(s) into {self.platform.value} project {target.project_root}")

        with self.step(CompileStep.COPY_SOURCES):
            self.copy_sources(target, plugin_set, result)
        with self.step(CompileStep.RENDER_GLUE):
            self.render_glue(target, plugin_set, result)
        with self.step(CompileStep.MERGE_CONFIG):
            self.merge_config(target, plugin_set, result)
        with self.step(CompileStep.INJECT_DEPENDENCIES):
            self.inject_dependencies(target, plugin_set, result)

        logger.info(f"{self.platform.value}: {len(result.changed)} file(s) changed")
        return result

    @staticmethod
    @contextmanager
    def step(step: CompileStep, plugin: Optional[str] = None) -> Iterator[None]:
        """Attribute any MutationError raised inside to a step and plugin."""
        try:
            yield
        except MutationError as e:
            raise e.attribute(plugin, step.value)

    # ------------------------------------------------------------------
    # Step 1: native sources
    # ------------------------------------------------------------------

    @abstractmethod
    def sources_root(self, target: BuildTarget) -> Path:
        """Directory holding one subdirectory of copied sources per plugin namespace."""

    def copy_sources(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        root = self.sources_root(target)
        kept = []
        for plugin in plugin_set:
            declared = plugin.manifest.sources.get(self.platform)
            source = plugin.path / (declared or self.default_source_dir)
            with self.step(CompileStep.COPY_SOURCES, plugin.id):
                if not source.is_dir():
                    if declared:
                        raise MutationError(MutationKind.COPY_TREE, source, "declared source directory not found")
                    logger.debug(f"Plugin '{plugin.id}' has no {self.platform.value} sources")
                    continue
                result.changed.extend(sync_tree(source, root / plugin.namespace, mirror=True))
            kept.append(plugin.namespace)

        result.changed.extend(prune_children(root, kept))

    def copied_namespaces(self, target: BuildTarget, plugin_set: RegisteredPluginSet) -> List[str]:
        """Namespaces whose sources are present in the project, in registration order."""
        root = self.sources_root(target)
        return [p.namespace for p in plugin_set if (root / p.namespace).is_dir()]

    # ------------------------------------------------------------------
    # Steps 2-4: platform specific
    # ------------------------------------------------------------------

    @abstractmethod
    def render_glue(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        """Generate the bridge registration unit."""

    @abstractmethod
    def merge_config(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        """Merge permissions, components and deep links into project configuration."""

    @abstractmethod
    def inject_dependencies(self, target: BuildTarget, plugin_set: RegisteredPluginSet, result: CompileResult) -> None:
        """Declare aggregated native dependencies in the build files."""

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def host_content(path: Path, strip: Callable[[str], str], kind: MutationKind = MutationKind.BLOCK_REPLACE) -> str:
        """Read a file with generated regions removed by ``strip``.

        Used to see what the host project declares on its own.
        """
        content = read_text(path, kind)
        try:
            return strip(content)
        except TransformError as e:
            raise MutationError(kind, path, e) from e
