"""Plugin registry - approved plugin set, conflict detection and aggregation queries."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Tuple

from weaver.plugins.manifest import (
    AndroidComponent,
    BridgeEvent,
    BridgeFunction,
    DeepLink,
    HookName,
    NativeDependency,
    Platform,
    PluginManifest,
)

if TYPE_CHECKING:
    from weaver.plugins.discovery import PluginDiscovery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegisteredPlugin:
    """A plugin that passed the allowlist, with its package location."""

    manifest: PluginManifest
    path: Path
    source: str  # "bundled" | "installed" | "external"
    declaration: Optional[Path] = field(default=None, compare=False)

    @property
    def id(self) -> str:
        return self.manifest.provider

    @property
    def namespace(self) -> str:
        return self.manifest.namespace

    def to_dict(self) -> dict:
        """Serialize plugin for listings."""
        manifest = self.manifest
        return {
            "provider": manifest.provider,
            "namespace": manifest.namespace,
            "name": manifest.display_name,
            "version": manifest.version,
            "schema_version": manifest.schema_version,
            "source": self.source,
            "path": str(self.path),
            "functions": [f.name for f in manifest.bridge_functions],
            "permissions": sorted(manifest.permissions),
            "hooks": {hook.value: ref for hook, ref in manifest.hooks.items()},
        }


@dataclass(frozen=True)
class RegisteredPluginSet:
    """Ordered, immutable set of approved plugins with aggregation queries.

    Queries return results in a stable order so generated files do not
    churn between builds.
    """

    plugins: Tuple[RegisteredPlugin, ...] = ()

    def __iter__(self) -> Iterator[RegisteredPlugin]:
        return iter(self.plugins)

    def __len__(self) -> int:
        return len(self.plugins)

    def __bool__(self) -> bool:
        return bool(self.plugins)

    def providers(self) -> List[str]:
        return [p.id for p in self.plugins]

    def get(self, provider: str) -> Optional[RegisteredPlugin]:
        return next((p for p in self.plugins if p.id == provider), None)

    def get_by_namespace(self, namespace: str) -> List[RegisteredPlugin]:
        return [p for p in self.plugins if p.namespace == namespace]

    def permissions(self) -> List[str]:
        """Every distinct permission identifier, sorted."""
        return sorted({perm for p in self.plugins for perm in p.manifest.permissions})

    def usage_descriptions(self) -> Dict[str, str]:
        """Permission to description; the first registered plugin wins."""
        merged: Dict[str, str] = {}
        for plugin in self.plugins:
            for permission, text in plugin.manifest.usage_descriptions.items():
                merged.setdefault(permission, text)
        return merged

    def bridge_functions(self, platform: Optional[Platform] = None) -> List[Tuple[RegisteredPlugin, BridgeFunction]]:
        """(owner, function) pairs sorted by function name."""
        pairs = [
            (plugin, function)
            for plugin in self.plugins
            for function in plugin.manifest.bridge_functions
            if platform is None or function.entry_point(platform)
        ]
        return sorted(pairs, key=lambda pair: (pair[1].name, pair[0].id))

    def events(self) -> List[Tuple[RegisteredPlugin, BridgeEvent]]:
        """(owner, event) pairs sorted by event name; field order is untouched."""
        pairs = [(plugin, event) for plugin in self.plugins for event in plugin.manifest.events]
        return sorted(pairs, key=lambda pair: (pair[1].name, pair[0].id))

    def dependencies(self, platform: Platform) -> List[Tuple[RegisteredPlugin, NativeDependency]]:
        """Dependencies deduplicated by coordinate, in registration order.

        When two plugins ask for different versions of one coordinate the
        first registered plugin wins and the mismatch is logged.
        """
        chosen: Dict[str, Tuple[RegisteredPlugin, NativeDependency]] = {}
        for plugin in self.plugins:
            for dependency in plugin.manifest.dependencies_for(platform):
                existing = chosen.get(dependency.coordinate)
                if existing is None:
                    chosen[dependency.coordinate] = (plugin, dependency)
                elif existing[1].version != dependency.version:
                    logger.warning(
                        f"{platform.value} dependency {dependency.coordinate}: "
                        f"'{existing[0].id}' wants '{existing[1].version}', "
                        f"'{plugin.id}' wants '{dependency.version}'; keeping the first"
                    )
        return list(chosen.values())

    def android_components(self) -> List[Tuple[RegisteredPlugin, AndroidComponent]]:
        return [(plugin, component) for plugin in self.plugins for component in plugin.manifest.android_components]

    def deep_links(self) -> List[DeepLink]:
        """Distinct deep links in registration order."""
        seen: List[DeepLink] = []
        for plugin in self.plugins:
            for link in plugin.manifest.deep_links:
                if link not in seen:
                    seen.append(link)
        return seen

    def min_version(self, platform: Platform) -> Optional[str]:
        """Highest minimum platform version any plugin requires."""
        versions = [p.manifest.min_versions[platform] for p in self.plugins if platform in p.manifest.min_versions]
        if not versions:
            return None
        return max(versions, key=version_key)

    def hooks(self, hook: HookName) -> List[Tuple[RegisteredPlugin, str]]:
        """(owner, reference) for one hook point, in registration order."""
        return [(plugin, plugin.manifest.hooks[hook]) for plugin in self.plugins if hook in plugin.manifest.hooks]


def version_key(version: str) -> Tuple[int, ...]:
    """Sort key for dotted numeric versions ('13.0' < '13.4' < '14')."""
    parts = []
    for piece in str(version).split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


# ----------------------------------------------------------------------------
# Conflict detection
# ----------------------------------------------------------------------------


class ConflictKind(str, Enum):
    NAMESPACE = "namespace-collision"
    BRIDGE_FUNCTION = "bridge-function-collision"


@dataclass(frozen=True)
class Conflict:
    kind: ConflictKind
    identifier: str
    owners: Tuple[str, ...]

    def describe(self) -> str:
        label = "namespace" if self.kind == ConflictKind.NAMESPACE else "bridge function"
        return f"{label} '{self.identifier}' is declared by {', '.join(self.owners)}"


@dataclass(frozen=True)
class ConflictReport:
    conflicts: Tuple[Conflict, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.conflicts)

    def __len__(self) -> int:
        return len(self.conflicts)

    def __iter__(self) -> Iterator[Conflict]:
        return iter(self.conflicts)

    def of_kind(self, kind: ConflictKind) -> List[Conflict]:
        return [c for c in self.conflicts if c.kind == kind]

    def describe(self) -> str:
        return "\n".join(f"  - {c.describe()}" for c in self.conflicts)


class PluginConflictError(Exception):
    """Raised when approved plugins collide; nothing has been mutated yet."""

    def __init__(self, report: ConflictReport):
        self.report = report
        super().__init__(f"{len(report)} plugin conflict(s):\n{report.describe()}")


def detect_conflicts(plugin_set: RegisteredPluginSet) -> ConflictReport:
    """Find identifiers claimed by more than one plugin.

    Every owner of a colliding identifier is named; the result does not
    depend on registration order.
    """
    namespaces: Dict[str, set] = defaultdict(set)
    functions: Dict[str, set] = defaultdict(set)
    for plugin in plugin_set:
        namespaces[plugin.namespace].add(plugin.id)
        for function in plugin.manifest.bridge_functions:
            functions[function.name].add(plugin.id)

    conflicts = []
    for kind, owners_by_key in ((ConflictKind.NAMESPACE, namespaces), (ConflictKind.BRIDGE_FUNCTION, functions)):
        for identifier, owners in owners_by_key.items():
            if len(owners) > 1:
                conflicts.append(Conflict(kind=kind, identifier=identifier, owners=tuple(sorted(owners))))

    conflicts.sort(key=lambda c: (c.kind.value, c.identifier))
    return ConflictReport(conflicts=tuple(conflicts))


class PluginRegistry:
    """Central registry over discovery: the approved set, conflicts and queries."""

    def __init__(self, discovery: PluginDiscovery):
        self.discovery = discovery
        self._report: Optional[ConflictReport] = None
        self._report_for: Optional[RegisteredPluginSet] = None

    def plugins(self) -> RegisteredPluginSet:
        """Get the allowlisted plugin set (cached by discovery)."""
        return self.discovery.discover()

    def detect_conflicts(self, plugin_set: Optional[RegisteredPluginSet] = None) -> ConflictReport:
        """Detect conflicts in the given set, or in the current plugin set."""
        plugin_set = plugin_set if plugin_set is not None else self.plugins()
        if self._report is not None and self._report_for is plugin_set:
            return self._report

        report = detect_conflicts(plugin_set)
        self._report, self._report_for = report, plugin_set
        if report:
            logger.error(f"Detected {len(report)} plugin conflict(s):\n{report.describe()}")
        return report

    def approved(self) -> RegisteredPluginSet:
        """Get the plugin set, guaranteed conflict-free.

        Raises:
            PluginConflictError: If any namespace or bridge function collides
        """
        plugin_set = self.plugins()
        report = self.detect_conflicts(plugin_set)
        if report:
            raise PluginConflictError(report)
        return plugin_set

    def refresh(self) -> RegisteredPluginSet:
        """Re-scan installed plugins."""
        self._report = self._report_for = None
        return self.discovery.refresh()

    def invalidate(self) -> None:
        """Drop cached plugins and conflict results."""
        self._report = self._report_for = None
        self.discovery.invalidate()

    def get(self, provider: str) -> Optional[RegisteredPlugin]:
        """Get a plugin by provider identity."""
        return self.plugins().get(provider)

    def get_by_namespace(self, namespace: str) -> List[RegisteredPlugin]:
        return self.plugins().get_by_namespace(namespace)

    def has(self, provider: str) -> bool:
        return self.get(provider) is not None

    def count(self) -> int:
        return len(self.plugins())

    def dependencies(self, platform: Platform) -> List[Tuple[RegisteredPlugin, NativeDependency]]:
        return self.plugins().dependencies(platform)

    def permissions(self) -> List[str]:
        return self.plugins().permissions()

    def bridge_functions(self, platform: Optional[Platform] = None) -> List[Tuple[RegisteredPlugin, BridgeFunction]]:
        return self.plugins().bridge_functions(platform)

    def events(self) -> List[Tuple[RegisteredPlugin, BridgeEvent]]:
        return self.plugins().events()

    def hooks(self, hook: HookName) -> List[Tuple[RegisteredPlugin, str]]:
        return self.plugins().hooks(hook)
