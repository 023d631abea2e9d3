"""Plugin discovery - scans directories for plugin declarations and applies the allowlist."""

import logging
import threading
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from weaver.plugins.manifest import ManifestError, is_declaration_file, parse_manifest
from weaver.plugins.registry import RegisteredPlugin, RegisteredPluginSet

logger = logging.getLogger(__name__)

SearchPath = Union[Path, Tuple[Path, str]]
Allowlist = Union[Iterable[str], Callable[[str], bool], None]


class PluginDiscovery:
    """Discovers plugins by scanning directories for declaration files.

    Only plugins whose provider identity passes the allowlist are returned by
    :meth:`discover`. With no allowlist at all nothing is trusted.
    """

    def __init__(self, search_paths: List[SearchPath], allowlist: Allowlist = None, strict: bool = False):
        """Initialize discovery with search paths.

        Args:
            search_paths: List of (path, source_label) tuples or just paths.
                          Will be searched in order.
            allowlist: Trusted provider identities, or a predicate over them.
                       None trusts nothing.
            strict: Abort on the first malformed declaration instead of skipping it
        """
        self.search_paths = [p if isinstance(p, tuple) else (Path(p), "installed") for p in search_paths]
        self.strict = strict
        self._allowlist = allowlist
        self._lock = threading.Lock()
        self._cached: Optional[RegisteredPluginSet] = None

    def set_allowlist(self, allowlist: Allowlist) -> None:
        """Replace the allowlist and drop the cached result."""
        with self._lock:
            self._allowlist = allowlist
            self._cached = None

    def is_allowed(self, provider: str) -> bool:
        """Check a provider identity against the allowlist."""
        allowlist = self._allowlist
        if allowlist is None:
            return False
        if callable(allowlist):
            return bool(allowlist(provider))
        return provider in allowlist

    def discover(self) -> RegisteredPluginSet:
        """Get the allowlisted plugins, scanning on first use.

        Returns:
            RegisteredPluginSet in discovery order

        Raises:
            ManifestError: In strict mode, for the first malformed declaration
        """
        with self._lock:
            if self._cached is None:
                self._cached = self._scan_allowed()
            return self._cached

    def refresh(self) -> RegisteredPluginSet:
        """Discard the cache and scan again."""
        self.invalidate()
        return self.discover()

    def invalidate(self) -> None:
        """Drop the cached result; the next discover() re-scans."""
        with self._lock:
            self._cached = None

    def discover_all(self) -> List[RegisteredPlugin]:
        """Discover every parseable plugin, ignoring the allowlist.

        Returns:
            List of plugins from all search paths (first-found wins)
        """
        discovered = []
        seen_ids = set()

        for search_path, source in self.search_paths:
            if not search_path.exists():
                logger.debug(f"Plugin search path does not exist: {search_path}")
                continue

            for plugin in self._scan_directory(search_path, source):
                if plugin.id in seen_ids:
                    logger.warning(
                        f"Duplicate provider '{plugin.id}' found at {plugin.path}, "
                        f"skipping (first-found wins)"
                    )
                    continue
                seen_ids.add(plugin.id)
                discovered.append(plugin)

        logger.debug(f"Discovered {len(discovered)} plugin declaration(s)")
        return discovered

    def _scan_allowed(self) -> RegisteredPluginSet:
        if self._allowlist is None:
            logger.warning("No plugin allowlist configured, no plugins will be trusted")
            return RegisteredPluginSet()

        allowed = []
        for plugin in self.discover_all():
            if not self.is_allowed(plugin.id):
                logger.info(f"Plugin '{plugin.id}' is not on the allowlist, skipping")
                continue
            allowed.append(plugin)

        logger.info(f"Discovered {len(allowed)} trusted plugin(s)")
        return RegisteredPluginSet(plugins=tuple(allowed))

    def _scan_directory(self, search_path: Path, source: str) -> List[RegisteredPlugin]:
        """Scan a directory for plugin package subdirectories."""
        plugins = []
        for item in sorted(search_path.iterdir()):
            if item.is_dir():
                plugins.extend(self._load_package(item, source))
        return plugins

    def _load_package(self, package_dir: Path, source: str) -> List[RegisteredPlugin]:
        """Load every declaration file in one package directory.

        A package may declare several providers (one file each).
        """
        plugins = []
        for declaration in sorted(p for p in package_dir.iterdir() if p.is_file() and is_declaration_file(p)):
            try:
                manifest = parse_manifest(declaration, strict=self.strict)
            except ManifestError as e:
                if self.strict:
                    logger.error(f"Invalid plugin declaration {declaration}: {e}")
                    raise
                logger.warning(f"Skipping invalid plugin declaration {declaration}: {e}")
                continue

            plugins.append(RegisteredPlugin(manifest=manifest, path=package_dir, source=source, declaration=declaration))
            logger.debug(f"Discovered plugin: {manifest.provider} at {package_dir}")
        return plugins
