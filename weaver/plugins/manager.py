"""Plugin manager - top-level context object for the plugin compilation pipeline."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from weaver.compilers import COMPILERS, BuildTarget, CompileResult, PlatformCompiler
from weaver.mutation import MutationError
from weaver.plugins.config import PluginConfigService
from weaver.plugins.discovery import PluginDiscovery
from weaver.plugins.lifecycle import HookRunner
from weaver.plugins.manifest import HookName, Platform
from weaver.plugins.registry import PluginRegistry, RegisteredPluginSet

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Raised by BuildReport.raise_for_failures when any platform failed."""

    def __init__(self, failures: Dict[Platform, MutationError]):
        self.failures = failures
        lines = [f"  - {platform.value}: {error}" for platform, error in failures.items()]
        super().__init__("Compilation failed:\n" + "\n".join(lines))


@dataclass
class BuildReport:
    """Outcome of compiling one or more targets."""

    results: Dict[Platform, CompileResult] = field(default_factory=dict)
    failures: Dict[Platform, MutationError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def changed(self) -> List[Path]:
        return [path for result in self.results.values() for path in result.changed]

    def raise_for_failures(self) -> None:
        if self.failures:
            raise BuildError(self.failures)


class PluginManager:
    """Top-level plugin system orchestrator.

    Owns discovery, the registry, host configuration and hook execution.
    Build tooling creates one manager per run and passes it around instead of
    relying on module-level state.
    """

    def __init__(
        self,
        bundled_dir: Path,
        installed_dir: Path,
        config_file: Path,
        extra_paths: Optional[List[Path]] = None,
        hook_timeout: Optional[int] = None,
    ):
        self.bundled_dir = bundled_dir
        self.installed_dir = installed_dir
        self.config_service = PluginConfigService(config_file)

        # Build search paths: (path, source_label)
        search_paths = [
            (bundled_dir, "bundled"),
            (installed_dir, "installed"),
        ]
        # Add extra paths from WEAVER_PLUGIN_PATHS
        if extra_paths:
            for p in extra_paths:
                search_paths.append((p, "external"))

        self.discovery = PluginDiscovery(
            search_paths,
            allowlist=self.config_service.allowlist(),
            strict=self.config_service.strict,
        )
        self.registry = PluginRegistry(self.discovery)

        hook_settings = self.config_service.settings("hooks")
        timeout = hook_timeout or hook_settings.get("timeout")
        self.hooks = HookRunner(fail_on_error=bool(hook_settings.get("fail_on_error", True)))
        if timeout:
            self.hooks.timeout = int(timeout)

    # ------------------------------------------------------------------
    # Plugin set
    # ------------------------------------------------------------------

    def approved_plugins(self) -> RegisteredPluginSet:
        """Allowlisted, conflict-free plugin set.

        Raises:
            PluginConflictError: If approved plugins collide
            ManifestError: In strict mode, for a malformed declaration
        """
        return self.registry.approved()

    def refresh(self) -> RegisteredPluginSet:
        """Reload configuration and re-scan plugins."""
        self.config_service.reload()
        self.discovery.strict = self.config_service.strict
        self.discovery.set_allowlist(self.config_service.allowlist())
        return self.registry.refresh()

    def invalidate(self) -> None:
        self.registry.invalidate()

    def trust(self, provider: str) -> None:
        """Add a provider to the allowlist and drop cached plugins."""
        self.config_service.trust(provider)
        self.discovery.set_allowlist(self.config_service.allowlist())
        self.registry.invalidate()

    def untrust(self, provider: str) -> None:
        """Remove a provider from the allowlist and drop cached plugins."""
        self.config_service.untrust(provider)
        self.discovery.set_allowlist(self.config_service.allowlist())
        self.registry.invalidate()

    def get_plugin_info(self, provider: str) -> Optional[dict]:
        """Get plugin information as dict, whether trusted or not."""
        for plugin in self.discovery.discover_all():
            if plugin.id == provider:
                info = plugin.to_dict()
                info["trusted"] = self.discovery.is_allowed(provider)
                return info
        return None

    def list_plugins(self) -> List[dict]:
        """List every discovered plugin as dicts, with its trust state."""
        plugins = []
        for plugin in self.discovery.discover_all():
            info = plugin.to_dict()
            info["trusted"] = self.discovery.is_allowed(plugin.id)
            plugins.append(info)
        return plugins

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compiler_for(self, platform: Platform) -> PlatformCompiler:
        return COMPILERS[platform](self.config_service.settings(platform.value))

    def compile(self, targets: Iterable[BuildTarget], parallel: bool = False) -> BuildReport:
        """Compile the approved plugin set into every target.

        Conflicts abort before anything is touched. A MutationError stops
        only its own platform; the others still run. post_compile hooks run
        only when every platform succeeded.

        Args:
            targets: One build target per platform
            parallel: Compile platforms concurrently

        Returns:
            BuildReport with per-platform results and failures

        Raises:
            PluginConflictError: If approved plugins collide
            HookExecutionError: If a hook fails and fail_on_error is on
        """
        targets = list(targets)
        platforms = [t.platform for t in targets]
        if len(set(platforms)) != len(platforms):
            raise ValueError("At most one build target per platform")

        plugin_set = self.approved_plugins()
        for target in targets:
            self.hooks.run(HookName.PRE_COMPILE, plugin_set, target)

        report = BuildReport()
        if parallel and len(targets) > 1:
            with ThreadPoolExecutor(max_workers=len(targets)) as executor:
                futures = {t.platform: executor.submit(self._compile_one, t, plugin_set) for t in targets}
                outcomes = {platform: future.result() for platform, future in futures.items()}
        else:
            outcomes = {t.platform: self._compile_one(t, plugin_set) for t in targets}

        for platform, outcome in outcomes.items():
            if isinstance(outcome, MutationError):
                report.failures[platform] = outcome
            else:
                report.results[platform] = outcome

        if report.ok:
            for target in targets:
                self.hooks.run(HookName.POST_COMPILE, plugin_set, target)
        else:
            logger.error(f"Compilation failed for {', '.join(p.value for p in report.failures)}")
        return report

    def _compile_one(self, target: BuildTarget, plugin_set: RegisteredPluginSet):
        try:
            return self.compiler_for(target.platform).compile(target, plugin_set)
        except MutationError as e:
            logger.error(f"{target.platform.value} compilation failed: {e}")
            return e

    def copy_assets(self, target: BuildTarget) -> List[str]:
        """Run copy_assets hooks for a target."""
        return self.hooks.run(HookName.COPY_ASSETS, self.approved_plugins(), target)

    def post_build(self, target: BuildTarget) -> List[str]:
        """Run post_build hooks for a target."""
        return self.hooks.run(HookName.POST_BUILD, self.approved_plugins(), target)
