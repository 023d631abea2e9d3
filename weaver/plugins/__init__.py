"""Plugin system for plugin-weaver.

Imports are lazy so lightweight components like PluginConfigService or
parse_manifest can be used without pulling in the compilers.
"""

__all__ = [
    "PluginManifest",
    "ManifestError",
    "parse_manifest",
    "PluginRegistry",
    "RegisteredPlugin",
    "RegisteredPluginSet",
    "ConflictReport",
    "PluginConflictError",
    "detect_conflicts",
    "PluginDiscovery",
    "HookRunner",
    "HookExecutionError",
    "PluginManager",
    "PluginConfigService",
]


def __getattr__(name):
    if name in ("PluginManifest", "ManifestError", "parse_manifest"):
        from weaver.plugins import manifest
        return getattr(manifest, name)
    if name in (
        "PluginRegistry",
        "RegisteredPlugin",
        "RegisteredPluginSet",
        "ConflictReport",
        "PluginConflictError",
        "detect_conflicts",
    ):
        from weaver.plugins import registry
        return getattr(registry, name)
    if name == "PluginDiscovery":
        from weaver.plugins.discovery import PluginDiscovery
        return PluginDiscovery
    if name in ("HookRunner", "HookExecutionError"):
        from weaver.plugins import lifecycle
        return getattr(lifecycle, name)
    if name == "PluginManager":
        from weaver.plugins.manager import PluginManager
        return PluginManager
    if name == "PluginConfigService":
        from weaver.plugins.config import PluginConfigService
        return PluginConfigService
    raise AttributeError(f"module 'weaver.plugins' has no attribute {name!r}")
